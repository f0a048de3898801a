"""
Sessions API - FastAPI router over price change sessions.

Each endpoint forwards to one PriceChangeSession operation and returns the
resulting state. Domain errors are mapped to HTTP codes in main.py.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ..engine.formatting import format_amount
from ..engine.models import CellKey, EditingContext, PriceGroupAction, ValidationResult
from ..engine.price_matrix import PriceMatrix
from ..engine.bulk_paste import apply_paste
from ..exceptions import CatalogError
from ..workflow.gtm_binder import GtmSelection
from ..workflow.session import PriceChangeSession, Step
from . import state

router = APIRouter(prefix="/api/sessions", tags=["sessions"])
gtm_router = APIRouter(prefix="/api/gtm", tags=["gtm"])


# Pydantic models for API
class SessionCreate(BaseModel):
    """Start a session; giving a price group opens it in direct-edit mode."""
    product_id: str
    price_group_id: Optional[str] = None


class ContextUpdate(BaseModel):
    channel: Optional[str] = None
    billing_cycle: Optional[str] = None
    experiment_key: Optional[str] = None
    experiment_treatment: Optional[str] = None


class PriceGroupChoice(BaseModel):
    price_group_id: Optional[str] = None


class SkuChoice(BaseModel):
    action: PriceGroupAction
    sku_id: Optional[str] = None


class CellRef(BaseModel):
    currency: str
    seat_range: Optional[str] = None
    tier: Optional[str] = None


class CellEdit(CellRef):
    value: str = ""


class PasteRequest(CellRef):
    text: str


class CurrencyRequest(BaseModel):
    currency: str


class ValidityOverride(BaseModel):
    currency: Optional[str] = None
    start: date
    end: Optional[date] = None


class GtmChoice(BaseModel):
    """Either motion_id, or name + description + activation_date for a new motion."""
    motion_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    activation_date: Optional[date] = None


class SessionResponse(BaseModel):
    session_id: str
    product_id: str
    step: str
    step_number: int
    step_count: int
    direct_edit: bool
    context: dict
    has_changes: bool
    change_count: int
    warnings: list[str]
    closed: bool


class ValidationResponse(BaseModel):
    valid: bool
    errors: list[str]
    warnings: list[str]


class CommitResponse(BaseModel):
    success: bool
    motion_id: Optional[str] = None
    motion_name: Optional[str] = None
    created: bool = False
    error: Optional[str] = None


# Helpers

def _session(session_id: str) -> PriceChangeSession:
    session = state.get_sessions().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _matrix(session: PriceChangeSession) -> PriceMatrix:
    if session.matrix is None:
        raise HTTPException(status_code=409, detail="No price matrix at this step")
    return session.matrix


def _editable_matrix(session: PriceChangeSession) -> PriceMatrix:
    """The matrix, only while prices are being edited; later steps work off the captured set."""
    session.require_step(Step.MATRIX_EDIT)
    return _matrix(session)


def _cell_key(matrix: PriceMatrix, ref: CellRef) -> CellKey:
    if not matrix.tiered:
        return matrix.key(ref.currency)
    if not ref.seat_range:
        raise HTTPException(status_code=400, detail="seat_range is required for tiered matrices")
    try:
        return matrix.key(ref.currency, ref.seat_range, ref.tier)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _session_response(session_id: str, session: PriceChangeSession) -> SessionResponse:
    draft = session.draft
    context = session.context.to_dict() if session.context else {
        'channel': draft.channel,
        'billing_cycle': draft.billing_cycle,
        'action': draft.action.value if draft.action else None,
        'existing_price_group_id': draft.existing_price_group.id if draft.existing_price_group else None,
        'clone_price_group_id': draft.clone_price_group.id if draft.clone_price_group else None,
        'experiment_key': draft.experiment_key,
        'experiment_treatment': draft.experiment_treatment,
        'target_sku_id': None,
    }
    matrix = session.matrix
    return SessionResponse(
        session_id=session_id,
        product_id=session.product.id,
        step=session.step.value,
        step_number=session.step_number,
        step_count=session.step_count,
        direct_edit=session.direct_edit,
        context=context,
        has_changes=matrix.has_changes if matrix else False,
        change_count=matrix.change_count() if matrix else 0,
        warnings=session.warnings,
        closed=session.closed,
    )


def _validation_response(result: ValidationResult) -> ValidationResponse:
    return ValidationResponse(valid=result.valid, errors=result.errors, warnings=result.warnings)


def _matrix_view(matrix: PriceMatrix) -> dict:
    currencies = []
    for currency in matrix.currencies:
        change_count = matrix.change_count(currency)
        resolved = matrix.validity.resolve(
            currency, has_baseline=matrix.has_baseline(currency), has_changes=change_count > 0
        )
        rows = []
        for row in matrix.rows(currency):
            seat_range = row[0].key.seat_range if row else None
            rows.append({
                'seat_range': str(seat_range) if seat_range is not None else None,
                'cells': [
                    {
                        'tier': cell.key.tier,
                        'current_price': str(cell.current_price) if cell.current_price is not None else None,
                        'current_display': (
                            format_amount(cell.current_price, currency) if cell.current_price is not None else None
                        ),
                        'input': cell.input_text,
                        'delta_amount': str(cell.delta.amount) if cell.delta else None,
                        'delta_percentage': cell.delta.percentage if cell.delta else None,
                    }
                    for cell in row
                ],
            })
        currencies.append({
            'currency': currency,
            'tiers': matrix.tiers(currency),
            'rows': rows,
            'change_count': change_count,
            'has_baseline': matrix.has_baseline(currency),
            'validity': {
                **resolved.window.to_dict(),
                'label': resolved.window.label(),
                'editable': resolved.editable,
                'uses_defaults': resolved.uses_defaults,
            },
        })
    return {
        'tiered': matrix.tiered,
        'has_changes': matrix.has_changes,
        'all_prices_new': matrix.all_prices_new,
        'can_undo': matrix.can_undo,
        'currencies': currencies,
    }


# Endpoints

@router.post("", response_model=SessionResponse)
async def create_session(request: SessionCreate):
    """Open a full-flow session, or a direct-edit session on one price group."""
    product = state.get_catalog().get_product(request.product_id)
    context = None
    if request.price_group_id:
        skus = product.skus_for_price_group(request.price_group_id)
        if not skus:
            raise CatalogError(f"Price group '{request.price_group_id}' not found on {product.id}")
        sku = skus[0]
        context = EditingContext(
            channel=sku.sales_channel,
            billing_cycle=sku.billing_cycle,
            action=PriceGroupAction.UPDATE,
            existing_price_group=sku.price_group,
            experiment=sku.experiment,
            target_sku_id=sku.id,
        )
    session = PriceChangeSession(
        product, state.get_repository(), today=state.get_today(), context=context
    )
    session_id = state.get_sessions().add(session)
    return _session_response(session_id, session)


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _session_response(session_id, _session(session_id))


@router.delete("/{session_id}")
async def cancel_session(session_id: str):
    """Discard a session without writing anything."""
    session = _session(session_id)
    session.cancel()
    state.get_sessions().remove(session_id)
    return {"success": True, "message": f"Session '{session_id}' cancelled"}


@router.get("/{session_id}/options")
async def get_options(session_id: str):
    """Selectable channels, billing cycles, price groups and experiments."""
    session = _session(session_id)
    resolver, draft = session.resolver, session.draft

    def option(o):
        return {
            'price_group_id': o.price_group.id,
            'channel': o.channel,
            'billing_cycle': o.billing_cycle,
            'experiment': str(o.experiment) if o.experiment else None,
            'active_price_count': o.active_price_count,
            'most_recent_valid_from': o.most_recent_valid_from,
            'preview': o.preview,
        }

    channels = resolver.channel_options()
    billing = resolver.billing_cycle_options(draft.channel)
    return {
        'channels': {'existing': channels.existing, 'new': channels.new},
        'billing_cycles': {'existing': billing.existing, 'new': billing.new},
        'existing_price_groups': [
            option(o) for o in resolver.existing_price_groups(draft.channel, draft.billing_cycle)
        ],
        'clone_sources': [option(o) for o in resolver.clone_sources()],
        'experiments': resolver.experiment_options(),
    }


@router.put("/{session_id}/context", response_model=ValidationResponse)
async def update_context(session_id: str, update: ContextUpdate):
    """Apply the fields that were sent; unsent fields are left alone."""
    session = _session(session_id)
    session.require_step(Step.CONTEXT_SELECTION)
    fields = update.model_dump(exclude_unset=True)
    draft = session.draft
    if 'channel' in fields:
        draft.set_channel(fields['channel'])
    if 'billing_cycle' in fields:
        draft.set_billing_cycle(fields['billing_cycle'])
    if 'experiment_key' in fields:
        draft.set_experiment_key(fields['experiment_key'])
    if 'experiment_treatment' in fields:
        draft.set_experiment_treatment(fields['experiment_treatment'])
    return _validation_response(session.gate())


@router.post("/{session_id}/context/blank", response_model=ValidationResponse)
async def choose_blank(session_id: str):
    session = _session(session_id)
    session.require_step(Step.CONTEXT_SELECTION)
    session.draft.choose_blank()
    return _validation_response(session.gate())


@router.post("/{session_id}/context/existing", response_model=ValidationResponse)
async def choose_existing(session_id: str, choice: PriceGroupChoice):
    session = _session(session_id)
    session.require_step(Step.CONTEXT_SELECTION)
    session.draft.select_existing_price_group(choice.price_group_id)
    return _validation_response(session.gate())


@router.post("/{session_id}/context/clone", response_model=ValidationResponse)
async def choose_clone(session_id: str, choice: PriceGroupChoice):
    """Pick a clone source, or send null to clear it and reset the context."""
    session = _session(session_id)
    session.select_clone_source(choice.price_group_id)
    return _validation_response(session.gate())


@router.get("/{session_id}/sku")
async def get_sku_resolution(session_id: str):
    session = _session(session_id)
    resolution = session.sku_resolution()
    return {
        'conflict': resolution.conflict,
        'message': resolution.message,
        'matches': [
            {'sku_id': sku.id, 'price_group_id': sku.price_group.id}
            for sku in resolution.matches
        ],
        'action': session.sku_action.value if session.sku_action else None,
        'sku_id': session.sku_id,
    }


@router.post("/{session_id}/sku", response_model=ValidationResponse)
async def choose_sku(session_id: str, choice: SkuChoice):
    session = _session(session_id)
    session.choose_sku_action(choice.action, choice.sku_id)
    return _validation_response(session.gate())


@router.get("/{session_id}/matrix")
async def get_matrix(session_id: str):
    return _matrix_view(_matrix(_session(session_id)))


@router.put("/{session_id}/matrix/cells")
async def edit_cell(session_id: str, edit: CellEdit):
    session = _session(session_id)
    matrix = _editable_matrix(session)
    try:
        matrix.set_cell(_cell_key(matrix, edit), edit.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _matrix_view(matrix)


@router.post("/{session_id}/matrix/paste")
async def paste(session_id: str, request: PasteRequest):
    """Paste TSV text anchored at a cell."""
    matrix = _editable_matrix(_session(session_id))
    result = apply_paste(matrix, _cell_key(matrix, request), request.text)
    return {
        'applied': len(result.assignments),
        'two_dimensional': result.two_dimensional,
        'discarded': result.discarded,
        'matrix': _matrix_view(matrix),
    }


@router.post("/{session_id}/matrix/undo")
async def undo(session_id: str):
    matrix = _editable_matrix(_session(session_id))
    undone = matrix.undo()
    return {'undone': undone, 'matrix': _matrix_view(matrix)}


@router.post("/{session_id}/matrix/currencies")
async def add_currency(session_id: str, request: CurrencyRequest):
    matrix = _editable_matrix(_session(session_id))
    if matrix.tiered:
        raise HTTPException(status_code=400, detail="Currencies of a tiered matrix come from its price group")
    if not matrix.add_currency(request.currency):
        raise HTTPException(status_code=400, detail=f"Currency '{request.currency}' cannot be added")
    return _matrix_view(matrix)


@router.delete("/{session_id}/matrix/currencies/{currency}")
async def remove_currency(session_id: str, currency: str):
    matrix = _editable_matrix(_session(session_id))
    if matrix.tiered or not matrix.remove_currency(currency):
        raise HTTPException(status_code=400, detail=f"Currency '{currency}' cannot be removed")
    return _matrix_view(matrix)


@router.put("/{session_id}/validity", response_model=ValidationResponse)
async def set_validity(session_id: str, override: ValidityOverride):
    matrix = _editable_matrix(_session(session_id))
    return _validation_response(matrix.validity.set_override(override.currency, override.start, override.end))


@router.delete("/{session_id}/validity")
async def cancel_validity(session_id: str, currency: Optional[str] = None):
    """Revert to the default window."""
    matrix = _editable_matrix(_session(session_id))
    return {'cancelled': matrix.validity.cancel_override(currency)}


@router.post("/{session_id}/next", response_model=SessionResponse)
async def next_step(session_id: str):
    session = _session(session_id)
    result = session.advance()
    if not result.valid:
        raise HTTPException(status_code=400, detail={"errors": result.errors})
    return _session_response(session_id, session)


@router.post("/{session_id}/back", response_model=SessionResponse)
async def previous_step(session_id: str):
    session = _session(session_id)
    session.back()
    return _session_response(session_id, session)


@router.get("/{session_id}/changes")
async def get_changes(session_id: str):
    """The captured change set, grouped by currency."""
    session = _session(session_id)
    return {
        'warnings': session.warnings,
        'groups': [
            {
                'currency': group.currency,
                'currency_name': group.currency_name,
                'validity_label': group.validity_label,
                'new': group.new_count,
                'increased': group.increased_count,
                'decreased': group.decreased_count,
                'changes': [{**record.to_dict(), 'tier_label': record.tier_label} for record in group.records],
            }
            for group in session.summary()
        ],
    }


@router.put("/{session_id}/gtm", response_model=ValidationResponse)
async def choose_gtm(session_id: str, choice: GtmChoice):
    session = _session(session_id)
    if choice.motion_id:
        selection = GtmSelection.existing(choice.motion_id)
    else:
        selection = GtmSelection.new(
            choice.name or '', choice.description or '', choice.activation_date or state.get_today()
        )
    return _validation_response(session.select_gtm_motion(selection))


@router.post("/{session_id}/commit", response_model=CommitResponse)
async def commit(session_id: str):
    """Commit to the selected motion. A failed commit leaves the session open."""
    session = _session(session_id)
    result = await session.commit()
    if result.success:
        state.get_sessions().remove(session_id)
    return CommitResponse(
        success=result.success,
        motion_id=result.motion_id,
        motion_name=result.motion_name,
        created=result.created,
        error=result.error,
    )


@gtm_router.get("/motions")
async def list_motions():
    """Draft motions that can take new items."""
    return [
        {
            'id': m.id,
            'name': m.name,
            'description': m.description,
            'activation_date': m.activation_date,
            'status': m.status,
            'item_count': len(m.items),
            'updated_date': m.updated_date or m.created_date,
        }
        for m in state.get_repository().list_draft_motions()
    ]
