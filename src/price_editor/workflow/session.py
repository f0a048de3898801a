"""
Price Change Session - the step-by-step workflow for one pricing edit.

Full flow:        context -> SKU -> prices -> review -> GTM motion
Direct-edit flow:                   prices -> review -> GTM motion

Each session owns its own draft, matrix, and captured change set. Nothing
leaves the session until commit succeeds; cancel simply drops the state.
"""
import logging
from datetime import date
from enum import Enum
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.change_set import CurrencyChangeGroup, build_changes, summarize_changes
from ..engine.context_resolver import ContextDraft, ContextResolver
from ..engine.models import ChangeRecord, EditingContext, PriceGroupAction, Product, ValidationResult
from ..engine.price_matrix import PriceMatrix, build_matrix
from ..engine.sku_resolver import SkuResolution, SkuResolver
from ..exceptions import ContextError, MatrixStateError, WorkflowError
from ..services.gtm_repository import GtmRepository
from .gtm_binder import CommitResult, GtmBinder, GtmSelection

logger = logging.getLogger(__name__)


class Step(str, Enum):
    CONTEXT_SELECTION = 'context_selection'
    SKU_RESOLUTION = 'sku_resolution'
    MATRIX_EDIT = 'matrix_edit'
    REVIEW = 'review'
    GTM_ASSIGNMENT = 'gtm_assignment'


FULL_FLOW = (
    Step.CONTEXT_SELECTION,
    Step.SKU_RESOLUTION,
    Step.MATRIX_EDIT,
    Step.REVIEW,
    Step.GTM_ASSIGNMENT,
)

DIRECT_EDIT_FLOW = (Step.MATRIX_EDIT, Step.REVIEW, Step.GTM_ASSIGNMENT)

CAPTURE_FAILED = "Price changes could not be captured. Go back and re-enter your prices."


class PriceChangeSession:
    """
    Drives one product through the price change workflow.

    Passing a complete `context` starts the direct-edit flow: the context is
    fixed and the session opens on the price matrix.
    """

    def __init__(
        self,
        product: Product,
        gtm_repository: GtmRepository,
        settings: Optional[Settings] = None,
        today: Optional[date] = None,
        context: Optional[EditingContext] = None
    ):
        self.product = product
        self.settings = settings or get_settings()
        self.today = today or date.today()
        self.repository = gtm_repository
        self.binder = GtmBinder(gtm_repository)
        self.resolver = ContextResolver(product, self.settings, self.today)
        self.sku_resolver = SkuResolver(product)
        self.draft = ContextDraft(self.resolver)

        self.direct_edit = context is not None
        self.steps = DIRECT_EDIT_FLOW if self.direct_edit else FULL_FLOW
        self._index = 0

        self.sku_action: Optional[PriceGroupAction] = None
        self.sku_id: Optional[str] = None
        self.context: Optional[EditingContext] = None
        self.matrix: Optional[PriceMatrix] = None
        self._matrix_context: Optional[EditingContext] = None
        self.changes: list[ChangeRecord] = []
        self.capture_warning: Optional[str] = None
        self.gtm_selection: Optional[GtmSelection] = None
        self.commit_result: Optional[CommitResult] = None
        self.saving = False
        self.closed = False

        if self.direct_edit:
            if not context.is_complete:
                raise ContextError("Direct edit needs a complete context")
            self.context = context
            self._ensure_matrix()

    # Navigation ----------------------------------------------------------

    @property
    def step(self) -> Step:
        return self.steps[self._index]

    @property
    def step_number(self) -> int:
        return self._index + 1

    @property
    def step_count(self) -> int:
        return len(self.steps)

    def _require_open(self):
        if self.closed:
            raise WorkflowError("Session is closed")
        if self.saving:
            raise WorkflowError("A commit is in progress")

    def require_step(self, *steps: Step):
        self._require_open()
        if self.step not in steps:
            raise WorkflowError(f"Not allowed during {self.step.value}")

    def gate(self) -> ValidationResult:
        """Whether the current step lets the operator move forward."""
        step = self.step
        if step == Step.CONTEXT_SELECTION:
            return self.draft.validate()
        if step == Step.SKU_RESOLUTION:
            return self.sku_resolver.validate_choice(self.sku_resolution(), self.sku_action, self.sku_id)
        if step == Step.MATRIX_EDIT:
            result = ValidationResult()
            if self.matrix is None or not self.matrix.has_changes:
                result.add_error("Enter at least one price change")
            if self.matrix is not None:
                result.merge(self.matrix.validity.validate())
            return result
        if step == Step.REVIEW:
            result = ValidationResult()
            if self.capture_warning:
                result.add_error(self.capture_warning)
            elif not self.changes:
                result.add_error("There are no price changes to review")
            return result
        # GTM assignment: the gate guards commit rather than a next step
        result = ValidationResult()
        if self.gtm_selection is None:
            result.add_error("Select a GTM motion or create a new one")
            return result
        return result.merge(self.gtm_selection.validate(self.today, self.repository))

    def advance(self) -> ValidationResult:
        """
        Move to the next step if the current one is complete.

        Leaving the matrix captures the change set first; the move is refused
        if the capture comes back empty.
        """
        self._require_open()
        if self._index == len(self.steps) - 1:
            raise WorkflowError("GTM assignment is the last step; commit or cancel")
        result = self.gate()
        if not result.valid:
            return result

        step = self.step
        if step == Step.CONTEXT_SELECTION:
            self.context = self.draft.build()
            self.sku_action = None
            self.sku_id = None
        elif step == Step.SKU_RESOLUTION:
            sku = self.product.find_sku(self.sku_id) if self.sku_id else None
            self.context = self.sku_resolver.apply(self.draft.build(), self.sku_action, sku)
        elif step == Step.MATRIX_EDIT:
            result.merge(self.capture())
            if not self.changes:
                if result.valid:
                    result.add_error("There are no price changes to review")
                return result

        self._index += 1
        if self.step == Step.MATRIX_EDIT:
            self._ensure_matrix()
        return result

    def back(self):
        """Step back. Returning to context selection drops every price input."""
        self._require_open()
        if self._index == 0:
            return
        self._index -= 1
        if self.step == Step.CONTEXT_SELECTION:
            self._discard_matrix()
            self.context = None
            self.sku_action = None
            self.sku_id = None

    def cancel(self):
        """Discard the session. Nothing has been written anywhere."""
        if self.saving:
            raise WorkflowError("A commit is in progress")
        self._discard_matrix()
        self.gtm_selection = None
        self.closed = True
        logger.debug("Cancelled price change session for %s", self.product.id)

    # Context and SKU -----------------------------------------------------

    def select_clone_source(self, price_group_id: Optional[str]):
        """Pick or clear the clone source; either way prior price inputs are dropped."""
        self.require_step(Step.CONTEXT_SELECTION)
        self.draft.select_clone_source(price_group_id)
        self._discard_matrix()

    def sku_resolution(self) -> SkuResolution:
        return self.sku_resolver.resolve(self.context or self.draft.build())

    def choose_sku_action(self, action: PriceGroupAction, sku_id: Optional[str] = None):
        self.require_step(Step.SKU_RESOLUTION)
        self.sku_action = action
        self.sku_id = sku_id if action == PriceGroupAction.UPDATE else None

    # Matrix --------------------------------------------------------------

    def _ensure_matrix(self):
        if self.matrix is not None and self._matrix_context == self.context:
            return
        if self.matrix is not None:
            logger.info("Context changed; rebuilding price matrix for %s", self.product.id)
        self.matrix = build_matrix(self.context, self.product, self.today, self.settings)
        self._matrix_context = self.context
        self.changes = []
        self.capture_warning = None

    def _discard_matrix(self):
        self.matrix = None
        self._matrix_context = None
        self.changes = []
        self.capture_warning = None

    def capture(self) -> ValidationResult:
        """
        Pull a snapshot from the matrix and rebuild the change set.

        A failed snapshot leaves an empty change set and a blocking warning.
        """
        result = ValidationResult()
        self.capture_warning = None
        try:
            if self.matrix is None:
                raise MatrixStateError("No price matrix for this session")
            snapshot = self.matrix.snapshot()
        except MatrixStateError:
            logger.error("Capture failed for %s", self.product.id, exc_info=True)
            self.changes = []
            self.capture_warning = CAPTURE_FAILED
            result.add_error(CAPTURE_FAILED)
            return result

        self.changes = build_changes(snapshot)
        logger.info("Captured %d price changes for %s", len(self.changes), self.product.id)
        return result

    def summary(self) -> list[CurrencyChangeGroup]:
        return summarize_changes(self.changes)

    @property
    def warnings(self) -> list[str]:
        return [self.capture_warning] if self.capture_warning else []

    # GTM -----------------------------------------------------------------

    def select_gtm_motion(self, selection: GtmSelection) -> ValidationResult:
        self.require_step(Step.GTM_ASSIGNMENT)
        self.gtm_selection = selection
        return selection.validate(self.today, self.repository)

    async def commit(self) -> CommitResult:
        """
        Send the captured changes to the selected GTM motion.

        A failed commit keeps every piece of session state so it can be retried.
        """
        self.require_step(Step.GTM_ASSIGNMENT)
        gate = self.gate()
        if not gate.valid:
            return CommitResult(success=False, error='; '.join(gate.errors))
        if not self.changes:
            return CommitResult(success=False, error="There are no price changes to commit")

        self.saving = True
        try:
            result = await self.binder.commit(self.context, self.changes, self.gtm_selection, self.product)
        finally:
            self.saving = False

        self.commit_result = result
        if result.success:
            self.closed = True
        return result
