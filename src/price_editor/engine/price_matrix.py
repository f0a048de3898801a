"""
Price Matrix Engine - pivots baseline price points into an editable grid.

Two shapes share one editing model:
- Tiered: currency x seat range x pricing tier, pivoted from active price points
- Flat: one price per currency, currencies chosen by the operator

Inputs are stored as raw text. Deltas are derived on read, and a cheap
incremental "has changes" flag is kept apart from the full diff, which is
only computed from an explicit snapshot.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from ..config.settings import Settings, get_settings
from .models import (
    CellKey, Delta, EditingContext, MatrixCell, PricePoint, Product, SeatRangeKey, NULL_TIER,
)
from .ordering import sort_currencies, sort_seat_ranges, sort_tiers, tier_rank
from .validity import ValidityPlan, ValidityResolver, inherited_windows

logger = logging.getLogger(__name__)


def parse_price(text: Optional[str]) -> Optional[Decimal]:
    """
    Parse operator text as a non-negative decimal.

    Thousands separators are stripped. Empty, unparsable, non-finite or
    negative text gives None and the cell counts as unset.
    """
    if text is None:
        return None
    cleaned = str(text).replace(',', '').strip()
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    return value


def compute_delta(current: Optional[Decimal], new: Decimal) -> Delta:
    """Amount and percentage change from current to new."""
    if current is None:
        return Delta(amount=new, percentage=100.0)
    amount = new - current
    if current == 0:
        return Delta(amount=amount, percentage=0.0 if new == 0 else 100.0)
    return Delta(amount=amount, percentage=float(amount / current * 100))


def is_change(current: Optional[Decimal], new: Decimal, epsilon: Decimal) -> bool:
    """A brand-new price always counts; otherwise the move must reach epsilon."""
    return current is None or abs(new - current) >= epsilon


@dataclass(frozen=True)
class MatrixSnapshot:
    """Immutable capture of matrix state for the change-set builder."""
    tiered: bool
    cell_order: tuple
    inputs: Mapping[CellKey, str]
    baseline: Mapping[CellKey, Decimal]
    validity: ValidityPlan
    epsilon: Decimal


class PriceMatrix(ABC):
    """Editing state shared by the flat and tiered shapes."""

    tiered = False

    def __init__(
        self,
        baseline: Mapping[CellKey, Decimal],
        validity: ValidityResolver,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.epsilon = self.settings.change_epsilon
        self.validity = validity
        self._baseline: dict[CellKey, Decimal] = dict(baseline)
        self._inputs: dict[CellKey, str] = {}
        self._changed: set[CellKey] = set()
        self._undo_state: Optional[dict[CellKey, str]] = None

    # Axes ----------------------------------------------------------------

    @property
    @abstractmethod
    def currencies(self) -> list[str]:
        ...

    @abstractmethod
    def seat_ranges(self, currency: str) -> list[Optional[SeatRangeKey]]:
        ...

    @abstractmethod
    def tiers(self, currency: str) -> list[Optional[str]]:
        ...

    def keys(self, currency: Optional[str] = None) -> Iterator[CellKey]:
        """Cell keys in display order: currency, then seat range, then tier."""
        currencies = [currency] if currency else self.currencies
        for code in currencies:
            tiers = self.tiers(code)
            for seat_range in self.seat_ranges(code):
                for tier in tiers:
                    yield CellKey(code, seat_range, tier)

    def contains(self, key: CellKey) -> bool:
        if key.currency not in self.currencies:
            return False
        return key.seat_range in self.seat_ranges(key.currency) and key.tier in self.tiers(key.currency)

    # Cells ---------------------------------------------------------------

    def current_price(self, key: CellKey) -> Optional[Decimal]:
        return self._baseline.get(key)

    def get_input(self, key: CellKey) -> str:
        return self._inputs.get(key, '')

    def delta(self, key: CellKey) -> Optional[Delta]:
        new = parse_price(self.get_input(key))
        if new is None:
            return None
        return compute_delta(self.current_price(key), new)

    def cell(self, key: CellKey) -> MatrixCell:
        return MatrixCell(
            key=key,
            current_price=self.current_price(key),
            input_text=self.get_input(key),
            delta=self.delta(key),
        )

    def rows(self, currency: str) -> list[list[MatrixCell]]:
        """One row per seat range, one cell per tier carried by the currency."""
        tiers = self.tiers(currency)
        return [
            [self.cell(CellKey(currency, seat_range, tier)) for tier in tiers]
            for seat_range in self.seat_ranges(currency)
        ]

    def set_cell(self, key: CellKey, text: str):
        """Store raw text for a cell. No validation happens here."""
        if not self.contains(key):
            raise ValueError(f"Cell {key} is not part of this matrix")
        self._inputs[key] = text if text is not None else ''
        self._refresh(key)

    def _refresh(self, key: CellKey):
        new = parse_price(self._inputs.get(key, ''))
        if new is not None and is_change(self._baseline.get(key), new, self.epsilon):
            self._changed.add(key)
        else:
            self._changed.discard(key)

    def _refresh_all(self):
        self._changed = set()
        for key in self._inputs:
            self._refresh(key)

    # Change tracking -----------------------------------------------------

    @property
    def has_changes(self) -> bool:
        return bool(self._changed)

    def change_count(self, currency: Optional[str] = None) -> int:
        if currency is None:
            return len(self._changed)
        return sum(1 for key in self._changed if key.currency == currency)

    @property
    def all_prices_new(self) -> bool:
        return not self._baseline

    def has_baseline(self, currency: str) -> bool:
        return any(key.currency == currency for key in self._baseline)

    # Bulk edits and undo -------------------------------------------------

    def apply_inputs(self, updates: Mapping[CellKey, str]):
        """Write several cells at once, remembering the prior state for one undo."""
        for key in updates:
            if not self.contains(key):
                raise ValueError(f"Cell {key} is not part of this matrix")
        self._undo_state = dict(self._inputs)
        for key, text in updates.items():
            self._inputs[key] = text
            self._refresh(key)

    @property
    def can_undo(self) -> bool:
        return self._undo_state is not None

    def undo(self) -> bool:
        """Restore the inputs captured before the last bulk edit, wholesale."""
        if self._undo_state is None:
            return False
        self._inputs = self._undo_state
        self._undo_state = None
        self._refresh_all()
        logger.debug("Restored %d inputs from undo state", len(self._inputs))
        return True

    def clear_inputs(self):
        self._inputs = {}
        self._changed = set()
        self._undo_state = None

    @property
    def inputs(self) -> Mapping[CellKey, str]:
        return MappingProxyType(self._inputs)

    # Capture -------------------------------------------------------------

    def snapshot(self) -> MatrixSnapshot:
        """Pull the current state as an immutable snapshot."""
        return MatrixSnapshot(
            tiered=self.tiered,
            cell_order=tuple(self.keys()),
            inputs=MappingProxyType(dict(self._inputs)),
            baseline=MappingProxyType(dict(self._baseline)),
            validity=self.validity.freeze(),
            epsilon=self.epsilon,
        )


class TieredPriceMatrix(PriceMatrix):
    """Currency x seat range x tier grid."""

    tiered = True

    def __init__(
        self,
        currencies: list[str],
        seat_ranges: list[SeatRangeKey],
        tiers_by_currency: Mapping[str, list[str]],
        baseline: Mapping[CellKey, Decimal],
        validity: ValidityResolver,
        settings: Optional[Settings] = None
    ):
        super().__init__(baseline, validity, settings)
        self._currencies = list(currencies)
        self._seat_ranges = list(seat_ranges)
        self._tiers = {currency: list(tiers) for currency, tiers in tiers_by_currency.items()}

    @classmethod
    def from_price_points(
        cls,
        points: Iterable[PricePoint],
        include_prices: bool,
        today: Optional[date] = None,
        settings: Optional[Settings] = None
    ) -> 'TieredPriceMatrix':
        """
        Pivot price points into a dense grid.

        Only points active today are used. Currencies and tiers follow the
        configured priority lists; a tier appears for a currency only if
        that currency has at least one point in it. Current prices are
        loaded only when include_prices is set (updating an existing group).
        """
        settings = settings or get_settings()
        today = today or date.today()
        points = list(points)
        active = [pp for pp in points if pp.is_active_on(today)]

        currencies = sort_currencies((pp.currency for pp in active), settings.currency_priority)
        all_tiers = sort_tiers((pp.pricing_tier for pp in active), settings.tier_order)

        best_tier: dict[SeatRangeKey, tuple] = {}
        for pp in active:
            rank = tier_rank(pp.pricing_tier, settings.tier_order)
            if pp.seat_range not in best_tier or rank < best_tier[pp.seat_range]:
                best_tier[pp.seat_range] = rank
        seat_ranges = sort_seat_ranges(best_tier.keys(), best_tier)

        tiers_by_currency = {
            currency: [
                tier for tier in all_tiers
                if any(pp.currency == currency and pp.pricing_tier == tier for pp in active)
            ]
            for currency in currencies
        }

        baseline: dict[CellKey, Decimal] = {}
        if include_prices:
            chosen: dict[CellKey, PricePoint] = {}
            for pp in active:
                key = CellKey(pp.currency, pp.seat_range, pp.pricing_tier)
                # Overlapping active windows: the most recent start wins
                if key not in chosen or pp.valid_from > chosen[key].valid_from:
                    chosen[key] = pp
            baseline = {key: pp.amount for key, pp in chosen.items()}

        validity = ValidityResolver(
            today=today,
            per_currency=False,
            inherited=inherited_windows(points) if include_prices else None,
            settings=settings,
        )
        return cls(currencies, seat_ranges, tiers_by_currency, baseline, validity, settings)

    @property
    def currencies(self) -> list[str]:
        return list(self._currencies)

    def seat_ranges(self, currency: Optional[str] = None) -> list[SeatRangeKey]:
        return list(self._seat_ranges)

    def tiers(self, currency: str) -> list[str]:
        return list(self._tiers.get(currency, []))

    def key(self, currency: str, seat_range, tier: Optional[str] = None) -> CellKey:
        """Build a key from display values ("1-5", None tier meaning the sentinel)."""
        if not isinstance(seat_range, SeatRangeKey):
            seat_range = SeatRangeKey.parse(seat_range)
        return CellKey(currency, seat_range, tier or NULL_TIER)


class FlatPriceMatrix(PriceMatrix):
    """One price per currency."""

    def __init__(
        self,
        currencies: Iterable[str],
        baseline: Mapping[str, Decimal],
        validity: ValidityResolver,
        settings: Optional[Settings] = None
    ):
        super().__init__({CellKey(code): amount for code, amount in baseline.items()}, validity, settings)
        self._currencies = set(currencies) | set(baseline)

    @classmethod
    def from_price_points(
        cls,
        points: Iterable[PricePoint],
        include_prices: bool,
        extra_currencies: Iterable[str] = (),
        today: Optional[date] = None,
        settings: Optional[Settings] = None
    ) -> 'FlatPriceMatrix':
        """Currencies of the active points plus any the operator picked."""
        settings = settings or get_settings()
        today = today or date.today()
        points = list(points)
        active = [pp for pp in points if pp.is_active_on(today)]

        baseline: dict[str, Decimal] = {}
        if include_prices:
            chosen: dict[str, PricePoint] = {}
            for pp in active:
                if pp.currency not in chosen or pp.valid_from > chosen[pp.currency].valid_from:
                    chosen[pp.currency] = pp
            baseline = {code: pp.amount for code, pp in chosen.items()}

        validity = ValidityResolver(
            today=today,
            per_currency=True,
            inherited=inherited_windows(points) if include_prices else None,
            settings=settings,
        )
        currencies = {pp.currency for pp in active} | set(extra_currencies)
        return cls(currencies, baseline, validity, settings)

    @property
    def currencies(self) -> list[str]:
        return sort_currencies(self._currencies, self.settings.flat_currency_priority)

    def seat_ranges(self, currency: Optional[str] = None) -> list[None]:
        return [None]

    def tiers(self, currency: Optional[str] = None) -> list[None]:
        return [None]

    def key(self, currency: str) -> CellKey:
        return CellKey(currency)

    def add_currency(self, currency: str) -> bool:
        code = currency.strip().upper()
        if not code or code in self._currencies:
            return False
        self._currencies.add(code)
        return True

    def remove_currency(self, currency: str) -> bool:
        """Drop an operator-added currency and its input. Baseline currencies stay."""
        if currency not in self._currencies or self.has_baseline(currency):
            return False
        self._currencies.discard(currency)
        key = CellKey(currency)
        self._inputs.pop(key, None)
        if self._undo_state is not None:
            self._undo_state.pop(key, None)
        self._changed.discard(key)
        self.validity.cancel_override(currency)
        return True


def build_matrix(
    context: EditingContext,
    product: Product,
    today: Optional[date] = None,
    settings: Optional[Settings] = None
) -> PriceMatrix:
    """
    Create the matrix for a resolved context.

    Structure comes from the group being updated, else the clone source,
    else (tiered only) any group already sold on the same channel. Current
    prices are loaded only when updating.
    """
    settings = settings or get_settings()
    source = context.existing_price_group or context.clone_price_group
    tiered = context.channel in settings.tiered_channels

    if source is None and tiered:
        for sku in product.skus:
            if sku.sales_channel == context.channel:
                source = sku.price_group
                break

    points = source.price_points if source else ()
    if tiered:
        matrix = TieredPriceMatrix.from_price_points(
            points, include_prices=context.has_baseline, today=today, settings=settings
        )
    else:
        matrix = FlatPriceMatrix.from_price_points(
            points,
            include_prices=context.has_baseline,
            extra_currencies=() if source else settings.default_flat_currencies,
            today=today,
            settings=settings,
        )
    logger.info(
        "Built %s matrix for %s (%d currencies, baseline=%s)",
        'tiered' if tiered else 'flat', context.describe(), len(matrix.currencies), context.has_baseline
    )
    return matrix
