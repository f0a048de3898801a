"""
Data models for the price editor.

Uses dataclasses for structured, type-safe data representation. Catalog
entities and keys are frozen so they hash and compare by value.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..exceptions import ContextError


# Stands in for a missing pricing tier everywhere a tier is used as a key
NULL_TIER = 'NULL_TIER'


def _format_day(day: date) -> str:
    return f"{day:%b} {day.day}, {day.year}"


class PricePointStatus(str, Enum):
    ACTIVE = 'Active'
    EXPIRED = 'Expired'


class PriceGroupAction(str, Enum):
    CREATE = 'create'
    UPDATE = 'update'


@dataclass(frozen=True)
class SeatRangeKey:
    """A quantity band within one currency/tier, rendered as "N", "N-M" or "N+"."""
    minimum: int
    maximum: Optional[int] = None

    def __str__(self) -> str:
        if self.maximum is None:
            return f"{self.minimum}+"
        if self.minimum == self.maximum:
            return f"{self.minimum}"
        return f"{self.minimum}-{self.maximum}"

    @property
    def sort_key(self) -> tuple:
        return (self.minimum, float('inf') if self.maximum is None else self.maximum)

    @classmethod
    def for_quantities(cls, min_quantity: Optional[int], max_quantity: Optional[int]) -> 'SeatRangeKey':
        """Build the key for a price point's quantity band (missing minimum is 1)."""
        return cls(minimum=min_quantity or 1, maximum=max_quantity)

    @classmethod
    def parse(cls, text: str) -> 'SeatRangeKey':
        """Parse the canonical string form."""
        value = str(text).strip()
        try:
            if value.endswith('+'):
                return cls(int(value[:-1]), None)
            if '-' in value:
                low, high = value.split('-', 1)
                return cls(int(low), int(high))
            number = int(value)
        except ValueError:
            raise ValueError(f"Invalid seat range '{text}'") from None
        return cls(number, number)


@dataclass(frozen=True)
class PricePoint:
    """One currency/quantity-band/tier price with its validity window."""
    currency: str
    amount: Decimal
    valid_from: date
    min_quantity: int = 1
    max_quantity: Optional[int] = None
    pricing_tier: str = NULL_TIER
    valid_until: Optional[date] = None
    status: Optional[PricePointStatus] = None
    id: Optional[str] = None

    def __post_init__(self):
        if not self.pricing_tier:
            object.__setattr__(self, 'pricing_tier', NULL_TIER)

    @property
    def seat_range(self) -> SeatRangeKey:
        return SeatRangeKey.for_quantities(self.min_quantity, self.max_quantity)

    def is_active_on(self, day: date) -> bool:
        """True when day falls inside [valid_from, valid_until]."""
        if self.valid_from > day:
            return False
        return self.valid_until is None or self.valid_until >= day


@dataclass(frozen=True)
class PriceGroup:
    """A set of price points shared by one or more SKUs."""
    id: str
    price_points: tuple = ()
    name: Optional[str] = None


@dataclass(frozen=True)
class Experiment:
    """A LIX key/treatment pair. Only ever exists with both members set."""
    key: str
    treatment: str

    @classmethod
    def from_pair(cls, key: Optional[str], treatment: Optional[str]) -> Optional['Experiment']:
        key = (key or '').strip()
        treatment = (treatment or '').strip()
        if key and treatment:
            return cls(key=key, treatment=treatment)
        return None

    def __str__(self) -> str:
        return f"{self.key} ({self.treatment})"


@dataclass(frozen=True)
class Sku:
    """A sellable unit tying a channel and billing cycle to one price group."""
    id: str
    sales_channel: str
    billing_cycle: str
    price_group: PriceGroup
    experiment: Optional[Experiment] = None
    status: str = 'Active'


@dataclass
class Product:
    """A catalog product and its SKUs."""
    id: str
    name: str
    skus: list[Sku] = field(default_factory=list)

    def price_groups(self) -> list[PriceGroup]:
        """Distinct price groups in SKU order."""
        seen = {}
        for sku in self.skus:
            seen.setdefault(sku.price_group.id, sku.price_group)
        return list(seen.values())

    def skus_for_price_group(self, price_group_id: str) -> list[Sku]:
        return [sku for sku in self.skus if sku.price_group.id == price_group_id]

    def find_sku(self, sku_id: str) -> Optional[Sku]:
        for sku in self.skus:
            if sku.id == sku_id:
                return sku
        return None


@dataclass(frozen=True)
class EditingContext:
    """
    Commercial context for one editing session.

    Partial contexts are allowed while the operator is still choosing;
    `is_complete` tells whether the workflow may move on.
    """
    channel: Optional[str] = None
    billing_cycle: Optional[str] = None
    action: Optional[PriceGroupAction] = None
    existing_price_group: Optional[PriceGroup] = None
    clone_price_group: Optional[PriceGroup] = None
    experiment: Optional[Experiment] = None
    target_sku_id: Optional[str] = None

    def __post_init__(self):
        if self.existing_price_group is not None and self.clone_price_group is not None:
            raise ContextError("A context cannot both update and clone a price group")
        if self.existing_price_group is not None and self.action != PriceGroupAction.UPDATE:
            raise ContextError("An existing price group is only valid when updating")
        if self.clone_price_group is not None and self.action != PriceGroupAction.CREATE:
            raise ContextError("A clone source is only valid when creating")

    @property
    def is_complete(self) -> bool:
        if not (self.channel and self.billing_cycle and self.action):
            return False
        return self.action != PriceGroupAction.UPDATE or self.existing_price_group is not None

    @property
    def has_baseline(self) -> bool:
        """Current prices are only shown when updating an existing group."""
        return self.action == PriceGroupAction.UPDATE and self.existing_price_group is not None

    def describe(self) -> str:
        lix = str(self.experiment) if self.experiment else 'No experiment'
        return f"{self.channel} • {self.billing_cycle} • {lix}"

    def to_dict(self) -> dict:
        return {
            'channel': self.channel,
            'billing_cycle': self.billing_cycle,
            'action': self.action.value if self.action else None,
            'existing_price_group_id': self.existing_price_group.id if self.existing_price_group else None,
            'clone_price_group_id': self.clone_price_group.id if self.clone_price_group else None,
            'experiment_key': self.experiment.key if self.experiment else None,
            'experiment_treatment': self.experiment.treatment if self.experiment else None,
            'target_sku_id': self.target_sku_id,
        }


@dataclass(frozen=True)
class CellKey:
    """Typed matrix coordinate. Flat matrices leave seat_range and tier unset."""
    currency: str
    seat_range: Optional[SeatRangeKey] = None
    tier: Optional[str] = None


@dataclass(frozen=True)
class Delta:
    """Difference between a new price and the current one."""
    amount: Decimal
    percentage: float


@dataclass(frozen=True)
class ValidityWindow:
    """The [start, end) range during which a price is active. No end means open-ended."""
    start: date
    end: Optional[date] = None

    def validate(self) -> Optional[str]:
        """Return an error message if the range is inverted."""
        if self.end is not None and self.end < self.start:
            return "End date must not precede start date"
        return None

    def label(self) -> str:
        end_text = _format_day(self.end) if self.end else 'present'
        return f"{_format_day(self.start)} - {end_text}"

    def to_dict(self) -> dict:
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat() if self.end else None,
        }


@dataclass(frozen=True)
class MatrixCell:
    """Display state of one matrix cell."""
    key: CellKey
    current_price: Optional[Decimal]
    input_text: str
    delta: Optional[Delta]


@dataclass(frozen=True)
class ChangeRecord:
    """One detected difference between the baseline and the proposed price."""
    currency: str
    current_price: Optional[Decimal]
    new_price: Decimal
    delta: Delta
    validity: ValidityWindow
    seat_range: Optional[str] = None
    tier: Optional[str] = None

    @property
    def is_new(self) -> bool:
        return self.current_price is None

    @property
    def tier_label(self) -> Optional[str]:
        if self.tier is None:
            return None
        return 'Base' if self.tier == NULL_TIER else self.tier

    def to_dict(self) -> dict:
        return {
            'currency': self.currency,
            'seat_range': self.seat_range,
            'tier': self.tier,
            'current_price': str(self.current_price) if self.current_price is not None else None,
            'new_price': str(self.new_price),
            'delta': {
                'amount': str(self.delta.amount),
                'percentage': self.delta.percentage,
            },
            'validity': self.validity.to_dict(),
        }


@dataclass
class ValidationResult:
    """Outcome of a local validation; never raised."""
    valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, error: str):
        self.errors.append(error)
        self.valid = False

    def add_warning(self, warning: str):
        self.warnings.append(warning)

    def merge(self, other: 'ValidationResult') -> 'ValidationResult':
        for error in other.errors:
            self.add_error(error)
        self.warnings.extend(other.warnings)
        return self
