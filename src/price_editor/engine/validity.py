"""
Validity Period Resolver - decides the effective date window for new prices.

Resolution order for a currency:
1. Brand-new currency (no baseline): explicit override, else the default window
2. Existing currency with a real change: explicit override, else the default window
3. Existing currency without changes: the baseline's own window (read-only)

Flat matrices resolve per currency; tiered matrices share one session-wide window.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Mapping, Optional

from ..config.settings import Settings, get_settings
from .models import PricePoint, ValidityWindow, ValidationResult


class ValiditySource(str, Enum):
    DEFAULT = 'default'
    OVERRIDE = 'override'
    INHERITED = 'inherited'


@dataclass(frozen=True)
class ResolvedValidity:
    """A window plus where it came from."""
    window: ValidityWindow
    source: ValiditySource

    @property
    def editable(self) -> bool:
        return self.source != ValiditySource.INHERITED

    @property
    def uses_defaults(self) -> bool:
        return self.source == ValiditySource.DEFAULT


def inherited_windows(points: Iterable[PricePoint]) -> dict[str, ValidityWindow]:
    """Per currency, the window of the point with the latest validFrom."""
    latest: dict[str, PricePoint] = {}
    for point in points:
        current = latest.get(point.currency)
        if current is None or point.valid_from > current.valid_from:
            latest[point.currency] = point
    return {
        currency: ValidityWindow(start=point.valid_from, end=point.valid_until)
        for currency, point in latest.items()
    }


@dataclass(frozen=True)
class ValidityPlan:
    """Immutable copy of the resolver state, carried by matrix snapshots."""
    default_window: ValidityWindow
    per_currency: bool
    overrides: tuple = ()
    inherited: tuple = ()

    def resolve(self, currency: str, has_baseline: bool, has_changes: bool) -> ResolvedValidity:
        overrides = dict(self.overrides)
        if has_baseline and not has_changes:
            inherited = dict(self.inherited).get(currency)
            if inherited is not None:
                return ResolvedValidity(inherited, ValiditySource.INHERITED)

        scope = currency if self.per_currency else None
        override = overrides.get(scope)
        if override is not None:
            return ResolvedValidity(override, ValiditySource.OVERRIDE)
        return ResolvedValidity(self.default_window, ValiditySource.DEFAULT)


class ValidityResolver:
    """Holds the default window and the operator's explicit overrides."""

    def __init__(
        self,
        today: Optional[date] = None,
        per_currency: bool = True,
        inherited: Optional[Mapping[str, ValidityWindow]] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.today = today or date.today()
        self.per_currency = per_currency
        self.default_window = ValidityWindow(
            start=self.today + timedelta(days=self.settings.default_validity_offset_days)
        )
        self._inherited = dict(inherited or {})
        # Key is the currency, or None for the session-wide window
        self._overrides: dict[Optional[str], ValidityWindow] = {}

    def _scope(self, currency: Optional[str]) -> Optional[str]:
        return currency if self.per_currency else None

    def set_override(self, currency: Optional[str], start: date, end: Optional[date] = None) -> ValidationResult:
        """Replace the default window. An inverted range is kept but reported."""
        window = ValidityWindow(start=start, end=end)
        self._overrides[self._scope(currency)] = window
        result = ValidationResult()
        error = window.validate()
        if error:
            result.add_error(error)
        return result

    def cancel_override(self, currency: Optional[str] = None) -> bool:
        """Drop an override; the currency goes back to defaults, not to a prior override."""
        return self._overrides.pop(self._scope(currency), None) is not None

    def freeze(self) -> ValidityPlan:
        return ValidityPlan(
            default_window=self.default_window,
            per_currency=self.per_currency,
            overrides=tuple(self._overrides.items()),
            inherited=tuple(self._inherited.items()),
        )

    def resolve(self, currency: str, has_baseline: bool, has_changes: bool) -> ResolvedValidity:
        return self.freeze().resolve(currency, has_baseline, has_changes)

    def validate(self) -> ValidationResult:
        """Check every explicit override."""
        result = ValidationResult()
        for scope, window in self._overrides.items():
            error = window.validate()
            if error:
                result.add_error(f"{scope}: {error}" if scope else error)
        return result
