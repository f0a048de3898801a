"""
Display ordering for matrix axes.

Currencies and tiers follow a fixed priority list with unknown values
alphabetically after it; seat ranges sort numerically by their lower bound.
"""
from typing import Iterable, Mapping, Optional

from .models import SeatRangeKey


def _priority_key(order: tuple):
    ranks = {value: index for index, value in enumerate(order)}

    def key(value: str):
        if value in ranks:
            return (0, ranks[value], '')
        return (1, 0, value)

    return key


def sort_currencies(currencies: Iterable[str], priority: tuple) -> list[str]:
    """Priority currencies first in list order, all others alphabetically."""
    return sorted(set(currencies), key=_priority_key(priority))


def sort_tiers(tiers: Iterable[str], tier_order: tuple) -> list[str]:
    """Known tiers in their fixed order (sentinel first), unknown tiers alphabetically."""
    return sorted(set(tiers), key=_priority_key(tier_order))


def tier_rank(tier: str, tier_order: tuple) -> tuple:
    return _priority_key(tier_order)(tier)


def sort_seat_ranges(
    seat_ranges: Iterable[SeatRangeKey],
    tie_breaker: Optional[Mapping[SeatRangeKey, tuple]] = None
) -> list[SeatRangeKey]:
    """
    Sort by the range's minimum bound.

    Ranges sharing a minimum are ordered by `tie_breaker` (the rank of the
    best tier carrying each range), then by upper bound with open ranges last.
    """
    tie_breaker = tie_breaker or {}

    def key(seat_range: SeatRangeKey):
        minimum, maximum = seat_range.sort_key
        return (minimum, tie_breaker.get(seat_range, ()), maximum)

    return sorted(set(seat_ranges), key=key)
