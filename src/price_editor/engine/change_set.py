"""
Change-Set Builder - diffs a matrix snapshot against its baseline.

Pure and deterministic: the same snapshot always yields the same records,
in matrix display order.
"""
from dataclasses import dataclass, field
from typing import Iterable

from .formatting import currency_name, format_validity
from .models import ChangeRecord
from .price_matrix import MatrixSnapshot, compute_delta, is_change, parse_price


def build_changes(snapshot: MatrixSnapshot) -> list[ChangeRecord]:
    """
    One record per cell whose parsed input is a new price or moves at least epsilon.

    Cells with empty or unparsable input never produce a record.
    """
    records = []
    baseline_currencies = {key.currency for key in snapshot.baseline}

    for key in snapshot.cell_order:
        new_price = parse_price(snapshot.inputs.get(key))
        if new_price is None:
            continue
        current = snapshot.baseline.get(key)
        if not is_change(current, new_price, snapshot.epsilon):
            continue

        resolved = snapshot.validity.resolve(
            key.currency,
            has_baseline=key.currency in baseline_currencies,
            has_changes=True,
        )
        records.append(ChangeRecord(
            currency=key.currency,
            current_price=current,
            new_price=new_price,
            delta=compute_delta(current, new_price),
            validity=resolved.window,
            seat_range=str(key.seat_range) if key.seat_range is not None else None,
            tier=key.tier,
        ))
    return records


@dataclass
class CurrencyChangeGroup:
    """Review-step grouping of the records for one currency."""
    currency: str
    currency_name: str
    validity_label: str
    records: list[ChangeRecord] = field(default_factory=list)

    @property
    def new_count(self) -> int:
        return sum(1 for r in self.records if r.is_new)

    @property
    def increased_count(self) -> int:
        return sum(1 for r in self.records if not r.is_new and r.delta.amount > 0)

    @property
    def decreased_count(self) -> int:
        return sum(1 for r in self.records if not r.is_new and r.delta.amount < 0)


def summarize_changes(records: Iterable[ChangeRecord]) -> list[CurrencyChangeGroup]:
    """Group records by currency, keeping first-seen order."""
    groups: dict[str, CurrencyChangeGroup] = {}
    for record in records:
        group = groups.get(record.currency)
        if group is None:
            group = CurrencyChangeGroup(
                currency=record.currency,
                currency_name=currency_name(record.currency),
                validity_label=format_validity(record.validity),
            )
            groups[record.currency] = group
        group.records.append(record)
    return list(groups.values())
