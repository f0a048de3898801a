"""
Bulk Paste Parser - turns clipboard TSV into matrix assignments.

Rows are split on newlines, cells on tabs. A block with any multi-cell row
is pasted in 2D (rows down seat ranges, columns across the anchor currency's
tiers); otherwise values fill consecutive rows of the anchor's column.
Anything beyond the grid is dropped, never wrapped.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional

from .models import CellKey
from .price_matrix import PriceMatrix, parse_price

logger = logging.getLogger(__name__)

# Spreadsheet exports write these for blank cells
_BLANK_TOKENS = ('', 'null', 'undefined')


@dataclass
class PasteResult:
    """Assignments produced by one paste."""
    assignments: dict[CellKey, str] = field(default_factory=dict)
    two_dimensional: bool = False
    discarded: int = 0

    @property
    def applied(self) -> bool:
        return bool(self.assignments)


def parse_clipboard(text: str) -> list[list[str]]:
    """Split TSV text into trimmed cells. Surrounding blank lines are ignored."""
    body = (text or '').strip('\r\n')
    if not body.strip():
        return []
    return [[cell.strip() for cell in row.split('\t')] for row in body.split('\n')]


def clean_pasted_value(value: str) -> str:
    """Strip separators and whitespace; anything non-numeric becomes an explicit clear."""
    trimmed = (value or '').strip()
    if trimmed.lower() in _BLANK_TOKENS:
        return ''
    cleaned = trimmed.replace(',', '')
    if parse_price(cleaned) is None:
        return ''
    return cleaned


def plan_paste(matrix: PriceMatrix, anchor: CellKey, text: str) -> PasteResult:
    """Work out which cells a paste at `anchor` would write, without touching the matrix."""
    rows = parse_clipboard(text)
    result = PasteResult()
    if not rows or not matrix.contains(anchor):
        return result

    if not matrix.tiered:
        return _plan_flat(matrix, anchor, rows)

    seat_ranges = matrix.seat_ranges(anchor.currency)
    tiers = matrix.tiers(anchor.currency)
    start_row = seat_ranges.index(anchor.seat_range)
    start_col = tiers.index(anchor.tier)

    result.two_dimensional = any(len(row) > 1 for row in rows)
    if result.two_dimensional:
        for row_offset, row in enumerate(rows):
            row_index = start_row + row_offset
            if row_index >= len(seat_ranges):
                result.discarded += len(row)
                continue
            for col_offset, value in enumerate(row):
                col_index = start_col + col_offset
                if col_index >= len(tiers):
                    result.discarded += 1
                    continue
                key = CellKey(anchor.currency, seat_ranges[row_index], tiers[col_index])
                result.assignments[key] = clean_pasted_value(value)
    else:
        values = [row[0] for row in rows if row[0] != '']
        for offset, value in enumerate(values):
            row_index = start_row + offset
            if row_index >= len(seat_ranges):
                result.discarded += 1
                continue
            key = CellKey(anchor.currency, seat_ranges[row_index], anchor.tier)
            result.assignments[key] = clean_pasted_value(value)
    return result


def _plan_flat(matrix: PriceMatrix, anchor: CellKey, rows: list[list[str]]) -> PasteResult:
    # Flat tables only take the first column, filling consecutive currencies
    result = PasteResult()
    currencies = matrix.currencies
    start = currencies.index(anchor.currency)
    values = [row[0] for row in rows if row[0] != '']
    for offset, value in enumerate(values):
        index = start + offset
        if index >= len(currencies):
            result.discarded += 1
            continue
        result.assignments[CellKey(currencies[index])] = clean_pasted_value(value)
    result.discarded += sum(len(row) - 1 for row in rows if len(row) > 1)
    return result


def apply_paste(matrix: PriceMatrix, anchor: CellKey, text: str) -> PasteResult:
    """Plan and write a paste. The pre-paste inputs become the undo state."""
    result = plan_paste(matrix, anchor, text)
    if result.applied:
        matrix.apply_inputs(result.assignments)
        logger.debug(
            "Pasted %d cells at %s (2D=%s, discarded=%d)",
            len(result.assignments), anchor, result.two_dimensional, result.discarded
        )
    return result


def is_undo_shortcut(key: str, ctrl: bool = False, meta: bool = False) -> bool:
    """Ctrl+Z or Cmd+Z."""
    return (ctrl or meta) and (key or '').lower() == 'z'


def undo_paste(matrix: PriceMatrix, key: Optional[str] = None, ctrl: bool = False, meta: bool = False) -> bool:
    """Undo the last paste, optionally only when the key event is the undo shortcut."""
    if key is not None and not is_undo_shortcut(key, ctrl, meta):
        return False
    return matrix.undo()
