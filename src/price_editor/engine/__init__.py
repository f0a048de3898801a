"""Engine subpackage - price matrix, paste, validity and change detection."""
from .models import (
    NULL_TIER, CellKey, ChangeRecord, EditingContext, Experiment, PriceGroup,
    PriceGroupAction, PricePoint, Product, SeatRangeKey, Sku, ValidityWindow,
)
from .price_matrix import FlatPriceMatrix, PriceMatrix, TieredPriceMatrix, build_matrix
from .change_set import build_changes, summarize_changes

__all__ = [
    'NULL_TIER', 'CellKey', 'ChangeRecord', 'EditingContext', 'Experiment', 'PriceGroup',
    'PriceGroupAction', 'PricePoint', 'Product', 'SeatRangeKey', 'Sku', 'ValidityWindow',
    'FlatPriceMatrix', 'PriceMatrix', 'TieredPriceMatrix', 'build_matrix',
    'build_changes', 'summarize_changes',
]
