"""Workflow subpackage - step orchestration and GTM commit."""
from .gtm_binder import CommitResult, GtmBinder, GtmSelection, NewMotion
from .session import DIRECT_EDIT_FLOW, FULL_FLOW, PriceChangeSession, Step

__all__ = [
    'CommitResult', 'GtmBinder', 'GtmSelection', 'NewMotion',
    'DIRECT_EDIT_FLOW', 'FULL_FLOW', 'PriceChangeSession', 'Step',
]
