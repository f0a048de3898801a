"""
GTM Repository - stores GTM motions and the price items appended to them.

The workflow only calls append_to_motion and create_motion; both are
all-or-nothing. Only Draft motions accept new items.
"""
import json
import logging
import threading
import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Protocol, Sequence

from ..engine.models import ChangeRecord, EditingContext, PriceGroupAction

logger = logging.getLogger(__name__)


DRAFT = 'Draft'


@dataclass
class GtmItem:
    """One catalog change inside a motion."""
    id: str
    type: str
    product_id: str
    product_name: str
    details: str
    status: str
    created_date: str
    price_change: Optional[dict] = None


@dataclass
class GtmMotion:
    """A batched release record."""
    id: str
    name: str
    description: str
    activation_date: str
    status: str = DRAFT
    created_date: str = ''
    updated_date: Optional[str] = None
    items: list[GtmItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'GtmMotion':
        items = [GtmItem(**item) for item in data.get('items', [])]
        return cls(**{**data, 'items': items})


class GtmRepository(Protocol):
    """External collaborator that owns motion storage."""

    def append_to_motion(
        self, motion_id: str, product_id: str, product_name: str,
        changes: Sequence[ChangeRecord], context: EditingContext
    ) -> bool:
        ...

    def create_motion(
        self, name: str, description: str, activation_date: date, product_id: str,
        product_name: str, changes: Sequence[ChangeRecord], context: EditingContext
    ) -> GtmMotion:
        ...

    def get_motion(self, motion_id: str) -> Optional[GtmMotion]:
        ...

    def list_draft_motions(self) -> list[GtmMotion]:
        ...


def build_price_item(
    product_id: str, product_name: str,
    changes: Sequence[ChangeRecord], context: EditingContext
) -> GtmItem:
    """Package a change set as one Price item."""
    updating = context.action == PriceGroupAction.UPDATE
    count = len(changes)
    return GtmItem(
        id=f"item-{uuid.uuid4().hex[:12]}",
        type='Price',
        product_id=product_id,
        product_name=product_name,
        details=f"{'Price update' if updating else 'New price'} ({count} change{'' if count == 1 else 's'})",
        status=DRAFT,
        created_date=datetime.now().isoformat(timespec='seconds'),
        price_change={
            'context': context.to_dict(),
            'impact_type': 'UPDATE_EXISTING_SKU' if updating else 'CREATE_NEW_SKU',
            'target_sku_id': context.target_sku_id if updating else None,
            'changes': [record.to_dict() for record in changes],
        },
    )


class InMemoryGtmRepository:
    """Motion store kept in process memory."""

    def __init__(self, motions: Optional[list[GtmMotion]] = None):
        self._motions: dict[str, GtmMotion] = {m.id: m for m in motions or []}
        # Sessions commit from worker threads; writes hold this across mutate and save
        self._lock = threading.Lock()

    def get_motion(self, motion_id: str) -> Optional[GtmMotion]:
        return self._motions.get(motion_id)

    def list_draft_motions(self) -> list[GtmMotion]:
        """Draft motions, most recently touched first."""
        with self._lock:
            drafts = [m for m in self._motions.values() if m.status == DRAFT]
        return sorted(drafts, key=lambda m: m.updated_date or m.created_date, reverse=True)

    def append_to_motion(
        self, motion_id: str, product_id: str, product_name: str,
        changes: Sequence[ChangeRecord], context: EditingContext
    ) -> bool:
        item = build_price_item(product_id, product_name, changes, context)
        with self._lock:
            motion = self._motions.get(motion_id)
            if motion is None or motion.status != DRAFT:
                return False
            previous_updated = motion.updated_date
            motion.items.append(item)
            motion.updated_date = datetime.now().isoformat(timespec='seconds')
            try:
                self._save()
            except Exception:
                motion.items.remove(item)
                motion.updated_date = previous_updated
                raise
        return True

    def create_motion(
        self, name: str, description: str, activation_date: date, product_id: str,
        product_name: str, changes: Sequence[ChangeRecord], context: EditingContext
    ) -> GtmMotion:
        motion = GtmMotion(
            id=f"gtm-{uuid.uuid4().hex[:8]}",
            name=name,
            description=description,
            activation_date=activation_date.isoformat(),
            created_date=datetime.now().isoformat(timespec='seconds'),
            items=[build_price_item(product_id, product_name, changes, context)],
        )
        with self._lock:
            self._motions[motion.id] = motion
            try:
                self._save()
            except Exception:
                del self._motions[motion.id]
                raise
        return motion

    def _save(self):
        """Persistence hook for subclasses. Called with the write lock held."""


class JsonGtmRepository(InMemoryGtmRepository):
    """Motion store persisted to a JSON file after every write."""

    def __init__(self, path: Path):
        self.path = path
        motions = []
        if path.exists():
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            motions = [GtmMotion.from_dict(m) for m in data.get('motions', [])]
        super().__init__(motions)

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix('.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump({'motions': [asdict(m) for m in self._motions.values()]}, f, indent=2)
        tmp_path.replace(self.path)
        logger.debug("Saved %d motions to %s", len(self._motions), self.path)
