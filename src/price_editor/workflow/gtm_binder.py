"""
GTM Binder - hands a finished change set to the GTM repository.

The binder only shapes the arguments and reports the outcome. Repository
calls are blocking, so they run in a worker thread and are awaited.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from ..engine.models import ChangeRecord, EditingContext, Product, ValidationResult
from ..exceptions import CommitError
from ..services.gtm_repository import DRAFT, GtmRepository

logger = logging.getLogger(__name__)


NAME_LENGTH = (3, 100)
DESCRIPTION_LENGTH = (10, 500)


@dataclass(frozen=True)
class NewMotion:
    """Fields for a motion created at commit time."""
    name: str
    description: str
    activation_date: date


@dataclass(frozen=True)
class GtmSelection:
    """Either an existing motion id or the fields of a new motion."""
    motion_id: Optional[str] = None
    new_motion: Optional[NewMotion] = None

    @classmethod
    def existing(cls, motion_id: str) -> 'GtmSelection':
        return cls(motion_id=motion_id)

    @classmethod
    def new(cls, name: str, description: str, activation_date: date) -> 'GtmSelection':
        return cls(new_motion=NewMotion(name.strip(), description.strip(), activation_date))

    @property
    def is_new(self) -> bool:
        return self.new_motion is not None

    def validate(self, today: date, repository: Optional[GtmRepository] = None) -> ValidationResult:
        result = ValidationResult()
        if self.new_motion is None:
            if not self.motion_id:
                result.add_error("Select a GTM motion or create a new one")
            elif repository is not None:
                motion = repository.get_motion(self.motion_id)
                if motion is None:
                    result.add_error(f"GTM motion '{self.motion_id}' not found")
                elif motion.status != DRAFT:
                    result.add_error(f"GTM motion '{motion.name}' is {motion.status} and cannot take new items")
            return result

        motion = self.new_motion
        low, high = NAME_LENGTH
        if not low <= len(motion.name) <= high:
            result.add_error(f"Motion name must be {low}-{high} characters")
        low, high = DESCRIPTION_LENGTH
        if not low <= len(motion.description) <= high:
            result.add_error(f"Motion description must be {low}-{high} characters")
        if motion.activation_date < today:
            result.add_error("Activation date cannot be in the past")
        return result


@dataclass(frozen=True)
class CommitResult:
    success: bool
    motion_id: Optional[str] = None
    motion_name: Optional[str] = None
    created: bool = False
    error: Optional[str] = None


class GtmBinder:
    """Commits change sets through a GtmRepository."""

    def __init__(self, repository: GtmRepository):
        self.repository = repository

    def _commit_sync(
        self,
        context: EditingContext,
        changes: Sequence[ChangeRecord],
        selection: GtmSelection,
        product: Product
    ) -> CommitResult:
        if selection.is_new:
            motion = selection.new_motion
            created = self.repository.create_motion(
                motion.name, motion.description, motion.activation_date,
                product.id, product.name, list(changes), context,
            )
            return CommitResult(success=True, motion_id=created.id, motion_name=created.name, created=True)

        ok = self.repository.append_to_motion(
            selection.motion_id, product.id, product.name, list(changes), context
        )
        if not ok:
            raise CommitError(f"GTM motion '{selection.motion_id}' did not accept the changes")
        existing = self.repository.get_motion(selection.motion_id)
        return CommitResult(
            success=True,
            motion_id=selection.motion_id,
            motion_name=existing.name if existing else None,
        )

    async def commit(
        self,
        context: EditingContext,
        changes: Sequence[ChangeRecord],
        selection: GtmSelection,
        product: Product
    ) -> CommitResult:
        """
        Append to an existing motion or create a new one holding the changes.

        Failures never raise; they come back as an unsuccessful CommitResult
        so the caller keeps its state and can retry.
        """
        try:
            result = await asyncio.to_thread(self._commit_sync, context, changes, selection, product)
        except Exception as e:
            logger.exception("Commit of %d changes for %s failed", len(changes), product.id)
            return CommitResult(success=False, error=str(e) or e.__class__.__name__)

        logger.info(
            "Committed %d changes for %s to %s motion %s",
            len(changes), product.id, 'new' if result.created else 'existing', result.motion_id
        )
        return result
