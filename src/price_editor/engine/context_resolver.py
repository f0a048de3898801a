"""
Context Resolver - collects channel, billing cycle, action and experiment.

Options are split into values the product already uses and new ones.
A ContextDraft holds the operator's in-progress choices and builds the
immutable EditingContext once they are consistent.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ..config.settings import Settings, get_settings
from ..exceptions import ContextError
from .formatting import format_amount
from .models import (
    EditingContext, Experiment, PriceGroup, PriceGroupAction, PricePointStatus,
    Product, ValidationResult,
)


@dataclass
class OptionGroups:
    """Selectable values partitioned for display."""
    existing: list[str] = field(default_factory=list)
    new: list[str] = field(default_factory=list)


@dataclass
class PriceGroupOption:
    """A price group offered for update or cloning."""
    price_group: PriceGroup
    channel: str
    billing_cycle: str
    experiment: Optional[Experiment]
    active_price_count: int
    most_recent_valid_from: Optional[date]
    preview: str


class ContextResolver:
    """
    Resolves which price group is being created, cloned, or updated.

    Reads the product's SKUs only; never mutates the catalog.
    """

    def __init__(self, product: Product, settings: Optional[Settings] = None, today: Optional[date] = None):
        self.product = product
        self.settings = settings or get_settings()
        self.today = today or date.today()

    def channel_options(self) -> OptionGroups:
        used = {sku.sales_channel for sku in self.product.skus}
        return OptionGroups(
            existing=[c for c in self.settings.channels if c in used],
            new=[c for c in self.settings.channels if c not in used],
        )

    def billing_cycle_options(self, channel: Optional[str]) -> OptionGroups:
        if not channel:
            return OptionGroups()
        used = {sku.billing_cycle for sku in self.product.skus if sku.sales_channel == channel}
        return OptionGroups(
            existing=[b for b in self.settings.billing_cycles if b in used],
            new=[b for b in self.settings.billing_cycles if b not in used],
        )

    def _option(self, price_group: PriceGroup) -> PriceGroupOption:
        owner = self.product.skus_for_price_group(price_group.id)[0]
        active = [pp for pp in price_group.price_points if self._is_active(pp)]
        valid_dates = [pp.valid_from for pp in price_group.price_points]
        return PriceGroupOption(
            price_group=price_group,
            channel=owner.sales_channel,
            billing_cycle=owner.billing_cycle,
            experiment=owner.experiment,
            active_price_count=len(active),
            most_recent_valid_from=max(valid_dates) if valid_dates else None,
            preview=self._preview(active),
        )

    def _is_active(self, point) -> bool:
        if point.status is not None:
            return point.status == PricePointStatus.ACTIVE
        return point.is_active_on(self.today)

    @staticmethod
    def _preview(active_points) -> str:
        if not active_points:
            return 'No active prices'
        usd = next((pp for pp in active_points if pp.currency == 'USD'), None)
        if usd is None:
            return f"{len(active_points)} non-USD price points"
        text = f"USD {format_amount(usd.amount, 'USD')}"
        if len(active_points) > 1:
            text += f" + {len(active_points) - 1} more"
        return text

    def existing_price_groups(self, channel: Optional[str], billing_cycle: Optional[str]) -> list[PriceGroupOption]:
        """Groups of SKUs sold on this channel and billing cycle."""
        if not channel or not billing_cycle:
            return []
        groups = {}
        for sku in self.product.skus:
            if sku.sales_channel == channel and sku.billing_cycle == billing_cycle:
                groups.setdefault(sku.price_group.id, sku.price_group)
        return [self._option(pg) for pg in groups.values()]

    def clone_sources(self) -> list[PriceGroupOption]:
        return [self._option(pg) for pg in self.product.price_groups()]

    def experiment_options(self) -> dict[str, list[str]]:
        """Known experiment keys and their treatments."""
        options: dict[str, set[str]] = {}
        for sku in self.product.skus:
            if sku.experiment:
                options.setdefault(sku.experiment.key, set()).add(sku.experiment.treatment)
        return {key: sorted(treatments) for key, treatments in sorted(options.items())}


class ContextDraft:
    """Mutable, possibly partial context selections for one session."""

    def __init__(self, resolver: ContextResolver):
        self.resolver = resolver
        self.channel: Optional[str] = None
        self.billing_cycle: Optional[str] = None
        self.action: Optional[PriceGroupAction] = None
        self.existing_price_group: Optional[PriceGroup] = None
        self.clone_price_group: Optional[PriceGroup] = None
        self.experiment_key: Optional[str] = None
        self.experiment_treatment: Optional[str] = None
        # Bumped on every full reset so owners can drop dependent state
        self.revision = 0

    def set_channel(self, channel: Optional[str]):
        if self.clone_price_group is not None:
            raise ContextError("Channel is fixed by the clone source")
        if channel and channel not in self.resolver.settings.channels:
            raise ContextError(f"Unknown channel '{channel}'")
        if channel != self.channel:
            self.channel = channel or None
            # Billing cycles and existing groups depend on the channel
            self.billing_cycle = None
            self.existing_price_group = None
            if self.action == PriceGroupAction.UPDATE:
                self.action = None

    def set_billing_cycle(self, billing_cycle: Optional[str]):
        if self.clone_price_group is not None:
            raise ContextError("Billing cycle is fixed by the clone source")
        if billing_cycle and billing_cycle not in self.resolver.settings.billing_cycles:
            raise ContextError(f"Unknown billing cycle '{billing_cycle}'")
        if billing_cycle != self.billing_cycle:
            self.billing_cycle = billing_cycle or None
            self.existing_price_group = None
            if self.action == PriceGroupAction.UPDATE:
                self.action = None

    def choose_blank(self):
        """Create a new price group from scratch."""
        if self.clone_price_group is not None:
            self.select_clone_source(None)
        self.action = PriceGroupAction.CREATE
        self.existing_price_group = None

    def select_existing_price_group(self, price_group_id: str):
        """Update a group already sold on the selected channel and billing cycle."""
        options = self.resolver.existing_price_groups(self.channel, self.billing_cycle)
        match = next((o.price_group for o in options if o.price_group.id == price_group_id), None)
        if match is None:
            raise ContextError(
                f"Price group '{price_group_id}' is not sold on {self.channel} / {self.billing_cycle}"
            )
        self.clone_price_group = None
        self.existing_price_group = match
        self.action = PriceGroupAction.UPDATE

    def select_clone_source(self, price_group_id: Optional[str]):
        """
        Pick (or clear) the group to clone structure from.

        Picking pre-fills channel, billing cycle and experiment from the
        source and forces action=create. Clearing empties every dependent
        field and bumps the revision so price inputs get discarded too.
        """
        if not price_group_id:
            self.clone_price_group = None
            self.channel = None
            self.billing_cycle = None
            self.experiment_key = None
            self.experiment_treatment = None
            self.existing_price_group = None
            self.action = None
            self.revision += 1
            return

        option = next(
            (o for o in self.resolver.clone_sources() if o.price_group.id == price_group_id), None
        )
        if option is None:
            raise ContextError(f"Price group '{price_group_id}' cannot be cloned for this product")
        self.existing_price_group = None
        self.clone_price_group = option.price_group
        self.channel = option.channel
        self.billing_cycle = option.billing_cycle
        self.experiment_key = option.experiment.key if option.experiment else None
        self.experiment_treatment = option.experiment.treatment if option.experiment else None
        self.action = PriceGroupAction.CREATE
        self.revision += 1

    def set_experiment_key(self, key: Optional[str]):
        key = (key or '').strip()
        if not key:
            # A treatment without its key is meaningless
            self.clear_experiment()
            return
        if key != self.experiment_key:
            self.experiment_treatment = None
        self.experiment_key = key

    def set_experiment_treatment(self, treatment: Optional[str]):
        self.experiment_treatment = (treatment or '').strip() or None

    def set_experiment(self, key: Optional[str], treatment: Optional[str]):
        self.set_experiment_key(key)
        if self.experiment_key:
            self.set_experiment_treatment(treatment)

    def clear_experiment(self):
        self.experiment_key = None
        self.experiment_treatment = None

    def validate(self) -> ValidationResult:
        """Channel, billing cycle and action are required to move on."""
        result = ValidationResult()
        if not self.channel:
            result.add_error("Channel is required")
        if not self.billing_cycle:
            result.add_error("Billing cycle is required")
        if not self.action:
            result.add_error("Choose to create, clone, or update a price group")
        elif self.action == PriceGroupAction.UPDATE and self.existing_price_group is None:
            result.add_error("Select the price group to update")
        if bool(self.experiment_key) != bool(self.experiment_treatment):
            result.add_error("Experiment key and treatment must both be set")
        return result

    def build(self) -> EditingContext:
        """Snapshot the draft. Half-filled experiments are dropped."""
        return EditingContext(
            channel=self.channel,
            billing_cycle=self.billing_cycle,
            action=self.action,
            existing_price_group=self.existing_price_group,
            clone_price_group=self.clone_price_group,
            experiment=Experiment.from_pair(self.experiment_key, self.experiment_treatment),
        )
