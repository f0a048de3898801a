"""
Sku Resolver - decides whether edits land on a new SKU or an existing one.

A SKU matches a context when channel, billing cycle and the experiment
pair (both members, nulls equal) are all the same.
"""
from dataclasses import dataclass, field, replace
from typing import Optional

from .models import EditingContext, PriceGroupAction, Product, Sku, ValidationResult


@dataclass
class SkuResolution:
    """Existing SKUs for a context plus the operator-facing message."""
    context: EditingContext
    matches: list[Sku] = field(default_factory=list)

    @property
    def conflict(self) -> bool:
        return bool(self.matches)

    @property
    def message(self) -> str:
        if self.matches:
            return (
                f"Price group {self.matches[0].price_group.id} already exists for "
                f"{self.context.describe()}. Edit the existing price group or change your selections."
            )
        return "New price group and SKU will be created."


class SkuResolver:
    """Matches a context against the product's SKUs."""

    def __init__(self, product: Product):
        self.product = product

    def find_matching(self, context: EditingContext) -> list[Sku]:
        return [
            sku for sku in self.product.skus
            if sku.sales_channel == context.channel
            and sku.billing_cycle == context.billing_cycle
            and (sku.experiment or None) == (context.experiment or None)
        ]

    def resolve(self, context: EditingContext) -> SkuResolution:
        return SkuResolution(context=context, matches=self.find_matching(context))

    def validate_choice(
        self,
        resolution: SkuResolution,
        action: Optional[PriceGroupAction],
        sku_id: Optional[str] = None
    ) -> ValidationResult:
        """An explicit create/update choice; updating needs one of the matched SKUs."""
        result = ValidationResult()
        if action is None:
            result.add_error("Choose whether to create a new SKU or update an existing one")
        elif action == PriceGroupAction.UPDATE:
            if not sku_id:
                result.add_error("Select the SKU to update")
            elif sku_id not in {sku.id for sku in resolution.matches}:
                result.add_error(f"SKU '{sku_id}' does not match {resolution.context.describe()}")
        return result

    def apply(self, context: EditingContext, action: PriceGroupAction, sku: Optional[Sku] = None) -> EditingContext:
        """The context edits will actually land on."""
        if action == PriceGroupAction.UPDATE and sku is not None:
            return replace(
                context,
                action=PriceGroupAction.UPDATE,
                existing_price_group=sku.price_group,
                clone_price_group=None,
                target_sku_id=sku.id,
            )
        if context.action == PriceGroupAction.UPDATE:
            # Creating a new SKU: the previously picked group becomes structure only
            return replace(
                context,
                action=PriceGroupAction.CREATE,
                existing_price_group=None,
                clone_price_group=context.existing_price_group,
                target_sku_id=None,
            )
        return replace(context, target_sku_id=None)
