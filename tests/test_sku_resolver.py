"""Tests for SKU matching and the create/update choice."""
import pytest

from price_editor.engine.models import EditingContext, Experiment, PriceGroupAction
from price_editor.engine.sku_resolver import SkuResolver


@pytest.fixture
def resolver(product):
    return SkuResolver(product)


def test_match_requires_same_experiment_pair(resolver):
    plain = EditingContext('Desktop', 'Annual', PriceGroupAction.CREATE)
    assert resolver.find_matching(plain) == []

    lix = EditingContext('Desktop', 'Annual', PriceGroupAction.CREATE,
                         experiment=Experiment('sn.price.test', 'variant_a'))
    assert [s.id for s in resolver.find_matching(lix)] == ['SKU-DA-LIX']

    other = EditingContext('Desktop', 'Annual', PriceGroupAction.CREATE,
                           experiment=Experiment('sn.price.test', 'variant_b'))
    assert resolver.find_matching(other) == []


def test_conflict_message(resolver):
    resolution = resolver.resolve(EditingContext('Desktop', 'Monthly', PriceGroupAction.CREATE))
    assert resolution.conflict
    assert resolution.message.startswith('Price group PG-FLAT already exists for Desktop • Monthly')


def test_no_conflict_message(resolver):
    resolution = resolver.resolve(EditingContext('GPB', 'Monthly', PriceGroupAction.CREATE))
    assert not resolution.conflict
    assert resolution.message == 'New price group and SKU will be created.'


def test_choice_is_required(resolver):
    resolution = resolver.resolve(EditingContext('Desktop', 'Monthly', PriceGroupAction.CREATE))
    assert not resolver.validate_choice(resolution, None).valid
    assert resolver.validate_choice(resolution, PriceGroupAction.CREATE).valid
    assert not resolver.validate_choice(resolution, PriceGroupAction.UPDATE).valid
    assert not resolver.validate_choice(resolution, PriceGroupAction.UPDATE, 'SKU-FA').valid
    assert resolver.validate_choice(resolution, PriceGroupAction.UPDATE, 'SKU-DM').valid


def test_apply_update_targets_sku(resolver, product):
    context = EditingContext('Desktop', 'Monthly', PriceGroupAction.CREATE)
    updated = resolver.apply(context, PriceGroupAction.UPDATE, product.find_sku('SKU-DM'))
    assert updated.action == PriceGroupAction.UPDATE
    assert updated.existing_price_group.id == 'PG-FLAT'
    assert updated.target_sku_id == 'SKU-DM'
    assert updated.has_baseline


def test_apply_create_turns_existing_into_clone(resolver, flat_group):
    context = EditingContext('Desktop', 'Monthly', PriceGroupAction.UPDATE, existing_price_group=flat_group)
    created = resolver.apply(context, PriceGroupAction.CREATE)
    assert created.action == PriceGroupAction.CREATE
    assert created.existing_price_group is None
    assert created.clone_price_group is flat_group
    assert not created.has_baseline
