"""
Shared fixtures: a small in-memory catalog with one flat, one tiered,
one experiment and one zero-decimal price group, pinned to a fixed day.
"""
import os
import sys
from datetime import date
from decimal import Decimal

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from price_editor.config.settings import Settings
from price_editor.engine.models import Experiment, PriceGroup, PricePoint, Product, Sku
from price_editor.services.catalog_service import InMemoryCatalog
from price_editor.services.gtm_repository import GtmMotion, InMemoryGtmRepository

TODAY = date(2026, 10, 19)
SINCE = date(2026, 1, 1)


def point(currency, amount, min_q=1, max_q=None, tier='', valid_from=SINCE, valid_until=None):
    return PricePoint(
        currency=currency,
        amount=Decimal(amount),
        valid_from=valid_from,
        min_quantity=min_q,
        max_quantity=max_q,
        pricing_tier=tier,
        valid_until=valid_until,
    )


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_root=tmp_path,
        catalog_csv=tmp_path / 'catalog.csv',
        gtm_store=tmp_path / 'gtm_motions.json',
    )


@pytest.fixture
def flat_group():
    return PriceGroup(id='PG-FLAT', price_points=(
        point('USD', '10.00'),
        point('EUR', '9.00', valid_from=date(2026, 3, 1), valid_until=date(2027, 3, 1)),
    ))


@pytest.fixture
def field_group():
    return PriceGroup(id='PG-FIELD', price_points=(
        point('USD', '100.00', 1, 5),
        point('USD', '90.00', 6, 10),
        point('USD', '80.00', 11, None),
        point('USD', '70.00', 1, 5, 'GVT'),
        point('USD', '60.00', 6, 10, 'GVT'),
        point('USD', '50.00', 11, None, 'GVT'),
        point('CAD', '130.00', 1, 5),
        # Expired: never shown
        point('USD', '120.00', 1, 5, valid_from=date(2025, 1, 1), valid_until=date(2025, 12, 31)),
    ))


@pytest.fixture
def lix_group():
    return PriceGroup(id='PG-LIX', price_points=(point('USD', '100.00'),))


@pytest.fixture
def jpy_group():
    return PriceGroup(id='PG-JPY', price_points=(point('JPY', '1000'),))


@pytest.fixture
def product(flat_group, field_group, lix_group, jpy_group):
    return Product(id='P-100', name='Sales Navigator Core', skus=[
        Sku('SKU-DM', 'Desktop', 'Monthly', flat_group),
        Sku('SKU-FA', 'Field', 'Annual', field_group),
        Sku('SKU-DA-LIX', 'Desktop', 'Annual', lix_group, Experiment('sn.price.test', 'variant_a')),
        Sku('SKU-IM', 'iOS', 'Monthly', jpy_group),
    ])


@pytest.fixture
def catalog(product):
    return InMemoryCatalog([product])


@pytest.fixture
def draft_motion():
    return GtmMotion(
        id='gtm-draft',
        name='Q4 price refresh',
        description='Quarterly price refresh for core products',
        activation_date='2026-11-01',
        created_date='2026-10-01T09:00:00',
    )


@pytest.fixture
def repository(draft_motion):
    approved = GtmMotion(
        id='gtm-approved',
        name='Q3 launch',
        description='Already approved launch motion',
        activation_date='2026-07-01',
        status='Approved',
        created_date='2026-06-01T09:00:00',
    )
    return InMemoryGtmRepository([draft_motion, approved])
