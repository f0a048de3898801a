"""
Catalog Service - read-only access to products, SKUs and price groups.

The CSV catalog holds one row per price point; SKUs pointing at the same
price_group_id share a single PriceGroup object.
"""
import logging
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Protocol

import pandas as pd

from ..engine.models import (
    Experiment, PriceGroup, PricePoint, PricePointStatus, Product, Sku,
)
from ..exceptions import CatalogError

logger = logging.getLogger(__name__)


class CatalogReader(Protocol):
    """What the workflow needs from the catalog."""

    def get_product(self, product_id: str) -> Product:
        ...

    def list_products(self) -> list[Product]:
        ...


class InMemoryCatalog:
    """Catalog backed by already-built Product objects."""

    def __init__(self, products: list[Product]):
        self._products = {p.id: p for p in products}

    def get_product(self, product_id: str) -> Product:
        product = self._products.get(str(product_id).strip())
        if product is None:
            raise CatalogError(f"Product '{product_id}' not found")
        return product

    def list_products(self) -> list[Product]:
        return list(self._products.values())


class CsvCatalog(InMemoryCatalog):
    """Catalog loaded from a price-point CSV."""

    REQUIRED_COLUMNS = [
        'product_id', 'product_name', 'sku_id', 'sales_channel', 'billing_cycle',
        'price_group_id', 'currency', 'amount', 'valid_from',
    ]

    def __init__(self, csv_path: Path, today: Optional[date] = None):
        if not csv_path.exists():
            raise FileNotFoundError(f"Catalog not found at {csv_path}.")
        frame = pd.read_csv(csv_path, dtype=str).fillna('')
        frame.columns = [c.strip() for c in frame.columns]
        for col in frame.columns:
            frame[col] = frame[col].astype(str).str.strip()
        super().__init__(products_from_frame(frame, today))
        logger.info("Loaded %d products from %s", len(self._products), csv_path)


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    return datetime.strptime(value[:10], '%Y-%m-%d').date()


def _parse_int(value: str) -> Optional[int]:
    return int(float(value)) if value else None


def _status(value: str, valid_from: date, valid_until: Optional[date], today: date) -> PricePointStatus:
    """Explicit A/E or Active/Expired wins; blank status is derived from the window."""
    value = value.strip().lower()
    if value in ('a', 'active'):
        return PricePointStatus.ACTIVE
    if value in ('e', 'expired'):
        return PricePointStatus.EXPIRED
    active = valid_from <= today and (valid_until is None or valid_until >= today)
    return PricePointStatus.ACTIVE if active else PricePointStatus.EXPIRED


def products_from_frame(frame: pd.DataFrame, today: Optional[date] = None) -> list[Product]:
    """Build products from a string-typed price point frame."""
    today = today or date.today()
    missing = [c for c in CsvCatalog.REQUIRED_COLUMNS if c not in frame.columns]
    if missing:
        raise CatalogError(f"Catalog is missing columns: {', '.join(missing)}")

    def column(row, name: str) -> str:
        return row.get(name, '') or ''

    points_by_group: dict[str, list[PricePoint]] = {}
    for index, row in frame.iterrows():
        valid_from = _parse_date(row['valid_from'])
        if valid_from is None:
            raise CatalogError(
                f"Row {index}: price point in {row['price_group_id']} ({row['currency']}) has no valid_from"
            )
        valid_until = _parse_date(column(row, 'valid_until'))
        points_by_group.setdefault(row['price_group_id'], []).append(PricePoint(
            currency=row['currency'].upper(),
            amount=Decimal(row['amount'].replace(',', '')),
            valid_from=valid_from,
            min_quantity=_parse_int(column(row, 'min_quantity')) or 1,
            max_quantity=_parse_int(column(row, 'max_quantity')),
            pricing_tier=column(row, 'pricing_tier'),
            valid_until=valid_until,
            status=_status(column(row, 'status'), valid_from, valid_until, today),
            id=column(row, 'price_point_id') or None,
        ))
    groups = {
        group_id: PriceGroup(id=group_id, price_points=tuple(points))
        for group_id, points in points_by_group.items()
    }

    products: dict[str, Product] = {}
    for _, row in frame.drop_duplicates(subset=['product_id', 'sku_id']).iterrows():
        product = products.setdefault(
            row['product_id'], Product(id=row['product_id'], name=row['product_name'])
        )
        product.skus.append(Sku(
            id=row['sku_id'],
            sales_channel=row['sales_channel'],
            billing_cycle=row['billing_cycle'],
            price_group=groups[row['price_group_id']],
            experiment=Experiment.from_pair(column(row, 'lix_key'), column(row, 'lix_treatment')),
        ))
    return list(products.values())
