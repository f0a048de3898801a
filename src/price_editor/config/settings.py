"""
Centralized settings and path configuration for the price editor.
"""
import os
from decimal import Decimal
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    # Walk up from this file to find the project root
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path

    # Catalog input (one row per price point)
    catalog_csv: Path

    # GTM motion store (JSON)
    gtm_store: Path

    # New prices start this many days after today unless overridden
    default_validity_offset_days: int = 7

    # Absolute difference below which a new price is not a change
    change_epsilon: Decimal = Decimal('0.01')

    # Column order for the tiered matrix; unknown currencies follow alphabetically
    currency_priority: tuple = ('USD', 'CAD', 'GBP', 'EUR', 'AUD', 'HKD', 'INR', 'SGD', 'CNY')

    # Flat matrix keeps these first, then alphabetical
    flat_currency_priority: tuple = ('USD',)

    # Known pricing tiers, sentinel first
    tier_order: tuple = (
        'NULL_TIER', 'STFF', 'CORP EM', 'GVT', 'CORP BASE PRICE',
        'CORP TIER 1', 'CORP TIER 1 DSC', 'CORP TIER 2',
    )

    # Selectable context values
    channels: tuple = ('Desktop', 'iOS', 'GPB', 'Field')
    billing_cycles: tuple = ('Monthly', 'Annual', 'Quarterly')

    # Channels priced per seat range and tier
    tiered_channels: tuple = ('Field',)

    # Currencies offered when creating a flat price group from scratch
    default_flat_currencies: tuple = ('USD',)

    log_level: str = 'INFO'

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()
        data_dir = root / 'data'

        catalog_csv = Path(os.getenv('PRICE_EDITOR_CATALOG', data_dir / 'catalog.csv'))
        gtm_store = Path(os.getenv('PRICE_EDITOR_GTM_STORE', data_dir / 'gtm_motions.json'))

        return cls(
            project_root=root,
            catalog_csv=catalog_csv,
            gtm_store=gtm_store,
            default_validity_offset_days=int(os.getenv('PRICE_EDITOR_VALIDITY_OFFSET_DAYS', '7')),
            change_epsilon=Decimal(os.getenv('PRICE_EDITOR_CHANGE_EPSILON', '0.01')),
            log_level=os.getenv('PRICE_EDITOR_LOG_LEVEL', 'INFO'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
