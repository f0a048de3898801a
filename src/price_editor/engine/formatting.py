"""Display helpers for currencies and amounts."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .models import ValidityWindow


# Currencies shown without minor units
ZERO_DECIMAL_CURRENCIES = frozenset({
    'BIF', 'CLP', 'DJF', 'GNF', 'JPY', 'KMF', 'KRW', 'MGA',
    'PYG', 'RWF', 'UGX', 'VND', 'VUV', 'XAF', 'XOF', 'XPF',
})

CURRENCY_NAMES = {
    'AED': 'UAE Dirham',
    'AUD': 'Australian Dollar',
    'BRL': 'Brazilian Real',
    'CAD': 'Canadian Dollar',
    'CHF': 'Swiss Franc',
    'CNY': 'Chinese Yuan',
    'DKK': 'Danish Krone',
    'EUR': 'Euro',
    'GBP': 'British Pound',
    'HKD': 'Hong Kong Dollar',
    'IDR': 'Indonesian Rupiah',
    'INR': 'Indian Rupee',
    'JPY': 'Japanese Yen',
    'KRW': 'South Korean Won',
    'MXN': 'Mexican Peso',
    'MYR': 'Malaysian Ringgit',
    'NOK': 'Norwegian Krone',
    'NZD': 'New Zealand Dollar',
    'PHP': 'Philippine Peso',
    'PLN': 'Polish Zloty',
    'SAR': 'Saudi Riyal',
    'SEK': 'Swedish Krona',
    'SGD': 'Singapore Dollar',
    'THB': 'Thai Baht',
    'TRY': 'Turkish Lira',
    'TWD': 'Taiwan Dollar',
    'USD': 'US Dollar',
    'ZAR': 'South African Rand',
}


def currency_name(currency: str) -> str:
    return CURRENCY_NAMES.get(currency, currency)


def format_amount(amount: Decimal, currency: str) -> str:
    """Whole units with separators for zero-decimal currencies, two decimals otherwise."""
    if currency in ZERO_DECIMAL_CURRENCIES:
        return f"{amount.quantize(Decimal('1'), rounding=ROUND_HALF_UP):,}"
    return f"{amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"


def format_validity(window: Optional[ValidityWindow]) -> str:
    if window is None:
        return 'Using defaults'
    return window.label()
