"""Enumerations shared across Serafina ERP modules.

Centralises domain constants so that the data access layer (DAL), the ledger
modules, and the CLI rely on a single source of truth for identifiers that
end up persisted in the document store.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping


# Central schema version expected by all layers when validating the store.
EXPECTED_SCHEMA_VERSION = "1.0.0"


class BottleTransactionType(str, Enum):
    """Direction of a container movement in the bottle ledger."""

    ISSUED = "issued"
    RETURNED = "returned"


class OrderPaymentMethod(str, Enum):
    """Settlement mode derived for an order at placement time."""

    CASH = "cash"
    CREDIT = "credit"


class OrderStatus(str, Enum):
    """Order lifecycle states recorded at placement time."""

    COMPLETED = "completed"
    PENDING = "pending"


class PaymentMethod(str, Enum):
    """Channels through which a customer may settle their account."""

    CASH = "cash"
    BANK = "bank"
    MOBILE = "mobile"
    OTHER = "other"


class PaymentSource(str, Enum):
    """Origin of a payment record; order payments are already counted by ``amountPaid``."""

    ORDER = "order"
    ACCOUNT = "account"


class Role(str, Enum):
    """User roles; ``ADMIN`` implies every ``STAFF`` permission."""

    ADMIN = "admin"
    STAFF = "staff"


class Language(str, Enum):
    """Languages supported by the customer-facing material."""

    ENGLISH = "en"
    URDU = "ur"


class QualityStatus(str, Enum):
    """Classification bands for a water-quality reading."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class InactivityStatus(str, Enum):
    """Buckets used by the customer activity report."""

    NO_ORDERS = "no_orders"
    DAYS_90 = "90_days"
    DAYS_60 = "60_days"
    DAYS_30 = "30_days"
    ACTIVE = "active"


class StorageKey(str, Enum):
    """Logical keys understood by every persistence driver."""

    CUSTOMERS = "customers_data"
    PRODUCTS = "products_data"
    BOTTLE_TRANSACTIONS = "bottles_transactions"
    ORDERS = "orders_data"
    PAYMENTS = "payments_data"
    EXPENSES = "expenses_data"
    EXPENSE_CATEGORIES = "expenses_categories"
    CASH_BALANCE = "cash_balance"
    LEGACY_CASH_BALANCE = "cash_current_balance"
    CASH_ADJUSTMENTS = "cash_adjustments"
    CASH_DAILY_RECORDS = "cash_daily_records"
    WATER_QUALITY_ENTRIES = "water_quality_entries"
    WATER_QUALITY_RANGES = "water_quality_ranges"
    APP_SETTINGS = "app_settings"
    LANGUAGE = "i18n_language"
    AUTH_USER = "auth_user"
    AUTH_TOKEN = "auth_token"
    USERS = "users"


# Keys whose documents are lists of entities, each carrying an ``id``.
COLLECTION_KEYS: tuple[StorageKey, ...] = (
    StorageKey.CUSTOMERS,
    StorageKey.PRODUCTS,
    StorageKey.BOTTLE_TRANSACTIONS,
    StorageKey.ORDERS,
    StorageKey.PAYMENTS,
    StorageKey.EXPENSES,
    StorageKey.EXPENSE_CATEGORIES,
    StorageKey.CASH_ADJUSTMENTS,
    StorageKey.CASH_DAILY_RECORDS,
    StorageKey.WATER_QUALITY_ENTRIES,
    StorageKey.USERS,
)


DEFAULT_WATER_QUALITY_RANGES: Mapping[str, float] = {
    "pHMin": 6.5,
    "pHMax": 8.5,
    "tdsMax": 300.0,
    "chlorineMin": 0.2,
    "chlorineMax": 2.0,
    "warningTolerance": 10.0,
}

DEFAULT_EXPENSE_CATEGORIES: tuple[tuple[str, str, str], ...] = (
    ("cat_1", "Transportation", "Vehicle fuel, maintenance"),
    ("cat_2", "Supplies", "Office supplies, materials"),
    ("cat_3", "Utilities", "Electricity, water, internet"),
    ("cat_4", "Salaries", "Employee salaries"),
    ("cat_5", "Other", "Miscellaneous expenses"),
)

DEFAULT_COMPANY_NAME = "Serafina Water"
DEFAULT_CURRENCY_PREFIX = "Rs."

# Legacy per-size price keys found on older customer documents.
LEGACY_BOTTLE_PRICE_KEYS: Mapping[str, str] = {
    "19l": "price19L",
    "6l": "price6L",
    "1.5l": "price1_5L",
    "500ml": "price500ml",
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "BottleTransactionType",
    "OrderPaymentMethod",
    "OrderStatus",
    "PaymentMethod",
    "PaymentSource",
    "Role",
    "Language",
    "QualityStatus",
    "InactivityStatus",
    "StorageKey",
    "COLLECTION_KEYS",
    "DEFAULT_WATER_QUALITY_RANGES",
    "DEFAULT_EXPENSE_CATEGORIES",
    "DEFAULT_COMPANY_NAME",
    "DEFAULT_CURRENCY_PREFIX",
    "LEGACY_BOTTLE_PRICE_KEYS",
]
