"""Customer registry: contact details, price overrides, and opening balances."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from . import log
from .constants import LEGACY_BOTTLE_PRICE_KEYS, Language, StorageKey
from .core_logic import (
    ZERO,
    MissingReferenceError,
    PolicyViolation,
    RuntimeContext,
    ValidationError,
    append_record,
    find_record,
    generate_id,
    load_collection,
    now_iso,
    remove_record,
    replace_record,
    require_nonnegative_money,
    require_text,
    to_money,
)
from .data_manager import CustomerRecord, ProductRecord


PHONE_PATTERN = re.compile(r"^[0-9+\-\s()]+$")


@dataclass(frozen=True)
class CustomerCommand:
    """User intent for creating or editing a customer.

    ``product_prices`` of ``None`` on update keeps the stored overrides.
    ``opening_balance`` is only honoured on creation.
    """

    name: str
    phone: str
    address: str
    preferred_language: str = Language.ENGLISH.value
    product_prices: Optional[Mapping[str, Any]] = None
    opening_balance: Any = None
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


def _validate(command: CustomerCommand) -> tuple[str, str, str, str]:
    name = require_text(command.name, "Name is required")
    phone = require_text(command.phone, "Phone is required")
    if not PHONE_PATTERN.match(phone):
        log.error("Invalid phone number format: %r", phone)
        raise ValidationError("Invalid phone number format")
    address = require_text(command.address, "Address is required")
    language = command.preferred_language
    if language not in {member.value for member in Language}:
        log.error("Unsupported preferred language: %r", language)
        raise ValidationError("Preferred language must be en or ur")
    return name, phone, address, str(language)


def _validate_prices(raw: Optional[Mapping[str, Any]]) -> Dict[str, Decimal]:
    prices: Dict[str, Decimal] = {}
    for product_id, value in (raw or {}).items():
        price = to_money(value, field_name="Product price")
        require_nonnegative_money(price, "Product price must be a non-negative number")
        prices[str(product_id)] = price
    return prices


def list_customers(context: RuntimeContext) -> List[CustomerRecord]:
    return load_collection(context, StorageKey.CUSTOMERS)


def get_customer(context: RuntimeContext, customer_id: str) -> CustomerRecord:
    """Return a single customer.

    Raises:
        MissingReferenceError: If ``customer_id`` is unknown.
    """

    customer = find_record(list_customers(context), customer_id, id_attr="customer_id")
    if customer is None:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise MissingReferenceError("Customer not found")
    return customer


def create_customer(context: RuntimeContext, command: CustomerCommand) -> CustomerRecord:
    """Validate and append a new customer.

    The opening balance is captured here once and never changes afterwards.

    Raises:
        ValidationError: For missing fields, a malformed phone number, an
            unsupported language, or a negative price or opening balance.
    """

    name, phone, address, language = _validate(command)
    prices = _validate_prices(command.product_prices)
    opening_balance = ZERO
    if command.opening_balance not in (None, ""):
        opening_balance = to_money(command.opening_balance, field_name="Opening balance")
        require_nonnegative_money(opening_balance, "Opening balance must be zero or positive")

    created_at = now_iso(command.timestamp)
    customer = CustomerRecord(
        customer_id=generate_id("CUS"),
        name=name,
        phone=phone,
        address=address,
        preferred_language=language,
        product_prices=prices,
        opening_balance=opening_balance,
        created_at=created_at,
        updated_at=created_at,
        created_by=command.created_by,
    )
    append_record(context, StorageKey.CUSTOMERS, customer)
    log.info("Created customer '%s' (opening balance=%s)", customer.customer_id, opening_balance)
    return customer


def update_customer(context: RuntimeContext, customer_id: str, command: CustomerCommand) -> CustomerRecord:
    """Overwrite contact details, language, and price overrides.

    ``openingBalance`` and any legacy ``bottlePrices`` are preserved.

    Raises:
        MissingReferenceError: If ``customer_id`` is unknown.
        PolicyViolation: If the command tries to change the opening balance.
        ValidationError: For the same reasons as :func:`create_customer`.
    """

    existing = get_customer(context, customer_id)
    name, phone, address, language = _validate(command)
    if command.opening_balance not in (None, ""):
        requested = to_money(command.opening_balance, field_name="Opening balance")
        if requested != existing.opening_balance:
            log.warning("Rejected opening balance edit on customer '%s'", customer_id)
            raise PolicyViolation("Opening balance cannot be changed after creation")

    prices = (
        _validate_prices(command.product_prices)
        if command.product_prices is not None
        else dict(existing.product_prices)
    )
    updated = replace(
        existing,
        name=name,
        phone=phone,
        address=address,
        preferred_language=language,
        product_prices=prices,
        updated_at=now_iso(command.timestamp),
    )
    replace_record(context, StorageKey.CUSTOMERS, updated, id_attr="customer_id")
    log.info("Updated customer '%s'", customer_id)
    return updated


def delete_customer(context: RuntimeContext, customer_id: str) -> CustomerRecord:
    """Hard-delete a customer. Ledger events referencing it are left in place."""

    removed = remove_record(context, StorageKey.CUSTOMERS, customer_id, id_attr="customer_id")
    log.info("Deleted customer '%s'", customer_id)
    return removed


def search_customers(context: RuntimeContext, query: Optional[str]) -> List[CustomerRecord]:
    """Match ``query`` case-insensitively against names and literally against phones.

    A blank query returns every customer.
    """

    customers = list_customers(context)
    needle = (query or "").strip()
    if not needle:
        return customers
    folded = needle.lower()
    return [
        customer
        for customer in customers
        if folded in customer.name.lower() or folded in customer.phone
    ]


def resolve_unit_price(customer: CustomerRecord, product: ProductRecord) -> Decimal:
    """Return the price this customer pays per unit of ``product``.

    Order of precedence: a positive ``productPrices`` override, then a positive
    legacy ``bottlePrices`` entry matching the product size, then the product's
    default price.
    """

    override = customer.product_prices.get(product.product_id)
    if override is not None and override > ZERO:
        return override

    legacy_key = LEGACY_BOTTLE_PRICE_KEYS.get(product.size.strip().lower())
    if legacy_key and customer.bottle_prices:
        legacy = customer.bottle_prices.get(legacy_key)
        if legacy is not None and legacy > ZERO:
            return legacy

    return product.price
