"""Product catalog: bottle SKUs, their default prices, and returnability."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from . import log
from .constants import StorageKey
from .core_logic import (
    ConflictError,
    MissingReferenceError,
    RuntimeContext,
    append_record,
    find_record,
    generate_id,
    load_collection,
    now_iso,
    replace_record,
    require_nonnegative_money,
    require_text,
    to_money,
)
from .data_manager import ProductRecord


@dataclass(frozen=True)
class ProductCommand:
    """User intent for creating or editing a product."""

    name: str
    size: str
    price: Any
    description: str = ""
    is_active: bool = True
    is_returnable: bool = True
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[ProductRecord]:
    """Return products, active only unless ``include_inactive`` is set."""

    products = load_collection(context, StorageKey.PRODUCTS)
    if include_inactive:
        return products
    return [product for product in products if product.is_active]


def list_active_products(context: RuntimeContext) -> List[ProductRecord]:
    return list_products(context)


def get_product(context: RuntimeContext, product_id: str) -> ProductRecord:
    """Return a single product, active or not.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
    """

    product = find_record(load_collection(context, StorageKey.PRODUCTS), product_id, id_attr="product_id")
    if product is None:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError("Product not found")
    return product


def _validated_fields(command: ProductCommand) -> tuple[str, str, Decimal]:
    name = require_text(command.name, "Product name is required")
    size = require_text(command.size, "Bottle size is required")
    price = to_money(command.price, field_name="Product price")
    require_nonnegative_money(price, "Product price must be a non-negative number")
    return name, size, price


def _require_unique_size(context: RuntimeContext, size: str, *, exclude_id: Optional[str] = None) -> None:
    folded = size.casefold()
    for product in load_collection(context, StorageKey.PRODUCTS):
        if product.product_id == exclude_id or not product.is_active:
            continue
        if product.size.strip().casefold() == folded:
            log.warning("Duplicate active product size '%s' (existing '%s')", size, product.product_id)
            raise ConflictError(f"Product with size {size} already exists")


def create_product(context: RuntimeContext, command: ProductCommand) -> ProductRecord:
    """Validate and append a new product.

    Raises:
        ValidationError: When name, size, or price is missing or invalid.
        ConflictError: If an active product already uses the case-folded size.
    """

    name, size, price = _validated_fields(command)
    if command.is_active:
        _require_unique_size(context, size)

    created_at = now_iso(command.timestamp)
    product = ProductRecord(
        product_id=generate_id("PRD"),
        name=name,
        size=size,
        price=price,
        is_active=command.is_active,
        is_returnable=command.is_returnable,
        description=(command.description or "").strip(),
        created_at=created_at,
        updated_at=created_at,
        created_by=command.created_by,
    )
    append_record(context, StorageKey.PRODUCTS, product)
    log.info("Created product '%s' (size=%s, price=%s)", product.product_id, size, price)
    return product


def update_product(context: RuntimeContext, product_id: str, command: ProductCommand) -> ProductRecord:
    """Overwrite the editable fields of an existing product.

    The duplicate-size check excludes the edited product itself.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
        ValidationError: When name, size, or price is missing or invalid.
        ConflictError: If another active product uses the case-folded size.
    """

    existing = get_product(context, product_id)
    name, size, price = _validated_fields(command)
    if command.is_active:
        _require_unique_size(context, size, exclude_id=product_id)

    updated = replace(
        existing,
        name=name,
        size=size,
        price=price,
        description=(command.description or "").strip(),
        is_active=command.is_active,
        is_returnable=command.is_returnable,
        updated_at=now_iso(command.timestamp),
    )
    replace_record(context, StorageKey.PRODUCTS, updated, id_attr="product_id")
    log.info("Updated product '%s' (size=%s, price=%s)", product_id, size, price)
    return updated


def soft_delete_product(context: RuntimeContext, product_id: str, *, timestamp: Optional[datetime] = None) -> ProductRecord:
    """Mark a product inactive while keeping it for historical references."""

    existing = get_product(context, product_id)
    updated = replace(existing, is_active=False, updated_at=now_iso(timestamp))
    replace_record(context, StorageKey.PRODUCTS, updated, id_attr="product_id")
    log.info("Deactivated product '%s'", product_id)
    return updated
