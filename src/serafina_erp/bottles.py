"""Bottle ledger: append-only issue and return events per customer.

Returns are validated against the customer's *returnable* outstanding count.
Return events are not tagged with a product, so every return is subtracted
from the returnable issues; issue events that cannot be traced to an order
are treated as returnable.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from . import log
from .constants import BottleTransactionType, StorageKey
from .core_logic import (
    PolicyViolation,
    RuntimeContext,
    ValidationError,
    append_record,
    generate_id,
    load_collection,
    now_iso,
    remove_record,
    require_positive_quantity,
    require_text,
)
from .customers import get_customer
from .data_manager import BottleTransactionRecord, OrderRecord, ProductRecord


ORDER_NOTE_PREFIX = "Order #"
ORDER_NOTE_PATTERN = re.compile(r"^Order #(\S+)")


@dataclass(frozen=True)
class BottleCommand:
    """User intent for appending a bottle event."""

    customer_id: str
    transaction_type: str
    quantity: int
    notes: str = ""
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class BottleBalance:
    customer_id: str
    issued: int
    returned: int
    outstanding: int


@dataclass(frozen=True)
class BottleSummary:
    total_issued: int
    total_returned: int
    total_outstanding: int
    total_customers: int


def order_note(order_id: str) -> str:
    """Notes text linking an issue event to the order that produced it."""

    return f"{ORDER_NOTE_PREFIX}{order_id}"


def linked_order_id(transaction: BottleTransactionRecord) -> Optional[str]:
    match = ORDER_NOTE_PATTERN.match(transaction.notes or "")
    return match.group(1) if match else None


def list_bottle_transactions(context: RuntimeContext) -> List[BottleTransactionRecord]:
    return load_collection(context, StorageKey.BOTTLE_TRANSACTIONS)


def record_bottle_transaction(
    context: RuntimeContext,
    command: BottleCommand,
    *,
    return_ceiling: Optional[int] = None,
) -> BottleTransactionRecord:
    """Validate and append a bottle event.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        command (BottleCommand): Structured intent describing the event.
        return_ceiling (int | None): Upper bound for ``returned`` events,
            supplied by the caller. ``None`` disables the ceiling.

    Returns:
        BottleTransactionRecord: Newly appended event.

    Raises:
        ValidationError: If the customer id is blank, the type is unknown, or
            the quantity is not a positive integer.
        PolicyViolation: If a return exceeds ``return_ceiling``.
    """

    customer_id = require_text(command.customer_id, "Customer ID is required")
    if command.transaction_type not in {member.value for member in BottleTransactionType}:
        log.error("Unsupported bottle transaction type: %r", command.transaction_type)
        raise ValidationError("Transaction type must be issued or returned")
    quantity = require_positive_quantity(command.quantity, "Quantity must be greater than 0")

    if command.transaction_type == BottleTransactionType.RETURNED.value and return_ceiling is not None:
        if quantity > return_ceiling:
            log.warning(
                "Rejected return of %d bottles for customer '%s' (outstanding=%d)",
                quantity,
                customer_id,
                return_ceiling,
            )
            raise PolicyViolation(
                f"Cannot return {quantity} bottles. Customer only has {return_ceiling} outstanding."
            )

    transaction = BottleTransactionRecord(
        transaction_id=generate_id("BTL"),
        customer_id=customer_id,
        transaction_type=str(command.transaction_type),
        quantity=quantity,
        notes=(command.notes or "").strip(),
        created_at=now_iso(command.timestamp),
        created_by=command.created_by,
    )
    append_record(context, StorageKey.BOTTLE_TRANSACTIONS, transaction)
    log.info(
        "Recorded bottle %s '%s' for customer '%s' (quantity=%d)",
        transaction.transaction_type,
        transaction.transaction_id,
        customer_id,
        quantity,
    )
    return transaction


def record_return(
    context: RuntimeContext,
    customer_id: str,
    quantity: int,
    *,
    notes: str = "",
    created_by: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> BottleTransactionRecord:
    """Record returned bottles, capped by the returnable outstanding count.

    Raises:
        MissingReferenceError: If the customer does not exist.
        ValidationError: If the quantity is not a positive integer.
        PolicyViolation: If more bottles are returned than are outstanding.
    """

    get_customer(context, customer_id)
    command = BottleCommand(
        customer_id=customer_id,
        transaction_type=BottleTransactionType.RETURNED.value,
        quantity=quantity,
        notes=notes,
        created_by=created_by,
        timestamp=timestamp,
    )
    ceiling = max(returnable_outstanding(context, customer_id), 0)
    return record_bottle_transaction(context, command, return_ceiling=ceiling)


def delete_bottle_transaction(context: RuntimeContext, transaction_id: str) -> BottleTransactionRecord:
    """Remove an event. Corrective only; the audit trail loses the entry."""

    removed = remove_record(context, StorageKey.BOTTLE_TRANSACTIONS, transaction_id, id_attr="transaction_id")
    log.warning("Deleted bottle transaction '%s'", transaction_id)
    return removed


def calculate_customer_balance(customer_id: str, transactions: Iterable[BottleTransactionRecord]) -> BottleBalance:
    issued = 0
    returned = 0
    for transaction in transactions:
        if transaction.customer_id != customer_id:
            continue
        if transaction.transaction_type == BottleTransactionType.ISSUED.value:
            issued += transaction.quantity
        elif transaction.transaction_type == BottleTransactionType.RETURNED.value:
            returned += transaction.quantity
    return BottleBalance(customer_id=customer_id, issued=issued, returned=returned, outstanding=issued - returned)


def customer_bottle_balance(context: RuntimeContext, customer_id: str) -> BottleBalance:
    """Return ``{issued, returned, outstanding}`` for one customer."""

    return calculate_customer_balance(customer_id, list_bottle_transactions(context))


def all_customer_balances(context: RuntimeContext) -> List[BottleBalance]:
    """Balances for every customer that appears in the event stream."""

    transactions = list_bottle_transactions(context)
    customer_ids = dict.fromkeys(transaction.customer_id for transaction in transactions)
    return [calculate_customer_balance(customer_id, transactions) for customer_id in customer_ids]


def is_returnable_issue(
    transaction: BottleTransactionRecord,
    orders_by_id: Dict[str, OrderRecord],
    products_by_id: Dict[str, ProductRecord],
) -> bool:
    """Tell whether an issue event counts toward returnable outstanding.

    Only issues linked to an order for a product flagged non-returnable are
    excluded.
    """

    order_id = linked_order_id(transaction)
    if order_id is None:
        return True
    order = orders_by_id.get(order_id)
    if order is None:
        return True
    product = products_by_id.get(order.product_id)
    if product is None:
        return True
    return product.is_returnable


def calculate_returnable_outstanding(
    customer_id: str,
    transactions: Sequence[BottleTransactionRecord],
    orders: Sequence[OrderRecord],
    products: Sequence[ProductRecord],
) -> int:
    """Returnable issues minus every return for ``customer_id``.

    The result may be negative when non-returnable bottles came back.
    """

    orders_by_id = {order.order_id: order for order in orders}
    products_by_id = {product.product_id: product for product in products}
    issued = 0
    returned = 0
    for transaction in transactions:
        if transaction.customer_id != customer_id:
            continue
        if transaction.transaction_type == BottleTransactionType.RETURNED.value:
            returned += transaction.quantity
        elif transaction.transaction_type == BottleTransactionType.ISSUED.value:
            if is_returnable_issue(transaction, orders_by_id, products_by_id):
                issued += transaction.quantity
    return issued - returned


def calculate_returnable_issued(
    customer_id: str,
    transactions: Sequence[BottleTransactionRecord],
    orders: Sequence[OrderRecord],
    products: Sequence[ProductRecord],
) -> int:
    orders_by_id = {order.order_id: order for order in orders}
    products_by_id = {product.product_id: product for product in products}
    return sum(
        transaction.quantity
        for transaction in transactions
        if transaction.customer_id == customer_id
        and transaction.transaction_type == BottleTransactionType.ISSUED.value
        and is_returnable_issue(transaction, orders_by_id, products_by_id)
    )


def returnable_outstanding(context: RuntimeContext, customer_id: str) -> int:
    return calculate_returnable_outstanding(
        customer_id,
        list_bottle_transactions(context),
        load_collection(context, StorageKey.ORDERS),
        load_collection(context, StorageKey.PRODUCTS),
    )


def calculate_global_summary(transactions: Sequence[BottleTransactionRecord]) -> BottleSummary:
    """Totals across all customers plus the distinct customer count."""

    total_issued = sum(
        t.quantity for t in transactions if t.transaction_type == BottleTransactionType.ISSUED.value
    )
    total_returned = sum(
        t.quantity for t in transactions if t.transaction_type == BottleTransactionType.RETURNED.value
    )
    return BottleSummary(
        total_issued=total_issued,
        total_returned=total_returned,
        total_outstanding=total_issued - total_returned,
        total_customers=len({t.customer_id for t in transactions}),
    )


def global_summary(context: RuntimeContext) -> BottleSummary:
    return calculate_global_summary(list_bottle_transactions(context))


def global_returnable_summary(context: RuntimeContext) -> BottleSummary:
    """Same totals as :func:`global_summary` with issues restricted to returnable products."""

    transactions = list_bottle_transactions(context)
    orders_by_id = {order.order_id: order for order in load_collection(context, StorageKey.ORDERS)}
    products_by_id = {product.product_id: product for product in load_collection(context, StorageKey.PRODUCTS)}
    filtered = [
        t
        for t in transactions
        if t.transaction_type != BottleTransactionType.ISSUED.value
        or is_returnable_issue(t, orders_by_id, products_by_id)
    ]
    return calculate_global_summary(filtered)


def customer_transactions(context: RuntimeContext, customer_id: str) -> List[BottleTransactionRecord]:
    """Events for one customer, newest first."""

    return sorted(
        (t for t in list_bottle_transactions(context) if t.customer_id == customer_id),
        key=lambda t: t.created_at,
        reverse=True,
    )
