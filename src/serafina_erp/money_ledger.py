"""Money ledger: orders, payments, customer balances, and cash on hand.

This module is the single owner of the materialized cash balance. Every
writer that moves cash (orders, payments, expenses, manual adjustments) goes
through :func:`apply_cash_delta`, and always after its ledger events have been
written, so :func:`recompute_cash_from_events` stays authoritative when a
write fails half-way.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from . import log
from .bottles import BottleCommand, order_note, record_bottle_transaction
from .catalog import get_product
from .constants import BottleTransactionType, OrderPaymentMethod, OrderStatus, PaymentMethod, PaymentSource, StorageKey
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
    require_nonnegative_money,
    require_positive_money,
    require_positive_quantity,
    require_text,
    round_money,
    to_money,
)
from .customers import get_customer, resolve_unit_price
from .data_manager import (
    BottleTransactionRecord,
    CashAdjustmentRecord,
    CashBalanceRecord,
    CustomerRecord,
    OrderRecord,
    PaymentRecord,
    deserialize_cash_balance,
    serialize_cash_balance,
    to_decimal,
)


LEGACY_CASH_REASON = "Legacy cash balance carried forward"

@dataclass(frozen=True)
class PlaceOrderCommand:
    """User intent for selling a product to a customer.

    ``price`` of ``None`` resolves the customer's unit price for the product.
    """

    customer_id: str
    product_id: str
    quantity: Any
    price: Any = None
    amount_paid: Any = "0"
    notes: str = ""
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class PlaceOrderResult:
    """Every effect emitted by :func:`place_order`, in emission order."""

    order: OrderRecord
    bottle_transaction: BottleTransactionRecord
    payment: Optional[PaymentRecord]
    new_cash_balance: CashBalanceRecord


@dataclass(frozen=True)
class PaymentCommand:
    """User intent for recording money received from a customer."""

    customer_id: str
    amount: Any
    payment_method: str = PaymentMethod.CASH.value
    notes: str = ""
    order_id: Optional[str] = None
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class CustomerBalance:
    customer_id: str
    opening_balance: Decimal
    total_orders: Decimal
    total_payments: Decimal
    balance: Decimal


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def list_orders(context: RuntimeContext) -> List[OrderRecord]:
    return load_collection(context, StorageKey.ORDERS)


def calculate_order_total(quantity: int, price: Decimal) -> Decimal:
    """``quantity * price`` rounded to two decimals, halves away from zero."""

    return round_money(Decimal(quantity) * price)


def place_order(context: RuntimeContext, command: PlaceOrderCommand) -> PlaceOrderResult:
    """Sell a product and emit every ledger effect of the sale.

    The workflow validates the request, then writes in this order:

    1. the order itself;
    2. a bottle ``issued`` event carrying ``Order #<id>`` in its notes;
    3. a cash payment linked to the order when ``amount_paid`` is positive;
    4. the cash balance, increased by ``amount_paid``.

    The operation is not idempotent; callers must not retry it blindly.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        command (PlaceOrderCommand): Structured intent describing the sale.

    Returns:
        PlaceOrderResult: The order, the bottle event, the optional payment,
            and the cash balance after the sale.

    Raises:
        ValidationError: If a reference is blank, quantity or price is not
            positive, or ``amount_paid`` is negative or above the total.
        MissingReferenceError: If the customer or product is unknown.
        PolicyViolation: If the product has been deactivated.
    """

    customer_id = require_text(command.customer_id, "Customer is required")
    product_id = require_text(command.product_id, "Product is required")
    quantity = require_positive_quantity(command.quantity, "Quantity must be greater than 0")

    customer = get_customer(context, customer_id)
    product = get_product(context, product_id)
    if not product.is_active:
        log.warning("Attempted order on inactive product '%s'", product_id)
        raise PolicyViolation(f"Product '{product.name}' is inactive")

    if command.price is None or command.price == "":
        price = resolve_unit_price(customer, product)
    else:
        price = to_money(command.price, field_name="Price")
    require_positive_money(price, "Price must be greater than 0")

    amount_paid = to_money(command.amount_paid if command.amount_paid not in (None, "") else "0", field_name="Amount paid")
    require_nonnegative_money(amount_paid, "Amount paid must be 0 or greater")

    total_amount = calculate_order_total(quantity, price)
    if amount_paid > total_amount:
        log.error("Amount paid %s exceeds order total %s", amount_paid, total_amount)
        raise ValidationError("Amount paid cannot exceed total amount")

    outstanding = round_money(total_amount - amount_paid)
    created_at = now_iso(command.timestamp)
    order = OrderRecord(
        order_id=generate_id("ORD"),
        customer_id=customer_id,
        product_id=product_id,
        quantity=quantity,
        price=price,
        total_amount=total_amount,
        amount_paid=amount_paid,
        outstanding_amount=outstanding,
        payment_method=(OrderPaymentMethod.CASH if amount_paid >= total_amount else OrderPaymentMethod.CREDIT).value,
        status=(OrderStatus.PENDING if outstanding > ZERO else OrderStatus.COMPLETED).value,
        notes=(command.notes or "").strip(),
        created_at=created_at,
        created_by=command.created_by,
    )
    append_record(context, StorageKey.ORDERS, order)

    bottle_transaction = record_bottle_transaction(
        context,
        BottleCommand(
            customer_id=customer_id,
            transaction_type=BottleTransactionType.ISSUED.value,
            quantity=quantity,
            notes=order_note(order.order_id),
            created_by=command.created_by,
            timestamp=command.timestamp,
        ),
    )

    payment: Optional[PaymentRecord] = None
    if amount_paid > ZERO:
        payment = PaymentRecord(
            payment_id=generate_id("PAY"),
            customer_id=customer_id,
            amount=amount_paid,
            payment_method=PaymentMethod.CASH.value,
            order_id=order.order_id,
            notes=f"Payment for Order #{order.order_id}",
            created_at=created_at,
            created_by=command.created_by,
            source=PaymentSource.ORDER.value,
        )
        append_record(context, StorageKey.PAYMENTS, payment)

    new_cash_balance = apply_cash_delta(context, amount_paid, timestamp=command.timestamp)
    log.info(
        "Placed order '%s' for customer '%s' (product=%s, quantity=%d, total=%s, paid=%s, status=%s)",
        order.order_id,
        customer_id,
        product_id,
        quantity,
        total_amount,
        amount_paid,
        order.status,
    )
    return PlaceOrderResult(
        order=order,
        bottle_transaction=bottle_transaction,
        payment=payment,
        new_cash_balance=new_cash_balance,
    )


def customer_orders(context: RuntimeContext, customer_id: str) -> List[OrderRecord]:
    """Orders for one customer, newest first."""

    return sorted(
        (order for order in list_orders(context) if order.customer_id == customer_id),
        key=lambda order: order.created_at,
        reverse=True,
    )


def total_sales(context: RuntimeContext) -> Decimal:
    return sum((order.total_amount for order in list_orders(context)), ZERO)


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def list_payments(context: RuntimeContext) -> List[PaymentRecord]:
    return load_collection(context, StorageKey.PAYMENTS)


def record_payment(
    context: RuntimeContext,
    command: PaymentCommand,
    *,
    max_amount: Optional[Decimal] = None,
) -> PaymentRecord:
    """Record a payment against a customer's account.

    Cash payments increase cash on hand, including those that reference an
    earlier order through ``order_id``. Other methods only reduce the
    customer's balance.

    Args:
        context (RuntimeContext): Runtime context providing store access.
        command (PaymentCommand): Structured intent describing the payment.
        max_amount (Decimal | None): Optional ceiling, normally the
            customer's outstanding balance.

    Returns:
        PaymentRecord: Newly appended payment.

    Raises:
        ValidationError: If the customer or method is missing, the method is
            unsupported, the amount is not positive, or ``order_id``
            belongs to another customer.
        MissingReferenceError: If the customer is unknown or
            ``order_id`` names no order.
        PolicyViolation: If the amount exceeds ``max_amount``.
    """

    customer_id = require_text(command.customer_id, "Customer is required")
    amount = to_money(command.amount, field_name="Payment amount")
    require_positive_money(amount, "Payment amount must be greater than 0")
    method = require_text(command.payment_method, "Payment method is required")
    if method not in {member.value for member in PaymentMethod}:
        log.error("Unsupported payment method: %r", method)
        raise ValidationError(f"Unsupported payment method: {method}")
    if max_amount is not None and amount > max_amount:
        log.warning("Payment %s for customer '%s' exceeds ceiling %s", amount, customer_id, max_amount)
        raise PolicyViolation(f"Payment amount cannot exceed outstanding balance of {max_amount:,}")
    get_customer(context, customer_id)
    order_id = (command.order_id or "").strip() or None
    if order_id is not None:
        order = find_record(list_orders(context), order_id, id_attr="order_id")
        if order is None:
            log.warning("Payment references unknown order '%s'", order_id)
            raise MissingReferenceError("Order not found")
        if order.customer_id != customer_id:
            log.error("Order '%s' does not belong to customer '%s'", order_id, customer_id)
            raise ValidationError("Order belongs to a different customer")

    payment = PaymentRecord(
        payment_id=generate_id("PAY"),
        customer_id=customer_id,
        amount=amount,
        payment_method=method,
        order_id=order_id,
        notes=(command.notes or "").strip(),
        created_at=now_iso(command.timestamp),
        created_by=command.created_by,
    )
    append_record(context, StorageKey.PAYMENTS, payment)
    if _is_standalone_cash(payment):
        apply_cash_delta(context, amount, timestamp=command.timestamp)
    log.info(
        "Recorded %s payment '%s' for customer '%s' (amount=%s)",
        method,
        payment.payment_id,
        customer_id,
        amount,
    )
    return payment


def delete_payment(context: RuntimeContext, payment_id: str) -> PaymentRecord:
    """Remove a payment, reversing its cash effect when it was a standalone cash payment.

    Payments created by :func:`place_order` leave cash untouched because the
    order's ``amountPaid`` still accounts for that money.
    """

    removed = remove_record(context, StorageKey.PAYMENTS, payment_id, id_attr="payment_id")
    if _is_standalone_cash(removed):
        apply_cash_delta(context, -removed.amount)
    log.warning("Deleted payment '%s' (amount=%s)", payment_id, removed.amount)
    return removed


def customer_payments(context: RuntimeContext, customer_id: str) -> List[PaymentRecord]:
    """Payments for one customer, newest first."""

    return sorted(
        (payment for payment in list_payments(context) if payment.customer_id == customer_id),
        key=lambda payment: payment.created_at,
        reverse=True,
    )


def _is_standalone_cash(payment: PaymentRecord) -> bool:
    return payment.source == PaymentSource.ACCOUNT.value and payment.payment_method == PaymentMethod.CASH.value


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def calculate_customer_balance(
    customer_id: str,
    orders: Iterable[OrderRecord],
    payments: Iterable[PaymentRecord],
    customers: Sequence[CustomerRecord] = (),
) -> CustomerBalance:
    """Opening balance plus order totals minus payments for one customer.

    Unknown customers are treated as having a zero opening balance.
    """

    opening = next(
        (customer.opening_balance for customer in customers if customer.customer_id == customer_id),
        ZERO,
    )
    total_orders = sum((o.total_amount for o in orders if o.customer_id == customer_id), ZERO)
    total_payments = sum((p.amount for p in payments if p.customer_id == customer_id), ZERO)
    return CustomerBalance(
        customer_id=customer_id,
        opening_balance=opening,
        total_orders=total_orders,
        total_payments=total_payments,
        balance=round_money(opening + total_orders - total_payments),
    )


def customer_balance(context: RuntimeContext, customer_id: str) -> CustomerBalance:
    """Authoritative outstanding receivable for one customer."""

    return calculate_customer_balance(
        customer_id,
        list_orders(context),
        list_payments(context),
        load_collection(context, StorageKey.CUSTOMERS),
    )


def all_customer_balances(context: RuntimeContext) -> List[CustomerBalance]:
    """Balances for every customer known to the registry or either ledger."""

    orders = list_orders(context)
    payments = list_payments(context)
    customers = load_collection(context, StorageKey.CUSTOMERS)
    customer_ids = dict.fromkeys(
        [o.customer_id for o in orders]
        + [p.customer_id for p in payments]
        + [c.customer_id for c in customers]
    )
    return [calculate_customer_balance(cid, orders, payments, customers) for cid in customer_ids]


# ---------------------------------------------------------------------------
# Cash on hand
# ---------------------------------------------------------------------------


def load_cash_balance(context: RuntimeContext) -> CashBalanceRecord:
    """Return the materialized cash balance.

    Falls back to the legacy ``cash_current_balance`` number when the
    ``cash_balance`` singleton has never been written, and to zero when
    neither exists. The legacy key is only ever read.
    """

    document = context.store.get(StorageKey.CASH_BALANCE)
    if document is not None:
        return deserialize_cash_balance(document)
    legacy = context.store.get(StorageKey.LEGACY_CASH_BALANCE)
    if legacy is not None:
        log.debug("Using legacy cash balance value %s", legacy)
        return CashBalanceRecord(amount=round_money(to_decimal(legacy)), last_updated="")
    return CashBalanceRecord(amount=ZERO, last_updated="")


def cash_on_hand(context: RuntimeContext) -> Decimal:
    return load_cash_balance(context).amount


def save_cash_balance(context: RuntimeContext, amount: Decimal, *, timestamp: Optional[datetime] = None) -> CashBalanceRecord:
    record = CashBalanceRecord(amount=round_money(amount), last_updated=now_iso(timestamp))
    context.store.put(StorageKey.CASH_BALANCE, serialize_cash_balance(record))
    return record


def carry_forward_legacy_cash(
    context: RuntimeContext,
    *,
    pending: Decimal = ZERO,
    timestamp: Optional[datetime] = None,
) -> Optional[CashAdjustmentRecord]:
    """Adopt a legacy ``cash_current_balance`` before the cash singleton is first written.

    The part of the legacy amount that ledger events do not explain is
    recorded as a cash adjustment, so :func:`recompute_cash_from_events`
    agrees with the carried-forward balance. ``pending`` is a cash delta
    whose events are already written but not yet applied. Does nothing once
    ``cash_balance`` exists or when there is no legacy value.
    """

    if context.store.get(StorageKey.CASH_BALANCE) is not None:
        return None
    legacy = context.store.get(StorageKey.LEGACY_CASH_BALANCE)
    if legacy is None:
        return None

    amount = round_money(to_decimal(legacy))
    unexplained = round_money(amount - (recompute_cash_from_events(context) - pending))
    adjustment: Optional[CashAdjustmentRecord] = None
    if unexplained != ZERO:
        adjustment = CashAdjustmentRecord(
            adjustment_id=generate_id("ADJ"),
            amount=unexplained,
            reason=LEGACY_CASH_REASON,
            created_at=now_iso(timestamp),
        )
        append_record(context, StorageKey.CASH_ADJUSTMENTS, adjustment)
    save_cash_balance(context, amount, timestamp=timestamp)
    log.info("Carried forward legacy cash balance %s (adjustment=%s)", amount, unexplained)
    return adjustment


def apply_cash_delta(context: RuntimeContext, delta: Decimal, *, timestamp: Optional[datetime] = None) -> CashBalanceRecord:
    """Add ``delta`` (possibly negative) to cash on hand and persist it."""

    carry_forward_legacy_cash(context, pending=delta, timestamp=timestamp)
    current = load_cash_balance(context)
    record = save_cash_balance(context, current.amount + delta, timestamp=timestamp)
    log.debug("Cash on hand %s -> %s", current.amount, record.amount)
    return record


def adjust_cash(
    context: RuntimeContext,
    amount: Any,
    reason: str,
    *,
    created_by: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> CashAdjustmentRecord:
    """Record a signed manual correction to cash on hand.

    Raises:
        ValidationError: If the reason is blank or the amount is zero.
    """

    reason_text = require_text(reason, "Reason is required")
    value = to_money(amount, field_name="Adjustment amount")
    if value == ZERO:
        log.error("Rejected zero cash adjustment")
        raise ValidationError("Adjustment amount cannot be zero")

    adjustment = CashAdjustmentRecord(
        adjustment_id=generate_id("ADJ"),
        amount=value,
        reason=reason_text,
        created_at=now_iso(timestamp),
        created_by=created_by,
    )
    append_record(context, StorageKey.CASH_ADJUSTMENTS, adjustment)
    balance = apply_cash_delta(context, value, timestamp=timestamp)
    log.info("Adjusted cash by %s (%s); balance now %s", value, reason_text, balance.amount)
    return adjustment


def list_cash_adjustments(context: RuntimeContext) -> List[CashAdjustmentRecord]:
    return load_collection(context, StorageKey.CASH_ADJUSTMENTS)


def recompute_cash_from_events(context: RuntimeContext) -> Decimal:
    """Derive cash on hand purely from ledger events.

    Order payments, standalone cash payments, and adjustments add; expenses
    subtract.
    """

    from_orders = sum((order.amount_paid for order in list_orders(context)), ZERO)
    from_payments = sum(
        (payment.amount for payment in list_payments(context) if _is_standalone_cash(payment)),
        ZERO,
    )
    spent = sum((expense.amount for expense in load_collection(context, StorageKey.EXPENSES)), ZERO)
    adjustments = sum((adjustment.amount for adjustment in list_cash_adjustments(context)), ZERO)
    return round_money(from_orders + from_payments - spent + adjustments)


def reconcile_cash(context: RuntimeContext, *, timestamp: Optional[datetime] = None) -> Decimal:
    """Rewrite the cash singleton from events and return the drift that was corrected."""

    carry_forward_legacy_cash(context, timestamp=timestamp)
    recomputed = recompute_cash_from_events(context)
    current = cash_on_hand(context)
    drift = round_money(recomputed - current)
    save_cash_balance(context, recomputed, timestamp=timestamp)
    if drift != ZERO:
        log.warning("Cash balance drift of %s corrected (stored=%s, events=%s)", drift, current, recomputed)
    else:
        log.info("Cash balance %s matches ledger events", recomputed)
    return drift
