"""Read-only projections over the ledgers, CSV export, and currency display."""

from __future__ import annotations

import dataclasses
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from . import log
from .bottles import calculate_customer_balance as bottle_balance
from .bottles import calculate_returnable_outstanding, global_returnable_summary
from .constants import DEFAULT_CURRENCY_PREFIX, InactivityStatus, StorageKey
from .core_logic import (
    ZERO,
    RuntimeContext,
    ValidationError,
    format_date,
    load_collection,
    parse_date,
    round_money,
    today,
)
from .data_manager import CustomerRecord, OrderRecord, ProductRecord
from .money_ledger import calculate_customer_balance as money_balance
from .money_ledger import cash_on_hand


ACTIVITY_THRESHOLDS = (None, 30, 60, 90)


@dataclass(frozen=True)
class CustomerBottlesRow:
    customer_id: str
    customer_name: str
    issued: int
    returned: int
    outstanding: int


@dataclass(frozen=True)
class OutstandingBottlesReport:
    total_outstanding: int
    customers: List[CustomerBottlesRow]


@dataclass(frozen=True)
class DuesRow:
    customer_id: str
    customer_name: str
    opening_balance: Decimal
    total_orders: Decimal
    total_payments: Decimal
    due_amount: Decimal


@dataclass(frozen=True)
class CashFlowEntry:
    date: str
    income: Decimal
    expenses: Decimal
    net_cash: Decimal
    balance: Decimal


@dataclass(frozen=True)
class CashFlowReport:
    entries: List[CashFlowEntry]
    total_income: Decimal
    total_expenses: Decimal
    net_cash_flow: Decimal


@dataclass(frozen=True)
class CustomerActivityRow:
    customer_id: str
    customer_name: str
    phone: str
    last_order_date: Optional[str]
    days_since_last_order: Optional[int]
    average_order_quantity: Decimal
    most_frequent_product: str
    inactivity_status: str


@dataclass(frozen=True)
class BusinessSummary:
    total_sales: Decimal
    total_payments: Decimal
    total_expenses: Decimal
    outstanding_receivables: Decimal
    outstanding_returnable_bottles: int
    cash_on_hand: Decimal
    customer_count: int
    order_count: int


def customer_bottles_report(context: RuntimeContext) -> List[CustomerBottlesRow]:
    """Per-customer issued, returned, and returnable outstanding bottles.

    Customers who never received a bottle and owe none are left out. Rows are
    ordered by outstanding count descending, then by name.
    """

    customers = load_collection(context, StorageKey.CUSTOMERS)
    transactions = load_collection(context, StorageKey.BOTTLE_TRANSACTIONS)
    orders = load_collection(context, StorageKey.ORDERS)
    products = load_collection(context, StorageKey.PRODUCTS)

    rows = []
    for customer in customers:
        balance = bottle_balance(customer.customer_id, transactions)
        outstanding = calculate_returnable_outstanding(customer.customer_id, transactions, orders, products)
        if balance.issued > 0 or outstanding > 0:
            rows.append(
                CustomerBottlesRow(
                    customer_id=customer.customer_id,
                    customer_name=customer.name,
                    issued=balance.issued,
                    returned=balance.returned,
                    outstanding=outstanding,
                )
            )
    rows.sort(key=lambda row: (-row.outstanding, row.customer_name.lower()))
    return rows


def outstanding_bottles_report(context: RuntimeContext) -> OutstandingBottlesReport:
    rows = [row for row in customer_bottles_report(context) if row.outstanding > 0]
    return OutstandingBottlesReport(
        total_outstanding=global_returnable_summary(context).total_outstanding,
        customers=rows,
    )


def dues_report(context: RuntimeContext) -> List[DuesRow]:
    """Customers who owe money, largest due first."""

    customers = load_collection(context, StorageKey.CUSTOMERS)
    orders = load_collection(context, StorageKey.ORDERS)
    payments = load_collection(context, StorageKey.PAYMENTS)
    rows = []
    for customer in customers:
        balance = money_balance(customer.customer_id, orders, payments, customers)
        if balance.balance > ZERO:
            rows.append(
                DuesRow(
                    customer_id=customer.customer_id,
                    customer_name=customer.name,
                    opening_balance=balance.opening_balance,
                    total_orders=balance.total_orders,
                    total_payments=balance.total_payments,
                    due_amount=balance.balance,
                )
            )
    rows.sort(key=lambda row: row.due_amount, reverse=True)
    return rows


def cash_flow_report(context: RuntimeContext, start_date: str, end_date: str) -> CashFlowReport:
    """Daily income (order totals) against expenses between two dates, inclusive.

    Days without activity are omitted. ``balance`` is the running sum of
    ``net_cash`` over the listed days.

    Raises:
        ValidationError: If either date is malformed or the range is reversed.
    """

    start = parse_date(start_date).isoformat()
    end = parse_date(end_date).isoformat()
    if start > end:
        raise ValidationError("Start date must not be after end date")

    by_date: Dict[str, List[Decimal]] = {}
    for order in load_collection(context, StorageKey.ORDERS):
        day = format_date(order.created_at)
        if start <= day <= end:
            by_date.setdefault(day, [ZERO, ZERO])[0] += order.total_amount
    for expense in load_collection(context, StorageKey.EXPENSES):
        day = format_date(expense.created_at)
        if start <= day <= end:
            by_date.setdefault(day, [ZERO, ZERO])[1] += expense.amount

    entries = []
    running = ZERO
    for day in sorted(by_date):
        income, spent = by_date[day]
        net = income - spent
        running += net
        entries.append(CashFlowEntry(date=day, income=income, expenses=spent, net_cash=net, balance=running))

    total_income = sum((entry.income for entry in entries), ZERO)
    total_expenses = sum((entry.expenses for entry in entries), ZERO)
    return CashFlowReport(
        entries=entries,
        total_income=total_income,
        total_expenses=total_expenses,
        net_cash_flow=total_income - total_expenses,
    )


def _inactivity_status(days: Optional[int]) -> str:
    if days is None:
        return InactivityStatus.NO_ORDERS.value
    if days >= 90:
        return InactivityStatus.DAYS_90.value
    if days >= 60:
        return InactivityStatus.DAYS_60.value
    if days >= 30:
        return InactivityStatus.DAYS_30.value
    return InactivityStatus.ACTIVE.value


def _activity_row(
    customer: CustomerRecord,
    orders: Sequence[OrderRecord],
    products_by_id: Mapping[str, ProductRecord],
    current_day: str,
) -> CustomerActivityRow:
    if not orders:
        return CustomerActivityRow(
            customer_id=customer.customer_id,
            customer_name=customer.name,
            phone=customer.phone,
            last_order_date=None,
            days_since_last_order=None,
            average_order_quantity=ZERO,
            most_frequent_product="N/A",
            inactivity_status=_inactivity_status(None),
        )

    last_order_date = max(format_date(order.created_at) for order in orders)
    days = (parse_date(current_day) - parse_date(last_order_date)).days
    average = round_money(Decimal(sum(order.quantity for order in orders)) / len(orders))
    # Most orders wins; ties go to the product ordered first.
    product_id = Counter(order.product_id for order in orders).most_common(1)[0][0]
    product = products_by_id.get(product_id)
    return CustomerActivityRow(
        customer_id=customer.customer_id,
        customer_name=customer.name,
        phone=customer.phone,
        last_order_date=last_order_date,
        days_since_last_order=days,
        average_order_quantity=average,
        most_frequent_product=product.name if product else "N/A",
        inactivity_status=_inactivity_status(days),
    )


def customer_activity_report(
    context: RuntimeContext,
    min_days_inactive: Optional[int] = None,
    *,
    timestamp: Optional[datetime] = None,
) -> List[CustomerActivityRow]:
    """Customers inactive for at least ``min_days_inactive`` days (30 when ``None``).

    Customers without orders are always included and listed last; the rest
    are ordered most inactive first.

    Raises:
        ValidationError: If ``min_days_inactive`` is not ``None``, 30, 60 or 90.
    """

    if min_days_inactive not in ACTIVITY_THRESHOLDS:
        raise ValidationError("Minimum days inactive must be 30, 60 or 90")
    threshold = 30 if min_days_inactive is None else min_days_inactive

    orders = load_collection(context, StorageKey.ORDERS)
    products_by_id = {product.product_id: product for product in load_collection(context, StorageKey.PRODUCTS)}
    current_day = today(timestamp)

    rows = []
    for customer in load_collection(context, StorageKey.CUSTOMERS):
        customer_orders = [order for order in orders if order.customer_id == customer.customer_id]
        row = _activity_row(customer, customer_orders, products_by_id, current_day)
        if row.days_since_last_order is None or row.days_since_last_order >= threshold:
            rows.append(row)

    rows.sort(
        key=lambda row: (
            row.days_since_last_order is None,
            -(row.days_since_last_order or 0),
        )
    )
    return rows


def business_summary(context: RuntimeContext) -> BusinessSummary:
    """Dashboard totals across every ledger."""

    customers = load_collection(context, StorageKey.CUSTOMERS)
    orders = load_collection(context, StorageKey.ORDERS)
    payments = load_collection(context, StorageKey.PAYMENTS)
    expenses = load_collection(context, StorageKey.EXPENSES)
    receivables = ZERO
    for customer in customers:
        balance = money_balance(customer.customer_id, orders, payments, customers).balance
        if balance > ZERO:
            receivables += balance
    summary = BusinessSummary(
        total_sales=sum((order.total_amount for order in orders), ZERO),
        total_payments=sum((payment.amount for payment in payments), ZERO),
        total_expenses=sum((expense.amount for expense in expenses), ZERO),
        outstanding_receivables=receivables,
        outstanding_returnable_bottles=global_returnable_summary(context).total_outstanding,
        cash_on_hand=cash_on_hand(context),
        customer_count=len(customers),
        order_count=len(orders),
    )
    log.debug("Computed business summary: %s", summary)
    return summary


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def format_currency(amount: Union[Decimal, int, str], prefix: str = DEFAULT_CURRENCY_PREFIX) -> str:
    """Render ``amount`` as ``Rs. 1,234.50``."""

    value = round_money(Decimal(str(amount)))
    return f"{prefix} {value:,.2f}"


def _csv_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        # Embedded quotes are written as-is.
        return f'"{value}"' if "," in value else value
    return str(value)


def export_to_csv(rows: Sequence[Union[Mapping[str, Any], Any]], headers: Sequence[str]) -> str:
    """Render ``rows`` as comma-separated text with a header line.

    Rows may be mappings or dataclass instances; ``headers`` name the keys or
    fields to emit. String cells containing a comma are wrapped in double
    quotes.
    """

    lines = [",".join(headers)]
    for row in rows:
        mapping = dataclasses.asdict(row) if dataclasses.is_dataclass(row) else row
        lines.append(",".join(_csv_cell(mapping.get(header)) for header in headers))
    return "\n".join(lines)
