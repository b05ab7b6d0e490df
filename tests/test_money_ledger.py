"""Tests for orders, payments, customer balances, and cash on hand."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from serafina_erp import catalog, core_logic, customers, expenses, money_ledger
from serafina_erp.constants import StorageKey

MOMENT = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _order(context, customer, product, quantity=2, **overrides):
    values = {
        "customer_id": customer.customer_id,
        "product_id": product.product_id,
        "quantity": quantity,
        "timestamp": MOMENT,
    }
    values.update(overrides)
    return money_ledger.place_order(context, money_ledger.PlaceOrderCommand(**values))


def _pay(context, customer, amount, method="cash", **kwargs):
    return money_ledger.record_payment(
        context,
        money_ledger.PaymentCommand(customer_id=customer.customer_id, amount=amount, payment_method=method),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


def test_place_order_paid_in_full(context, customer, product_19l):
    """A fully paid order writes the order, bottle issue, payment, and cash."""

    result = _order(context, customer, product_19l, quantity=2, amount_paid="200")
    order = result.order

    assert order.total_amount == Decimal("200.00")
    assert order.outstanding_amount == Decimal("0.00")
    assert order.payment_method == "cash"
    assert order.status == "completed"
    assert result.bottle_transaction.notes == f"Order #{order.order_id}"
    assert result.bottle_transaction.quantity == 2
    assert result.payment.order_id == order.order_id
    assert result.payment.notes == f"Payment for Order #{order.order_id}"
    assert result.payment.source == "order"
    assert result.new_cash_balance.amount == Decimal("200.00")
    assert money_ledger.cash_on_hand(context) == Decimal("200.00")


def test_place_order_on_credit(context, customer, product_19l):
    result = _order(context, customer, product_19l, quantity=3, amount_paid="50")

    assert result.order.outstanding_amount == Decimal("250.00")
    assert result.order.payment_method == "credit"
    assert result.order.status == "pending"
    assert money_ledger.customer_balance(context, customer.customer_id).balance == Decimal("250.00")


def test_place_order_without_payment_writes_no_payment(context, customer, product_19l):
    result = _order(context, customer, product_19l)

    assert result.payment is None
    assert money_ledger.list_payments(context) == []
    assert money_ledger.cash_on_hand(context) == Decimal("0.00")


def test_place_order_uses_customer_price_override(context, product_19l):
    special = customers.create_customer(
        context,
        customers.CustomerCommand(
            name="Hotel Shalimar",
            phone="042-111",
            address="Mall Road",
            product_prices={product_19l.product_id: "80"},
        ),
    )

    result = _order(context, special, product_19l, quantity=5)

    assert result.order.price == Decimal("80.00")
    assert result.order.total_amount == Decimal("400.00")


def test_place_order_explicit_price_wins(context, customer, product_19l):
    assert _order(context, customer, product_19l, price="95.5").order.total_amount == Decimal("191.00")


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"quantity": 0}, "Quantity must be greater than 0"),
        ({"price": "0"}, "Price must be greater than 0"),
        ({"amount_paid": "-1"}, "Amount paid must be 0 or greater"),
        ({"amount_paid": "201"}, "Amount paid cannot exceed total amount"),
    ],
)
def test_place_order_validation(context, customer, product_19l, overrides, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        _order(context, customer, product_19l, **overrides)
    assert money_ledger.list_orders(context) == []


def test_place_order_unknown_references(context, customer, product_19l):
    with pytest.raises(core_logic.MissingReferenceError):
        _order(context, customer, product_19l, customer_id="CUS-none")
    with pytest.raises(core_logic.MissingReferenceError):
        _order(context, customer, product_19l, product_id="PRD-none")


def test_place_order_refuses_inactive_products(context, customer, product_19l):
    catalog.soft_delete_product(context, product_19l.product_id)
    with pytest.raises(core_logic.PolicyViolation):
        _order(context, customer, product_19l)


def test_customer_orders_and_total_sales(context, customer, product_19l, product_500ml):
    _order(context, customer, product_19l, quantity=1, timestamp=datetime(2024, 1, 1, tzinfo=UTC))
    latest = _order(context, customer, product_500ml, quantity=2, timestamp=datetime(2024, 2, 1, tzinfo=UTC))

    assert money_ledger.customer_orders(context, customer.customer_id)[0] == latest.order
    assert money_ledger.total_sales(context) == Decimal("160.00")


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def test_standalone_cash_payment_adds_cash(context, customer, product_19l):
    _order(context, customer, product_19l, quantity=2)
    payment = _pay(context, customer, "150")

    assert payment.payment_id.startswith("PAY")
    assert payment.order_id is None
    assert money_ledger.cash_on_hand(context) == Decimal("150.00")
    assert money_ledger.customer_balance(context, customer.customer_id).balance == Decimal("50.00")


def test_non_cash_payment_leaves_cash_untouched(context, customer):
    _pay(context, customer, "100", method="bank")

    assert money_ledger.cash_on_hand(context) == Decimal("0.00")
    assert money_ledger.customer_balance(context, customer.customer_id).balance == Decimal("-100.00")


@pytest.mark.parametrize(
    ("amount", "method", "message"),
    [
        ("0", "cash", "Payment amount must be greater than 0"),
        ("10", "", "Payment method is required"),
        ("10", "cheque", "Unsupported payment method"),
    ],
)
def test_record_payment_validation(context, customer, amount, method, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        _pay(context, customer, amount, method=method)


def test_record_payment_respects_ceiling(context, customer):
    with pytest.raises(core_logic.PolicyViolation, match="cannot exceed outstanding balance of 1,000"):
        _pay(context, customer, "1500", max_amount=Decimal("1000"))


def test_record_payment_unknown_customer(context):
    with pytest.raises(core_logic.MissingReferenceError):
        money_ledger.record_payment(context, money_ledger.PaymentCommand(customer_id="CUS-none", amount="5"))


def test_delete_payment_reverses_standalone_cash_only(context, customer, product_19l):
    result = _order(context, customer, product_19l, quantity=1, amount_paid="100")
    standalone = _pay(context, customer, "40")
    assert money_ledger.cash_on_hand(context) == Decimal("140.00")

    money_ledger.delete_payment(context, standalone.payment_id)
    assert money_ledger.cash_on_hand(context) == Decimal("100.00")

    money_ledger.delete_payment(context, result.payment.payment_id)
    assert money_ledger.cash_on_hand(context) == Decimal("100.00")


def test_cash_payment_against_an_order_adds_cash(context, customer, product_19l):
    credit = _order(context, customer, product_19l, quantity=6)
    payment = money_ledger.record_payment(
        context,
        money_ledger.PaymentCommand(customer_id=customer.customer_id, amount="250", order_id=credit.order.order_id),
    )

    assert payment.order_id == credit.order.order_id
    assert payment.source == "account"
    assert money_ledger.cash_on_hand(context) == Decimal("250.00")
    assert money_ledger.recompute_cash_from_events(context) == Decimal("250.00")
    assert money_ledger.customer_balance(context, customer.customer_id).balance == Decimal("350.00")

    money_ledger.delete_payment(context, payment.payment_id)
    assert money_ledger.cash_on_hand(context) == Decimal("0.00")


def test_record_payment_unknown_order(context, customer):
    with pytest.raises(core_logic.MissingReferenceError, match="Order not found"):
        money_ledger.record_payment(
            context,
            money_ledger.PaymentCommand(customer_id=customer.customer_id, amount="10", order_id="ORD-none"),
        )
    assert money_ledger.list_payments(context) == []


def test_record_payment_order_of_another_customer(context, customer, product_19l):
    other = customers.create_customer(
        context,
        customers.CustomerCommand(name="Bilal Ahmed", phone="0333", address="Block C"),
    )
    result = _order(context, other, product_19l, quantity=1)

    with pytest.raises(core_logic.ValidationError, match="different customer"):
        money_ledger.record_payment(
            context,
            money_ledger.PaymentCommand(customer_id=customer.customer_id, amount="10", order_id=result.order.order_id),
        )


def test_customer_balance_includes_opening_balance(context, product_19l):
    customer = customers.create_customer(
        context,
        customers.CustomerCommand(name="Old Account", phone="0321", address="Town", opening_balance="500"),
    )
    _order(context, customer, product_19l, quantity=1, amount_paid="100")

    balance = money_ledger.customer_balance(context, customer.customer_id)
    assert balance.opening_balance == Decimal("500.00")
    assert balance.total_orders == Decimal("100.00")
    assert balance.total_payments == Decimal("100.00")
    assert balance.balance == Decimal("500.00")


def test_all_customer_balances_covers_registry_and_ledgers(context, customer):
    money_ledger.record_payment(context, money_ledger.PaymentCommand(customer_id=customer.customer_id, amount="5"))
    ids = [balance.customer_id for balance in money_ledger.all_customer_balances(context)]

    assert ids == [customer.customer_id]


# ---------------------------------------------------------------------------
# Cash on hand
# ---------------------------------------------------------------------------


def test_cash_balance_falls_back_to_legacy_key(context):
    context.store.put(StorageKey.LEGACY_CASH_BALANCE, 1234.5)

    assert money_ledger.cash_on_hand(context) == Decimal("1234.50")
    assert context.store.get(StorageKey.CASH_BALANCE) is None


def test_reconcile_carries_legacy_balance_forward(context):
    context.store.put(StorageKey.LEGACY_CASH_BALANCE, "500")

    assert money_ledger.reconcile_cash(context) == Decimal("0.00")
    assert money_ledger.cash_on_hand(context) == Decimal("500.00")
    [adjustment] = money_ledger.list_cash_adjustments(context)
    assert adjustment.amount == Decimal("500.00")
    assert adjustment.reason == money_ledger.LEGACY_CASH_REASON
    assert money_ledger.recompute_cash_from_events(context) == Decimal("500.00")

    money_ledger.reconcile_cash(context)
    assert len(money_ledger.list_cash_adjustments(context)) == 1


def test_legacy_balance_adjustment_covers_only_unexplained_cash(context, customer, product_19l):
    _order(context, customer, product_19l, quantity=1, amount_paid="100")
    context.store.remove(StorageKey.CASH_BALANCE)
    context.store.put(StorageKey.LEGACY_CASH_BALANCE, 250)

    assert money_ledger.reconcile_cash(context) == Decimal("0.00")
    assert [a.amount for a in money_ledger.list_cash_adjustments(context)] == [Decimal("150.00")]
    assert money_ledger.cash_on_hand(context) == Decimal("250.00")


def test_first_cash_write_keeps_legacy_balance(context, customer, product_19l):
    context.store.put(StorageKey.LEGACY_CASH_BALANCE, "300")

    result = _order(context, customer, product_19l, quantity=1, amount_paid="100")

    assert result.new_cash_balance.amount == Decimal("400.00")
    assert [a.amount for a in money_ledger.list_cash_adjustments(context)] == [Decimal("300.00")]
    assert money_ledger.reconcile_cash(context) == Decimal("0.00")
    assert context.store.get(StorageKey.LEGACY_CASH_BALANCE) == "300"


def test_adjust_cash(context):
    adjustment = money_ledger.adjust_cash(context, "-25", "Counted short", timestamp=MOMENT)

    assert adjustment.adjustment_id.startswith("ADJ")
    assert money_ledger.cash_on_hand(context) == Decimal("-25.00")
    assert money_ledger.list_cash_adjustments(context) == [adjustment]


@pytest.mark.parametrize(("amount", "reason", "message"), [("0", "x", "cannot be zero"), ("5", " ", "Reason is required")])
def test_adjust_cash_validation(context, amount, reason, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        money_ledger.adjust_cash(context, amount, reason)


def test_reconcile_cash_corrects_drift(context, customer, product_19l):
    _order(context, customer, product_19l, quantity=3, amount_paid="300")
    _pay(context, customer, "20", method="mobile", max_amount=None)
    expenses.create_expense(context, expenses.ExpenseCommand(title="Fuel", amount="50"))
    money_ledger.adjust_cash(context, "10", "Found in drawer")
    money_ledger.save_cash_balance(context, Decimal("999"))

    drift = money_ledger.reconcile_cash(context)

    assert money_ledger.recompute_cash_from_events(context) == Decimal("260.00")
    assert drift == Decimal("-739.00")
    assert money_ledger.cash_on_hand(context) == Decimal("260.00")
