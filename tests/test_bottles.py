"""Tests for the bottle ledger and returnable outstanding counts."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from serafina_erp import bottles, core_logic, money_ledger

MOMENT = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _issue(context, customer_id, quantity, notes=""):
    return bottles.record_bottle_transaction(
        context,
        bottles.BottleCommand(customer_id=customer_id, transaction_type="issued", quantity=quantity, notes=notes),
    )


def _order(context, customer, product, quantity):
    return money_ledger.place_order(
        context,
        money_ledger.PlaceOrderCommand(
            customer_id=customer.customer_id,
            product_id=product.product_id,
            quantity=quantity,
            timestamp=MOMENT,
        ),
    )


def test_order_note_round_trip():
    transaction = bottles.BottleTransactionRecord(
        transaction_id="BTL1",
        customer_id="C1",
        transaction_type="issued",
        quantity=1,
        notes=bottles.order_note("ORD123"),
        created_at="2024-01-01T00:00:00.000Z",
    )

    assert transaction.notes == "Order #ORD123"
    assert bottles.linked_order_id(transaction) == "ORD123"


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"customer_id": " "}, "Customer ID is required"),
        ({"transaction_type": "lost"}, "Transaction type must be issued or returned"),
        ({"quantity": 0}, "Quantity must be greater than 0"),
        ({"quantity": 2.5}, "Quantity must be greater than 0"),
    ],
)
def test_record_bottle_transaction_validation(context, overrides, message):
    values = {"customer_id": "C1", "transaction_type": "issued", "quantity": 1}
    values.update(overrides)
    with pytest.raises(core_logic.ValidationError, match=message):
        bottles.record_bottle_transaction(context, bottles.BottleCommand(**values))


def test_customer_balance_counts_issues_and_returns(context, customer):
    _issue(context, customer.customer_id, 5)
    bottles.record_return(context, customer.customer_id, 2)

    balance = bottles.customer_bottle_balance(context, customer.customer_id)

    assert (balance.issued, balance.returned, balance.outstanding) == (5, 2, 3)


def test_record_return_is_capped_by_outstanding(context, customer):
    _issue(context, customer.customer_id, 2)

    with pytest.raises(core_logic.PolicyViolation, match="Cannot return 3 bottles. Customer only has 2 outstanding."):
        bottles.record_return(context, customer.customer_id, 3)


def test_record_return_requires_known_customer(context):
    with pytest.raises(core_logic.MissingReferenceError):
        bottles.record_return(context, "CUS-none", 1)


def test_non_returnable_orders_do_not_count(context, customer, product_19l, product_500ml):
    """Only bottles of returnable products can come back."""

    _order(context, customer, product_19l, 2)
    _order(context, customer, product_500ml, 10)

    assert bottles.returnable_outstanding(context, customer.customer_id) == 2
    assert bottles.customer_bottle_balance(context, customer.customer_id).outstanding == 12
    with pytest.raises(core_logic.PolicyViolation):
        bottles.record_return(context, customer.customer_id, 3)

    bottles.record_return(context, customer.customer_id, 2)
    assert bottles.returnable_outstanding(context, customer.customer_id) == 0


def test_unlinked_and_orphaned_issues_are_returnable(context, customer):
    _issue(context, customer.customer_id, 1, notes="Manual top-up")
    _issue(context, customer.customer_id, 2, notes="Order #ORD-deleted")

    assert bottles.returnable_outstanding(context, customer.customer_id) == 3


def test_returnable_outstanding_can_go_negative():
    """Returns are not product-tagged, so a surplus shows up as a negative count."""

    transactions = [
        bottles.BottleTransactionRecord("B1", "C1", "returned", 2, "", "2024-01-01T00:00:00.000Z"),
    ]
    assert bottles.calculate_returnable_outstanding("C1", transactions, [], []) == -2


def test_global_summaries(context, customer, product_19l, product_500ml):
    _order(context, customer, product_19l, 3)
    _order(context, customer, product_500ml, 4)
    _issue(context, "C-other", 1)

    summary = bottles.global_summary(context)
    returnable = bottles.global_returnable_summary(context)

    assert (summary.total_issued, summary.total_outstanding, summary.total_customers) == (8, 8, 2)
    assert (returnable.total_issued, returnable.total_outstanding) == (4, 4)


def test_all_customer_balances_lists_each_customer_once(context):
    _issue(context, "C1", 1)
    _issue(context, "C2", 2)
    _issue(context, "C1", 3)

    balances = {balance.customer_id: balance.outstanding for balance in bottles.all_customer_balances(context)}
    assert balances == {"C1": 4, "C2": 2}


def test_customer_transactions_newest_first(context, customer):
    older = bottles.record_bottle_transaction(
        context,
        bottles.BottleCommand(customer.customer_id, "issued", 1, timestamp=datetime(2024, 1, 1, tzinfo=UTC)),
    )
    newer = bottles.record_bottle_transaction(
        context,
        bottles.BottleCommand(customer.customer_id, "issued", 1, timestamp=datetime(2024, 2, 1, tzinfo=UTC)),
    )

    assert bottles.customer_transactions(context, customer.customer_id) == [newer, older]


def test_delete_bottle_transaction(context, customer):
    transaction = _issue(context, customer.customer_id, 4)
    bottles.delete_bottle_transaction(context, transaction.transaction_id)

    assert bottles.customer_bottle_balance(context, customer.customer_id).issued == 0
