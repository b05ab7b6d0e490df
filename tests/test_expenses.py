"""Tests for expenses, their cash effect, and expense categories."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from serafina_erp import core_logic, expenses, money_ledger


@pytest.fixture
def funded(context):
    """Context holding 1,000 in cash."""

    money_ledger.adjust_cash(context, "1000", "Float")
    return context


def _expense(context, amount="100", **overrides):
    values = {"title": "Diesel", "amount": amount}
    values.update(overrides)
    return expenses.create_expense(context, expenses.ExpenseCommand(**values))


def test_create_expense_reduces_cash(funded):
    expense = _expense(funded, "250", date="2024-03-01", description=" van ")

    assert expense.expense_id.startswith("EXP")
    assert expense.date == "2024-03-01"
    assert expense.description == "van"
    assert money_ledger.cash_on_hand(funded) == Decimal("750.00")
    assert expenses.total_expenses(funded) == Decimal("250.00")


def test_create_expense_defaults_date_to_today(funded):
    moment = datetime(2024, 6, 9, 22, 0, tzinfo=UTC)
    assert _expense(funded, timestamp=moment).date == "2024-06-09"


def test_create_expense_cannot_exceed_cash(funded):
    with pytest.raises(core_logic.PolicyViolation, match="cannot exceed available cash of 1,000.00"):
        _expense(funded, "1000.01")
    assert expenses.list_expenses(funded) == []


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"title": " "}, "Title is required"),
        ({"amount": "0"}, "Expense amount must be greater than 0"),
        ({"amount": "-3"}, "Expense amount must be greater than 0"),
        ({"date": "03/01/2024"}, "Invalid date"),
    ],
)
def test_create_expense_validation(funded, overrides, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        _expense(funded, **overrides)


def test_create_expense_requires_known_category(funded):
    with pytest.raises(core_logic.MissingReferenceError, match="Category not found"):
        _expense(funded, category="cat_99")

    assert _expense(funded, category="cat_1").category == "cat_1"


def test_delete_expense_restores_cash(funded):
    expense = _expense(funded, "300")
    expenses.delete_expense(funded, expense.expense_id)

    assert money_ledger.cash_on_hand(funded) == Decimal("1000.00")
    with pytest.raises(core_logic.MissingReferenceError):
        expenses.get_expense(funded, expense.expense_id)


def test_expenses_in_range_uses_creation_date(funded):
    inside = _expense(funded, timestamp=datetime(2024, 3, 10, tzinfo=UTC), date="2024-01-01")
    _expense(funded, timestamp=datetime(2024, 4, 10, tzinfo=UTC))

    assert expenses.expenses_in_range(funded, "2024-03-01", "2024-03-31") == [inside]


def test_expenses_by_category_newest_first(funded):
    older = _expense(funded, category="cat_2", timestamp=datetime(2024, 1, 1, tzinfo=UTC))
    newer = _expense(funded, category="cat_2", timestamp=datetime(2024, 2, 1, tzinfo=UTC))
    _expense(funded, category="cat_3")

    assert expenses.expenses_by_category(funded, "cat_2") == [newer, older]


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def test_list_categories_seeds_defaults_once(context):
    first = expenses.list_categories(context)
    second = expenses.list_categories(context)

    assert [category.category_id for category in first] == ["cat_1", "cat_2", "cat_3", "cat_4", "cat_5"]
    assert first == second


def test_create_category_enforces_unique_names(context):
    category = expenses.create_category(context, "Repairs", "Plant maintenance")

    assert category.category_id.startswith("CAT")
    with pytest.raises(core_logic.ConflictError, match="Category with this name already exists"):
        expenses.create_category(context, " repairs ")
    with pytest.raises(core_logic.ConflictError):
        expenses.update_category(context, "cat_1", "Repairs")


def test_update_category_keeps_its_own_name(context):
    updated = expenses.update_category(context, "cat_1", "Transportation", "Fuel only")
    assert updated.description == "Fuel only"


def test_delete_category_in_use_is_refused(funded):
    _expense(funded, category="cat_4")

    with pytest.raises(core_logic.PolicyViolation, match="Cannot delete category that is used in expenses"):
        expenses.delete_category(funded, "cat_4")

    expenses.delete_category(funded, "cat_5")
    assert "cat_5" not in [category.category_id for category in expenses.list_categories(funded)]
