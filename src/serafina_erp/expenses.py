"""Expense ledger and expense categories.

Creating an expense takes money out of cash on hand; deleting one puts it
back. Both go through :mod:`serafina_erp.money_ledger`, which owns the cash
balance.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from . import log
from .constants import DEFAULT_EXPENSE_CATEGORIES, StorageKey
from .core_logic import (
    ZERO,
    ConflictError,
    MissingReferenceError,
    PolicyViolation,
    RuntimeContext,
    append_record,
    find_record,
    format_date,
    generate_id,
    load_collection,
    now_iso,
    parse_date,
    remove_record,
    replace_record,
    require_positive_money,
    require_text,
    save_collection,
    to_money,
    today,
)
from .data_manager import ExpenseCategoryRecord, ExpenseRecord
from .money_ledger import apply_cash_delta, cash_on_hand


@dataclass(frozen=True)
class ExpenseCommand:
    """User intent for recording an expense.

    ``date`` defaults to today's UTC date.
    """

    title: str
    amount: Any
    date: Optional[str] = None
    description: str = ""
    category: Optional[str] = None
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


def list_expenses(context: RuntimeContext) -> List[ExpenseRecord]:
    return load_collection(context, StorageKey.EXPENSES)


def get_expense(context: RuntimeContext, expense_id: str) -> ExpenseRecord:
    expense = find_record(list_expenses(context), expense_id, id_attr="expense_id")
    if expense is None:
        log.warning("Expense lookup failed for id '%s'", expense_id)
        raise MissingReferenceError("Expense not found")
    return expense


def create_expense(context: RuntimeContext, command: ExpenseCommand) -> ExpenseRecord:
    """Validate an expense, append it, and deduct it from cash on hand.

    Raises:
        ValidationError: If the title is blank, the amount is not positive, or
            the date is malformed.
        MissingReferenceError: If ``category`` names an unknown category.
        PolicyViolation: If the amount exceeds cash on hand.
    """

    title = require_text(command.title, "Title is required")
    amount = to_money(command.amount, field_name="Expense amount")
    require_positive_money(amount, "Expense amount must be greater than 0")
    expense_date = parse_date(command.date).isoformat() if command.date else today(command.timestamp)
    if command.category:
        get_category(context, command.category)

    available = cash_on_hand(context)
    if amount > available:
        log.warning("Expense %s rejected; only %s cash on hand", amount, available)
        raise PolicyViolation(f"Expense amount cannot exceed available cash of {available:,}")

    expense = ExpenseRecord(
        expense_id=generate_id("EXP"),
        title=title,
        description=(command.description or "").strip(),
        amount=amount,
        date=expense_date,
        created_at=now_iso(command.timestamp),
        category=command.category or None,
        created_by=command.created_by,
    )
    append_record(context, StorageKey.EXPENSES, expense)
    balance = apply_cash_delta(context, -amount, timestamp=command.timestamp)
    log.info("Recorded expense '%s' (%s, amount=%s); cash now %s", expense.expense_id, title, amount, balance.amount)
    return expense


def delete_expense(context: RuntimeContext, expense_id: str) -> ExpenseRecord:
    """Remove an expense and restore its amount to cash on hand."""

    removed = remove_record(context, StorageKey.EXPENSES, expense_id, id_attr="expense_id")
    balance = apply_cash_delta(context, removed.amount)
    log.warning("Deleted expense '%s'; restored %s, cash now %s", expense_id, removed.amount, balance.amount)
    return removed


def total_expenses(context: RuntimeContext) -> Decimal:
    return sum((expense.amount for expense in list_expenses(context)), ZERO)


def expenses_in_range(context: RuntimeContext, start_date: str, end_date: str) -> List[ExpenseRecord]:
    """Expenses whose creation date falls within ``[start_date, end_date]``."""

    start = parse_date(start_date).isoformat()
    end = parse_date(end_date).isoformat()
    return [
        expense
        for expense in list_expenses(context)
        if start <= format_date(expense.created_at) <= end
    ]


def expenses_by_category(context: RuntimeContext, category_id: str) -> List[ExpenseRecord]:
    """Expenses filed under ``category_id``, newest first."""

    return sorted(
        (expense for expense in list_expenses(context) if expense.category == category_id),
        key=lambda expense: expense.created_at,
        reverse=True,
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def list_categories(context: RuntimeContext) -> List[ExpenseCategoryRecord]:
    """Return categories, seeding the five defaults when none are stored."""

    categories = load_collection(context, StorageKey.EXPENSE_CATEGORIES)
    if categories:
        return categories

    created_at = now_iso()
    categories = [
        ExpenseCategoryRecord(category_id=category_id, name=name, description=description, created_at=created_at)
        for category_id, name, description in DEFAULT_EXPENSE_CATEGORIES
    ]
    save_collection(context, StorageKey.EXPENSE_CATEGORIES, categories)
    log.info("Seeded %d default expense categories", len(categories))
    return categories


def get_category(context: RuntimeContext, category_id: str) -> ExpenseCategoryRecord:
    category = find_record(list_categories(context), category_id, id_attr="category_id")
    if category is None:
        log.warning("Expense category lookup failed for id '%s'", category_id)
        raise MissingReferenceError("Category not found")
    return category


def _require_unique_name(context: RuntimeContext, name: str, *, exclude_id: Optional[str] = None) -> None:
    folded = name.casefold()
    for category in list_categories(context):
        if category.category_id != exclude_id and category.name.strip().casefold() == folded:
            log.warning("Duplicate expense category name '%s'", name)
            raise ConflictError("Category with this name already exists")


def create_category(context: RuntimeContext, name: str, description: str = "") -> ExpenseCategoryRecord:
    """Append a category with a case-folded unique name."""

    clean_name = require_text(name, "Category name is required")
    _require_unique_name(context, clean_name)
    category = ExpenseCategoryRecord(
        category_id=generate_id("CAT"),
        name=clean_name,
        description=(description or "").strip(),
        created_at=now_iso(),
    )
    append_record(context, StorageKey.EXPENSE_CATEGORIES, category)
    log.info("Created expense category '%s' (%s)", category.category_id, clean_name)
    return category


def update_category(context: RuntimeContext, category_id: str, name: str, description: str = "") -> ExpenseCategoryRecord:
    clean_name = require_text(name, "Category name is required")
    existing = get_category(context, category_id)
    _require_unique_name(context, clean_name, exclude_id=category_id)
    updated = replace(existing, name=clean_name, description=(description or "").strip())
    replace_record(context, StorageKey.EXPENSE_CATEGORIES, updated, id_attr="category_id")
    log.info("Updated expense category '%s'", category_id)
    return updated


def delete_category(context: RuntimeContext, category_id: str) -> ExpenseCategoryRecord:
    """Remove a category unless an expense still references it.

    Raises:
        PolicyViolation: If any expense is filed under the category.
        MissingReferenceError: If the category is unknown.
    """

    get_category(context, category_id)
    if any(expense.category == category_id for expense in list_expenses(context)):
        log.warning("Refused to delete expense category '%s' in use", category_id)
        raise PolicyViolation("Cannot delete category that is used in expenses")
    removed = remove_record(context, StorageKey.EXPENSE_CATEGORIES, category_id, id_attr="category_id")
    log.info("Deleted expense category '%s'", category_id)
    return removed
