"""Daily cash records and their weekly and monthly roll-ups.

Weeks start on Sunday. Summaries take their opening balance from the first
record of the period and their closing balance from the last one.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from . import log
from .constants import StorageKey
from .core_logic import (
    ZERO,
    RuntimeContext,
    ValidationError,
    format_date,
    load_collection,
    now_iso,
    parse_date,
    require_nonnegative_money,
    save_collection,
    to_money,
    today,
)
from .data_manager import DailyCashRecord
from .money_ledger import cash_on_hand


@dataclass(frozen=True)
class WeeklySummary:
    week_start: str
    week_end: str
    total_income: Decimal
    total_expenses: Decimal
    net_cash: Decimal
    opening_balance: Decimal
    closing_balance: Decimal


@dataclass(frozen=True)
class MonthlySummary:
    month: str
    total_income: Decimal
    total_expenses: Decimal
    net_cash: Decimal
    opening_balance: Decimal
    closing_balance: Decimal
    days_count: int


def list_daily_records(context: RuntimeContext) -> List[DailyCashRecord]:
    return load_collection(context, StorageKey.CASH_DAILY_RECORDS)


def get_daily_record(context: RuntimeContext, day: str) -> Optional[DailyCashRecord]:
    return next((record for record in list_daily_records(context) if record.date == day), None)


def _store_daily_record(context: RuntimeContext, record: DailyCashRecord) -> DailyCashRecord:
    records = list_daily_records(context)
    for index, existing in enumerate(records):
        if existing.date == record.date:
            records[index] = record
            break
    else:
        records.append(record)
    save_collection(context, StorageKey.CASH_DAILY_RECORDS, records)
    return record


def set_daily_opening_balance(
    context: RuntimeContext,
    opening_balance: Any,
    *,
    timestamp: Optional[datetime] = None,
) -> DailyCashRecord:
    """Set today's opening balance, creating today's record when needed.

    A new record starts with its closing balance equal to the opening one and
    zero income and expenses.
    """

    amount = to_money(opening_balance, field_name="Opening balance")
    require_nonnegative_money(amount, "Opening balance must be zero or positive")
    day = today(timestamp)
    stamp = now_iso(timestamp)
    existing = get_daily_record(context, day)
    if existing is None:
        record = DailyCashRecord(
            date=day,
            opening_balance=amount,
            closing_balance=amount,
            total_income=ZERO,
            total_expenses=ZERO,
            created_at=stamp,
            updated_at=stamp,
        )
    else:
        record = replace(existing, opening_balance=amount, updated_at=stamp)
    _store_daily_record(context, record)
    log.info("Set opening balance for %s to %s", day, amount)
    return record


def daily_income(context: RuntimeContext, day: str) -> Decimal:
    """Order totals created on ``day``."""

    return sum(
        (order.total_amount for order in load_collection(context, StorageKey.ORDERS) if format_date(order.created_at) == day),
        ZERO,
    )


def daily_expenses(context: RuntimeContext, day: str) -> Decimal:
    return sum(
        (
            expense.amount
            for expense in load_collection(context, StorageKey.EXPENSES)
            if format_date(expense.created_at) == day
        ),
        ZERO,
    )


def update_today_record(
    context: RuntimeContext,
    *,
    notes: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> DailyCashRecord:
    """Refresh today's record from the ledgers.

    The closing balance is the current cash on hand. An existing opening
    balance, creation time and notes are kept; a new record opens at the
    current cash on hand.
    """

    day = today(timestamp)
    stamp = now_iso(timestamp)
    closing = cash_on_hand(context)
    existing = get_daily_record(context, day)
    record = DailyCashRecord(
        date=day,
        opening_balance=existing.opening_balance if existing else closing,
        closing_balance=closing,
        total_income=daily_income(context, day),
        total_expenses=daily_expenses(context, day),
        created_at=existing.created_at if existing else stamp,
        updated_at=stamp,
        notes=notes if notes is not None else (existing.notes if existing else None),
    )
    _store_daily_record(context, record)
    log.info(
        "Updated cash record for %s (income=%s, expenses=%s, closing=%s)",
        day,
        record.total_income,
        record.total_expenses,
        closing,
    )
    return record


def _sorted(records: Sequence[DailyCashRecord]) -> List[DailyCashRecord]:
    return sorted(records, key=lambda record: record.date)


def week_start_for(day: str) -> str:
    """Sunday on or before ``day``."""

    parsed = parse_date(day)
    return (parsed - timedelta(days=(parsed.weekday() + 1) % 7)).isoformat()


def calculate_weekly_summary(week_start: str, records: Sequence[DailyCashRecord]) -> WeeklySummary:
    start = parse_date(week_start)
    end = start + timedelta(days=6)
    week = [r for r in _sorted(records) if start.isoformat() <= r.date <= end.isoformat()]
    income = sum((r.total_income for r in week), ZERO)
    expenses = sum((r.total_expenses for r in week), ZERO)
    return WeeklySummary(
        week_start=start.isoformat(),
        week_end=end.isoformat(),
        total_income=income,
        total_expenses=expenses,
        net_cash=income - expenses,
        opening_balance=week[0].opening_balance if week else ZERO,
        closing_balance=week[-1].closing_balance if week else ZERO,
    )


def calculate_monthly_summary(month: str, records: Sequence[DailyCashRecord]) -> MonthlySummary:
    """Summary for ``month`` given as ``YYYY-MM``.

    Raises:
        ValidationError: If ``month`` is malformed.
    """

    try:
        year, month_number = (int(part) for part in month.split("-"))
        days_count = calendar.monthrange(year, month_number)[1]
    except ValueError as exc:
        raise ValidationError(f"Invalid month: {month!r}") from exc

    monthly = [r for r in _sorted(records) if r.date.startswith(month)]
    income = sum((r.total_income for r in monthly), ZERO)
    expenses = sum((r.total_expenses for r in monthly), ZERO)
    return MonthlySummary(
        month=month,
        total_income=income,
        total_expenses=expenses,
        net_cash=income - expenses,
        opening_balance=monthly[0].opening_balance if monthly else ZERO,
        closing_balance=monthly[-1].closing_balance if monthly else ZERO,
        days_count=days_count,
    )


def calculate_all_weekly_summaries(records: Sequence[DailyCashRecord]) -> List[WeeklySummary]:
    """One summary per week from the first to the last record, skipping empty weeks."""

    if not records:
        return []
    ordered = _sorted(records)
    current = parse_date(week_start_for(ordered[0].date))
    last = parse_date(ordered[-1].date)
    summaries = []
    while current <= last:
        summary = calculate_weekly_summary(current.isoformat(), ordered)
        if summary.total_income > ZERO or summary.total_expenses > ZERO:
            summaries.append(summary)
        current += timedelta(days=7)
    return summaries


def calculate_all_monthly_summaries(records: Sequence[DailyCashRecord]) -> List[MonthlySummary]:
    months = sorted({record.date[:7] for record in records})
    summaries = [calculate_monthly_summary(month, records) for month in months]
    return [s for s in summaries if s.total_income > ZERO or s.total_expenses > ZERO]


def weekly_summary(context: RuntimeContext, week_start: str) -> WeeklySummary:
    return calculate_weekly_summary(week_start, list_daily_records(context))


def current_week_summary(context: RuntimeContext, *, timestamp: Optional[datetime] = None) -> WeeklySummary:
    return weekly_summary(context, week_start_for(today(timestamp)))


def monthly_summary(context: RuntimeContext, month: str) -> MonthlySummary:
    return calculate_monthly_summary(month, list_daily_records(context))


def current_month_summary(context: RuntimeContext, *, timestamp: Optional[datetime] = None) -> MonthlySummary:
    return monthly_summary(context, today(timestamp)[:7])


def all_weekly_summaries(context: RuntimeContext) -> List[WeeklySummary]:
    return calculate_all_weekly_summaries(list_daily_records(context))


def all_monthly_summaries(context: RuntimeContext) -> List[MonthlySummary]:
    return calculate_all_monthly_summaries(list_daily_records(context))
