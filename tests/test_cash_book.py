"""Tests for the daily cash book and its weekly/monthly summaries."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from serafina_erp import cash_book, core_logic, expenses, money_ledger
from serafina_erp.data_manager import DailyCashRecord

MOMENT = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def _record(day, income="0", spent="0", opening="0", closing="0"):
    return DailyCashRecord(
        date=day,
        opening_balance=Decimal(opening),
        closing_balance=Decimal(closing),
        total_income=Decimal(income),
        total_expenses=Decimal(spent),
        created_at=f"{day}T00:00:00.000Z",
        updated_at=f"{day}T00:00:00.000Z",
    )


def test_set_daily_opening_balance_creates_record(context):
    record = cash_book.set_daily_opening_balance(context, "500", timestamp=MOMENT)

    assert record.date == "2024-03-15"
    assert record.opening_balance == Decimal("500.00")
    assert record.closing_balance == Decimal("500.00")
    assert cash_book.get_daily_record(context, "2024-03-15") == record


def test_set_daily_opening_balance_updates_existing_record(context):
    cash_book.set_daily_opening_balance(context, "500", timestamp=MOMENT)
    record = cash_book.set_daily_opening_balance(context, "650", timestamp=MOMENT)

    assert record.opening_balance == Decimal("650.00")
    assert len(cash_book.list_daily_records(context)) == 1


def test_set_daily_opening_balance_rejects_negative(context):
    with pytest.raises(core_logic.ValidationError):
        cash_book.set_daily_opening_balance(context, "-1", timestamp=MOMENT)


def test_update_today_record_reads_the_ledgers(context, customer, product_19l):
    cash_book.set_daily_opening_balance(context, "0", timestamp=MOMENT)
    money_ledger.place_order(
        context,
        money_ledger.PlaceOrderCommand(
            customer_id=customer.customer_id,
            product_id=product_19l.product_id,
            quantity=4,
            amount_paid="300",
            timestamp=MOMENT,
        ),
    )
    expenses.create_expense(context, expenses.ExpenseCommand(title="Lunch", amount="20", timestamp=MOMENT))

    record = cash_book.update_today_record(context, notes="Busy day", timestamp=MOMENT)

    assert record.total_income == Decimal("400.00")
    assert record.total_expenses == Decimal("20.00")
    assert record.closing_balance == Decimal("280.00")
    assert record.opening_balance == Decimal("0.00")
    assert record.notes == "Busy day"


def test_update_today_record_opens_at_cash_on_hand(context):
    money_ledger.adjust_cash(context, "75", "Float")
    record = cash_book.update_today_record(context, timestamp=MOMENT)

    assert record.opening_balance == Decimal("75.00")
    assert record.notes is None


@pytest.mark.parametrize(
    ("day", "expected"),
    [("2024-03-15", "2024-03-10"), ("2024-03-10", "2024-03-10"), ("2024-03-16", "2024-03-10")],
)
def test_week_start_for_is_sunday(day, expected):
    assert cash_book.week_start_for(day) == expected


def test_calculate_weekly_summary_uses_first_and_last_day():
    records = [
        _record("2024-03-12", income="100", spent="30", opening="50", closing="120"),
        _record("2024-03-10", income="200", spent="10", opening="0", closing="50"),
        _record("2024-03-17", income="999"),
    ]

    summary = cash_book.calculate_weekly_summary("2024-03-10", records)

    assert summary.week_end == "2024-03-16"
    assert summary.total_income == Decimal("300")
    assert summary.net_cash == Decimal("260")
    assert summary.opening_balance == Decimal("0")
    assert summary.closing_balance == Decimal("120")


def test_calculate_monthly_summary():
    records = [
        _record("2024-02-01", income="100", opening="10", closing="60"),
        _record("2024-02-29", spent="40", opening="60", closing="20"),
        _record("2024-03-01", income="5"),
    ]

    summary = cash_book.calculate_monthly_summary("2024-02", records)

    assert summary.days_count == 29
    assert summary.net_cash == Decimal("60")
    assert (summary.opening_balance, summary.closing_balance) == (Decimal("10"), Decimal("20"))


@pytest.mark.parametrize("month", ["2024-13", "March", "2024-03-01"])
def test_calculate_monthly_summary_rejects_bad_months(month):
    with pytest.raises(core_logic.ValidationError):
        cash_book.calculate_monthly_summary(month, [])


def test_all_summaries_skip_empty_periods():
    records = [
        _record("2024-01-02", income="10"),
        _record("2024-01-25", income="0"),
        _record("2024-03-05", spent="7"),
    ]

    weeks = cash_book.calculate_all_weekly_summaries(records)
    months = cash_book.calculate_all_monthly_summaries(records)

    assert [week.week_start for week in weeks] == ["2023-12-31", "2024-03-03"]
    assert [month.month for month in months] == ["2024-01", "2024-03"]
    assert cash_book.calculate_all_weekly_summaries([]) == []


def test_current_period_wrappers(context):
    cash_book.set_daily_opening_balance(context, "10", timestamp=MOMENT)

    assert cash_book.current_week_summary(context, timestamp=MOMENT).week_start == "2024-03-10"
    assert cash_book.current_month_summary(context, timestamp=MOMENT).month == "2024-03"
    assert cash_book.all_weekly_summaries(context) == []
