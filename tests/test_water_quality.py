"""Tests for water-quality classification, ranges, and the reading log."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from serafina_erp import core_logic, water_quality
from serafina_erp.constants import StorageKey

MOMENT = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)
RANGES = water_quality.default_ranges()


def _log(context, ph=7.2, tds=150, chlorine=0.5, **overrides):
    values = {"date": "2024-03-15", "ph": ph, "tds": tds, "chlorine": chlorine, "time": "08:00", "timestamp": MOMENT}
    values.update(overrides)
    return water_quality.record_entry(context, water_quality.WaterQualityCommand(**values))


def test_classify_normal_reading_and_bounds():
    assert water_quality.classify(7.0, 150, 1.0, RANGES) == water_quality.Classification("normal", ())
    assert water_quality.classify(8.5, 300, 2.0, RANGES).status == "normal"


@pytest.mark.parametrize(
    ("reading", "status", "alert"),
    [
        ((9.0, 150, 1.0), "warning", "WARNING: pH level 9 is slightly outside safe range (6.5-8.5)"),
        ((10.0, 150, 1.0), "critical", "CRITICAL: pH level 10 is far outside safe range (6.5-8.5)"),
        ((7.0, 320, 1.0), "warning", "WARNING: TDS level 320 ppm is slightly above safe limit (300 ppm)"),
        ((7.0, 400, 1.0), "critical", "CRITICAL: TDS level 400 ppm is far above safe limit (300 ppm)"),
        ((7.0, 150, 0.1), "critical", "CRITICAL: Chlorine level 0.1 is far outside safe range (0.2-2)"),
    ],
)
def test_classify_single_metric(reading, status, alert):
    result = water_quality.classify(*reading, RANGES)

    assert result.status == status
    assert result.alerts == (alert,)


def test_classify_worst_band_wins_and_alerts_keep_order():
    result = water_quality.classify(9.0, 400, 2.1, RANGES)

    assert result.status == "critical"
    assert [alert.split(":")[1].split()[0] for alert in result.alerts] == ["pH", "TDS", "Chlorine"]


def test_deviation_percent():
    assert water_quality.deviation_percent(5, 4, 6) == 0.0
    assert water_quality.deviation_percent(3, 4, 6) == pytest.approx(25.0)
    assert water_quality.deviation_percent(9, 4, 6) == pytest.approx(50.0)


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


def test_load_ranges_defaults_until_saved(context):
    assert water_quality.load_ranges(context) == RANGES
    assert context.store.get(StorageKey.WATER_QUALITY_RANGES) is None


def test_update_ranges_merges_changes(context):
    updated = water_quality.update_ranges(context, {"tdsMax": "500", "warningTolerance": 5})

    assert updated.tds_max == 500.0
    assert updated.warning_tolerance == 5.0
    assert updated.ph_min == RANGES.ph_min
    assert water_quality.load_ranges(context) == updated


@pytest.mark.parametrize(
    ("changes", "message"),
    [
        ({"colour": 1}, "Unknown quality range"),
        ({"tdsMax": "lots"}, "tdsMax must be a number"),
        ({"pHMin": 9}, "pH range"),
        ({"pHMax": 15}, "pH range"),
        ({"chlorineMin": 3}, "Chlorine minimum cannot exceed maximum"),
        ({"tdsMax": 0}, "Upper limits must be greater than 0"),
        ({"warningTolerance": -1}, "must not be negative"),
    ],
)
def test_update_ranges_validation(context, changes, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        water_quality.update_ranges(context, changes)
    assert water_quality.load_ranges(context) == RANGES


def test_stored_ranges_drive_classification(context):
    water_quality.update_ranges(context, {"tdsMax": "100"})

    assert _log(context, tds=150).status == "critical"


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def test_record_entry_stores_classification(context):
    entry = _log(context, ph="9", created_by="admin")

    assert entry.entry_id.startswith("WQ")
    assert (entry.date, entry.time) == ("2024-03-15", "08:00")
    assert entry.ph == 9.0
    assert entry.status == "warning"
    assert entry.created_by == "admin"
    assert water_quality.list_entries(context) == [entry]


def test_record_entry_defaults_time_to_local_clock(context):
    entry = _log(context, time=None)
    assert entry.time == core_logic.local_time(MOMENT)


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"date": ""}, "Date is required"),
        ({"date": "15/03/2024"}, "Invalid date"),
        ({"ph": 14.5}, "pH must be between 0 and 14"),
        ({"ph": ""}, "pH must be between 0 and 14"),
        ({"tds": -1}, "TDS must be a positive number"),
        ({"chlorine": "none"}, "Chlorine must be a positive number"),
    ],
)
def test_record_entry_validation(context, overrides, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        _log(context, **overrides)
    assert water_quality.list_entries(context) == []


def test_several_readings_per_day_and_filters(context):
    morning = _log(context, time="07:00")
    noon = _log(context, time="12:00", tds=320)
    evening = _log(context, time="18:00", chlorine=0.05)
    other_day = _log(context, date="2024-03-14")

    assert water_quality.entries_for_date(context, "2024-03-15") == [morning, noon, evening]
    assert water_quality.entries_with_alerts(context) == [noon, evening]
    assert water_quality.critical_entries(context) == [evening]
    assert water_quality.latest_entry(context) == evening
    assert other_day not in water_quality.entries_for_date(context, "2024-03-15")


def test_latest_entry_empty(context):
    assert water_quality.latest_entry(context) is None
