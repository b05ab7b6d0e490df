"""Water-quality log with range-based classification.

Each reading is compared against configurable safe ranges. A metric outside
its interval deviates by ``(bound - value) / bound * 100`` percent; up to the
warning tolerance it raises a warning, beyond it a critical alert. Alerts keep
the pH, TDS, chlorine order. Several readings per day are allowed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from . import log
from .constants import DEFAULT_WATER_QUALITY_RANGES, QualityStatus, StorageKey
from .core_logic import (
    RuntimeContext,
    ValidationError,
    append_record,
    generate_id,
    load_collection,
    local_time,
    now_iso,
    parse_date,
)
from .data_manager import WaterQualityEntryRecord, WaterQualityRanges, deserialize_ranges, serialize_ranges


@dataclass(frozen=True)
class WaterQualityCommand:
    """A reading to log. ``time`` defaults to the local ``HH:MM``."""

    date: str
    ph: Any
    tds: Any
    chlorine: Any
    time: Optional[str] = None
    created_by: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class Classification:
    status: str
    alerts: Tuple[str, ...]


def default_ranges() -> WaterQualityRanges:
    return deserialize_ranges(DEFAULT_WATER_QUALITY_RANGES)


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


def _to_float(raw: Any, message: str) -> float:
    if raw is None or raw == "" or isinstance(raw, bool):
        log.error("Validation failed: %s", message)
        raise ValidationError(message)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        log.error("Validation failed: %s (%r)", message, raw)
        raise ValidationError(message) from exc
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(message)
    return value


def deviation_percent(value: float, low: float, high: float) -> float:
    """Percentage by which ``value`` lies outside ``[low, high]``; zero inside."""

    if low <= value <= high:
        return 0.0
    if value < low:
        return (low - value) / low * 100
    return (value - high) / high * 100


def _band(value: float, low: float, high: float, tolerance: float) -> Optional[str]:
    deviation = deviation_percent(value, low, high)
    if deviation <= 0:
        return None
    if deviation <= tolerance:
        return QualityStatus.WARNING.value
    return QualityStatus.CRITICAL.value


def classify(ph: float, tds: float, chlorine: float, ranges: WaterQualityRanges) -> Classification:
    """Return the status and ordered alerts for one reading."""

    tolerance = ranges.warning_tolerance
    alerts: List[str] = []
    bands: List[str] = []
    ph_range = f"({_number(ranges.ph_min)}-{_number(ranges.ph_max)})"
    chlorine_range = f"({_number(ranges.chlorine_min)}-{_number(ranges.chlorine_max)})"

    band = _band(ph, ranges.ph_min, ranges.ph_max, tolerance)
    if band == QualityStatus.CRITICAL.value:
        alerts.append(f"CRITICAL: pH level {_number(ph)} is far outside safe range {ph_range}")
    elif band == QualityStatus.WARNING.value:
        alerts.append(f"WARNING: pH level {_number(ph)} is slightly outside safe range {ph_range}")
    if band:
        bands.append(band)

    band = _band(tds, 0.0, ranges.tds_max, tolerance)
    if band == QualityStatus.CRITICAL.value:
        alerts.append(
            f"CRITICAL: TDS level {_number(tds)} ppm is far above safe limit ({_number(ranges.tds_max)} ppm)"
        )
    elif band == QualityStatus.WARNING.value:
        alerts.append(
            f"WARNING: TDS level {_number(tds)} ppm is slightly above safe limit ({_number(ranges.tds_max)} ppm)"
        )
    if band:
        bands.append(band)

    band = _band(chlorine, ranges.chlorine_min, ranges.chlorine_max, tolerance)
    if band == QualityStatus.CRITICAL.value:
        alerts.append(
            f"CRITICAL: Chlorine level {_number(chlorine)} is far outside safe range {chlorine_range}"
        )
    elif band == QualityStatus.WARNING.value:
        alerts.append(
            f"WARNING: Chlorine level {_number(chlorine)} is slightly outside safe range {chlorine_range}"
        )
    if band:
        bands.append(band)

    if QualityStatus.CRITICAL.value in bands:
        status = QualityStatus.CRITICAL.value
    elif bands:
        status = QualityStatus.WARNING.value
    else:
        status = QualityStatus.NORMAL.value
    return Classification(status=status, alerts=tuple(alerts))


# ---------------------------------------------------------------------------
# Ranges
# ---------------------------------------------------------------------------


def load_ranges(context: RuntimeContext) -> WaterQualityRanges:
    """Stored ranges, or the defaults when none have been saved."""

    document = context.store.get(StorageKey.WATER_QUALITY_RANGES)
    if document is None:
        return default_ranges()
    return deserialize_ranges(document)


def validate_ranges(ranges: WaterQualityRanges) -> None:
    """Raise :class:`ValidationError` unless every interval is well-formed."""

    values = (
        ranges.ph_min,
        ranges.ph_max,
        ranges.tds_max,
        ranges.chlorine_min,
        ranges.chlorine_max,
        ranges.warning_tolerance,
    )
    if any(value < 0 for value in values):
        raise ValidationError("Quality ranges must not be negative")
    if ranges.ph_min > ranges.ph_max or ranges.ph_max > 14:
        raise ValidationError("pH range must satisfy 0 <= min <= max <= 14")
    if ranges.chlorine_min > ranges.chlorine_max:
        raise ValidationError("Chlorine minimum cannot exceed maximum")
    if ranges.ph_max == 0 or ranges.tds_max == 0 or ranges.chlorine_max == 0:
        raise ValidationError("Upper limits must be greater than 0")


def save_ranges(context: RuntimeContext, ranges: WaterQualityRanges) -> WaterQualityRanges:
    validate_ranges(ranges)
    context.store.put(StorageKey.WATER_QUALITY_RANGES, serialize_ranges(ranges))
    log.info("Saved water-quality ranges: %s", serialize_ranges(ranges))
    return ranges


def update_ranges(context: RuntimeContext, changes: Mapping[str, Any]) -> WaterQualityRanges:
    """Merge camelCase ``changes`` (``pHMin``, ``tdsMax``...) into the stored ranges."""

    merged = serialize_ranges(load_ranges(context))
    for key, value in changes.items():
        if key not in merged:
            raise ValidationError(f"Unknown quality range: {key}")
        merged[key] = _to_float(value, f"{key} must be a number")
    return save_ranges(context, deserialize_ranges(merged))


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


def list_entries(context: RuntimeContext) -> List[WaterQualityEntryRecord]:
    return load_collection(context, StorageKey.WATER_QUALITY_ENTRIES)


def record_entry(context: RuntimeContext, command: WaterQualityCommand) -> WaterQualityEntryRecord:
    """Validate, classify against the stored ranges, and append a reading.

    Raises:
        ValidationError: If the date is missing, pH is outside ``[0, 14]``, or
            TDS or chlorine is negative.
    """

    if not (command.date or "").strip():
        log.error("Validation failed: Date is required")
        raise ValidationError("Date is required")
    reading_date = parse_date(command.date).isoformat()
    ph = _to_float(command.ph, "pH must be between 0 and 14")
    if not 0 <= ph <= 14:
        log.error("pH out of range: %s", ph)
        raise ValidationError("pH must be between 0 and 14")
    tds = _to_float(command.tds, "TDS must be a positive number")
    if tds < 0:
        raise ValidationError("TDS must be a positive number")
    chlorine = _to_float(command.chlorine, "Chlorine must be a positive number")
    if chlorine < 0:
        raise ValidationError("Chlorine must be a positive number")

    result = classify(ph, tds, chlorine, load_ranges(context))
    entry = WaterQualityEntryRecord(
        entry_id=generate_id("WQ"),
        date=reading_date,
        time=(command.time or "").strip() or local_time(command.timestamp),
        ph=ph,
        tds=tds,
        chlorine=chlorine,
        status=result.status,
        alerts=result.alerts,
        created_at=now_iso(command.timestamp),
        created_by=command.created_by,
    )
    append_record(context, StorageKey.WATER_QUALITY_ENTRIES, entry)
    if result.status == QualityStatus.NORMAL.value:
        log.info("Logged water-quality entry '%s' for %s (normal)", entry.entry_id, reading_date)
    else:
        log.warning(
            "Logged water-quality entry '%s' for %s (%s): %s",
            entry.entry_id,
            reading_date,
            result.status,
            "; ".join(result.alerts),
        )
    return entry


def _newest_first(entries: Sequence[WaterQualityEntryRecord]) -> List[WaterQualityEntryRecord]:
    return sorted(entries, key=lambda e: (e.date, e.time, e.created_at), reverse=True)


def latest_entry(context: RuntimeContext) -> Optional[WaterQualityEntryRecord]:
    entries = _newest_first(list_entries(context))
    return entries[0] if entries else None


def entries_for_date(context: RuntimeContext, day: str) -> List[WaterQualityEntryRecord]:
    return [entry for entry in list_entries(context) if entry.date == day]


def entries_with_alerts(context: RuntimeContext) -> List[WaterQualityEntryRecord]:
    flagged = {QualityStatus.WARNING.value, QualityStatus.CRITICAL.value}
    return [entry for entry in list_entries(context) if entry.status in flagged]


def critical_entries(context: RuntimeContext) -> List[WaterQualityEntryRecord]:
    return [entry for entry in list_entries(context) if entry.status == QualityStatus.CRITICAL.value]
