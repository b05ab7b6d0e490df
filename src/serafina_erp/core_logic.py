"""Runtime kernel shared by every Serafina ERP ledger.

This module owns the pieces each ledger needs and none of them should
re-implement: the :class:`RuntimeContext` that bundles settings with a
document store, the exception hierarchy, identity and clock helpers, money
rounding, and the cached collection accessors that translate stored documents
into typed records from :mod:`serafina_erp.data_manager`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from . import data_manager, log
from .constants import DEFAULT_COMPANY_NAME, EXPECTED_SCHEMA_VERSION, StorageKey
from .data_manager import PersistenceError


T = TypeVar("T")

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised for empty fields, malformed values, and out-of-range numbers."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced customer, product, user, expense, or category is unknown."""


class ConflictError(BusinessRuleViolation):
    """Raised when a uniqueness rule (size, username, category name) would break."""


class PolicyViolation(BusinessRuleViolation):
    """Raised when a well-formed request is refused by a business policy."""


class PermissionDenied(BusinessRuleViolation):
    """Raised when the active session lacks the role an operation requires."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and store references used by the ledgers."""

    settings: data_manager.ConfigSettings
    store: data_manager.DocumentStore
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


# Codec registry: storage key -> (serializer, deserializer)
COLLECTION_CODECS: Dict[StorageKey, Tuple[Callable[[Any], Dict[str, Any]], Callable[[Any], Any]]] = {
    StorageKey.PRODUCTS: (data_manager.serialize_product, data_manager.deserialize_product),
    StorageKey.CUSTOMERS: (data_manager.serialize_customer, data_manager.deserialize_customer),
    StorageKey.BOTTLE_TRANSACTIONS: (
        data_manager.serialize_bottle_transaction,
        data_manager.deserialize_bottle_transaction,
    ),
    StorageKey.ORDERS: (data_manager.serialize_order, data_manager.deserialize_order),
    StorageKey.PAYMENTS: (data_manager.serialize_payment, data_manager.deserialize_payment),
    StorageKey.EXPENSES: (data_manager.serialize_expense, data_manager.deserialize_expense),
    StorageKey.EXPENSE_CATEGORIES: (
        data_manager.serialize_expense_category,
        data_manager.deserialize_expense_category,
    ),
    StorageKey.CASH_ADJUSTMENTS: (
        data_manager.serialize_cash_adjustment,
        data_manager.deserialize_cash_adjustment,
    ),
    StorageKey.CASH_DAILY_RECORDS: (
        data_manager.serialize_daily_cash_record,
        data_manager.deserialize_daily_cash_record,
    ),
    StorageKey.WATER_QUALITY_ENTRIES: (
        data_manager.serialize_water_quality_entry,
        data_manager.deserialize_water_quality_entry,
    ),
    StorageKey.USERS: (data_manager.serialize_user, data_manager.deserialize_user),
}


# ---------------------------------------------------------------------------
# Identity & time
# ---------------------------------------------------------------------------


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Resolve optional timestamps into consistent, timezone-aware values.

    Args:
        candidate (datetime | None): Caller-provided timestamp, usually sourced
            from a command object.

    Returns:
        datetime: ``candidate`` as-is when provided, otherwise the current UTC
            datetime generated via :func:`datetime.now`.
    """

    return candidate if candidate is not None else datetime.now(UTC)


def now_iso(when: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    moment = _resolve_timestamp(when)
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    return moment.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def today(when: Optional[datetime] = None) -> str:
    """Return the current UTC date as ``YYYY-MM-DD``."""

    return now_iso(when)[:10]


def local_time(when: Optional[datetime] = None) -> str:
    """Return the wall-clock ``HH:MM`` in the machine's local timezone."""

    return _resolve_timestamp(when).astimezone().strftime("%H:%M")


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO timestamp into an aware UTC datetime.

    Naive values are treated as UTC.

    Raises:
        ValidationError: If ``value`` is not an ISO-8601 timestamp.
    """

    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"Invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_date(value: str) -> str:
    """Return the UTC ``YYYY-MM-DD`` date of an ISO timestamp."""

    return parse_timestamp(value).date().isoformat()


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: If ``value`` is not a calendar date.
    """

    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}") from exc


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier for a new entity.

    Args:
        prefix (str): Short designator for the entity kind (``"ORD"``, ``"C"``).
        when (datetime | None): Timestamp used for the sortable part. When
            ``None`` the current UTC time is used.

    Returns:
        str: Identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}{6 hex}``.

    The random suffix keeps identifiers unique when several entities are
    minted within the same microsecond, which happens during place-order.
    """

    when = _resolve_timestamp(when)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}{uuid.uuid4().hex[:6]}"


# ---------------------------------------------------------------------------
# Money & validation
# ---------------------------------------------------------------------------


def round_money(value: Union[Decimal, int, str]) -> Decimal:
    """Round to two decimals, halves away from zero."""

    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_money(raw: Any, *, field_name: str = "Amount") -> Decimal:
    """Coerce user input into a two-decimal :class:`Decimal`.

    Raises:
        ValidationError: If ``raw`` is empty or not numeric.
    """

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        log.error("%s is required", field_name)
        raise ValidationError(f"{field_name} is required")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        log.error("%s is not a number: %r", field_name, raw)
        raise ValidationError(f"{field_name} must be a number") from exc
    if not value.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    return round_money(value)


def require_text(value: Optional[str], message: str) -> str:
    """Return ``value`` stripped, or raise :class:`ValidationError` when blank."""

    text = (value or "").strip()
    if not text:
        log.error("Validation failed: %s", message)
        raise ValidationError(message)
    return text


def require_positive_quantity(quantity: Any, message: str = "Quantity must be greater than zero") -> int:
    """Validate that a quantity is a strictly positive integer.

    Args:
        quantity: Value supplied by a command object.
        message (str): Error text surfaced to the caller.

    Returns:
        int: ``quantity`` as an integer.

    Raises:
        ValidationError: If ``quantity`` is not an integer or not above zero.
    """

    if isinstance(quantity, bool):
        raise ValidationError(message)
    try:
        number = Decimal(str(quantity))
    except InvalidOperation as exc:
        log.error("Quantity validation failed: %r", quantity)
        raise ValidationError(message) from exc
    if not number.is_finite() or number <= ZERO or number != number.to_integral_value():
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError(message)
    return int(number)


def require_positive_money(amount: Decimal, message: str = "Amount must be greater than zero") -> None:
    if amount <= ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError(message)


def require_nonnegative_money(amount: Decimal, message: str = "Amount must be zero or positive") -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValidationError: If ``amount`` is less than zero.
    """

    if amount < ZERO:
        log.error("Monetary value validation failed: %s", amount)
        raise ValidationError(message)


# ---------------------------------------------------------------------------
# Collection cache
# ---------------------------------------------------------------------------


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets are keyed by storage key and hold the decoded records of one
    collection so repeated projections do not re-read the store.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating store state.

    Missing buckets are ignored.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def load_collection(context: RuntimeContext, key: StorageKey) -> List[Any]:
    """Return the typed records stored under collection ``key``.

    Records are decoded once and cached until the next write through
    :func:`save_collection`. A fresh list is returned on every call so callers
    may extend it without corrupting the cache.
    """

    bucket = _get_cache_bucket(context, key.value)
    if "all" not in bucket:
        _, deserialize = COLLECTION_CODECS[key]
        documents = context.store.get(key) or []
        bucket["all"] = [deserialize(document) for document in documents]
        log.debug("Populated '%s' cache with %d entries", key.value, len(bucket["all"]))
    return list(bucket["all"])


def save_collection(context: RuntimeContext, key: StorageKey, records: Sequence[Any]) -> None:
    """Write ``records`` as the full contents of collection ``key``."""

    serialize, _ = COLLECTION_CODECS[key]
    context.store.put(key, [serialize(record) for record in records])
    _invalidate_cache(context, key.value)


def append_record(context: RuntimeContext, key: StorageKey, record: T) -> T:
    """Append one record to collection ``key`` and return it."""

    records = load_collection(context, key)
    records.append(record)
    save_collection(context, key, records)
    return record


def replace_record(context: RuntimeContext, key: StorageKey, record: T, *, id_attr: str) -> T:
    """Swap the stored record sharing ``record``'s identifier.

    Raises:
        MissingReferenceError: If no stored record carries the identifier.
    """

    record_id = getattr(record, id_attr)
    records = load_collection(context, key)
    for index, existing in enumerate(records):
        if getattr(existing, id_attr) == record_id:
            records[index] = record
            save_collection(context, key, records)
            return record
    raise MissingReferenceError(f"Unknown record '{record_id}' in {key.value}")


def remove_record(context: RuntimeContext, key: StorageKey, record_id: str, *, id_attr: str) -> Any:
    """Delete and return the record carrying ``record_id``.

    Raises:
        MissingReferenceError: If no stored record carries the identifier.
    """

    records = load_collection(context, key)
    for index, existing in enumerate(records):
        if getattr(existing, id_attr) == record_id:
            removed = records.pop(index)
            save_collection(context, key, records)
            return removed
    raise MissingReferenceError(f"Unknown record '{record_id}' in {key.value}")


def find_record(records: Sequence[T], record_id: str, *, id_attr: str) -> Optional[T]:
    for record in records:
        if getattr(record, id_attr) == record_id:
            return record
    return None


# ---------------------------------------------------------------------------
# Context lifecycle
# ---------------------------------------------------------------------------


def open_store(settings: data_manager.ConfigSettings) -> data_manager.DocumentStore:
    """Instantiate the persistence driver selected by ``settings``."""

    if settings.data_file is None:
        log.debug("Using in-memory document store")
        return data_manager.MemoryStore()
    return data_manager.WorkbookStore.open(settings.data_file)


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live document store.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for ledger operations.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
        PersistenceError: If the workbook exists but cannot be loaded.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    store = open_store(settings)
    log.info("Loaded runtime context for store '%s'", settings.data_file or data_manager.MEMORY_DATA_FILE)
    return RuntimeContext(settings=settings, store=store)


def build_memory_context(
    *,
    company_name: str = DEFAULT_COMPANY_NAME,
    store: Optional[data_manager.DocumentStore] = None,
) -> RuntimeContext:
    """Return a context over a :class:`MemoryStore`, bypassing ``config.ini``."""

    settings = data_manager.ConfigSettings(
        data_file=None,
        company_name=company_name,
        schema_version=EXPECTED_SCHEMA_VERSION,
    )
    return RuntimeContext(settings=settings, store=store if store is not None else data_manager.MemoryStore())


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate store compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Store schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Store schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Flush in-memory store changes to the configured workbook.

    The in-memory driver has nothing to flush and is left untouched.

    Raises:
        PersistenceError: If the workbook cannot be written.
    """

    store = context.store
    if isinstance(store, data_manager.WorkbookStore) and context.settings.data_file is not None:
        store.save(context.settings.data_file)
        log.info("Persisted workbook '%s'", context.settings.data_file)
    else:
        log.debug("Store has no backing file; nothing to persist")


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the backing store to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with an empty cache. In-memory contexts
            keep their store since there is nothing to reload from.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """

    if context.settings.data_file is None:
        return RuntimeContext(settings=context.settings, store=context.store)
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, store=data_manager.WorkbookStore(workbook))


__all__ = [
    "BusinessRuleViolation",
    "ValidationError",
    "MissingReferenceError",
    "ConflictError",
    "PolicyViolation",
    "PermissionDenied",
    "PersistenceError",
    "RuntimeContext",
    "now_iso",
    "today",
    "local_time",
    "parse_timestamp",
    "parse_date",
    "format_date",
    "generate_id",
    "round_money",
    "to_money",
    "require_text",
    "require_positive_quantity",
    "require_positive_money",
    "require_nonnegative_money",
    "load_collection",
    "save_collection",
    "append_record",
    "replace_record",
    "remove_record",
    "find_record",
    "open_store",
    "load_runtime_context",
    "build_memory_context",
    "ensure_schema_version",
    "persist_context",
    "refresh_context",
]
