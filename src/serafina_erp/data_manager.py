"""Data access layer for Serafina ERP.

This module provides the low-level helpers the ledgers use to read and write
documents. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Persistence drivers: the :class:`DocumentStore` port plus an in-memory
   driver and an ``openpyxl`` workbook driver.
3. Record mapping: typed, immutable records and the functions converting them
   to and from the camelCase documents kept in the store.
"""


from __future__ import annotations

import configparser
import copy
import json
import zipfile
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union, runtime_checkable

from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import COLLECTION_KEYS, DEFAULT_COMPANY_NAME, DEFAULT_CURRENCY_PREFIX, Language, PaymentSource, StorageKey


CONFIG_FILE_NAME = "config.ini"
MEMORY_DATA_FILE = ":memory:"
SINGLETONS_SHEET = "Singletons"
COLLECTION_HEADERS = ("ID", "Document")
SINGLETON_HEADERS = ("Key", "Document")

Document = Any
KeyLike = Union[StorageKey, str]


class PersistenceError(RuntimeError):
    """Raised when a persistence driver cannot read or write its backing file."""


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about.

    ``data_file`` is ``None`` when the configuration selects the in-memory
    store.
    """

    data_file: Optional[Path]
    company_name: str
    schema_version: str
    default_language: str = Language.ENGLISH.value
    currency_prefix: str = DEFAULT_CURRENCY_PREFIX


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Required options live under ``[System]``; the ``[Defaults]`` section is
    optional and falls back to English and the ``Rs.`` currency prefix.
    Relative ``DataFile`` entries are anchored to ``base_path`` (or the current
    working directory) and resolved. The literal ``:memory:`` selects the
    in-memory store.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If the configured default language is unsupported.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        company_name = parser.get("System", "CompanyName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    default_language = parser.get("Defaults", "Language", fallback=Language.ENGLISH.value).strip()
    if default_language not in {member.value for member in Language}:
        raise ValueError(f"Unsupported default language in configuration: {default_language}")
    currency_prefix = parser.get("Defaults", "CurrencyPrefix", fallback=DEFAULT_CURRENCY_PREFIX)

    data_file_path: Optional[Path]
    if data_file_raw.strip() == MEMORY_DATA_FILE:
        data_file_path = None
    else:
        data_file_path = Path(data_file_raw)
        if not data_file_path.is_absolute():
            if base_path is None:
                base_path = Path.cwd()
            data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        company_name=company_name or DEFAULT_COMPANY_NAME,
        schema_version=schema_version,
        default_language=default_language,
        currency_prefix=currency_prefix,
    )


# ---------------------------------------------------------------------------
# Persistence port and drivers
# ---------------------------------------------------------------------------


@runtime_checkable
class DocumentStore(Protocol):
    """Key to document capability consumed by the ledgers.

    Documents are opaque to the store. ``get`` returns ``None`` for keys that
    were never written or have been removed.
    """

    def get(self, key: KeyLike) -> Optional[Document]:
        ...

    def put(self, key: KeyLike, document: Document) -> None:
        ...

    def remove(self, key: KeyLike) -> None:
        ...


def key_name(key: KeyLike) -> str:
    """Return the plain string form of a storage key."""

    return key.value if isinstance(key, StorageKey) else str(key)


class MemoryStore:
    """Pure in-memory driver; documents are deep-copied on the way in and out."""

    def __init__(self, initial: Optional[Mapping[KeyLike, Document]] = None) -> None:
        self._documents: Dict[str, Document] = {}
        for key, document in (initial or {}).items():
            self.put(key, document)

    def get(self, key: KeyLike) -> Optional[Document]:
        document = self._documents.get(key_name(key))
        return copy.deepcopy(document)

    def put(self, key: KeyLike, document: Document) -> None:
        self._documents[key_name(key)] = copy.deepcopy(document)

    def remove(self, key: KeyLike) -> None:
        self._documents.pop(key_name(key), None)

    def keys(self) -> List[str]:
        return sorted(self._documents)


class WorkbookStore:
    """Document store backed by an ``openpyxl`` workbook.

    Collection keys map to a worksheet of the same name holding one JSON
    encoded entity per row (``ID | Document``). Every other key is kept as a
    row of the ``Singletons`` worksheet (``Key | Document``). Changes stay in
    memory until :meth:`save` is called.
    """

    def __init__(self, workbook: Workbook) -> None:
        self.workbook = workbook

    @classmethod
    def open(cls, data_file: Path) -> "WorkbookStore":
        """Open the workbook at ``data_file`` and wrap it in a store."""

        return cls(open_workbook(data_file))

    def get(self, key: KeyLike) -> Optional[Document]:
        name = key_name(key)
        if _is_collection(name):
            if name not in self.workbook.sheetnames:
                return None
            sheet = self.workbook[name]
            documents = []
            for raw in sheet.iter_rows(min_row=2, values_only=True):
                if any(cell is not None for cell in raw):
                    documents.append(_decode_cell(raw[1], name))
            return documents

        if SINGLETONS_SHEET not in self.workbook.sheetnames:
            return None
        row_index = locate_row(self.workbook, SINGLETONS_SHEET, "Key", name)
        if row_index is None:
            return None
        raw = self.workbook[SINGLETONS_SHEET].cell(row=row_index, column=2).value
        return _decode_cell(raw, name)

    def put(self, key: KeyLike, document: Document) -> None:
        name = key_name(key)
        if _is_collection(name):
            if not isinstance(document, list):
                raise TypeError(f"Collection '{name}' expects a list document")
            sheet = _ensure_sheet(self.workbook, name, COLLECTION_HEADERS)
            if sheet.max_row > 1:
                sheet.delete_rows(2, sheet.max_row - 1)
            for entity in document:
                sheet.append([_entity_identifier(entity), _encode_cell(entity)])
            return

        sheet = _ensure_sheet(self.workbook, SINGLETONS_SHEET, SINGLETON_HEADERS)
        row_index = locate_row(self.workbook, SINGLETONS_SHEET, "Key", name)
        if row_index is None:
            sheet.append([name, _encode_cell(document)])
        else:
            sheet.cell(row=row_index, column=2, value=_encode_cell(document))

    def remove(self, key: KeyLike) -> None:
        name = key_name(key)
        if _is_collection(name):
            if name in self.workbook.sheetnames:
                self.workbook.remove(self.workbook[name])
            return

        if SINGLETONS_SHEET not in self.workbook.sheetnames:
            return
        row_index = locate_row(self.workbook, SINGLETONS_SHEET, "Key", name)
        if row_index is not None:
            self.workbook[SINGLETONS_SHEET].delete_rows(row_index, 1)

    def save(self, destination: Path) -> None:
        """Persist the wrapped workbook to ``destination``."""

        save_workbook(self.workbook, destination)


def _is_collection(name: str) -> bool:
    return name in {member.value for member in COLLECTION_KEYS}


def _ensure_sheet(workbook: Workbook, title: str, headers: Iterable[str]):
    if title in workbook.sheetnames:
        return workbook[title]
    sheet = workbook.create_sheet(title=title)
    bold_font = Font(bold=True)
    for column_index, header in enumerate(headers, start=1):
        cell = sheet.cell(row=1, column=column_index, value=header)
        cell.font = bold_font
    return sheet


def _entity_identifier(entity: Any) -> Optional[str]:
    if isinstance(entity, Mapping):
        identifier = entity.get("id") or entity.get("date")
        return str(identifier) if identifier is not None else None
    return None


def _encode_cell(document: Document) -> str:
    return json.dumps(document, ensure_ascii=False, sort_keys=True)


def _decode_cell(raw: Any, name: str) -> Document:
    if raw is None:
        return None
    try:
        return json.loads(str(raw))
    except json.JSONDecodeError as exc:
        log.error("Corrupt document stored under '%s'", name)
        raise PersistenceError(f"Corrupt document stored under '{name}'") from exc


def open_workbook(data_file: Path) -> Workbook:
    """Open the store workbook and return a live ``openpyxl`` workbook.

    Args:
        data_file (Path): Filesystem path to the workbook. ``~`` is expanded.

    Returns:
        Workbook: ``openpyxl`` workbook instance backed by the provided file.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
        PersistenceError: If the file exists but cannot be loaded.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    try:
        return openpyxl.load_workbook(data_file)
    except (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException) as exc:
        raise PersistenceError(f"Unable to load workbook '{data_file}': {exc}") from exc


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.

    Raises:
        PersistenceError: If the operating system refuses the write.
    """

    dest = Path(destination).expanduser().resolve()
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        workbook.save(dest)
    except OSError as exc:
        raise PersistenceError(f"Unable to save workbook '{dest}': {exc}") from exc


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the lookup column.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        if row[key_col_index - 1] == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProductRecord:
    """A bottle SKU in the catalog."""

    product_id: str
    name: str
    size: str
    price: Decimal
    is_active: bool
    is_returnable: bool
    created_at: str
    description: str = ""
    updated_at: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class CustomerRecord:
    """A delivery customer with optional per-product price overrides."""

    customer_id: str
    name: str
    phone: str
    address: str
    preferred_language: str
    product_prices: Mapping[str, Decimal]
    opening_balance: Decimal
    created_at: str
    updated_at: Optional[str] = None
    created_by: Optional[str] = None
    bottle_prices: Optional[Mapping[str, Decimal]] = None


@dataclass(frozen=True)
class BottleTransactionRecord:
    """An issued or returned container event."""

    transaction_id: str
    customer_id: str
    transaction_type: str
    quantity: int
    notes: str
    created_at: str
    created_by: Optional[str] = None


@dataclass(frozen=True)
class OrderRecord:
    """A sale of ``quantity`` units of one product to one customer."""

    order_id: str
    customer_id: str
    product_id: str
    quantity: int
    price: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    outstanding_amount: Decimal
    payment_method: str
    status: str
    notes: str
    created_at: str
    created_by: Optional[str] = None


@dataclass(frozen=True)
class PaymentRecord:
    """Money received from a customer, optionally tied to an order."""

    payment_id: str
    customer_id: str
    amount: Decimal
    payment_method: str
    order_id: Optional[str]
    notes: str
    created_at: str
    created_by: Optional[str] = None
    source: str = PaymentSource.ACCOUNT.value


@dataclass(frozen=True)
class ExpenseRecord:
    """Cash paid out of the business.

    Older documents carry only a ``category`` reference; ``title`` then falls
    back to that value.
    """

    expense_id: str
    title: str
    description: str
    amount: Decimal
    date: str
    created_at: str
    category: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class ExpenseCategoryRecord:
    category_id: str
    name: str
    description: str
    created_at: str


@dataclass(frozen=True)
class CashBalanceRecord:
    """Materialized cash-on-hand singleton."""

    amount: Decimal
    last_updated: str


@dataclass(frozen=True)
class CashAdjustmentRecord:
    """Signed, manual correction to cash on hand."""

    adjustment_id: str
    amount: Decimal
    reason: str
    created_at: str
    created_by: Optional[str] = None


@dataclass(frozen=True)
class DailyCashRecord:
    date: str
    opening_balance: Decimal
    closing_balance: Decimal
    total_income: Decimal
    total_expenses: Decimal
    created_at: str
    updated_at: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class WaterQualityRanges:
    """Safe intervals per metric plus the warning tolerance percentage."""

    ph_min: float
    ph_max: float
    tds_max: float
    chlorine_min: float
    chlorine_max: float
    warning_tolerance: float


@dataclass(frozen=True)
class WaterQualityEntryRecord:
    entry_id: str
    date: str
    time: str
    ph: float
    tds: float
    chlorine: float
    status: str
    alerts: tuple[str, ...]
    created_at: str
    created_by: Optional[str] = None


@dataclass(frozen=True)
class UserRecord:
    """An operator account. ``password_hash`` is an argon2 encoded hash."""

    user_id: str
    username: str
    password_hash: str
    role: str
    display_name: str
    email: str
    is_active: bool
    created_at: str
    updated_at: Optional[str] = None
    created_by: Optional[str] = None


@dataclass(frozen=True)
class CompanyInfo:
    name: str = DEFAULT_COMPANY_NAME
    address: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""


@dataclass(frozen=True)
class AppSettings:
    company_info: CompanyInfo = field(default_factory=CompanyInfo)
    default_language: str = Language.ENGLISH.value


# ---------------------------------------------------------------------------
# Record <-> document mapping
# ---------------------------------------------------------------------------


def to_decimal(raw: Any, default: str = "0") -> Decimal:
    """Coerce a stored number or numeric string into a :class:`Decimal`.

    Floats are routed through ``str`` so that values such as ``0.1`` keep their
    printed form instead of their binary expansion.
    """

    if raw is None or raw == "":
        return Decimal(default)
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal value: {raw!r}") from exc


def money_text(amount: Decimal) -> str:
    return str(amount)


def _price_map_document(prices: Optional[Mapping[str, Decimal]]) -> Dict[str, str]:
    return {str(key): money_text(value) for key, value in (prices or {}).items()}


def _price_map_record(raw: Optional[Mapping[str, Any]]) -> Dict[str, Decimal]:
    return {str(key): to_decimal(value) for key, value in (raw or {}).items()}


def serialize_product(record: ProductRecord) -> Dict[str, Any]:
    """Convert a product record into its stored document form."""

    return {
        "id": record.product_id,
        "name": record.name,
        "size": record.size,
        "description": record.description,
        "price": money_text(record.price),
        "isActive": record.is_active,
        "isReturnable": record.is_returnable,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "createdBy": record.created_by,
    }


def deserialize_product(document: Mapping[str, Any]) -> ProductRecord:
    """Convert a stored product document into a typed record.

    ``isReturnable`` is treated as ``True`` unless explicitly ``False`` so that
    documents written before the flag existed remain returnable.
    """

    return ProductRecord(
        product_id=str(document["id"]),
        name=str(document.get("name", "")),
        size=str(document.get("size", "")),
        price=to_decimal(document.get("price")),
        is_active=bool(document.get("isActive", True)),
        is_returnable=document.get("isReturnable") is not False,
        description=str(document.get("description") or ""),
        created_at=str(document.get("createdAt") or ""),
        updated_at=document.get("updatedAt"),
        created_by=document.get("createdBy"),
    )


def serialize_customer(record: CustomerRecord) -> Dict[str, Any]:
    document: Dict[str, Any] = {
        "id": record.customer_id,
        "name": record.name,
        "phone": record.phone,
        "address": record.address,
        "preferredLanguage": record.preferred_language,
        "productPrices": _price_map_document(record.product_prices),
        "openingBalance": money_text(record.opening_balance),
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "createdBy": record.created_by,
    }
    if record.bottle_prices is not None:
        document["bottlePrices"] = _price_map_document(record.bottle_prices)
    return document


def deserialize_customer(document: Mapping[str, Any]) -> CustomerRecord:
    bottle_prices = document.get("bottlePrices")
    return CustomerRecord(
        customer_id=str(document["id"]),
        name=str(document.get("name", "")),
        phone=str(document.get("phone", "")),
        address=str(document.get("address", "")),
        preferred_language=str(document.get("preferredLanguage") or Language.ENGLISH.value),
        product_prices=_price_map_record(document.get("productPrices")),
        opening_balance=to_decimal(document.get("openingBalance")),
        created_at=str(document.get("createdAt") or ""),
        updated_at=document.get("updatedAt"),
        created_by=document.get("createdBy"),
        bottle_prices=_price_map_record(bottle_prices) if bottle_prices is not None else None,
    )


def serialize_bottle_transaction(record: BottleTransactionRecord) -> Dict[str, Any]:
    return {
        "id": record.transaction_id,
        "customerId": record.customer_id,
        "type": record.transaction_type,
        "quantity": record.quantity,
        "notes": record.notes,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }


def deserialize_bottle_transaction(document: Mapping[str, Any]) -> BottleTransactionRecord:
    return BottleTransactionRecord(
        transaction_id=str(document["id"]),
        customer_id=str(document.get("customerId", "")),
        transaction_type=str(document.get("type", "")),
        quantity=int(document.get("quantity") or 0),
        notes=str(document.get("notes") or ""),
        created_at=str(document.get("createdAt") or ""),
        created_by=document.get("createdBy"),
    )


def serialize_order(record: OrderRecord) -> Dict[str, Any]:
    return {
        "id": record.order_id,
        "customerId": record.customer_id,
        "productId": record.product_id,
        "quantity": record.quantity,
        "price": money_text(record.price),
        "totalAmount": money_text(record.total_amount),
        "amountPaid": money_text(record.amount_paid),
        "outstandingAmount": money_text(record.outstanding_amount),
        "paymentMethod": record.payment_method,
        "status": record.status,
        "notes": record.notes,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }


def deserialize_order(document: Mapping[str, Any]) -> OrderRecord:
    """Convert a stored order document into a typed record.

    Documents from the bottle-only era stored ``pricePerBottle`` instead of
    ``price``; both are accepted.
    """

    price_raw = document.get("price", document.get("pricePerBottle"))
    return OrderRecord(
        order_id=str(document["id"]),
        customer_id=str(document.get("customerId", "")),
        product_id=str(document.get("productId") or ""),
        quantity=int(document.get("quantity") or 0),
        price=to_decimal(price_raw),
        total_amount=to_decimal(document.get("totalAmount")),
        amount_paid=to_decimal(document.get("amountPaid")),
        outstanding_amount=to_decimal(document.get("outstandingAmount")),
        payment_method=str(document.get("paymentMethod") or ""),
        status=str(document.get("status") or ""),
        notes=str(document.get("notes") or ""),
        created_at=str(document.get("createdAt") or ""),
        created_by=document.get("createdBy"),
    )


def serialize_payment(record: PaymentRecord) -> Dict[str, Any]:
    return {
        "id": record.payment_id,
        "customerId": record.customer_id,
        "amount": money_text(record.amount),
        "paymentMethod": record.payment_method,
        "orderId": record.order_id,
        "notes": record.notes,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
        "source": record.source,
    }


def deserialize_payment(document: Mapping[str, Any]) -> PaymentRecord:
    order_id = document.get("orderId")
    # Records written before payments carried a source: only order payments had an orderId.
    source = document.get("source") or (PaymentSource.ORDER.value if order_id else PaymentSource.ACCOUNT.value)
    return PaymentRecord(
        payment_id=str(document["id"]),
        customer_id=str(document.get("customerId", "")),
        amount=to_decimal(document.get("amount")),
        payment_method=str(document.get("paymentMethod") or ""),
        order_id=str(order_id) if order_id else None,
        notes=str(document.get("notes") or ""),
        created_at=str(document.get("createdAt") or ""),
        created_by=document.get("createdBy"),
        source=str(source),
    )


def serialize_expense(record: ExpenseRecord) -> Dict[str, Any]:
    document: Dict[str, Any] = {
        "id": record.expense_id,
        "title": record.title,
        "description": record.description,
        "amount": money_text(record.amount),
        "date": record.date,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }
    if record.category is not None:
        document["category"] = record.category
    return document


def deserialize_expense(document: Mapping[str, Any]) -> ExpenseRecord:
    """Accept both the titled and the legacy category-keyed expense shapes."""

    created_at = str(document.get("createdAt") or "")
    category = document.get("category")
    title = document.get("title") or category or ""
    return ExpenseRecord(
        expense_id=str(document["id"]),
        title=str(title),
        description=str(document.get("description") or ""),
        amount=to_decimal(document.get("amount")),
        date=str(document.get("date") or created_at[:10]),
        created_at=created_at,
        category=str(category) if category else None,
        created_by=document.get("createdBy"),
    )


def serialize_expense_category(record: ExpenseCategoryRecord) -> Dict[str, Any]:
    return {
        "id": record.category_id,
        "name": record.name,
        "description": record.description,
        "createdAt": record.created_at,
    }


def deserialize_expense_category(document: Mapping[str, Any]) -> ExpenseCategoryRecord:
    return ExpenseCategoryRecord(
        category_id=str(document["id"]),
        name=str(document.get("name", "")),
        description=str(document.get("description") or ""),
        created_at=str(document.get("createdAt") or ""),
    )


def serialize_cash_balance(record: CashBalanceRecord) -> Dict[str, Any]:
    return {"amount": money_text(record.amount), "lastUpdated": record.last_updated}


def deserialize_cash_balance(document: Mapping[str, Any]) -> CashBalanceRecord:
    return CashBalanceRecord(
        amount=to_decimal(document.get("amount")),
        last_updated=str(document.get("lastUpdated") or ""),
    )


def serialize_cash_adjustment(record: CashAdjustmentRecord) -> Dict[str, Any]:
    return {
        "id": record.adjustment_id,
        "amount": money_text(record.amount),
        "reason": record.reason,
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }


def deserialize_cash_adjustment(document: Mapping[str, Any]) -> CashAdjustmentRecord:
    return CashAdjustmentRecord(
        adjustment_id=str(document["id"]),
        amount=to_decimal(document.get("amount")),
        reason=str(document.get("reason") or ""),
        created_at=str(document.get("createdAt") or ""),
        created_by=document.get("createdBy"),
    )


def serialize_daily_cash_record(record: DailyCashRecord) -> Dict[str, Any]:
    return {
        "date": record.date,
        "openingBalance": money_text(record.opening_balance),
        "closingBalance": money_text(record.closing_balance),
        "totalIncome": money_text(record.total_income),
        "totalExpenses": money_text(record.total_expenses),
        "notes": record.notes,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
    }


def deserialize_daily_cash_record(document: Mapping[str, Any]) -> DailyCashRecord:
    return DailyCashRecord(
        date=str(document["date"]),
        opening_balance=to_decimal(document.get("openingBalance")),
        closing_balance=to_decimal(document.get("closingBalance")),
        total_income=to_decimal(document.get("totalIncome")),
        total_expenses=to_decimal(document.get("totalExpenses")),
        notes=document.get("notes"),
        created_at=str(document.get("createdAt") or ""),
        updated_at=str(document.get("updatedAt") or ""),
    )


def serialize_ranges(record: WaterQualityRanges) -> Dict[str, Any]:
    return {
        "pHMin": record.ph_min,
        "pHMax": record.ph_max,
        "tdsMax": record.tds_max,
        "chlorineMin": record.chlorine_min,
        "chlorineMax": record.chlorine_max,
        "warningTolerance": record.warning_tolerance,
    }


def deserialize_ranges(document: Mapping[str, Any]) -> WaterQualityRanges:
    return WaterQualityRanges(
        ph_min=float(document["pHMin"]),
        ph_max=float(document["pHMax"]),
        tds_max=float(document["tdsMax"]),
        chlorine_min=float(document["chlorineMin"]),
        chlorine_max=float(document["chlorineMax"]),
        warning_tolerance=float(document["warningTolerance"]),
    )


def serialize_water_quality_entry(record: WaterQualityEntryRecord) -> Dict[str, Any]:
    return {
        "id": record.entry_id,
        "date": record.date,
        "time": record.time,
        "pH": record.ph,
        "tds": record.tds,
        "chlorine": record.chlorine,
        "status": record.status,
        "alerts": list(record.alerts),
        "createdAt": record.created_at,
        "createdBy": record.created_by,
    }


def deserialize_water_quality_entry(document: Mapping[str, Any]) -> WaterQualityEntryRecord:
    return WaterQualityEntryRecord(
        entry_id=str(document["id"]),
        date=str(document.get("date", "")),
        time=str(document.get("time") or ""),
        ph=float(document.get("pH", 0)),
        tds=float(document.get("tds", 0)),
        chlorine=float(document.get("chlorine", 0)),
        status=str(document.get("status") or ""),
        alerts=tuple(str(alert) for alert in document.get("alerts") or ()),
        created_at=str(document.get("createdAt") or ""),
        created_by=document.get("createdBy"),
    )


def serialize_user(record: UserRecord) -> Dict[str, Any]:
    return {
        "id": record.user_id,
        "username": record.username,
        "passwordHash": record.password_hash,
        "role": record.role,
        "displayName": record.display_name,
        "email": record.email,
        "isActive": record.is_active,
        "createdAt": record.created_at,
        "updatedAt": record.updated_at,
        "createdBy": record.created_by,
    }


def deserialize_user(document: Mapping[str, Any]) -> UserRecord:
    username = str(document.get("username", ""))
    return UserRecord(
        user_id=str(document["id"]),
        username=username,
        password_hash=str(document.get("passwordHash") or ""),
        role=str(document.get("role") or ""),
        display_name=str(document.get("displayName") or username),
        email=str(document.get("email") or ""),
        is_active=bool(document.get("isActive", True)),
        created_at=str(document.get("createdAt") or ""),
        updated_at=document.get("updatedAt"),
        created_by=document.get("createdBy"),
    )


def serialize_settings(record: AppSettings) -> Dict[str, Any]:
    info = record.company_info
    return {
        "companyInfo": {
            "name": info.name,
            "address": info.address,
            "phone": info.phone,
            "email": info.email,
            "website": info.website,
        },
        "defaultLanguage": record.default_language,
    }


def deserialize_settings(document: Mapping[str, Any]) -> AppSettings:
    info = document.get("companyInfo") or {}
    return AppSettings(
        company_info=CompanyInfo(
            name=str(info.get("name") or DEFAULT_COMPANY_NAME),
            address=str(info.get("address") or ""),
            phone=str(info.get("phone") or ""),
            email=str(info.get("email") or ""),
            website=str(info.get("website") or ""),
        ),
        default_language=str(document.get("defaultLanguage") or Language.ENGLISH.value),
    )
