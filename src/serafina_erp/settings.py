"""Application settings (company details, default language) and the UI language."""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Optional

from . import log
from .constants import Language, StorageKey
from .core_logic import RuntimeContext, ValidationError
from .data_manager import AppSettings, CompanyInfo, deserialize_settings, serialize_settings


COMPANY_FIELDS = ("name", "address", "phone", "email", "website")
SUPPORTED_LANGUAGES = tuple(member.value for member in Language)


def default_settings(context: RuntimeContext) -> AppSettings:
    """Settings used before anything is saved, seeded from ``config.ini``."""

    return AppSettings(
        company_info=CompanyInfo(name=context.settings.company_name),
        default_language=context.settings.default_language,
    )


def load_settings(context: RuntimeContext) -> AppSettings:
    document = context.store.get(StorageKey.APP_SETTINGS)
    if document is None:
        return default_settings(context)
    return deserialize_settings(document)


def save_settings(context: RuntimeContext, settings: AppSettings) -> AppSettings:
    context.store.put(StorageKey.APP_SETTINGS, serialize_settings(settings))
    return settings


def update_company_info(context: RuntimeContext, changes: Mapping[str, Optional[str]]) -> AppSettings:
    """Merge ``changes`` into the stored company details.

    Keys that are absent or ``None`` keep their current value.

    Raises:
        ValidationError: For unknown fields or a blank company name.
    """

    unknown = set(changes) - set(COMPANY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown company field(s): {', '.join(sorted(unknown))}")
    current = load_settings(context)
    values = {key: value.strip() for key, value in changes.items() if value is not None}
    if "name" in values and not values["name"]:
        raise ValidationError("Company name is required")
    updated = replace(current, company_info=replace(current.company_info, **values))
    save_settings(context, updated)
    log.info("Updated company info fields: %s", ", ".join(sorted(values)) or "none")
    return updated


def _require_language(language: str) -> str:
    if language not in SUPPORTED_LANGUAGES:
        log.error("Unsupported language code: %r", language)
        raise ValidationError("Invalid language code")
    return language


def update_default_language(context: RuntimeContext, language: str) -> AppSettings:
    updated = replace(load_settings(context), default_language=_require_language(language))
    save_settings(context, updated)
    log.info("Default language set to '%s'", language)
    return updated


def get_language(context: RuntimeContext) -> str:
    """Stored UI language, falling back to the default for unknown values."""

    saved = context.store.get(StorageKey.LANGUAGE)
    if saved in SUPPORTED_LANGUAGES:
        return saved
    return load_settings(context).default_language


def set_language(context: RuntimeContext, language: str) -> str:
    context.store.put(StorageKey.LANGUAGE, _require_language(language))
    log.info("UI language set to '%s'", language)
    return language
