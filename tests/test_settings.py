"""Tests for application settings and the UI language."""

from __future__ import annotations

import pytest

from serafina_erp import core_logic, settings
from serafina_erp.constants import StorageKey


def test_defaults_come_from_config(context):
    current = settings.load_settings(context)

    assert current.company_info.name == "Test Water Co"
    assert current.default_language == "en"
    assert context.store.get(StorageKey.APP_SETTINGS) is None


def test_update_company_info_merges_fields(context):
    settings.update_company_info(context, {"phone": " 042-555 ", "email": "info@example.com"})
    updated = settings.update_company_info(context, {"address": "Canal Road", "phone": None})

    info = updated.company_info
    assert (info.name, info.phone, info.email, info.address) == (
        "Test Water Co",
        "042-555",
        "info@example.com",
        "Canal Road",
    )
    assert settings.load_settings(context) == updated


@pytest.mark.parametrize(
    ("changes", "message"),
    [({"name": "  "}, "Company name is required"), ({"fax": "1"}, "Unknown company field")],
)
def test_update_company_info_validation(context, changes, message):
    with pytest.raises(core_logic.ValidationError, match=message):
        settings.update_company_info(context, changes)


def test_update_default_language(context):
    assert settings.update_default_language(context, "ur").default_language == "ur"
    assert settings.get_language(context) == "ur"

    with pytest.raises(core_logic.ValidationError, match="Invalid language code"):
        settings.update_default_language(context, "de")


def test_language_preference(context):
    assert settings.set_language(context, "ur") == "ur"
    assert settings.get_language(context) == "ur"


def test_unknown_stored_language_falls_back(context):
    context.store.put(StorageKey.LANGUAGE, "xx")

    assert settings.get_language(context) == "en"
