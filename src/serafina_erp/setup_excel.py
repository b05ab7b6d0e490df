"""Utility for initializing the Serafina ERP store workbook.

The module doubles as a script (``serafina-setup``) and as a library used by
tests. It lays out one worksheet per collection plus the ``Singletons`` sheet
and, unless told otherwise, seeds the default admin account and the default
expense categories.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Iterable, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from . import log
from .constants import COLLECTION_KEYS, DEFAULT_COMPANY_NAME, EXPECTED_SCHEMA_VERSION, StorageKey
from .core_logic import RuntimeContext
from .data_manager import (
    COLLECTION_HEADERS,
    CONFIG_FILE_NAME,
    SINGLETON_HEADERS,
    SINGLETONS_SHEET,
    ConfigSettings,
    WorkbookStore,
    parse_settings,
    read_config,
    save_workbook,
)
from .expenses import list_categories
from .users import initialize_default_admin


def load_settings(config_path: Path) -> ConfigSettings:
    """Read ``config.ini`` and require a workbook-backed ``DataFile``.

    Relative paths inside the config file are resolved against the config
    file's directory.

    Raises:
        FileNotFoundError: If the configuration file is missing.
        KeyError: If a required entry is missing.
        ValueError: If the configuration selects the in-memory store.
    """

    config_path = config_path.expanduser().resolve()
    settings = parse_settings(read_config(config_path), base_path=config_path.parent)
    if settings.data_file is None:
        raise ValueError("DataFile is ':memory:'; there is no workbook to create")
    return settings


def create_store_workbook(
    destination: Path,
    *,
    settings: ConfigSettings | None = None,
    collections: Iterable[StorageKey] = COLLECTION_KEYS,
    seed_defaults: bool = True,
    overwrite: bool = False,
) -> Path:
    """Create the store workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists. ``settings`` is only
    needed for seeding and defaults to a bare configuration pointing at
    ``destination``.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing store workbook: {destination}")

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    layout = [(key.value, COLLECTION_HEADERS) for key in collections]
    layout.append((SINGLETONS_SHEET, SINGLETON_HEADERS))
    for sheet_name, columns in layout:
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if seed_defaults:
        if settings is None:
            settings = ConfigSettings(
                data_file=destination,
                company_name=DEFAULT_COMPANY_NAME,
                schema_version=EXPECTED_SCHEMA_VERSION,
            )
        context = RuntimeContext(settings=settings, store=WorkbookStore(workbook))
        initialize_default_admin(context)
        list_categories(context)

    save_workbook(workbook, destination)
    log.info("Created store workbook '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False, seed_defaults: bool = True) -> Path:
    """Create the workbook named by ``config.ini``."""

    settings = load_settings(config_path)
    return create_store_workbook(
        Path(settings.data_file),
        settings=settings,
        seed_defaults=seed_defaults,
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Serafina ERP data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE_NAME,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    parser.add_argument(
        "--no-seed",
        dest="seed_defaults",
        action="store_false",
        help="Skip the default admin account and expense categories.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Serafina ERP Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force, seed_defaults=args.seed_defaults)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1
    except RuntimeError as exc:
        print(f"\n[ERROR] {exc}")
        return 1

    print(f"\n[SUCCESS] Created store workbook at '{output_path}'.")
    if args.seed_defaults:
        print("Sign in with the default admin account (admin/admin) and change its password.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
