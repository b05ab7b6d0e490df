"""Command-line entry points for the Serafina ERP toolkit.

All orchestration in this module is limited to argparse wiring, role checks,
and translating command-line arguments into the command objects consumed by
the ledgers. Listings and reports are printed as CSV so they can be piped
into a spreadsheet.
"""

from __future__ import annotations

import argparse
import dataclasses
import getpass
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import (
    bottles,
    cash_book,
    catalog,
    core_logic,
    customers,
    expenses,
    log,
    money_ledger,
    reports,
    settings,
    users,
    water_quality,
)
from .constants import Language, PaymentMethod, Role


Subparsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured, gated, and executed."""

    name: str
    help_text: str
    register: Callable[[Subparsers], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    required_role: Optional[str] = Role.STAFF.value


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="serafina-cli",
        description="Command-line tools for the Serafina water delivery ERP.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    specs = [
        *register_session_commands(),
        *register_customer_commands(),
        *register_product_commands(),
        *register_sales_commands(),
        *register_expense_commands(),
        *register_cash_commands(),
        *register_quality_commands(),
        *register_admin_commands(),
    ]
    table = build_command_table(specs)
    for spec in table.values():
        spec.register(subparsers)
    return table


def _simple_spec(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    arguments: Callable[[argparse.ArgumentParser], None] = lambda parser: None,
    required_role: Optional[str] = Role.STAFF.value,
) -> CommandSpec:
    """Build a :class:`CommandSpec` whose registrar adds ``arguments``."""

    def registrar(action: Subparsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=execute,
        required_role=required_role,
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_session_commands() -> Sequence[CommandSpec]:
    """Declare sign-in related commands; none of them require a session."""

    def login_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--username", required=True)
        parser.add_argument("--password", default=None, help="Prompted for when omitted.")

    def language_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("code", nargs="?", choices=[member.value for member in Language])

    return [
        _simple_spec("login", "Sign in and store the session.", run_login, arguments=login_arguments, required_role=None),
        _simple_spec("logout", "Clear the stored session.", run_logout, required_role=None),
        _simple_spec("whoami", "Show the signed-in user.", run_whoami, required_role=None),
        _simple_spec(
            "init-admin",
            "Create the default admin account when no user exists.",
            run_init_admin,
            required_role=None,
        ),
        _simple_spec(
            "language",
            "Show or set the interface language.",
            run_language,
            arguments=language_arguments,
            required_role=None,
        ),
    ]


def register_customer_commands() -> Sequence[CommandSpec]:
    """Declare customer maintenance and lookup commands."""

    def customer_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
        parser.add_argument("--name", required=required)
        parser.add_argument("--phone", required=required)
        parser.add_argument("--address", required=required)
        parser.add_argument("--language", choices=[member.value for member in Language], default=None)
        parser.add_argument(
            "--price",
            action="append",
            default=None,
            metavar="PRODUCT_ID=AMOUNT",
            help="Per-product price override; may be repeated.",
        )

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        customer_arguments(parser, required=True)
        parser.add_argument("--opening-balance", default=None)

    def update_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        customer_arguments(parser, required=False)
        parser.add_argument("--opening-balance", default=None)

    def id_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)

    def list_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--query", default=None, help="Match on name or phone.")

    return [
        _simple_spec("add-customer", "Register a new customer.", run_add_customer, arguments=add_arguments),
        _simple_spec("update-customer", "Edit an existing customer.", run_update_customer, arguments=update_arguments),
        _simple_spec(
            "delete-customer",
            "Delete a customer.",
            run_delete_customer,
            arguments=id_arguments,
            required_role=Role.ADMIN.value,
        ),
        _simple_spec("customers", "List or search customers.", run_list_customers, arguments=list_arguments),
        _simple_spec(
            "customer-balance",
            "Show a customer's money and bottle balances.",
            run_customer_balance,
            arguments=id_arguments,
        ),
    ]


def register_product_commands() -> Sequence[CommandSpec]:
    """Declare catalogue commands."""

    def product_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
        parser.add_argument("--name", required=required)
        parser.add_argument("--size", required=required)
        parser.add_argument("--price", required=required)
        parser.add_argument("--description", default=None)
        parser.add_argument("--non-returnable", action="store_true", help="Bottles are not collected back.")

    def add_arguments(parser: argparse.ArgumentParser) -> None:
        product_arguments(parser, required=True)
        parser.add_argument("--inactive", action="store_true", help="Mark the product as inactive on creation.")

    def update_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        product_arguments(parser, required=False)
        parser.add_argument("--returnable", action="store_true", help="Mark the product as returnable.")

    def delete_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)

    def list_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--all", dest="include_inactive", action="store_true", help="Include inactive products.")

    admin = Role.ADMIN.value
    return [
        _simple_spec("add-product", "Add a product to the catalogue.", run_add_product, arguments=add_arguments, required_role=admin),
        _simple_spec("update-product", "Edit a product.", run_update_product, arguments=update_arguments, required_role=admin),
        _simple_spec(
            "delete-product",
            "Deactivate a product.",
            run_delete_product,
            arguments=delete_arguments,
            required_role=admin,
        ),
        _simple_spec("products", "List products.", run_list_products, arguments=list_arguments),
    ]


def register_sales_commands() -> Sequence[CommandSpec]:
    """Declare orders, bottle returns, and payments."""

    def order_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--price", default=None, help="Unit price; defaults to the customer's price.")
        parser.add_argument("--amount-paid", default="0")
        parser.add_argument("--notes", default="")

    def return_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument("--notes", default="")

    def payment_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument(
            "--method",
            choices=[member.value for member in PaymentMethod],
            default=PaymentMethod.CASH.value,
        )
        parser.add_argument("--notes", default="")
        parser.add_argument(
            "--allow-advance",
            action="store_true",
            help="Accept payments larger than the outstanding balance.",
        )

    def delete_payment_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--payment-id", required=True)

    def history_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--customer-id", default=None)

    return [
        _simple_spec("order", "Place an order and issue its bottles.", run_order, arguments=order_arguments),
        _simple_spec("return-bottles", "Record returned bottles.", run_return_bottles, arguments=return_arguments),
        _simple_spec("payment", "Record a customer payment.", run_payment, arguments=payment_arguments),
        _simple_spec(
            "delete-payment",
            "Delete a payment.",
            run_delete_payment,
            arguments=delete_payment_arguments,
            required_role=Role.ADMIN.value,
        ),
        _simple_spec("orders", "List orders.", run_list_orders, arguments=history_arguments),
        _simple_spec("payments", "List payments.", run_list_payments, arguments=history_arguments),
        _simple_spec("bottle-log", "List bottle transactions.", run_bottle_log, arguments=history_arguments),
    ]


def register_expense_commands() -> Sequence[CommandSpec]:
    """Declare expense and expense-category commands."""

    def expense_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--title", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--date", default=None, help="YYYY-MM-DD; defaults to today.")
        parser.add_argument("--category", default=None, help="Expense category id.")
        parser.add_argument("--description", default="")

    def delete_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--expense-id", required=True)

    def list_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--start", default=None)
        parser.add_argument("--end", default=None)
        parser.add_argument("--category", default=None)

    def category_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--category-id", default=None, help="Edit this category instead of adding one.")
        parser.add_argument("--name", required=True)
        parser.add_argument("--description", default="")

    def delete_category_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--category-id", required=True)

    admin = Role.ADMIN.value
    return [
        _simple_spec("add-expense", "Record an expense paid from cash.", run_add_expense, arguments=expense_arguments),
        _simple_spec(
            "delete-expense",
            "Delete an expense and restore its cash.",
            run_delete_expense,
            arguments=delete_arguments,
            required_role=admin,
        ),
        _simple_spec("expenses", "List expenses.", run_list_expenses, arguments=list_arguments),
        _simple_spec(
            "category",
            "Add or edit an expense category.",
            run_category,
            arguments=category_arguments,
            required_role=admin,
        ),
        _simple_spec(
            "delete-category",
            "Delete an unused expense category.",
            run_delete_category,
            arguments=delete_category_arguments,
            required_role=admin,
        ),
        _simple_spec("categories", "List expense categories.", run_list_categories),
    ]


def register_cash_commands() -> Sequence[CommandSpec]:
    """Declare cash-on-hand and daily cash book commands."""

    def adjust_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--amount", required=True, help="Signed correction.")
        parser.add_argument("--reason", required=True)

    def opening_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--amount", required=True)

    def close_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--notes", default=None)

    def summary_arguments(parser: argparse.ArgumentParser) -> None:
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--week", default=None, help="Week starting on this Sunday (YYYY-MM-DD).")
        group.add_argument("--month", default=None, help="YYYY-MM.")
        group.add_argument("--weekly", action="store_true", help="Every week with activity.")
        group.add_argument("--monthly", action="store_true", help="Every month with activity.")

    admin = Role.ADMIN.value
    return [
        _simple_spec("cash", "Show cash on hand.", run_cash),
        _simple_spec("adjust-cash", "Record a manual cash correction.", run_adjust_cash, arguments=adjust_arguments, required_role=admin),
        _simple_spec("reconcile-cash", "Recompute cash on hand from the ledgers.", run_reconcile_cash, required_role=admin),
        _simple_spec("opening-balance", "Set today's opening cash balance.", run_opening_balance, arguments=opening_arguments),
        _simple_spec("close-day", "Refresh today's cash book record.", run_close_day, arguments=close_arguments),
        _simple_spec("cash-summary", "Show weekly or monthly cash summaries.", run_cash_summary, arguments=summary_arguments),
    ]


def register_quality_commands() -> Sequence[CommandSpec]:
    """Declare water-quality logging commands."""

    def log_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", required=True)
        parser.add_argument("--time", default=None, help="HH:MM; defaults to the current local time.")
        parser.add_argument("--ph", required=True)
        parser.add_argument("--tds", required=True)
        parser.add_argument("--chlorine", required=True)

    def list_arguments(parser: argparse.ArgumentParser) -> None:
        group = parser.add_mutually_exclusive_group()
        group.add_argument("--date", default=None)
        group.add_argument("--alerts", action="store_true", help="Only warning and critical readings.")
        group.add_argument("--critical", action="store_true", help="Only critical readings.")

    def ranges_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--ph-min", dest="pHMin", default=None)
        parser.add_argument("--ph-max", dest="pHMax", default=None)
        parser.add_argument("--tds-max", dest="tdsMax", default=None)
        parser.add_argument("--chlorine-min", dest="chlorineMin", default=None)
        parser.add_argument("--chlorine-max", dest="chlorineMax", default=None)
        parser.add_argument("--warning-tolerance", dest="warningTolerance", default=None)

    return [
        _simple_spec("log-quality", "Log a water-quality reading.", run_log_quality, arguments=log_arguments),
        _simple_spec("quality", "List water-quality readings.", run_list_quality, arguments=list_arguments),
        _simple_spec(
            "quality-ranges",
            "Show or change the safe water-quality ranges.",
            run_quality_ranges,
            arguments=ranges_arguments,
            required_role=Role.ADMIN.value,
        ),
    ]


REPORT_CHOICES = ("bottles", "outstanding-bottles", "dues", "cash-flow", "activity", "summary")


def register_admin_commands() -> Sequence[CommandSpec]:
    """Declare reports, account management, and settings."""

    def report_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("kind", choices=REPORT_CHOICES)
        parser.add_argument("--start", default=None, help="Cash-flow start date.")
        parser.add_argument("--end", default=None, help="Cash-flow end date.")
        parser.add_argument("--min-days", type=int, default=None, choices=[30, 60, 90])
        parser.add_argument("--output", type=Path, default=None, help="Write CSV to this file.")

    def user_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--username", required=True)
        parser.add_argument("--password", required=True)
        parser.add_argument("--role", choices=[member.value for member in Role], default=Role.STAFF.value)
        parser.add_argument("--display-name", default="")
        parser.add_argument("--email", default="")

    def deactivate_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--user-id", required=True)

    def password_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--user-id", required=True)
        parser.add_argument("--password", required=True)

    def settings_arguments(parser: argparse.ArgumentParser) -> None:
        for field_name in settings.COMPANY_FIELDS:
            parser.add_argument(f"--company-{field_name}", dest=field_name, default=None)
        parser.add_argument("--default-language", choices=list(settings.SUPPORTED_LANGUAGES), default=None)

    admin = Role.ADMIN.value
    return [
        _simple_spec("report", "Produce a business report.", run_report, arguments=report_arguments, required_role=admin),
        _simple_spec("add-user", "Create an operator account.", run_add_user, arguments=user_arguments, required_role=admin),
        _simple_spec(
            "deactivate-user",
            "Disable an operator account.",
            run_deactivate_user,
            arguments=deactivate_arguments,
            required_role=admin,
        ),
        _simple_spec(
            "set-password",
            "Change an operator's password.",
            run_set_password,
            arguments=password_arguments,
            required_role=admin,
        ),
        _simple_spec("users", "List operator accounts.", run_list_users, required_role=admin),
        _simple_spec("settings", "Show or change company settings.", run_settings, arguments=settings_arguments, required_role=admin),
    ]


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Check the session role, then dispatch to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    core_logic.ensure_schema_version(context)
    if spec.required_role is not None:
        users.require_role(context, spec.required_role)
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _actor(context: core_logic.RuntimeContext) -> Optional[str]:
    user = users.current_user(context)
    return user.user_id if user else None


def _money(context: core_logic.RuntimeContext, amount: Any) -> str:
    return reports.format_currency(amount, context.settings.currency_prefix)


def render_rows(rows: Sequence[Any], headers: Optional[Sequence[str]] = None) -> str:
    """Render dataclass rows as CSV, deriving headers from the first row."""
    if not rows:
        return ""
    if headers is None:
        headers = [field.name for field in dataclasses.fields(rows[0])]
    return reports.export_to_csv(rows, headers)


def emit_rows(rows: Sequence[Any], output: Optional[Path] = None) -> None:
    """Print ``rows`` as CSV, or write them to ``output`` when given."""
    text = render_rows(rows)
    if output is not None:
        output.expanduser().write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {len(rows)} row(s) to {output}")
    elif text:
        print(text)
    else:
        print("No records.")


def parse_price_overrides(raw: Optional[Sequence[str]]) -> Optional[Dict[str, str]]:
    """Turn repeated ``PRODUCT_ID=AMOUNT`` options into a mapping."""
    if raw is None:
        return None
    prices: Dict[str, str] = {}
    for item in raw:
        product_id, separator, amount = item.partition("=")
        if not separator or not product_id.strip():
            raise core_logic.ValidationError(f"Price override must look like PRODUCT_ID=AMOUNT: {item!r}")
        prices[product_id.strip()] = amount.strip()
    return prices


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def run_login(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    session = users.sign_in(context, args.username, password)
    print(f"Signed in as {session.user.display_name} ({session.user.role})")
    return 0


def run_logout(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    users.sign_out(context)
    print("Signed out")
    return 0


def run_whoami(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    user = users.current_user(context)
    if user is None:
        print("Not signed in")
        return 1
    print(f"{user.username} ({user.role}) {user.display_name}")
    return 0


def run_init_admin(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    admin = users.initialize_default_admin(context)
    if admin is None:
        print("Users already exist; nothing to do")
    else:
        print(f"Created default admin account '{admin.username}'")
    return 0


def run_language(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.code:
        settings.set_language(context, args.code)
    print(settings.get_language(context))
    return 0


# ---------------------------------------------------------------------------
# Customers & products
# ---------------------------------------------------------------------------


def translate_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> customers.CustomerCommand:
    """Translate CLI args into a customer command object."""
    return customers.CustomerCommand(
        name=args.name,
        phone=args.phone,
        address=args.address,
        preferred_language=args.language or Language.ENGLISH.value,
        product_prices=parse_price_overrides(args.price),
        opening_balance=args.opening_balance,
        created_by=_actor(context),
    )


def translate_update_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> customers.CustomerCommand:
    """Overlay the supplied CLI args on the stored customer."""
    existing = customers.get_customer(context, args.customer_id)
    return customers.CustomerCommand(
        name=args.name if args.name is not None else existing.name,
        phone=args.phone if args.phone is not None else existing.phone,
        address=args.address if args.address is not None else existing.address,
        preferred_language=args.language or existing.preferred_language,
        product_prices=parse_price_overrides(args.price),
        opening_balance=args.opening_balance,
    )


def run_add_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = customers.create_customer(context, translate_add_customer(context, args))
    print(customer.customer_id)
    return 0


def run_update_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customers.update_customer(context, args.customer_id, translate_update_customer(context, args))
    return 0


def run_delete_customer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customers.delete_customer(context, args.customer_id)
    return 0


def run_list_customers(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    emit_rows(customers.search_customers(context, args.query))
    return 0


def run_customer_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customer = customers.get_customer(context, args.customer_id)
    balance = money_ledger.customer_balance(context, customer.customer_id)
    outstanding = bottles.returnable_outstanding(context, customer.customer_id)
    print(f"{customer.name} ({customer.customer_id})")
    print(f"Opening balance: {_money(context, balance.opening_balance)}")
    print(f"Orders:          {_money(context, balance.total_orders)}")
    print(f"Payments:        {_money(context, balance.total_payments)}")
    print(f"Balance due:     {_money(context, balance.balance)}")
    print(f"Bottles out:     {outstanding}")
    return 0


def translate_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> catalog.ProductCommand:
    """Translate CLI args into a product command object."""
    return catalog.ProductCommand(
        name=args.name,
        size=args.size,
        price=args.price,
        description=args.description or "",
        is_active=not getattr(args, "inactive", False),
        is_returnable=not args.non_returnable,
        created_by=_actor(context),
    )


def translate_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> catalog.ProductCommand:
    """Overlay the supplied CLI args on the stored product."""
    existing = catalog.get_product(context, args.product_id)
    is_returnable = existing.is_returnable
    if args.non_returnable:
        is_returnable = False
    elif args.returnable:
        is_returnable = True
    return catalog.ProductCommand(
        name=args.name if args.name is not None else existing.name,
        size=args.size if args.size is not None else existing.size,
        price=args.price if args.price is not None else existing.price,
        description=args.description if args.description is not None else existing.description,
        is_active=existing.is_active,
        is_returnable=is_returnable,
    )


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product = catalog.create_product(context, translate_product(context, args))
    print(product.product_id)
    return 0


def run_update_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    catalog.update_product(context, args.product_id, translate_update_product(context, args))
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    catalog.soft_delete_product(context, args.product_id)
    return 0


def run_list_products(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    emit_rows(catalog.list_products(context, include_inactive=args.include_inactive))
    return 0


# ---------------------------------------------------------------------------
# Orders, returns & payments
# ---------------------------------------------------------------------------


def translate_order(context: core_logic.RuntimeContext, args: argparse.Namespace) -> money_ledger.PlaceOrderCommand:
    """Translate CLI args into a place-order command object."""
    return money_ledger.PlaceOrderCommand(
        customer_id=args.customer_id,
        product_id=args.product_id,
        quantity=args.quantity,
        price=args.price,
        amount_paid=args.amount_paid,
        notes=args.notes,
        created_by=_actor(context),
    )


def translate_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> money_ledger.PaymentCommand:
    """Translate CLI args into a payment command object."""
    return money_ledger.PaymentCommand(
        customer_id=args.customer_id,
        amount=args.amount,
        payment_method=args.method,
        notes=args.notes,
        created_by=_actor(context),
    )


def run_order(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = money_ledger.place_order(context, translate_order(context, args))
    order = result.order
    print(order.order_id)
    print(f"Total: {_money(context, order.total_amount)}  Outstanding: {_money(context, order.outstanding_amount)}")
    return 0


def run_return_bottles(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    transaction = bottles.record_return(
        context,
        args.customer_id,
        args.quantity,
        notes=args.notes,
        created_by=_actor(context),
    )
    print(transaction.transaction_id)
    return 0


def run_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    customers.get_customer(context, args.customer_id)
    ceiling = None
    if not args.allow_advance:
        ceiling = money_ledger.customer_balance(context, args.customer_id).balance
    payment = money_ledger.record_payment(context, translate_payment(context, args), max_amount=ceiling)
    print(payment.payment_id)
    return 0


def run_delete_payment(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    money_ledger.delete_payment(context, args.payment_id)
    return 0


def run_list_orders(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.customer_id:
        emit_rows(money_ledger.customer_orders(context, args.customer_id))
    else:
        emit_rows(money_ledger.list_orders(context))
    return 0


def run_list_payments(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.customer_id:
        emit_rows(money_ledger.customer_payments(context, args.customer_id))
    else:
        emit_rows(money_ledger.list_payments(context))
    return 0


def run_bottle_log(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.customer_id:
        emit_rows(bottles.customer_transactions(context, args.customer_id))
    else:
        emit_rows(bottles.list_bottle_transactions(context))
    return 0


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


def translate_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> expenses.ExpenseCommand:
    """Translate CLI args into an expense command object."""
    return expenses.ExpenseCommand(
        title=args.title,
        amount=args.amount,
        date=args.date,
        description=args.description,
        category=args.category,
        created_by=_actor(context),
    )


def run_add_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expense = expenses.create_expense(context, translate_expense(context, args))
    print(expense.expense_id)
    return 0


def run_delete_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expenses.delete_expense(context, args.expense_id)
    return 0


def run_list_expenses(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.category:
        rows = expenses.expenses_by_category(context, args.category)
    elif args.start or args.end:
        rows = expenses.expenses_in_range(context, args.start or "0001-01-01", args.end or core_logic.today())
    else:
        rows = expenses.list_expenses(context)
    emit_rows(rows)
    return 0


def run_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.category_id:
        category = expenses.update_category(context, args.category_id, args.name, args.description)
    else:
        category = expenses.create_category(context, args.name, args.description)
    print(category.category_id)
    return 0


def run_delete_category(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    expenses.delete_category(context, args.category_id)
    return 0


def run_list_categories(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    emit_rows(expenses.list_categories(context))
    return 0


# ---------------------------------------------------------------------------
# Cash
# ---------------------------------------------------------------------------


def run_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    print(_money(context, money_ledger.cash_on_hand(context)))
    return 0


def run_adjust_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    adjustment = money_ledger.adjust_cash(context, args.amount, args.reason, created_by=_actor(context))
    print(f"{adjustment.adjustment_id}: cash on hand {_money(context, money_ledger.cash_on_hand(context))}")
    return 0


def run_reconcile_cash(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    drift = money_ledger.reconcile_cash(context)
    print(f"Corrected drift: {_money(context, drift)}")
    print(f"Cash on hand:    {_money(context, money_ledger.cash_on_hand(context))}")
    return 0


def run_opening_balance(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = cash_book.set_daily_opening_balance(context, args.amount)
    emit_rows([record])
    return 0


def run_close_day(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    record = cash_book.update_today_record(context, notes=args.notes)
    emit_rows([record])
    return 0


def run_cash_summary(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.week:
        rows: Sequence[Any] = [cash_book.weekly_summary(context, args.week)]
    elif args.month:
        rows = [cash_book.monthly_summary(context, args.month)]
    elif args.weekly:
        rows = cash_book.all_weekly_summaries(context)
    elif args.monthly:
        rows = cash_book.all_monthly_summaries(context)
    else:
        rows = [cash_book.current_week_summary(context)]
    emit_rows(rows)
    return 0


# ---------------------------------------------------------------------------
# Water quality
# ---------------------------------------------------------------------------


def translate_quality(context: core_logic.RuntimeContext, args: argparse.Namespace) -> water_quality.WaterQualityCommand:
    """Translate CLI args into a water-quality command object."""
    return water_quality.WaterQualityCommand(
        date=args.date,
        time=args.time,
        ph=args.ph,
        tds=args.tds,
        chlorine=args.chlorine,
        created_by=_actor(context),
    )


def run_log_quality(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entry = water_quality.record_entry(context, translate_quality(context, args))
    print(f"{entry.entry_id}: {entry.status}")
    for alert in entry.alerts:
        print(f"  {alert}")
    return 0


def run_list_quality(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    if args.date:
        rows = water_quality.entries_for_date(context, args.date)
    elif args.alerts:
        rows = water_quality.entries_with_alerts(context)
    elif args.critical:
        rows = water_quality.critical_entries(context)
    else:
        rows = water_quality.list_entries(context)
    emit_rows(rows)
    return 0


def run_quality_ranges(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    keys = ("pHMin", "pHMax", "tdsMax", "chlorineMin", "chlorineMax", "warningTolerance")
    changes = {key: getattr(args, key) for key in keys if getattr(args, key) is not None}
    ranges = water_quality.update_ranges(context, changes) if changes else water_quality.load_ranges(context)
    emit_rows([ranges])
    return 0


# ---------------------------------------------------------------------------
# Reports, users & settings
# ---------------------------------------------------------------------------


def run_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    kind = args.kind
    if kind == "bottles":
        rows: Sequence[Any] = reports.customer_bottles_report(context)
    elif kind == "outstanding-bottles":
        report = reports.outstanding_bottles_report(context)
        print(f"Total outstanding bottles: {report.total_outstanding}")
        rows = report.customers
    elif kind == "dues":
        rows = reports.dues_report(context)
    elif kind == "cash-flow":
        if not args.start or not args.end:
            raise core_logic.ValidationError("Cash-flow report needs --start and --end")
        flow = reports.cash_flow_report(context, args.start, args.end)
        print(
            f"Income {_money(context, flow.total_income)}, expenses {_money(context, flow.total_expenses)}, "
            f"net {_money(context, flow.net_cash_flow)}"
        )
        rows = flow.entries
    elif kind == "activity":
        rows = reports.customer_activity_report(context, args.min_days)
    else:
        rows = [reports.business_summary(context)]
    emit_rows(rows, args.output)
    return 0


def run_add_user(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    user = users.create_user(
        context,
        users.UserCommand(
            username=args.username,
            password=args.password,
            role=args.role,
            display_name=args.display_name,
            email=args.email,
            created_by=_actor(context),
        ),
    )
    print(user.user_id)
    return 0


def run_deactivate_user(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    users.deactivate_user(context, args.user_id)
    return 0


def run_set_password(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    existing = users.get_user(context, args.user_id)
    users.update_user(
        context,
        existing.user_id,
        users.UserCommand(
            username=existing.username,
            role=existing.role,
            password=args.password,
            display_name=existing.display_name,
            email=existing.email,
            is_active=existing.is_active,
        ),
    )
    return 0


def run_list_users(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    rows = [users.to_auth_user(user) for user in users.list_users(context)]
    emit_rows(rows)
    return 0


def run_settings(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    changes = {name: getattr(args, name) for name in settings.COMPANY_FIELDS if getattr(args, name) is not None}
    if changes:
        settings.update_company_info(context, changes)
    if args.default_language:
        settings.update_default_language(context, args.default_language)
    current = settings.load_settings(context)
    emit_rows([current.company_info])
    print(f"Default language: {current.default_language}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.PersistenceError):
        log.error("%s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    core_logic.persist_context(context)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
