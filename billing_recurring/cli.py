"""
Command-line interface for recurring invoices.

Usage:
    billing-recurring init-db
    billing-recurring client-add --name "Acme Corp" --email billing@acme.test
    billing-recurring add --client <id> --amount 1000 --frequency monthly --day-of-month 15
    billing-recurring ls
    billing-recurring generate [--all] [--dry-run] [--id <template id>]
    billing-recurring update <id> [--amount N] [--frequency F] ...
    billing-recurring pause <id>
    billing-recurring resume <id>
    billing-recurring delete <id> [--yes]
    billing-recurring run [--interval SECONDS]

Exit codes:
    0  success, including generation runs with per-template failures
    1  unknown id, invalid input, or a fatal selection error
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from billing_config import get_active_settings
from billing_config.schema import BillingSettings
from billing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from billing_kernel.db.types import money_from_str
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    BillingError,
    ReferenceDataError,
    SelectionError,
    TemplateError,
)
from billing_kernel.logging_config import configure_logging, get_logger
from billing_recurring.domain.types import (
    GenerationRunResult,
    GenerationStatus,
    RecurringFrequency,
    RecurringTemplate,
    TemplateGenerationResult,
)
from billing_recurring.models.invoice import ClientModel
from billing_recurring.orchestrator import RecurringInvoiceOrchestrator

logger = get_logger("recurring.cli")

_DESCRIPTION_WIDTH = 20


# =============================================================================
# Argument parsing
# =============================================================================


def _uuid(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a valid id: {value!r}") from exc


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be greater than zero: {value!r}")
    return number


def _amount(value: str) -> Decimal:
    try:
        return money_from_str(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _add_template_fields(parser: argparse.ArgumentParser, required: bool) -> None:
    frequencies = [f.value for f in RecurringFrequency]
    parser.add_argument("--amount", type=_amount, required=required, help="Amount per invoice")
    parser.add_argument("--frequency", choices=frequencies, required=required)
    parser.add_argument("--currency", help="Three-letter currency code")
    parser.add_argument("--description", help="Line item text")
    parser.add_argument(
        "--day-of-month", type=int, help="Anchor for monthly/quarterly/yearly (1-28)",
    )
    parser.add_argument(
        "--day-of-week", type=int, help="Anchor for weekly/biweekly (0=Sunday ... 6=Saturday)",
    )
    parser.add_argument("--contract", type=_uuid, help="Contract id")
    parser.add_argument(
        "--auto-pdf", action=argparse.BooleanOptionalAction, default=None,
        help="Render a PDF after generation",
    )
    parser.add_argument(
        "--auto-send", action=argparse.BooleanOptionalAction, default=None,
        help="Email the invoice after generation",
    )
    parser.add_argument("--email-app", help="Mail application used for sending")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="billing-recurring",
        description="Manage recurring invoice templates and generate due invoices.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="YAML settings file (default: $BILLING_CONFIG)")
    parser.add_argument("--database-url", help="Override the configured database URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    client_add = sub.add_parser("client-add", help="Register a client")
    client_add.add_argument("--name", required=True)
    client_add.add_argument("--email")

    add = sub.add_parser("add", help="Create a recurring template")
    add.add_argument("--client", type=_uuid, required=True, help="Client id")
    _add_template_fields(add, required=True)

    sub.add_parser("ls", help="List recurring templates")

    generate = sub.add_parser("generate", help="Generate invoices for due templates")
    generate.add_argument("--all", action="store_true", help="Ignore due dates")
    generate.add_argument("--dry-run", action="store_true", help="Preview only, write nothing")
    generate.add_argument("--id", type=_uuid, help="Generate a single template now")

    update = sub.add_parser("update", help="Change a recurring template")
    update.add_argument("template_id", type=_uuid)
    _add_template_fields(update, required=False)

    for name, text in (("pause", "Pause a template"), ("resume", "Resume a paused template")):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("template_id", type=_uuid)

    delete = sub.add_parser("delete", help="Delete a template (invoices are kept)")
    delete.add_argument("template_id", type=_uuid)
    delete.add_argument("--yes", action="store_true", help="Skip confirmation")

    run = sub.add_parser("run", help="Run the generation scheduler until interrupted")
    run.add_argument("--interval", type=_positive_int, help="Seconds between generation runs")

    return parser


# =============================================================================
# Output helpers
# =============================================================================


def _truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[: width - 3] + "..."


def _print_templates(templates: Sequence[RecurringTemplate]) -> None:
    if not templates:
        print("No recurring invoices found. Create one with 'billing-recurring add'.")
        return
    header = (
        f"{'ID':<36}  {'CLIENT':<20}  {'AMOUNT':>14}  {'FREQUENCY':<10}  "
        f"{'NEXT DATE':<10}  {'STATUS':<6}  {'GENERATED':>9}  DESCRIPTION"
    )
    print(header)
    for t in templates:
        amount = f"{t.amount:.2f} {t.currency}"
        print(
            f"{str(t.template_id):<36}  {_truncate(t.client_name or '-', 20):<20}  "
            f"{amount:>14}  {t.frequency:<10}  {t.next_generation_date:%Y-%m-%d}  "
            f"{t.status.value:<6}  {t.generated_count:>9}  "
            f"{_truncate(t.description, _DESCRIPTION_WIDTH)}"
        )


def _print_template_result(result: TemplateGenerationResult) -> None:
    client = result.client_name or str(result.template_id)
    if result.status == GenerationStatus.PREVIEWED:
        print(f"  would generate: {client} (due {result.next_generation_date:%Y-%m-%d})")
    elif result.status == GenerationStatus.GENERATED and result.invoice is not None:
        print(
            f"  generated {result.invoice.invoice_number} for {client}, "
            f"due {result.invoice.due_date:%Y-%m-%d}, "
            f"next {result.next_generation_date:%Y-%m-%d}"
        )
        for warning in result.warnings:
            print(f"    warning: {warning}")
    else:
        print(f"  FAILED {client}: {result.error}")


def _print_run(result: GenerationRunResult) -> None:
    if not result.results:
        print("No recurring invoices are due.")
        return
    for item in result.results:
        _print_template_result(item)
    if result.dry_run:
        print(f"Dry run: {result.selected} invoice(s) would be generated.")
    else:
        print(
            f"Generated {result.generated} of {result.selected} invoice(s); "
            f"{result.failed} failed, {len(result.warnings)} warning(s)."
        )


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N]: ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# =============================================================================
# Commands
# =============================================================================


def _template_fields(args: argparse.Namespace) -> dict:
    return {
        "amount": args.amount,
        "frequency": args.frequency,
        "currency": args.currency,
        "description": args.description,
        "day_of_month": args.day_of_month,
        "day_of_week": args.day_of_week,
        "contract_id": args.contract,
        "auto_pdf": args.auto_pdf,
        "auto_send": args.auto_send,
        "email_app": args.email_app,
    }


def _cmd_client_add(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        client = ClientModel(name=args.name, email=args.email)
        session.add(client)
        session.flush()
        client_id = client.id
    print(f"Created client {client_id} ({args.name})")
    return 0


def _cmd_add(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    fields = _template_fields(args)
    with session_scope() as session:
        template = orchestrator.create_store(session).create(
            args.client,
            fields.pop("amount"),
            fields.pop("frequency"),
            description=fields.pop("description") or "",
            auto_pdf=bool(fields.pop("auto_pdf")),
            auto_send=bool(fields.pop("auto_send")),
            **fields,
        )
    print(
        f"Created recurring invoice {template.template_id}: "
        f"{template.amount:.2f} {template.currency} {template.frequency}, "
        f"next {template.next_generation_date:%Y-%m-%d}"
    )
    return 0


def _cmd_ls(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        templates = orchestrator.create_selector(session).list_templates()
    _print_templates(templates)
    return 0


def _cmd_generate(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    if args.id is not None:
        result = orchestrator.generate_template(args.id, dry_run=args.dry_run)
        _print_template_result(result)
        return 0
    _print_run(orchestrator.generate_due(include_all=args.all, dry_run=args.dry_run))
    return 0


def _cmd_update(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        template = orchestrator.create_store(session).update(
            args.template_id, **_template_fields(args),
        )
    print(
        f"Updated recurring invoice {template.template_id}, "
        f"next {template.next_generation_date:%Y-%m-%d}"
    )
    return 0


def _cmd_pause(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        orchestrator.create_store(session).pause(args.template_id)
    print(f"Paused recurring invoice {args.template_id}")
    return 0


def _cmd_resume(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        template = orchestrator.create_store(session).resume(args.template_id)
    print(
        f"Resumed recurring invoice {args.template_id}, "
        f"next {template.next_generation_date:%Y-%m-%d}"
    )
    return 0


def _cmd_delete(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    with session_scope() as session:
        store = orchestrator.create_store(session)
        template = store.get(args.template_id)
        if not args.yes and not _confirm(
            f"Delete recurring invoice {template.template_id}? Existing invoices are kept."
        ):
            print("Cancelled.")
            return 0
        store.delete(args.template_id)
    print(f"Deleted recurring invoice {args.template_id}")
    return 0


def _cmd_run(args: argparse.Namespace, orchestrator: RecurringInvoiceOrchestrator) -> int:
    task = orchestrator.register_default_tasks(args.interval)
    if task is None:
        print("Scheduler is disabled in settings.", file=sys.stderr)
        return 1

    stop_requested = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop_requested.set())

    orchestrator.start()
    print(f"Generating recurring invoices every {task.interval_seconds}s. Ctrl-C to stop.")
    try:
        while not stop_requested.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        orchestrator.stop()
    print("Scheduler stopped.")
    return 0


_COMMANDS = {
    "client-add": _cmd_client_add,
    "add": _cmd_add,
    "ls": _cmd_ls,
    "generate": _cmd_generate,
    "update": _cmd_update,
    "pause": _cmd_pause,
    "resume": _cmd_resume,
    "delete": _cmd_delete,
    "run": _cmd_run,
}


# =============================================================================
# Entry point
# =============================================================================


def _load_settings(args: argparse.Namespace) -> BillingSettings:
    settings = get_active_settings(args.config)
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)
    return settings


def main(argv: Sequence[str] | None = None, clock: Clock | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = _load_settings(args)
    except (BillingError, OSError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    configure_logging(level=settings.log_level)
    init_engine_from_url(settings.database_url)

    if args.command == "init-db":
        create_tables()
        print("Database initialized.")
        return 0

    orchestrator = RecurringInvoiceOrchestrator(
        get_session_factory(), clock or SystemClock(), settings,
    )
    try:
        return _COMMANDS[args.command](args, orchestrator)
    except (TemplateError, ReferenceDataError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except SelectionError as e:
        logger.error("generation_aborted", extra={"error_code": e.code})
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
