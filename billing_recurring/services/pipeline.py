"""
GenerationPipeline -- turns due recurring templates into invoices.

Contract:
    ``generate_due()`` selects due templates (oldest first) and runs one
    generation cycle per template, sequentially:

        1. allocate an invoice number
        2. compute issued / due dates
        3. create invoice, line item and recipient
        4. advance the template (last dates, next date, count + 1)

    Each cycle runs inside its own SAVEPOINT.  A failure in any step rolls
    back that template's writes only; the run continues with the next
    template.  A selection failure aborts the run.

    Post-creation hooks (PDF, then email) are deferred: the caller commits,
    then calls ``run_side_effects(run)``.  Renderers and dispatchers thus
    only ever see committed invoices, and an invoice rolled back with its
    savepoint or transaction is never sent.  Hook failures are collected as
    warnings on the returned results.

    Dry run performs selection and reporting only: zero writes, zero hooks.

Known gap:
    No per-template lock is taken.  Two runs that select the same template
    before either commits both generate an invoice for that cycle; both
    invoices carry the same ``generation_key``.

Non-goals:
    Does NOT call ``session.commit()``; the caller owns the transaction.
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    BillingError,
    InvoiceCreationError,
    TemplatePausedError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.utils.idempotency import generation_cycle_key
from billing_recurring.domain.frequency import invoice_dates
from billing_recurring.domain.types import (
    GenerationRunResult,
    GenerationStatus,
    InvoiceDraft,
    RecurringTemplate,
    TemplateGenerationResult,
)
from billing_recurring.selectors.due_templates import DueTemplateSelector
from billing_recurring.services.hooks import PostCreationHook, default_hooks, run_hooks
from billing_recurring.services.invoicing import (
    ClientDirectory,
    InvoiceNumberAllocator,
    InvoiceWriter,
    SqlClientDirectory,
    SqlInvoiceNumberAllocator,
    SqlInvoiceWriter,
)
from billing_recurring.services.template_store import RecurringTemplateStore

logger = get_logger("recurring.pipeline")


def line_item_description(frequency: str) -> str:
    return f"Recurring invoice - {frequency}"


class GenerationPipeline:
    """Sequential, SAVEPOINT-per-template invoice generation."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        selector: DueTemplateSelector | None = None,
        store: RecurringTemplateStore | None = None,
        clients: ClientDirectory | None = None,
        allocator: InvoiceNumberAllocator | None = None,
        writer: InvoiceWriter | None = None,
        hooks: tuple[PostCreationHook, ...] | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._selector = selector or DueTemplateSelector(session)
        self._store = store or RecurringTemplateStore(session, self._clock)
        self._clients = clients or SqlClientDirectory(session)
        self._allocator = allocator or SqlInvoiceNumberAllocator(session)
        self._writer = writer or SqlInvoiceWriter(session)
        self._hooks = default_hooks() if hooks is None else hooks
        # Invoices created in this session whose hooks have not run yet
        self._awaiting_side_effects: dict[UUID, RecurringTemplate] = {}

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def plan(
        self, include_all: bool = False, as_of: datetime | None = None,
    ) -> list[RecurringTemplate]:
        """Templates a run at ``as_of`` would process, in processing order.

        Raises:
            SelectionError: If the due query fails.
        """
        return self._selector.select_due(as_of or self._clock.now(), include_all)

    # -------------------------------------------------------------------------
    # Runs
    # -------------------------------------------------------------------------

    def generate_due(
        self, include_all: bool = False, dry_run: bool = False,
    ) -> GenerationRunResult:
        """Select and generate every due template.

        Raises:
            SelectionError: If the due query fails (nothing is generated).
        """
        now = self._clock.now()
        templates = self.plan(include_all, now)

        if dry_run:
            result = GenerationRunResult(
                as_of=now,
                dry_run=True,
                include_all=include_all,
                results=tuple(self._preview(t) for t in templates),
            )
            logger.info(
                "generation_dry_run_completed",
                extra={"as_of": now, "selected": result.selected, "include_all": include_all},
            )
            return result

        return self.execute(templates, now, include_all=include_all)

    def execute(
        self,
        templates: list[RecurringTemplate],
        as_of: datetime,
        include_all: bool = False,
    ) -> GenerationRunResult:
        """Run generation cycles over an already-selected plan, in order."""
        start_time = time.monotonic()
        logger.info(
            "generation_run_started",
            extra={"as_of": as_of, "selected": len(templates), "include_all": include_all},
        )

        results = tuple(self._run_cycle(t, as_of) for t in templates)
        run = GenerationRunResult(
            as_of=as_of, dry_run=False, include_all=include_all, results=results,
        )

        logger.info(
            "generation_run_completed",
            extra={
                "as_of": as_of,
                "selected": run.selected,
                "generated": run.generated,
                "failed": run.failed,
                "warnings": len(run.warnings),
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
        return run

    def generate_template(
        self, template_id: UUID, dry_run: bool = False,
    ) -> TemplateGenerationResult:
        """Generate one template now, regardless of its due date.

        Raises:
            TemplateNotFoundError: If no template has this id.
            TemplatePausedError: If the template is paused.
        """
        template = self._selector.get_template(template_id)
        if not template.active:
            raise TemplatePausedError(str(template_id))
        if dry_run:
            return self._preview(template)
        return self._run_cycle(template, self._clock.now())

    # -------------------------------------------------------------------------
    # Post-commit side effects
    # -------------------------------------------------------------------------

    def run_side_effects(self, run: GenerationRunResult) -> GenerationRunResult:
        """Run post-creation hooks for every invoice ``run`` generated.

        Call only after the transaction holding the invoices has committed.
        Returns a copy of ``run`` whose results carry the hook outcomes.
        """
        if run.dry_run:
            return run
        return replace(
            run, results=tuple(self.run_template_side_effects(r) for r in run.results),
        )

    def run_template_side_effects(
        self, result: TemplateGenerationResult,
    ) -> TemplateGenerationResult:
        """Single-result form of ``run_side_effects``; each invoice runs its hooks once."""
        if result.invoice is None:
            return result
        template = self._awaiting_side_effects.pop(result.invoice.invoice_id, None)
        if template is None:
            return result
        with LogContext.bind(
            template_id=template.template_id, invoice_id=result.invoice.invoice_id,
        ):
            outcomes = run_hooks(self._hooks, template, result.invoice)
        return replace(result, side_effects=outcomes)

    # -------------------------------------------------------------------------
    # One cycle
    # -------------------------------------------------------------------------

    def _preview(self, template: RecurringTemplate) -> TemplateGenerationResult:
        return TemplateGenerationResult(
            template_id=template.template_id,
            status=GenerationStatus.PREVIEWED,
            client_name=template.client_name,
            next_generation_date=template.next_generation_date,
        )

    def _run_cycle(
        self, template: RecurringTemplate, now: datetime,
    ) -> TemplateGenerationResult:
        with LogContext.bind(template_id=template.template_id):
            savepoint = self._session.begin_nested()
            try:
                result = self._generate(template, now)
                savepoint.commit()
                self._awaiting_side_effects[result.invoice.invoice_id] = template
                return result
            except BillingError as exc:
                savepoint.rollback()
                logger.warning(
                    "template_generation_failed",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                error = exc
            except Exception as exc:
                savepoint.rollback()
                logger.exception("template_generation_unexpected_error")
                error = InvoiceCreationError(str(template.template_id), str(exc))

        return TemplateGenerationResult(
            template_id=template.template_id,
            status=GenerationStatus.FAILED,
            client_name=template.client_name,
            next_generation_date=template.next_generation_date,
            error=error,
        )

    def _generate(
        self, template: RecurringTemplate, now: datetime,
    ) -> TemplateGenerationResult:
        client = self._clients.get_client(template.client_id)
        invoice_number = self._allocator.allocate(template.template_id, client.name, now)

        draft = InvoiceDraft(
            template_id=template.template_id,
            client_id=template.client_id,
            contract_id=template.contract_id,
            invoice_number=invoice_number,
            amount=template.amount,
            currency=template.currency,
            description=template.description,
            line_item_description=line_item_description(template.frequency),
            dates=invoice_dates(now),
            generation_key=generation_cycle_key(
                template.template_id, template.next_generation_date,
            ),
        )
        invoice = self._writer.create(draft)

        with LogContext.bind(invoice_id=invoice.invoice_id):
            next_date = self._store.record_generation(template, invoice.invoice_id, now)

            logger.info(
                "invoice_generated",
                extra={
                    "invoice_number": invoice.invoice_number,
                    "issued_date": invoice.issued_date,
                    "due_date": invoice.due_date,
                    "amount": template.amount,
                    "currency": template.currency,
                    "next_generation_date": next_date,
                    "generation_key": invoice.generation_key,
                },
            )

        return TemplateGenerationResult(
            template_id=template.template_id,
            status=GenerationStatus.GENERATED,
            client_name=client.name,
            invoice=invoice,
            next_generation_date=next_date,
        )
