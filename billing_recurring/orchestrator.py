"""
RecurringInvoiceOrchestrator -- DI container for recurring invoicing.

Contract:
    Single place where the template store, selector, generation pipeline,
    post-creation hooks and task scheduler are composed.  The CLI and the
    scheduler daemon both go through this object, so a manual
    ``generate_due()`` and a scheduled tick run exactly the same code.

    ``generate_due()`` and ``generate_template()`` own their session:
    commit on success, roll back on error or dry run, always close.  PDF and
    email hooks run only after the commit succeeds.
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy.orm import Session

from billing_config.schema import BillingSettings
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_recurring.domain.types import (
    GenerationRunResult,
    ScheduledTask,
    TaskContext,
    TemplateGenerationResult,
)
from billing_recurring.selectors.due_templates import DueTemplateSelector
from billing_recurring.services.hooks import (
    EmailDispatcher,
    PdfRenderer,
    PostCreationHook,
    default_hooks,
)
from billing_recurring.services.pipeline import GenerationPipeline
from billing_recurring.services.scheduler import TaskScheduler
from billing_recurring.services.template_store import (
    RecurringTemplateStore,
    TemplateDefaults,
)

logger = get_logger("recurring.orchestrator")

GENERATION_TASK_NAME = "recurring_invoices"


class RecurringInvoiceOrchestrator:
    """Composition root for recurring invoice generation."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        settings: BillingSettings | None = None,
        pdf_renderer: PdfRenderer | None = None,
        email_dispatcher: EmailDispatcher | None = None,
        scheduler: TaskScheduler | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._settings = settings or BillingSettings()
        self._hooks: tuple[PostCreationHook, ...] = default_hooks(
            pdf_renderer, email_dispatcher, self._settings.default_email_app,
        )
        self.scheduler = scheduler or TaskScheduler(self._clock)

    @property
    def settings(self) -> BillingSettings:
        return self._settings

    # -------------------------------------------------------------------------
    # Factories (caller supplies the session)
    # -------------------------------------------------------------------------

    def create_store(self, session: Session) -> RecurringTemplateStore:
        return RecurringTemplateStore(
            session,
            self._clock,
            TemplateDefaults(
                currency=self._settings.default_currency,
                email_app=self._settings.default_email_app,
            ),
        )

    def create_selector(self, session: Session) -> DueTemplateSelector:
        return DueTemplateSelector(session)

    def create_pipeline(self, session: Session) -> GenerationPipeline:
        return GenerationPipeline(
            session,
            self._clock,
            selector=self.create_selector(session),
            store=self.create_store(session),
            hooks=self._hooks,
        )

    # -------------------------------------------------------------------------
    # Generation (owns its session)
    # -------------------------------------------------------------------------

    def generate_due(
        self, include_all: bool = False, dry_run: bool = False,
    ) -> GenerationRunResult:
        """Run one generation pass in a fresh transaction.

        Raises:
            SelectionError: If due templates cannot be selected.
        """
        session = self._session_factory()
        try:
            pipeline = self.create_pipeline(session)
            result = pipeline.generate_due(include_all, dry_run)
            if dry_run:
                session.rollback()
                return result
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return pipeline.run_side_effects(result)

    def generate_template(
        self, template_id: UUID, dry_run: bool = False,
    ) -> TemplateGenerationResult:
        """Generate one template now, in a fresh transaction.

        Raises:
            TemplateNotFoundError / TemplatePausedError
        """
        session = self._session_factory()
        try:
            pipeline = self.create_pipeline(session)
            result = pipeline.generate_template(template_id, dry_run)
            if dry_run:
                session.rollback()
                return result
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return pipeline.run_template_side_effects(result)

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def register_default_tasks(
        self, interval_seconds: float | None = None,
    ) -> ScheduledTask | None:
        """Register the periodic generation task.

        Returns None when the scheduler is disabled in settings.  An explicit
        ``interval_seconds`` overrides the configured interval.

        Raises:
            ValueError: If the interval is not positive.
        """
        if not self._settings.scheduler.enabled:
            logger.info("recurring_scheduler_disabled")
            return None
        if interval_seconds is None:
            interval_seconds = self._settings.scheduler.generation_interval_seconds
        return self.scheduler.register_task(
            GENERATION_TASK_NAME, interval_seconds, self._scheduled_generation,
        )

    def _scheduled_generation(self, context: TaskContext) -> GenerationRunResult:
        result = self.generate_due()
        logger.info(
            "scheduled_generation_completed",
            extra={
                "tick": context.tick,
                "generated": result.generated,
                "failed": result.failed,
                "warnings": len(result.warnings),
            },
        )
        return result

    def start(self) -> None:
        self.scheduler.start()

    def stop(self, timeout: float | None = None) -> None:
        self.scheduler.stop(timeout)
