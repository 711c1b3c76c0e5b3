"""
billing_recurring.domain.types -- Pure frozen dataclasses for recurring invoices.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.  ORM models convert to these via ``to_dto()``;
selectors, the pipeline and the CLI only ever see these.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum, IntEnum
from uuid import UUID

from billing_kernel.exceptions import BillingError


# =============================================================================
# Enums
# =============================================================================


class RecurringFrequency(str, Enum):
    """How often a template produces an invoice."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"  # Every two weeks
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: str | RecurringFrequency | None) -> RecurringFrequency | None:
        """Return the matching member, or None for unknown/unset values."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class Weekday(IntEnum):
    """Day-of-week anchor, Sunday-based (0 = Sunday, 6 = Saturday)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, moment: date) -> Weekday:
        # date.weekday() is Monday-based
        return cls((moment.weekday() + 1) % 7)


class TemplateStatus(str, Enum):
    """Pause/resume state, derived from the ``active`` flag."""

    ACTIVE = "active"
    PAUSED = "paused"


class GenerationStatus(str, Enum):
    """Outcome of one generation cycle for one template."""

    GENERATED = "generated"  # Invoice created (side effects may have warned)
    FAILED = "failed"  # Allocation or creation failed, template skipped
    PREVIEWED = "previewed"  # Dry run, nothing written


# =============================================================================
# Template DTO
# =============================================================================


@dataclass(frozen=True)
class RecurringTemplate:
    """Immutable snapshot of a recurring invoice template.

    ``next_generation_date`` is always set while ``active`` is true; it is
    frozen while the template is paused.  ``generated_count`` increases by
    exactly one per successful generation.
    """

    template_id: UUID
    client_id: UUID
    amount: Decimal
    currency: str
    description: str
    frequency: str
    day_of_month: int
    day_of_week: int
    next_generation_date: datetime
    active: bool = True
    contract_id: UUID | None = None
    last_generated_date: datetime | None = None
    last_invoice_id: UUID | None = None
    generated_count: int = 0
    auto_pdf: bool = False
    auto_send: bool = False
    email_app: str | None = None
    client_name: str | None = None  # Populated by listing queries only
    created_at: datetime | None = None

    @property
    def status(self) -> TemplateStatus:
        return TemplateStatus.ACTIVE if self.active else TemplateStatus.PAUSED

    @property
    def frequency_enum(self) -> RecurringFrequency | None:
        return RecurringFrequency.parse(self.frequency)


# =============================================================================
# Scheduler DTOs
# =============================================================================


@dataclass(frozen=True)
class TaskContext:
    """Per-invocation context handed to a scheduled task handler.

    A fresh instance is built for every tick.  It carries no cancellation
    signal: a running handler is never interrupted.
    """

    task_name: str
    tick: int  # 1-based invocation number for this worker
    fired_at: datetime


TaskHandler = Callable[[TaskContext], object]


@dataclass(frozen=True)
class ScheduledTask:
    """In-memory descriptor of a periodic task. Never persisted."""

    name: str
    interval_seconds: float
    handler: TaskHandler
    enabled: bool = True


# =============================================================================
# Generation DTOs
# =============================================================================


@dataclass(frozen=True)
class InvoiceDates:
    """Issued and due dates stamped on a generated invoice."""

    issued_date: date
    due_date: date


@dataclass(frozen=True)
class InvoiceDraft:
    """Everything the invoice writer needs to create one invoice."""

    template_id: UUID
    client_id: UUID
    contract_id: UUID | None
    invoice_number: str
    amount: Decimal
    currency: str
    description: str
    line_item_description: str
    dates: InvoiceDates
    generation_key: str


@dataclass(frozen=True)
class GeneratedInvoice:
    """The pipeline's view of an invoice it created: identity and dates."""

    invoice_id: UUID
    invoice_number: str
    issued_date: date
    due_date: date
    template_id: UUID
    generation_key: str


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of one post-creation hook."""

    hook: str
    succeeded: bool
    error: BillingError | None = None


@dataclass(frozen=True)
class TemplateGenerationResult:
    """Result of one generation cycle for one template."""

    template_id: UUID
    status: GenerationStatus
    client_name: str | None = None
    invoice: GeneratedInvoice | None = None
    next_generation_date: datetime | None = None
    side_effects: tuple[SideEffectOutcome, ...] = ()
    error: BillingError | None = None

    @property
    def warnings(self) -> tuple[BillingError, ...]:
        return tuple(
            o.error for o in self.side_effects if not o.succeeded and o.error is not None
        )


@dataclass(frozen=True)
class GenerationRunResult:
    """Summary of one GenerateDue invocation."""

    as_of: datetime
    dry_run: bool
    include_all: bool
    results: tuple[TemplateGenerationResult, ...] = field(default_factory=tuple)

    @property
    def selected(self) -> int:
        return len(self.results)

    @property
    def generated(self) -> int:
        return sum(1 for r in self.results if r.status == GenerationStatus.GENERATED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == GenerationStatus.FAILED)

    @property
    def errors(self) -> tuple[BillingError, ...]:
        """Per-template failures (allocation or creation)."""
        return tuple(r.error for r in self.results if r.error is not None)

    @property
    def warnings(self) -> tuple[BillingError, ...]:
        """Side-effect failures on invoices that were still generated."""
        return tuple(w for r in self.results for w in r.warnings)
