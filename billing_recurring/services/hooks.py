"""
Post-creation hooks: best-effort side effects after an invoice exists.

A hook is applied only when its template flag is set.  Each hook is
independently fallible; ``run_hooks`` converts every failure into a
``SideEffectOutcome`` carrying a ``SideEffectError`` and never lets it
propagate, so the invoice is never rolled back because of a side effect.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from billing_kernel.exceptions import SideEffectError
from billing_kernel.logging_config import get_logger
from billing_recurring.domain.types import (
    GeneratedInvoice,
    RecurringTemplate,
    SideEffectOutcome,
)

logger = get_logger("recurring.hooks")


class PdfRenderer(Protocol):
    def render(self, invoice_id: UUID) -> object: ...


class EmailDispatcher(Protocol):
    def send(self, invoice_id: UUID, email_app: str) -> object: ...


class PostCreationHook(Protocol):
    name: str

    def applies_to(self, template: RecurringTemplate) -> bool: ...

    def run(self, template: RecurringTemplate, invoice: GeneratedInvoice) -> None: ...


class PdfHook:
    """Render the invoice PDF when ``auto_pdf`` is set."""

    name = "pdf"

    def __init__(self, renderer: PdfRenderer | None):
        self._renderer = renderer

    def applies_to(self, template: RecurringTemplate) -> bool:
        return template.auto_pdf

    def run(self, template: RecurringTemplate, invoice: GeneratedInvoice) -> None:
        if self._renderer is None:
            raise SideEffectError(self.name, str(invoice.invoice_id), "no PDF renderer configured")
        self._renderer.render(invoice.invoice_id)


class EmailHook:
    """Send the invoice through the template's mail app when ``auto_send`` is set."""

    name = "email"

    def __init__(self, dispatcher: EmailDispatcher | None, default_email_app: str = "gmail"):
        self._dispatcher = dispatcher
        self._default_email_app = default_email_app

    def applies_to(self, template: RecurringTemplate) -> bool:
        return template.auto_send

    def run(self, template: RecurringTemplate, invoice: GeneratedInvoice) -> None:
        if self._dispatcher is None:
            raise SideEffectError(self.name, str(invoice.invoice_id), "no email dispatcher configured")
        self._dispatcher.send(invoice.invoice_id, template.email_app or self._default_email_app)


def default_hooks(
    pdf_renderer: PdfRenderer | None = None,
    email_dispatcher: EmailDispatcher | None = None,
    default_email_app: str = "gmail",
) -> tuple[PostCreationHook, ...]:
    """PDF first, so the email can attach the rendered document."""
    return (
        PdfHook(pdf_renderer),
        EmailHook(email_dispatcher, default_email_app),
    )


def run_hooks(
    hooks: tuple[PostCreationHook, ...],
    template: RecurringTemplate,
    invoice: GeneratedInvoice,
) -> tuple[SideEffectOutcome, ...]:
    """Run every applicable hook in order and collect the outcomes."""
    outcomes: list[SideEffectOutcome] = []
    for hook in hooks:
        if not hook.applies_to(template):
            continue
        try:
            hook.run(template, invoice)
        except SideEffectError as exc:
            error = exc
        except Exception as exc:
            error = SideEffectError(hook.name, str(invoice.invoice_id), str(exc))
        else:
            outcomes.append(SideEffectOutcome(hook=hook.name, succeeded=True))
            continue

        logger.warning(
            "side_effect_failed",
            extra={
                "hook": hook.name,
                "invoice_id": str(invoice.invoice_id),
                "template_id": str(template.template_id),
                "reason": error.reason,
            },
        )
        outcomes.append(SideEffectOutcome(hook=hook.name, succeeded=False, error=error))
    return tuple(outcomes)
