"""Tests for post-creation hooks (PDF render, email send)."""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from billing_kernel.exceptions import SideEffectError
from billing_recurring.domain.types import GeneratedInvoice, RecurringTemplate
from billing_recurring.services.hooks import EmailHook, PdfHook, default_hooks, run_hooks


class FakeRenderer:
    def __init__(self, fail: bool = False):
        self.rendered = []
        self._fail = fail

    def render(self, invoice_id):
        if self._fail:
            raise RuntimeError("renderer crashed")
        self.rendered.append(invoice_id)


class FakeDispatcher:
    def __init__(self):
        self.sent = []

    def send(self, invoice_id, email_app):
        self.sent.append((invoice_id, email_app))


def _template(**overrides) -> RecurringTemplate:
    values = dict(
        template_id=uuid4(),
        client_id=uuid4(),
        amount=Decimal("250.00"),
        currency="USD",
        description="Hosting",
        frequency="monthly",
        day_of_month=1,
        day_of_week=1,
        next_generation_date=datetime(2024, 3, 1),
    )
    values.update(overrides)
    return RecurringTemplate(**values)


def _invoice(template: RecurringTemplate) -> GeneratedInvoice:
    return GeneratedInvoice(
        invoice_id=uuid4(),
        invoice_number="inv.acme.2024-03-16",
        issued_date=date(2024, 3, 31),
        due_date=date(2024, 4, 30),
        template_id=template.template_id,
        generation_key=f"recurring:{template.template_id}:2024-03-01",
    )


class TestRunHooks:
    def test_no_flags_no_outcomes(self):
        renderer, dispatcher = FakeRenderer(), FakeDispatcher()
        template = _template()

        outcomes = run_hooks(default_hooks(renderer, dispatcher), template, _invoice(template))

        assert outcomes == ()
        assert renderer.rendered == []
        assert dispatcher.sent == []

    def test_pdf_then_email(self):
        renderer, dispatcher = FakeRenderer(), FakeDispatcher()
        template = _template(auto_pdf=True, auto_send=True, email_app="outlook")
        invoice = _invoice(template)

        outcomes = run_hooks(default_hooks(renderer, dispatcher), template, invoice)

        assert [(o.hook, o.succeeded) for o in outcomes] == [("pdf", True), ("email", True)]
        assert renderer.rendered == [invoice.invoice_id]
        assert dispatcher.sent == [(invoice.invoice_id, "outlook")]

    def test_email_uses_default_app(self):
        dispatcher = FakeDispatcher()
        template = _template(auto_send=True)
        invoice = _invoice(template)

        run_hooks((EmailHook(dispatcher, "apple_mail"),), template, invoice)

        assert dispatcher.sent == [(invoice.invoice_id, "apple_mail")]

    def test_failure_wrapped_and_next_hook_runs(self, captured_logs):
        dispatcher = FakeDispatcher()
        template = _template(auto_pdf=True, auto_send=True)
        invoice = _invoice(template)

        outcomes = run_hooks(default_hooks(FakeRenderer(fail=True), dispatcher), template, invoice)

        pdf, email = outcomes
        assert not pdf.succeeded
        assert isinstance(pdf.error, SideEffectError)
        assert pdf.error.hook == "pdf"
        assert pdf.error.reason == "renderer crashed"
        assert email.succeeded
        assert dispatcher.sent

        failures = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert len(failures) == 1
        assert failures[0]["hook"] == "pdf"

    def test_missing_service_reported(self):
        template = _template(auto_pdf=True)

        (outcome,) = run_hooks((PdfHook(None),), template, _invoice(template))

        assert not outcome.succeeded
        assert "no PDF renderer configured" in str(outcome.error)
