"""
Tests for billing_recurring.services.template_store.

Covers creation and validation, updates, the pause/resume state machine,
deletion, and recording of generation outcomes.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from billing_kernel.exceptions import (
    ClientNotFoundError,
    ContractNotFoundError,
    InvalidTemplateError,
    TemplateNotFoundError,
)
from billing_recurring.models.invoice import InvoiceModel
from billing_recurring.models.recurring import RecurringInvoiceTemplateModel
from billing_recurring.services.template_store import (
    RecurringTemplateStore,
    TemplateDefaults,
)

NOW = datetime(2024, 3, 16, 9, 30)


# =============================================================================
# Create
# =============================================================================


class TestCreate:
    def test_creates_active_template_with_next_date(self, store, client):
        template = store.create(client.id, "1000", "monthly", day_of_month=15)

        assert template.active is True
        assert template.amount == Decimal("1000.00")
        assert template.currency == "USD"
        assert template.next_generation_date == datetime(2024, 4, 15)
        assert template.generated_count == 0
        assert template.email_app == "gmail"

    def test_day_of_month_above_28_clamped(self, store, client):
        template = store.create(client.id, 50, "monthly", day_of_month=31)
        assert template.day_of_month == 28
        assert template.next_generation_date == datetime(2024, 4, 28)

    def test_weekly_uses_day_of_week(self, store, client):
        # 2024-03-16 is a Saturday; next Monday is the 18th
        template = store.create(client.id, 50, "weekly", day_of_week=1)
        assert template.next_generation_date == datetime(2024, 3, 18)

    def test_defaults_applied(self, db_session, clock, client):
        store = RecurringTemplateStore(
            db_session, clock, TemplateDefaults(currency="EUR", email_app="outlook"),
        )
        template = store.create(client.id, 10, "yearly")
        assert template.currency == "EUR"
        assert template.email_app == "outlook"
        assert template.day_of_month == 1

    def test_currency_normalized(self, store, client):
        assert store.create(client.id, 10, "monthly", currency="gbp").currency == "GBP"

    def test_with_contract(self, store, client, contract):
        template = store.create(client.id, 10, "monthly", contract_id=contract.id)
        assert template.contract_id == contract.id

    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"amount": 0}, "amount"),
            ({"amount": "-5"}, "amount"),
            ({"amount": "ten"}, "amount"),
            ({"frequency": "daily"}, "frequency"),
            ({"day_of_week": 7}, "day_of_week"),
            ({"day_of_month": 0}, "day_of_month"),
            ({"currency": "dollars"}, "currency"),
        ],
    )
    def test_validation(self, store, client, kwargs, field):
        args = {"amount": 100, "frequency": "monthly"}
        args.update(kwargs)
        with pytest.raises(InvalidTemplateError) as exc_info:
            store.create(client.id, args.pop("amount"), args.pop("frequency"), **args)
        assert exc_info.value.field == field

    def test_unknown_client(self, store):
        with pytest.raises(ClientNotFoundError):
            store.create(uuid4(), 100, "monthly")

    def test_unknown_contract(self, store, client):
        with pytest.raises(ContractNotFoundError):
            store.create(client.id, 100, "monthly", contract_id=uuid4())

    def test_contract_of_another_client(self, store, other_client, contract):
        with pytest.raises(ContractNotFoundError) as exc_info:
            store.create(other_client.id, 100, "monthly", contract_id=contract.id)
        assert exc_info.value.client_id == str(other_client.id)

    def test_logs_creation(self, store, client, captured_logs):
        template = store.create(client.id, 100, "monthly")
        records = [r for r in captured_logs() if r["message"] == "template_created"]
        assert records[0]["template_id"] == str(template.template_id)


# =============================================================================
# Update
# =============================================================================


class TestUpdate:
    def test_billing_fields(self, store, client):
        template = store.create(client.id, 100, "monthly", day_of_month=15)
        updated = store.update(
            template.template_id, amount="250.5", description="New scope", auto_pdf=True,
        )
        assert updated.amount == Decimal("250.50")
        assert updated.description == "New scope"
        assert updated.auto_pdf is True
        assert updated.next_generation_date == template.next_generation_date

    def test_schedule_change_recomputes_next_date(self, store, client, clock):
        template = store.create(client.id, 100, "monthly", day_of_month=15)
        clock.advance_days(5)  # 2024-03-21
        updated = store.update(template.template_id, frequency="quarterly")
        assert updated.next_generation_date == datetime(2024, 6, 15)

    def test_schedule_change_on_paused_keeps_frozen_date(self, store, client):
        template = store.create(client.id, 100, "monthly", day_of_month=15)
        store.pause(template.template_id)
        updated = store.update(template.template_id, day_of_month=3)
        assert updated.day_of_month == 3
        assert updated.next_generation_date == template.next_generation_date

    def test_none_values_ignored(self, store, client):
        template = store.create(client.id, 100, "monthly")
        updated = store.update(template.template_id, amount=None, frequency=None)
        assert updated.amount == template.amount

    def test_unknown_field(self, store, client):
        template = store.create(client.id, 100, "monthly")
        with pytest.raises(InvalidTemplateError):
            store.update(template.template_id, generated_count=10)

    def test_invalid_value(self, store, client):
        template = store.create(client.id, 100, "monthly")
        with pytest.raises(InvalidTemplateError):
            store.update(template.template_id, amount=0)

    def test_missing(self, store):
        with pytest.raises(TemplateNotFoundError):
            store.update(uuid4(), amount=5)


# =============================================================================
# Pause / resume
# =============================================================================


class TestPauseResume:
    def test_pause_only_flips_active(self, store, make_template):
        template = make_template(datetime(2024, 3, 1))
        paused = store.pause(template.template_id)

        assert paused.active is False
        assert paused.next_generation_date == datetime(2024, 3, 1)
        assert paused.generated_count == template.generated_count

    def test_resume_recomputes_from_now(self, store, clock, make_template):
        template = make_template(datetime(2023, 6, 15), day_of_month=15)
        store.pause(template.template_id)
        clock.set_time(datetime(2024, 9, 20, 14, 0))

        resumed = store.resume(template.template_id)
        assert resumed.active is True
        assert resumed.next_generation_date == datetime(2024, 10, 15)

    @pytest.mark.parametrize("frequency", ["weekly", "biweekly", "monthly", "quarterly", "yearly"])
    def test_resume_never_before_resume_instant(self, store, clock, make_template, frequency):
        template = make_template(datetime(2020, 1, 1), frequency=frequency, day_of_month=28)
        store.pause(template.template_id)
        clock.set_time(datetime(2024, 12, 31, 23, 59))

        resumed = store.resume(template.template_id)
        assert resumed.next_generation_date >= clock.now()

    def test_pause_twice_is_noop(self, store, make_template):
        template = make_template(NOW)
        store.pause(template.template_id)
        assert store.pause(template.template_id).active is False

    def test_resume_active_is_noop(self, store, make_template):
        template = make_template(datetime(2024, 3, 1))
        assert store.resume(template.template_id).next_generation_date == datetime(2024, 3, 1)

    @pytest.mark.parametrize("operation", ["pause", "resume", "delete", "get"])
    def test_unknown_id_fails_loudly(self, store, operation):
        with pytest.raises(TemplateNotFoundError):
            getattr(store, operation)(uuid4())


# =============================================================================
# Delete
# =============================================================================


class TestDelete:
    def test_delete_keeps_invoices(self, store, db_session, client, make_template):
        template = make_template(NOW)
        db_session.add(
            InvoiceModel(
                invoice_number="inv.acme_corp.2024-02-16",
                client_id=client.id,
                amount=Decimal("1000.00"),
                currency="USD",
                issued_date=datetime(2024, 2, 29).date(),
                due_date=datetime(2024, 3, 29).date(),
                recurring_template_id=template.template_id,
            )
        )
        db_session.flush()

        store.delete(template.template_id)

        assert db_session.get(RecurringInvoiceTemplateModel, template.template_id) is None
        assert db_session.execute(select(func.count(InvoiceModel.id))).scalar_one() == 1


# =============================================================================
# Record generation
# =============================================================================


class TestRecordGeneration:
    def test_advances_schedule_and_counts(self, store, make_template):
        template = make_template(datetime(2024, 3, 15), day_of_month=15)
        invoice_id = uuid4()

        next_date = store.record_generation(template, invoice_id, NOW)

        refreshed = store.get(template.template_id)
        assert next_date == datetime(2024, 4, 15)
        assert refreshed.next_generation_date == datetime(2024, 4, 15)
        assert refreshed.last_generated_date == NOW
        assert refreshed.last_invoice_id == invoice_id
        assert refreshed.generated_count == 1

    def test_count_increments_by_one_each_time(self, store, make_template):
        template = make_template(datetime(2024, 3, 15))
        for _ in range(3):
            store.record_generation(template, uuid4(), NOW)
        assert store.get(template.template_id).generated_count == 3

    def test_missing_template(self, store, make_template):
        template = make_template(NOW)
        store.delete(template.template_id)
        with pytest.raises(TemplateNotFoundError):
            store.record_generation(template, uuid4(), NOW + timedelta(days=1))
