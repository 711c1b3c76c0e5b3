"""
RecurringTemplateStore -- write side for recurring invoice templates.

Contract:
    create / update / pause / resume / delete templates and record the
    outcome of a generation cycle.  All timestamps come from the injected
    Clock.

    Pause sets ``active = False`` and touches nothing else, so
    ``next_generation_date`` stays frozen.  Resume recomputes it from the
    current instant; missed cycles are dropped, never caught up.

Non-goals:
    Does NOT call ``session.commit()``; the caller owns the transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from billing_kernel.db.types import normalize_currency, round_money
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    ClientNotFoundError,
    ContractNotFoundError,
    InvalidTemplateError,
    TemplateNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_recurring.domain.frequency import clamp_day_of_month, next_generation_date
from billing_recurring.domain.types import RecurringFrequency, RecurringTemplate
from billing_recurring.models.invoice import ClientModel, ContractModel
from billing_recurring.models.recurring import RecurringInvoiceTemplateModel

logger = get_logger("recurring.store")

_SCHEDULE_FIELDS = ("frequency", "day_of_month", "day_of_week")


@dataclass(frozen=True)
class TemplateDefaults:
    """Values applied when a create request leaves a field unset."""

    currency: str = "USD"
    email_app: str = "gmail"
    day_of_month: int = 1
    day_of_week: int = 1  # Monday


class RecurringTemplateStore:
    """Persistence for recurring templates.

    Flushes after every mutation so callers see generated ids and the
    selector sees the new state inside the same transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        defaults: TemplateDefaults | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._defaults = defaults or TemplateDefaults()

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_amount(amount: Decimal | int | str) -> Decimal:
        try:
            value = Decimal(str(amount))
        except ArithmeticError as exc:
            raise InvalidTemplateError("amount", f"not a number: {amount!r}") from exc
        if not value.is_finite() or value <= 0:
            raise InvalidTemplateError("amount", "must be greater than zero")
        return round_money(value)

    @staticmethod
    def _validate_frequency(frequency: str | RecurringFrequency) -> str:
        parsed = RecurringFrequency.parse(frequency)
        if parsed is None:
            allowed = ", ".join(f.value for f in RecurringFrequency)
            raise InvalidTemplateError("frequency", f"{frequency!r} is not one of {allowed}")
        return parsed.value

    @staticmethod
    def _validate_day_of_week(day_of_week: int) -> int:
        if not 0 <= int(day_of_week) <= 6:
            raise InvalidTemplateError("day_of_week", "must be 0 (Sunday) to 6 (Saturday)")
        return int(day_of_week)

    @staticmethod
    def _validate_day_of_month(day_of_month: int) -> int:
        if int(day_of_month) < 1:
            raise InvalidTemplateError("day_of_month", "must be at least 1")
        return clamp_day_of_month(int(day_of_month))

    @staticmethod
    def _validate_currency(currency: str) -> str:
        try:
            return normalize_currency(currency)
        except ValueError as exc:
            raise InvalidTemplateError("currency", str(exc)) from exc

    def _check_references(self, client_id: UUID, contract_id: UUID | None) -> None:
        if self._session.get(ClientModel, client_id) is None:
            raise ClientNotFoundError(str(client_id))
        if contract_id is not None:
            contract = self._session.get(ContractModel, contract_id)
            if contract is None:
                raise ContractNotFoundError(str(contract_id))
            if contract.client_id != client_id:
                raise ContractNotFoundError(str(contract_id), str(client_id))

    def _load(self, template_id: UUID) -> RecurringInvoiceTemplateModel:
        model = self._session.get(RecurringInvoiceTemplateModel, template_id)
        if model is None:
            raise TemplateNotFoundError(str(template_id))
        return model

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def create(
        self,
        client_id: UUID,
        amount: Decimal | int | str,
        frequency: str | RecurringFrequency,
        *,
        currency: str | None = None,
        description: str = "",
        day_of_month: int | None = None,
        day_of_week: int | None = None,
        contract_id: UUID | None = None,
        auto_pdf: bool = False,
        auto_send: bool = False,
        email_app: str | None = None,
    ) -> RecurringTemplate:
        """Create an active template with its first next_generation_date.

        Raises:
            InvalidTemplateError: On a bad amount, frequency, anchor or currency.
            ClientNotFoundError / ContractNotFoundError: On unknown references.
        """
        amount_value = self._validate_amount(amount)
        freq = self._validate_frequency(frequency)
        dom = self._validate_day_of_month(
            self._defaults.day_of_month if day_of_month is None else day_of_month
        )
        dow = self._validate_day_of_week(
            self._defaults.day_of_week if day_of_week is None else day_of_week
        )
        currency_code = self._validate_currency(currency or self._defaults.currency)
        self._check_references(client_id, contract_id)

        now = self._clock.now()
        model = RecurringInvoiceTemplateModel(
            client_id=client_id,
            contract_id=contract_id,
            amount=amount_value,
            currency=currency_code,
            description=description or "",
            frequency=freq,
            day_of_month=dom,
            day_of_week=dow,
            next_generation_date=next_generation_date(freq, dom, dow, now),
            active=True,
            generated_count=0,
            auto_pdf=auto_pdf,
            auto_send=auto_send,
            email_app=email_app or self._defaults.email_app,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "template_created",
            extra={
                "template_id": str(model.id),
                "client_id": str(client_id),
                "frequency": freq,
                "amount": amount_value,
                "currency": currency_code,
                "next_generation_date": model.next_generation_date,
            },
        )
        return model.to_dto()

    def update(self, template_id: UUID, **changes: Any) -> RecurringTemplate:
        """Change billing, schedule or side-effect fields of a template.

        Accepted keys: amount, currency, description, frequency, day_of_month,
        day_of_week, contract_id, auto_pdf, auto_send, email_app.  ``None``
        values are ignored.  When a schedule field changes on an active
        template, next_generation_date is recomputed from now; a paused
        template keeps its frozen date.

        Raises:
            TemplateNotFoundError: If no template has this id.
            InvalidTemplateError: On an unknown key or invalid value.
        """
        model = self._load(template_id)
        changes = {k: v for k, v in changes.items() if v is not None}

        validators = {
            "amount": self._validate_amount,
            "currency": self._validate_currency,
            "frequency": self._validate_frequency,
            "day_of_month": self._validate_day_of_month,
            "day_of_week": self._validate_day_of_week,
            "description": str,
            "auto_pdf": bool,
            "auto_send": bool,
            "email_app": str,
            "contract_id": lambda v: v,
        }
        unknown = set(changes) - set(validators)
        if unknown:
            raise InvalidTemplateError(", ".join(sorted(unknown)), "not an updatable field")

        cleaned = {key: validators[key](value) for key, value in changes.items()}
        if "contract_id" in cleaned:
            self._check_references(model.client_id, cleaned["contract_id"])

        schedule_changed = any(
            key in cleaned and cleaned[key] != getattr(model, key)
            for key in _SCHEDULE_FIELDS
        )
        for key, value in cleaned.items():
            setattr(model, key, value)

        if schedule_changed and model.active:
            model.next_generation_date = next_generation_date(
                model.frequency, model.day_of_month, model.day_of_week, self._clock.now(),
            )
        self._session.flush()

        logger.info(
            "template_updated",
            extra={
                "template_id": str(template_id),
                "fields": sorted(cleaned),
                "schedule_changed": schedule_changed,
            },
        )
        return model.to_dto()

    def pause(self, template_id: UUID) -> RecurringTemplate:
        """Active -> Paused. Only the active flag changes.

        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        model = self._load(template_id)
        if model.active:
            model.active = False
            self._session.flush()
            logger.info("template_paused", extra={"template_id": str(template_id)})
        return model.to_dto()

    def resume(self, template_id: UUID) -> RecurringTemplate:
        """Paused -> Active, next date recomputed from the current instant.

        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        model = self._load(template_id)
        if not model.active:
            model.active = True
            model.next_generation_date = next_generation_date(
                model.frequency, model.day_of_month, model.day_of_week, self._clock.now(),
            )
            self._session.flush()
            logger.info(
                "template_resumed",
                extra={
                    "template_id": str(template_id),
                    "next_generation_date": model.next_generation_date,
                },
            )
        return model.to_dto()

    def delete(self, template_id: UUID) -> None:
        """Remove a template. Invoices it produced are kept.

        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        model = self._load(template_id)
        self._session.delete(model)
        self._session.flush()
        logger.info("template_deleted", extra={"template_id": str(template_id)})

    def get(self, template_id: UUID) -> RecurringTemplate:
        return self._load(template_id).to_dto()

    def record_generation(
        self,
        template: RecurringTemplate,
        invoice_id: UUID,
        now: datetime,
    ) -> datetime:
        """Advance a template after a successful generation cycle.

        Sets last_generated_date and last_invoice_id, computes the next date
        from ``now`` and increments generated_count in SQL, so two runs that
        both generate for the template each add exactly one.

        Returns:
            The new next_generation_date.
        """
        next_date = next_generation_date(
            template.frequency, template.day_of_month, template.day_of_week, now,
        )
        model = self._load(template.template_id)
        model.last_generated_date = now
        model.last_invoice_id = invoice_id
        model.next_generation_date = next_date
        # Rendered as "generated_count + 1" in the UPDATE statement
        model.generated_count = RecurringInvoiceTemplateModel.generated_count + 1
        self._session.flush()
        return next_date
