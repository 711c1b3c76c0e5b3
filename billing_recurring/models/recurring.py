"""
ORM model for recurring invoice templates.

Contract:
    RecurringInvoiceTemplateModel persists one standing billing agreement
    and its schedule state, with a ``to_dto()`` conversion to the frozen
    ``RecurringTemplate``.

Architecture: billing_recurring/models. Imports from billing_kernel.db only.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from billing_recurring.domain.types import RecurringTemplate


class RecurringInvoiceTemplateModel(TrackedBase):
    """Persistent recurring invoice template."""

    __tablename__ = "recurring_invoice_templates"

    __table_args__ = (
        Index("ix_recurring_templates_due", "active", "next_generation_date"),
        Index("ix_recurring_templates_client", "client_id"),
    )

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False,
    )
    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    day_of_month: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    next_generation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_generated_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True,
    )
    generated_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_pdf: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_send: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_app: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self, client_name: str | None = None) -> RecurringTemplate:
        from billing_recurring.domain.types import RecurringTemplate

        return RecurringTemplate(
            template_id=self.id,
            client_id=self.client_id,
            amount=Decimal(self.amount),
            currency=self.currency,
            description=self.description,
            frequency=self.frequency,
            day_of_month=self.day_of_month,
            day_of_week=self.day_of_week,
            next_generation_date=self.next_generation_date,
            active=self.active,
            contract_id=self.contract_id,
            last_generated_date=self.last_generated_date,
            last_invoice_id=self.last_invoice_id,
            generated_count=self.generated_count,
            auto_pdf=self.auto_pdf,
            auto_send=self.auto_send,
            email_app=self.email_app,
            client_name=client_name,
            created_at=self.created_at,
        )
