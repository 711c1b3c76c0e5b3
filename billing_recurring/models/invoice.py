"""
ORM models for the invoice side of recurring generation.

Only the columns the recurring subsystem reads or writes are modelled:
clients and contracts are looked up, invoices with one line item and one
recipient are created.

``generation_key`` is indexed but NOT unique; two invoices for the same
template cycle can currently coexist.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString


class ClientModel(TrackedBase):
    """Billed client."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)


class ContractModel(TrackedBase):
    """Contract between the freelancer and one client."""

    __tablename__ = "contracts"

    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)


class InvoiceModel(TrackedBase):
    """Invoice header."""

    __tablename__ = "invoices"

    __table_args__ = (
        Index("ix_invoices_recurring_template", "recurring_template_id"),
        Index("ix_invoices_generation_key", "generation_key"),
    )

    invoice_number: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False,
    )
    contract_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("contracts.id"), nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    issued_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    recurring_template_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    generation_key: Mapped[str | None] = mapped_column(String(100), nullable=True)

    line_items: Mapped[list["InvoiceLineItemModel"]] = relationship(
        "InvoiceLineItemModel", back_populates="invoice",
    )
    recipients: Mapped[list["InvoiceRecipientModel"]] = relationship(
        "InvoiceRecipientModel", back_populates="invoice",
    )


class InvoiceLineItemModel(TrackedBase):
    """One billable line on an invoice."""

    __tablename__ = "invoice_line_items"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    item_name: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    invoice: Mapped[InvoiceModel] = relationship(
        "InvoiceModel", back_populates="line_items",
    )


class InvoiceRecipientModel(TrackedBase):
    """Client linked to an invoice as its recipient."""

    __tablename__ = "invoice_recipients"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=False,
    )
    client_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("clients.id"), nullable=False,
    )

    invoice: Mapped[InvoiceModel] = relationship(
        "InvoiceModel", back_populates="recipients",
    )
