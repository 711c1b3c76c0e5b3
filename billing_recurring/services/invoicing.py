"""
Invoice-side collaborators used by the generation pipeline.

Each collaborator is a Protocol so the pipeline can be driven by fakes in
tests; the ``Sql*`` classes are the production implementations working on
the caller's Session.  None of them commit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing_kernel.exceptions import (
    ClientNotFoundError,
    InvoiceCreationError,
    InvoiceNumberAllocationError,
)
from billing_kernel.logging_config import get_logger
from billing_recurring.domain.types import GeneratedInvoice, InvoiceDraft
from billing_recurring.models.invoice import (
    ClientModel,
    InvoiceLineItemModel,
    InvoiceModel,
    InvoiceRecipientModel,
)

logger = get_logger("recurring.invoicing")

INVOICE_STATUS_PENDING = "pending"
MAX_NUMBER_SUFFIX = 99
_MAX_CLIENT_SLUG = 50


@dataclass(frozen=True)
class ClientRef:
    client_id: UUID
    name: str
    email: str | None = None


# =============================================================================
# Protocols
# =============================================================================


class ClientDirectory(Protocol):
    def get_client(self, client_id: UUID) -> ClientRef: ...


class InvoiceNumberAllocator(Protocol):
    def allocate(self, template_id: UUID, client_name: str, issued_on: datetime) -> str: ...


class InvoiceWriter(Protocol):
    def create(self, draft: InvoiceDraft) -> GeneratedInvoice: ...


# =============================================================================
# SQL implementations
# =============================================================================


class SqlClientDirectory:
    """Client lookup."""

    def __init__(self, session: Session):
        self._session = session

    def get_client(self, client_id: UUID) -> ClientRef:
        model = self._session.get(ClientModel, client_id)
        if model is None:
            raise ClientNotFoundError(str(client_id))
        return ClientRef(client_id=model.id, name=model.name, email=model.email)


def sanitize_client_name(name: str) -> str:
    """Lower-case slug of a client name for use in invoice numbers.

    >>> sanitize_client_name("Acme - North  Branch!")
    'acme_north_branch'
    """
    slug = name.lower().replace(" ", "_").replace("-", "_")
    slug = re.sub(r"[^a-z0-9_]+", "", slug)
    slug = re.sub(r"_+", "_", slug).strip("_")
    return slug[:_MAX_CLIENT_SLUG] or "client"


class SqlInvoiceNumberAllocator:
    """Human-readable invoice numbers: ``inv.<client>.<YYYY-MM-DD>``.

    On collision, ``_2`` through ``_99`` are tried in order; after that a
    unix timestamp suffix is used.
    """

    def __init__(self, session: Session):
        self._session = session

    def _taken(self, number: str) -> bool:
        return self._session.execute(
            select(InvoiceModel.id).where(InvoiceModel.invoice_number == number)
        ).first() is not None

    def allocate(self, template_id: UUID, client_name: str, issued_on: datetime) -> str:
        """
        Raises:
            InvoiceNumberAllocationError: If the uniqueness lookup fails.
        """
        base = f"inv.{sanitize_client_name(client_name)}.{issued_on:%Y-%m-%d}"
        try:
            if not self._taken(base):
                return base
            for suffix in range(2, MAX_NUMBER_SUFFIX + 1):
                candidate = f"{base}_{suffix}"
                if not self._taken(candidate):
                    return candidate
        except SQLAlchemyError as exc:
            raise InvoiceNumberAllocationError(str(template_id), str(exc)) from exc

        fallback = f"{base}_{int(issued_on.timestamp())}"
        logger.warning(
            "invoice_number_suffixes_exhausted",
            extra={"template_id": str(template_id), "invoice_number": fallback},
        )
        return fallback


class SqlInvoiceWriter:
    """Creates the invoice, its single line item and its recipient link."""

    def __init__(self, session: Session):
        self._session = session

    def create(self, draft: InvoiceDraft) -> GeneratedInvoice:
        """
        Raises:
            InvoiceCreationError: If any of the three inserts fails.
        """
        invoice = InvoiceModel(
            invoice_number=draft.invoice_number,
            client_id=draft.client_id,
            contract_id=draft.contract_id,
            amount=draft.amount,
            currency=draft.currency,
            description=draft.description,
            status=INVOICE_STATUS_PENDING,
            issued_date=draft.dates.issued_date,
            due_date=draft.dates.due_date,
            recurring_template_id=draft.template_id,
            generation_key=draft.generation_key,
        )
        try:
            self._session.add(invoice)
            self._session.flush()

            self._session.add(
                InvoiceLineItemModel(
                    invoice_id=invoice.id,
                    item_name=draft.description,
                    description=draft.line_item_description,
                    quantity=Decimal("1"),
                    rate=draft.amount,
                    amount=draft.amount,
                    position=0,
                )
            )
            self._session.add(
                InvoiceRecipientModel(invoice_id=invoice.id, client_id=draft.client_id)
            )
            self._session.flush()
        except SQLAlchemyError as exc:
            raise InvoiceCreationError(str(draft.template_id), str(exc)) from exc

        return GeneratedInvoice(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            issued_date=draft.dates.issued_date,
            due_date=draft.dates.due_date,
            template_id=draft.template_id,
            generation_key=draft.generation_key,
        )
