"""ORM models. Importing this package registers every table on Base.metadata."""

from billing_recurring.models.invoice import (
    ClientModel,
    ContractModel,
    InvoiceLineItemModel,
    InvoiceModel,
    InvoiceRecipientModel,
)
from billing_recurring.models.recurring import RecurringInvoiceTemplateModel

__all__ = [
    "ClientModel",
    "ContractModel",
    "InvoiceModel",
    "InvoiceLineItemModel",
    "InvoiceRecipientModel",
    "RecurringInvoiceTemplateModel",
]
