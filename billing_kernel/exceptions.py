"""
Typed exception hierarchy for the billing system.

Every error has a typed class (catch by type, not by message), a ``code``
class attribute (machine-readable, safe to surface in CLI output and logs),
and structured attributes describing the failing entity.

    BillingError (base)
    |
    +-- ConfigurationError
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- InvalidTemplateError
    |   +-- TemplatePausedError
    |
    +-- ReferenceDataError
    |   +-- ClientNotFoundError
    |   +-- ContractNotFoundError
    |
    +-- GenerationError
    |   +-- SelectionError
    |   +-- InvoiceNumberAllocationError
    |   +-- InvoiceCreationError
    |   +-- SideEffectError
    |
    +-- SchedulerError
        +-- TaskAlreadyRegisteredError
        +-- SchedulerAlreadyStartedError

Category        | Code                         | Effect on a generation run
----------------|------------------------------|-----------------------------
Generation      | SELECTION_FAILED             | Fatal, run aborted
                | INVOICE_NUMBER_ALLOCATION    | Template skipped, run goes on
                | INVOICE_CREATION_FAILED      | Template skipped, run goes on
                | SIDE_EFFECT_FAILED           | Warning only, invoice kept
"""


class BillingError(Exception):
    """
    Base exception for all billing errors.

    All subclasses must have a `code` class attribute.
    """

    code: str = "BILLING_ERROR"


class ConfigurationError(BillingError):
    """Settings could not be loaded or failed validation."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key!r}: {reason}")


# Template exceptions


class TemplateError(BillingError):
    """Base exception for recurring template errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """No recurring template with the given ID."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = str(template_id)
        super().__init__(f"Recurring template not found: {template_id}")


class InvalidTemplateError(TemplateError):
    """A template field failed validation."""

    code: str = "INVALID_TEMPLATE"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid template field {field!r}: {reason}")


class TemplatePausedError(TemplateError):
    """Operation requires an active template but the template is paused."""

    code: str = "TEMPLATE_PAUSED"

    def __init__(self, template_id: str):
        self.template_id = str(template_id)
        super().__init__(f"Recurring template is paused: {template_id}")


# Reference data exceptions


class ReferenceDataError(BillingError):
    """Base exception for missing clients and contracts."""

    code: str = "REFERENCE_DATA_ERROR"


class ClientNotFoundError(ReferenceDataError):
    """Client with given ID was not found."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: str):
        self.client_id = str(client_id)
        super().__init__(f"Client not found: {client_id}")


class ContractNotFoundError(ReferenceDataError):
    """Contract was not found, or belongs to another client."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str, client_id: str | None = None):
        self.contract_id = str(contract_id)
        self.client_id = str(client_id) if client_id is not None else None
        if client_id is None:
            message = f"Contract not found: {contract_id}"
        else:
            message = f"Contract {contract_id} not found for client {client_id}"
        super().__init__(message)


# Generation exceptions


class GenerationError(BillingError):
    """Base exception for invoice generation errors."""

    code: str = "GENERATION_ERROR"


class SelectionError(GenerationError):
    """Due templates could not be selected. Fatal to the whole run."""

    code: str = "SELECTION_FAILED"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Failed to select due templates: {reason}")


class InvoiceNumberAllocationError(GenerationError):
    """No unique invoice number could be allocated for a template."""

    code: str = "INVOICE_NUMBER_ALLOCATION"

    def __init__(self, template_id: str, reason: str):
        self.template_id = str(template_id)
        self.reason = reason
        super().__init__(
            f"Failed to allocate invoice number for template {template_id}: {reason}"
        )


class InvoiceCreationError(GenerationError):
    """The invoice, its line item or its recipient could not be written."""

    code: str = "INVOICE_CREATION_FAILED"

    def __init__(self, template_id: str, reason: str):
        self.template_id = str(template_id)
        self.reason = reason
        super().__init__(
            f"Failed to create invoice for template {template_id}: {reason}"
        )


class SideEffectError(GenerationError):
    """A best-effort post-creation hook (PDF, email) failed."""

    code: str = "SIDE_EFFECT_FAILED"

    def __init__(self, hook: str, invoice_id: str, reason: str):
        self.hook = hook
        self.invoice_id = str(invoice_id)
        self.reason = reason
        super().__init__(f"{hook} failed for invoice {invoice_id}: {reason}")


# Scheduler exceptions


class SchedulerError(BillingError):
    """Base exception for scheduler errors."""

    code: str = "SCHEDULER_ERROR"


class TaskAlreadyRegisteredError(SchedulerError):
    """A task with the same name is already registered."""

    code: str = "TASK_ALREADY_REGISTERED"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Task already registered: {name}")


class SchedulerAlreadyStartedError(SchedulerError):
    """start() was called on a scheduler that is already running."""

    code: str = "SCHEDULER_ALREADY_STARTED"

    def __init__(self):
        super().__init__("Scheduler already started")
