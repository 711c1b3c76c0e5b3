"""Read-only queries over recurring templates."""

from billing_recurring.selectors.due_templates import DueTemplateSelector

__all__ = ["DueTemplateSelector"]
