"""
DueTemplateSelector -- which templates a generation run should process.

Contract:
    ``select_due(as_of)`` returns every ACTIVE template whose
    ``next_generation_date <= as_of``; with ``include_all=True`` the date
    filter is dropped.  Paused templates are never returned.  Results are
    always ordered by ``next_generation_date`` ascending (template id breaks
    ties) so the oldest-due template is processed first.

Failure modes:
    Any database error while selecting is raised as ``SelectionError``,
    which is fatal to the whole run.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from billing_kernel.exceptions import SelectionError, TemplateNotFoundError
from billing_kernel.logging_config import get_logger
from billing_recurring.domain.types import RecurringTemplate
from billing_recurring.models.invoice import ClientModel
from billing_recurring.models.recurring import RecurringInvoiceTemplateModel
from billing_recurring.selectors.base import BaseSelector

logger = get_logger("recurring.selector")


class DueTemplateSelector(BaseSelector):
    """Read-only access to recurring templates."""

    def _base_query(self):
        return (
            select(RecurringInvoiceTemplateModel, ClientModel.name)
            .outerjoin(ClientModel, ClientModel.id == RecurringInvoiceTemplateModel.client_id)
        )

    def select_due(
        self, as_of: datetime, include_all: bool = False,
    ) -> list[RecurringTemplate]:
        """Active templates due at ``as_of`` (or all active ones), oldest first.

        Raises:
            SelectionError: If the query fails.
        """
        stmt = self._base_query().where(RecurringInvoiceTemplateModel.active.is_(True))
        if not include_all:
            stmt = stmt.where(RecurringInvoiceTemplateModel.next_generation_date <= as_of)
        stmt = stmt.order_by(
            RecurringInvoiceTemplateModel.next_generation_date.asc(),
            RecurringInvoiceTemplateModel.id.asc(),
        )

        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            logger.error(
                "due_template_selection_failed",
                extra={"as_of": as_of, "include_all": include_all},
                exc_info=True,
            )
            raise SelectionError(str(exc)) from exc

        templates = [model.to_dto(client_name=name) for model, name in rows]
        logger.debug(
            "due_templates_selected",
            extra={
                "as_of": as_of,
                "include_all": include_all,
                "count": len(templates),
            },
        )
        return templates

    def list_templates(self, include_paused: bool = True) -> list[RecurringTemplate]:
        """Every template, newest first, with its client name."""
        stmt = self._base_query()
        if not include_paused:
            stmt = stmt.where(RecurringInvoiceTemplateModel.active.is_(True))
        stmt = stmt.order_by(
            RecurringInvoiceTemplateModel.created_at.desc(),
            RecurringInvoiceTemplateModel.id.asc(),
        )
        return [model.to_dto(client_name=name) for model, name in self.session.execute(stmt).all()]

    def get_template(self, template_id: UUID) -> RecurringTemplate:
        """
        Raises:
            TemplateNotFoundError: If no template has this id.
        """
        row = self.session.execute(
            self._base_query().where(RecurringInvoiceTemplateModel.id == template_id)
        ).first()
        if row is None:
            raise TemplateNotFoundError(str(template_id))
        model, name = row
        return model.to_dto(client_name=name)
