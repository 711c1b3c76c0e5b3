"""
Fixtures for billing_recurring tests.

Uses in-memory SQLite with real ORM models.  Datetimes are naive because
SQLite drops tzinfo on round-trip.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import billing_recurring.models  # noqa: F401
from billing_kernel.db.base import Base
from billing_kernel.db.engine import enable_sqlite_savepoints
from billing_kernel.domain.clock import DeterministicClock
from billing_recurring.domain.types import RecurringTemplate
from billing_recurring.models.invoice import ClientModel, ContractModel
from billing_recurring.models.recurring import RecurringInvoiceTemplateModel
from billing_recurring.services.template_store import RecurringTemplateStore

NOW = datetime(2024, 3, 16, 9, 30)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory) -> Session:
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock(NOW)


@pytest.fixture
def store(db_session, clock):
    return RecurringTemplateStore(db_session, clock)


@pytest.fixture
def client(db_session) -> ClientModel:
    model = ClientModel(name="Acme Corp", email="billing@acme.test")
    db_session.add(model)
    db_session.flush()
    return model


@pytest.fixture
def other_client(db_session) -> ClientModel:
    model = ClientModel(name="Globex", email="ap@globex.test")
    db_session.add(model)
    db_session.flush()
    return model


@pytest.fixture
def contract(db_session, client) -> ContractModel:
    model = ContractModel(client_id=client.id, name="Retainer 2024")
    db_session.add(model)
    db_session.flush()
    return model


@pytest.fixture
def make_template(db_session, client):
    """Insert a template row directly, with full control over schedule state."""

    def _make(
        next_generation_date: datetime,
        *,
        client_id: UUID | None = None,
        amount: Decimal = Decimal("1000.00"),
        frequency: str = "monthly",
        day_of_month: int = 15,
        day_of_week: int = 1,
        active: bool = True,
        description: str = "Monthly retainer",
        auto_pdf: bool = False,
        auto_send: bool = False,
        email_app: str | None = None,
    ) -> RecurringTemplate:
        model = RecurringInvoiceTemplateModel(
            client_id=client_id or client.id,
            amount=amount,
            currency="USD",
            description=description,
            frequency=frequency,
            day_of_month=day_of_month,
            day_of_week=day_of_week,
            next_generation_date=next_generation_date,
            active=active,
            generated_count=0,
            auto_pdf=auto_pdf,
            auto_send=auto_send,
            email_app=email_app,
        )
        db_session.add(model)
        db_session.flush()
        return model.to_dto()

    return _make
