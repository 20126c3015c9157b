"""Pytest fixtures for testing"""

import pytest
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from billing_engine.api.dependencies import get_analytics_client
from billing_engine.api.main import create_app
from billing_engine.infrastructure.database.models import Base, Category, PaymentMethod
from billing_engine.infrastructure.database.session import build_engine, get_db
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.settlement import SettlementCategoryCache
from billing_engine.config import settings


# Test database
engine = build_engine("sqlite://")
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

USER_ID = "user_ana"


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def analytics_client() -> MagicMock:
    """Analytics client stand-in; background deliveries are awaited on the mock"""
    client = MagicMock()
    client.send_events = AsyncMock(return_value=True)
    return client


@pytest.fixture
def client(db: Session, analytics_client: MagicMock) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_analytics_client] = lambda: analytics_client
    return TestClient(app)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def category_cache() -> SettlementCategoryCache:
    return SettlementCategoryCache()


@pytest.fixture
def credit_card(db: Session) -> PaymentMethod:
    """Credit-mode card closing on the 5th, due 10 days later"""
    card = PaymentMethod(
        user_id=USER_ID,
        name="Nubank",
        type="credit",
        credit_mode=True,
        statement_closing_day=5,
        payment_due_day=10,
    )
    db.add(card)
    db.commit()
    return card


@pytest.fixture
def bank_account(db: Session) -> PaymentMethod:
    account = PaymentMethod(
        user_id=USER_ID,
        name="Conta Corrente",
        type="bank",
        is_default=True,
    )
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def category(db: Session) -> Category:
    groceries = Category(user_id=USER_ID, name="Mercado", type="expense", icon="cart")
    db.add(groceries)
    db.commit()
    return groceries


@pytest.fixture
def settlement_category(db: Session) -> Category:
    system = Category(name=settings.settlement_category_name, type="expense", is_system=True)
    db.add(system)
    db.commit()
    return system
