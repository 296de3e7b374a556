"""Test configuration and fixtures."""

import pytest
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from src.db.models import User, Order


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine shared across sessions of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create in-memory SQLite test database."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="test_user")
def test_user_fixture(session: Session):
    """Create test user."""
    user = User(email="trader@example.com")
    session.add(user)
    session.commit()
    return user


@pytest.fixture(name="add_order")
def add_order_fixture(session: Session, test_user: User):
    """Insert an order fill for the test user; times are naive UTC."""

    def _add(
        side: str,
        quantity: int,
        price,
        executed_at,
        symbol: str = "AAPL",
        broker_order_id: str = None,
    ) -> Order:
        order = Order(
            user_id=test_user.id,
            broker_order_id=broker_order_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            executed_at=executed_at,
        )
        session.add(order)
        session.commit()
        session.refresh(order)
        return order

    return _add
