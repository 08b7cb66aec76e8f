# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets a fresh in-memory SQLite database wired with the same engine
hooks as production SQLite (foreign keys on, BEGIN IMMEDIATE), plus factory
fixtures for the catalog and directory rows the engine consumes.

Members are funded through the ledger so balances always reconcile.
"""

import os
import sys

os.environ.setdefault("CI", "true")

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if backend_dir not in sys.path:
    sys.path.insert(0, backend_dir)

from datetime import date, datetime
from decimal import Decimal
from itertools import count
from typing import Callable, Iterable, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import cowork.models  # noqa: F401
from cowork.database import Base, configure_sqlite_engine
from cowork.models.member import Member, Staff, StaffRole
from cowork.models.space import Space, SpaceStatus
from cowork.models.tariff import Tariff, TariffType, tariff_spaces
from cowork.services.base import BaseService
from cowork.services.booking_service import BookingService
from cowork.services.ledger_service import LedgerService
from cowork.services.subscription_service import SubscriptionService

# Fixed facility clock used by tests that depend on "now"
TEST_NOW = datetime(2024, 5, 20, 12, 0)
TEST_TODAY = TEST_NOW.date()


def make_engine(url: str = "sqlite://") -> Engine:
    """SQLite engine with the production SQLite hooks installed."""
    kwargs = {"connect_args": {"check_same_thread": False}}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    test_engine = create_engine(url, **kwargs)
    configure_sqlite_engine(test_engine)
    Base.metadata.create_all(bind=test_engine)
    return test_engine


@pytest.fixture
def engine() -> Engine:
    test_engine = make_engine()
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Session:
    """Database session for a single test."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def _reset_service_metrics():
    BaseService._class_metrics.clear()
    yield
    BaseService._class_metrics.clear()


_sequence = count(1)


@pytest.fixture
def ledger(db: Session) -> LedgerService:
    return LedgerService(db)


@pytest.fixture
def subscription_service(db: Session, ledger: LedgerService) -> SubscriptionService:
    return SubscriptionService(db, ledger_service=ledger)


@pytest.fixture
def booking_service(
    db: Session, ledger: LedgerService, subscription_service: SubscriptionService
) -> BookingService:
    return BookingService(db, ledger_service=ledger, subscription_service=subscription_service)


@pytest.fixture
def make_member(db: Session, ledger: LedgerService) -> Callable[..., Member]:
    """Create a member, optionally funded by a deposit."""

    def _make(name: Optional[str] = None, balance: Optional[str] = None) -> Member:
        n = next(_sequence)
        member = Member(name=name or f"Member {n}", email=f"member{n}@example.com")
        db.add(member)
        db.commit()
        if balance is not None and Decimal(balance) > 0:
            ledger.deposit(member.id, balance)
        return member

    return _make


@pytest.fixture
def make_staff(db: Session) -> Callable[..., Staff]:
    def _make(role: StaffRole = StaffRole.ADMIN) -> Staff:
        n = next(_sequence)
        staff = Staff(name=f"Staff {n}", email=f"staff{n}@example.com", role=role)
        db.add(staff)
        db.commit()
        return staff

    return _make


@pytest.fixture
def make_space(db: Session) -> Callable[..., Space]:
    def _make(
        name: Optional[str] = None, status: SpaceStatus = SpaceStatus.AVAILABLE, capacity: int = 1
    ) -> Space:
        space = Space(name=name or f"Space {next(_sequence)}", status=status, capacity=capacity)
        db.add(space)
        db.commit()
        return space

    return _make


@pytest.fixture
def make_tariff(db: Session) -> Callable[..., Tariff]:
    def _make(
        tariff_type: TariffType = TariffType.HOURLY,
        price: str = "200.00",
        duration_days: int = 0,
        included_minutes: int = 0,
        name: Optional[str] = None,
        spaces: Iterable[Space] = (),
        is_active: bool = True,
    ) -> Tariff:
        tariff = Tariff(
            name=name or f"Tariff {next(_sequence)}",
            type=tariff_type,
            price=Decimal(price),
            duration_days=duration_days,
            included_minutes=included_minutes,
            is_active=is_active,
        )
        db.add(tariff)
        db.flush()
        for space in spaces:
            db.execute(tariff_spaces.insert().values(tariff_id=tariff.id, space_id=space.id))
        db.commit()
        return tariff

    return _make


@pytest.fixture
def today() -> date:
    return TEST_TODAY


@pytest.fixture
def now() -> datetime:
    return TEST_NOW
