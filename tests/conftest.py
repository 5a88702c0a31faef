"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Тесты никогда не трогают боевую базу
os.environ.setdefault("DATABASE_URL", "sqlite://")

# Добавить корень проекта в PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, User, Stake, PresaleOrder
from staking_system.events.event_bus import eventBus
from staking_system.services.settings_service import SettingsService
from staking_system.utils.time_machine import timeMachine

TODAY = date(2025, 3, 1)


@pytest.fixture
def engine():
    """In-memory SQLite shared by every connection of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = sessionmaker(bind=engine)()
    yield session
    session.close()


@pytest.fixture
def seeded(session):
    """Default rank rules, staking cycles and settings."""
    SettingsService(session).initializeDefaults()
    return session


@pytest.fixture(autouse=True)
def clock():
    """Virtual clock pinned to TODAY."""
    timeMachine.setDate(TODAY)
    yield timeMachine
    timeMachine.resetToRealTime()


@pytest.fixture(autouse=True)
def clean_event_bus():
    eventBus.clear()
    yield
    eventBus.clear()


@pytest.fixture
def make_user(session):
    """Create a participant, optionally under a referrer."""

    def _make(referrer=None, wallet="0", bls="0", rank="B0", highest=None, **fields):
        user = User(
            referrerID=referrer.userID if referrer is not None else None,
            walletBalance=Decimal(wallet),
            blsBalance=Decimal(bls),
            currentRank=rank,
            highestRank=highest or rank,
            **fields
        )
        session.add(user)
        if referrer is not None:
            referrer.directReferralsCount = (referrer.directReferralsCount or 0) + 1
        session.commit()
        return user

    return _make


@pytest.fixture
def make_stake(session):
    """Insert an active stake directly, bypassing the wallet."""

    def _make(user, amount="100", dailyRate="2.00", cycleDays=30, startDate=None, status="active"):
        startDate = startDate or TODAY
        stake = Stake(
            userID=user.userID,
            amount=Decimal(amount),
            cycleDays=cycleDays,
            dailyRate=Decimal(dailyRate),
            status=status,
            startDate=startDate,
            endDate=startDate + timedelta(days=cycleDays),
            lastYieldDate=startDate
        )
        session.add(stake)
        session.commit()
        return stake

    return _make


@pytest.fixture
def make_order(session):
    """Insert a presale order."""

    def _make(user, totalAmount="1000", status="confirmed", immediatePct="10",
              monthlyPct="90", months=12, purchaseDate=None, quantity=1):
        order = PresaleOrder(
            userID=user.userID,
            quantity=quantity,
            totalAmount=Decimal(totalAmount),
            status=status,
            purchaseDate=purchaseDate or TODAY,
            immediatePct=Decimal(immediatePct),
            monthlyPct=Decimal(monthlyPct),
            months=months
        )
        session.add(order)
        session.commit()
        return order

    return _make
