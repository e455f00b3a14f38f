"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from coopflow.core.approval import ApprovalService
from coopflow.core.rbac import ActorContext, PermissionSnapshot
from coopflow.db.seed import seed_default_roles
from coopflow.db.session import build_session_factory, init_db
from coopflow.services.notifications import RecordingNotifier


class TickingClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db_session(session_factory):
    """Session for direct model access; rolled back after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def seeded_roles(session_factory):
    with session_factory.begin() as db:
        roles = seed_default_roles(db)
        return {name: role.id for name, role in roles.items()}


@pytest.fixture
def snapshot(session_factory, seeded_roles):
    with session_factory() as db:
        return PermissionSnapshot.from_roles(db)


@pytest.fixture
def make_actor(snapshot):
    """Build an ActorContext for a role against the seeded snapshot."""
    def _make(role: str, actor_id: str = None) -> ActorContext:
        return ActorContext(
            actor_id=actor_id or f"{role.lower()}-{uuid4().hex[:8]}",
            role=role,
            snapshot=snapshot,
        )
    return _make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def service(session_factory, seeded_roles, notifier, clock):
    return ApprovalService(
        session_factory,
        notifier=notifier,
        max_attempts=3,
        retry_delay=0,
        clock=clock,
    )


@pytest.fixture
def sample_config():
    """Sample workflow configuration dictionary."""
    return {
        "stages": {
            "WITHDRAWAL": {
                "chain": [
                    ["ACCOUNTANT", "APPROVED_BY_ACCOUNTANT"],
                    ["MANAGER", "DISBURSED"],
                ],
            },
            "LOAN": {
                "allow_self_chaining": True,
                "chain": [
                    ["ACCOUNTANT", "APPROVED_BY_ACCOUNTANT"],
                    ["COMMITTEE", "APPROVED_BY_COMMITTEE"],
                    ["MANAGER", "APPROVED_BY_MANAGER"],
                    ["ACCOUNTANT", "DISBURSED"],
                ],
            },
        },
        "loan_products": [
            {
                "name": "Starter",
                "min_total_contributions": "0",
                "min_duration_months": 3,
                "max_duration_months": 24,
                "required_savings_percentage": "40",
                "required_savings_during_loan": "35",
                "max_loan_based_on_salary_months": 6,
            },
        ],
    }
