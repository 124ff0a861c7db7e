from __future__ import annotations

from typing import Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth import CurrentUser
from app.database import Base
from app import models  # noqa: F401
from app.services.side_effects import SideEffectChannels


class FakeEmailChannel:
    def __init__(self, *, delivered: bool = True, error: str | None = "HTTP_500: boom") -> None:
        self.delivered = delivered
        self.error = error
        self.sent: list[dict] = []

    def send(self, **kwargs) -> tuple[bool, str | None]:
        self.sent.append(kwargs)
        if self.delivered:
            return True, None
        return False, self.error


class FakeMarketplaceClient:
    def __init__(self, *, ok: bool = True, error: str | None = "HTTP_503: unavailable") -> None:
        self.ok = ok
        self.error = error
        self.payloads: list[dict] = []

    def post_update(self, payload: dict) -> tuple[bool, str | None]:
        self.payloads.append(payload)
        if self.ok:
            return True, None
        return False, self.error


def make_user(user_id: str = "u-1", role: str = "production_manager", roles: tuple[str, ...] = ()) -> CurrentUser:
    return CurrentUser(id=user_id, username=f"user-{user_id}", role=role, roles=roles)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def email_channel() -> FakeEmailChannel:
    return FakeEmailChannel()


@pytest.fixture
def marketplace() -> FakeMarketplaceClient:
    return FakeMarketplaceClient()


@pytest.fixture
def channels(email_channel, marketplace) -> SideEffectChannels:
    return SideEffectChannels(email=email_channel, marketplace=marketplace)


@pytest.fixture
def manager() -> CurrentUser:
    return make_user("mgr-1", "production_manager")


def open_feedback(db: Session, channels: SideEffectChannels, **overrides):
    from app.schemas import FeedbackCreate
    from app.use_cases.feedback_lifecycle import create_feedback_use_case

    values = {
        "production_id": "PRD-100",
        "batch_id": "B-100",
        "product_id": "P-100",
        "product_name": "Bracket",
        "quantity_ordered": 100,
    }
    values.update(overrides)
    return create_feedback_use_case(
        db=db,
        data=FeedbackCreate(**values),
        current_user=make_user("mgr-1"),
        channels=channels,
    )


@pytest.fixture
def feedback(db, channels):
    return open_feedback(db, channels)
