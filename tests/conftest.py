"""Shared test fixtures."""

from __future__ import annotations

import random
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from woodpecker.config import Settings
from woodpecker.database import close_db, create_tables, get_session, get_session_factory, init_db
from woodpecker.db.models import Puzzle, User
from woodpecker.service import TrainingService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

START = datetime(2026, 3, 4, 12, 0, tzinfo=timezone.utc)  # a Wednesday


class FakeClock:
    """Settable clock for services under test."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_puzzles(count: int = 30, base_rating: int = 1200, step: int = 15) -> list[Puzzle]:
    """Catalog rows p00..pNN with ratings base_rating + step * i.

    Even ids carry "fork", every third "pin", every fifth "mate".
    """
    puzzles = []
    for i in range(count):
        themes = []
        if i % 2 == 0:
            themes.append("fork")
        if i % 3 == 0:
            themes.append("pin")
        if i % 5 == 0:
            themes.append("mate")
        puzzles.append(Puzzle(
            id=f"p{i:02d}",
            rating=base_rating + step * i,
            themes=themes,
            fen="8/8/8/8/8/8/8/8 w - - 0 1",
            moves="e2e4",
        ))
    return puzzles


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        log_format="console",
        streak_min_daily_attempts=10,
        weak_puzzle_threshold=2,
    )


@pytest_asyncio.fixture
async def db_engine() -> AsyncGenerator[None, None]:
    """Fresh in-memory database with every table created."""
    await init_db(TEST_DATABASE_URL)
    await create_tables()
    yield
    await close_db()


@pytest_asyncio.fixture
async def db_session(db_engine: None) -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


@pytest_asyncio.fixture
async def seeded(db_engine: None) -> list[str]:
    """Catalog of 30 puzzles rated 1200..1635. Returns their ids."""
    puzzles = make_puzzles()
    async with get_session_factory()() as db:
        db.add_all(puzzles)
        await db.commit()
    return [p.id for p in puzzles]


async def add_user(
    display_name: str = "tester",
    tz_name: str | None = None,
    show_on_leaderboard: bool = True,
    created_at: datetime = START - timedelta(days=30),
) -> int:
    async with get_session_factory()() as db:
        user = User(
            display_name=display_name,
            timezone=tz_name,
            show_on_leaderboard=show_on_leaderboard,
            created_at=created_at,
        )
        db.add(user)
        await db.commit()
        return user.id


@pytest.fixture
def make_user(db_engine: None):
    """Async factory for committed users: ``await make_user(display_name=..., tz_name=...)``."""
    return add_user


@pytest_asyncio.fixture
async def user_id(db_engine: None) -> int:
    return await add_user()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def service(db_engine: None, settings: Settings, clock: FakeClock) -> TrainingService:
    return TrainingService(
        session_factory=get_session_factory(),
        settings=settings,
        rng=random.Random(42),
        clock=clock,
    )
