"""ORM models for the training progress engine.

Puzzles are owned by the catalog and read-only here. Everything under
"Ledgers" is append-only: attempts, XP awards and achievement unlocks are
never updated or deleted once written.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from woodpecker.db.base import Base, BigIntPK, JSONType, UTCDateTime


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    show_on_leaderboard: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    puzzle_sets: Mapped[list[PuzzleSet]] = relationship("PuzzleSet", back_populates="user")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class Puzzle(Base):
    """Immutable catalog entry. The solution is opaque to the engine."""

    __tablename__ = "puzzles"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    rating: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    themes: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    fen: Mapped[str] = mapped_column(Text, nullable=False, default="")
    moves: Mapped[str] = mapped_column(Text, nullable=False, default="")


# ---------------------------------------------------------------------------
# Puzzle sets and cycles
# ---------------------------------------------------------------------------


class PuzzleSet(Base):
    """A fixed, ordered puzzle selection replayed on every cycle."""

    __tablename__ = "puzzle_sets"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    min_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    max_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    focus_theme: Mapped[str | None] = mapped_column(String(32), nullable=True)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    target_cycles: Mapped[int] = mapped_column(Integer, nullable=False, server_default="7")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="puzzle_sets")
    items: Mapped[list[PuzzleSetItem]] = relationship(
        "PuzzleSetItem", order_by="PuzzleSetItem.position", lazy="selectin",
    )


class PuzzleSetItem(Base):
    """Membership of a puzzle in a set at a fixed 0-based position."""

    __tablename__ = "puzzle_set_items"
    __table_args__ = (
        UniqueConstraint("puzzle_set_id", "position", name="uq_puzzle_set_items_set_position"),
        UniqueConstraint("puzzle_set_id", "puzzle_id", name="uq_puzzle_set_items_set_puzzle"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    puzzle_set_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("puzzle_sets.id", ondelete="CASCADE"), nullable=False,
    )
    puzzle_id: Mapped[str] = mapped_column(String(16), ForeignKey("puzzles.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class Cycle(Base):
    """One pass over a puzzle set. Indices are contiguous from 1 per set."""

    __tablename__ = "cycles"
    __table_args__ = (
        UniqueConstraint("puzzle_set_id", "cycle_number", name="uq_cycles_set_number"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    puzzle_set_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("puzzle_sets.id", ondelete="CASCADE"), nullable=False,
    )
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="not_started")
    total_puzzles: Mapped[int] = mapped_column(Integer, nullable=False)
    solved_correct: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    solved_incorrect: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_time_ms: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    abandoned_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    puzzle_set: Mapped[PuzzleSet] = relationship("PuzzleSet", lazy="joined")


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------


class Attempt(Base):
    """One response to one puzzle in one cycle — UNIQUE(cycle_id, position)."""

    __tablename__ = "attempts"
    __table_args__ = (
        UniqueConstraint("cycle_id", "position", name="uq_attempts_cycle_position"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    cycle_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cycles.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    puzzle_id: Mapped[str] = mapped_column(String(16), ForeignKey("puzzles.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    was_skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    attempted_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class XPLedger(Base):
    """Immutable XP award log with idempotency key."""

    __tablename__ = "xp_ledger"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    capped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), unique=True, nullable=False)


class UserGamification(Base):
    """Denormalized XP total and streak state — single row per user."""

    __tablename__ = "user_gamification"

    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
    )
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    level_title: Mapped[str] = mapped_column(String(64), nullable=False, default="Pawn", server_default="Pawn")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_active_day: Mapped[date | None] = mapped_column(Date, nullable=True)
    grace_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class UserAchievement(Base):
    """Achievement unlocks — UNIQUE(user_id, achievement_id) prevents duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievements_user_achievement"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    achievement_id: Mapped[str] = mapped_column(String(64), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
