"""SQLAlchemy ORM models for affirm-ms.

Tables:
    affirmation_line    reusable pool of spoken lines, unique by text_hash
    audio_version       one synthesized rendition per (line, voice)
    session_template    curated, ordered line sets matched by keywords
    affirmation_session a generated session (goal, intention, voice)
    session_line        ordered membership of lines in a session
    generation_log      one row per selection, updated by feedback
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class AffirmationLine(Base):
    """A single affirmation in the reusable pool.

    ``text_hash`` identifies a line by its normalized text and goal, so
    regenerating the same sentence upserts instead of duplicating it.
    ``rating`` is on a 0..5 scale; None means unrated.
    """

    __tablename__ = "affirmation_line"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    goal: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    text_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    emotion: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # Single-voice audio from before per-voice versions existed
    legacy_audio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    legacy_duration_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    audio_versions: Mapped[List["AudioVersion"]] = relationship(
        back_populates="line", cascade="all, delete-orphan"
    )


class AudioVersion(Base):
    """Synthesized audio for one (line, voice) pair."""

    __tablename__ = "audio_version"
    __table_args__ = (
        UniqueConstraint("affirmation_id", "voice_id", name="uq_audio_version_line_voice"),
        Index("ix_audio_version_cache_key", "cache_key"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    affirmation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("affirmation_line.id", ondelete="CASCADE"), nullable=False
    )
    voice_id: Mapped[str] = mapped_column(String(32), nullable=False)
    pace: Mapped[str] = mapped_column(String(16), nullable=False)
    cache_key: Mapped[str] = mapped_column(String(64), nullable=False)
    audio_url: Mapped[str] = mapped_column(Text, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    line: Mapped[AffirmationLine] = relationship(back_populates="audio_versions")


class SessionTemplate(Base):
    """A curated, ordered set of lines reused verbatim on a keyword match."""

    __tablename__ = "session_template"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    goal: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    intent: Mapped[str] = mapped_column(Text, nullable=False, default="")
    intent_keywords: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    affirmation_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    use_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class AffirmationSession(Base):
    __tablename__ = "affirmation_session"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    goal: Mapped[str] = mapped_column(String(32), nullable=False)
    intention: Mapped[str] = mapped_column(Text, nullable=False, default="")
    voice_id: Mapped[str] = mapped_column(String(32), nullable=False)
    pace: Mapped[str] = mapped_column(String(16), nullable=False)
    silence_between_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    lines: Mapped[List["SessionLineLink"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="SessionLineLink.position",
    )


class SessionLineLink(Base):
    """Position of a line inside a session. Positions are 0-based and contiguous."""

    __tablename__ = "session_line"
    __table_args__ = (
        UniqueConstraint("session_id", "position", name="uq_session_line_position"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("affirmation_session.id", ondelete="CASCADE"), nullable=False, index=True
    )
    affirmation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("affirmation_line.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    silence_after_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    session: Mapped[AffirmationSession] = relationship(back_populates="lines")
    line: Mapped[AffirmationLine] = relationship()


class GenerationLog(Base):
    """Audit row written once per selection."""

    __tablename__ = "generation_log"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    session_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    goal: Mapped[str] = mapped_column(String(32), nullable=False)
    intention: Mapped[str] = mapped_column(Text, nullable=False, default="")
    tier: Mapped[str] = mapped_column(String(16), nullable=False)
    affirmation_ids: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    template_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    was_rated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    was_replayed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
