"""
Data access for the affirmation pool, audio versions, sessions and logs.

Every method opens its own short transaction. Returned ORM objects are
detached (the session factory does not expire on commit), so column
attributes stay readable after the call; relationships are never lazily
loaded outside this module.

Writes that may race are upserts keyed by content identity:
    - lines by text_hash
    - audio versions by (affirmation_id, voice_id)
Counters and ratings are adjusted with SQL expressions.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError

from affirm_ms.core.errors import NotFoundError
from affirm_ms.core.logging import debug, get_logger
from affirm_ms.db.database import Database
from affirm_ms.db.models import (
    AffirmationLine,
    AffirmationSession,
    AudioVersion,
    GenerationLog,
    SessionLineLink,
    SessionTemplate,
)
from affirm_ms.utils.text import line_identity, normalize_text

_LOG = get_logger("affirm-ms.repository")

NEUTRAL_RATING = 3.0
MIN_RATING = 1.0
MAX_RATING = 5.0


def _clamped_rating(column, delta: float):
    new_value = func.coalesce(column, NEUTRAL_RATING) + delta
    return case(
        (new_value > MAX_RATING, MAX_RATING),
        (new_value < MIN_RATING, MIN_RATING),
        else_=new_value,
    )


@dataclass
class SessionLineRow:
    """A session link joined with its line."""
    position: int
    silence_after_ms: Optional[int]
    line: AffirmationLine


class AffirmationRepository:
    def __init__(self, db: Database):
        self.db = db

    # ─────────────────────────────────────────────────────────────────────
    # Lines and templates
    # ─────────────────────────────────────────────────────────────────────

    def get_lines(self, ids: Sequence[str]) -> List[AffirmationLine]:
        """Lines for ids, in the order given. Unknown ids are skipped."""
        if not ids:
            return []
        with self.db.session() as s:
            rows = s.scalars(select(AffirmationLine).where(AffirmationLine.id.in_(list(ids)))).all()
        by_id = {row.id: row for row in rows}
        return [by_id[i] for i in ids if i in by_id]

    def lines_for_goal(self, goal: str) -> List[AffirmationLine]:
        with self.db.session() as s:
            return list(s.scalars(select(AffirmationLine).where(AffirmationLine.goal == goal)).all())

    def templates_for_goal(self, goal: str) -> List[SessionTemplate]:
        with self.db.session() as s:
            return list(s.scalars(select(SessionTemplate).where(SessionTemplate.goal == goal)).all())

    def upsert_line(
        self,
        text: str,
        goal: str,
        tags: Iterable[str] = (),
        emotion: Optional[str] = None,
    ) -> AffirmationLine:
        """
        Return the pool line for (text, goal), creating it if absent.

        An existing line keeps its tags, rating and counters.
        """
        text = normalize_text(text)
        text_hash = line_identity(text, goal)
        existing = self._line_by_hash(text_hash)
        if existing is not None:
            return existing
        try:
            with self.db.session() as s:
                row = AffirmationLine(
                    text=text,
                    goal=goal,
                    text_hash=text_hash,
                    tags=list(dict.fromkeys(t for t in tags if t)),
                    emotion=emotion,
                )
                s.add(row)
            debug(_LOG, "line_created", id=row.id, goal=goal)
            return row
        except IntegrityError:
            # Lost an insert race; the winner's row is the line.
            row = self._line_by_hash(text_hash)
            if row is None:
                raise
            return row

    def _line_by_hash(self, text_hash: str) -> Optional[AffirmationLine]:
        with self.db.session() as s:
            return s.scalar(select(AffirmationLine).where(AffirmationLine.text_hash == text_hash))

    def add_template(
        self,
        title: str,
        goal: str,
        intent: str,
        intent_keywords: Sequence[str],
        affirmation_ids: Sequence[str],
    ) -> SessionTemplate:
        with self.db.session() as s:
            row = SessionTemplate(
                title=title,
                goal=goal,
                intent=intent,
                intent_keywords=list(intent_keywords),
                affirmation_ids=list(affirmation_ids),
            )
            s.add(row)
        return row

    def bump_line_usage(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        with self.db.session() as s:
            s.execute(
                update(AffirmationLine)
                .where(AffirmationLine.id.in_(list(ids)))
                .values(use_count=AffirmationLine.use_count + 1)
            )

    def bump_template_usage(self, template_id: str) -> None:
        with self.db.session() as s:
            s.execute(
                update(SessionTemplate)
                .where(SessionTemplate.id == template_id)
                .values(use_count=SessionTemplate.use_count + 1)
            )

    def adjust_line_rating(self, ids: Sequence[str], delta: float) -> None:
        if not ids:
            return
        with self.db.session() as s:
            s.execute(
                update(AffirmationLine)
                .where(AffirmationLine.id.in_(list(ids)))
                .values(rating=_clamped_rating(AffirmationLine.rating, delta))
            )

    def adjust_template_rating(self, template_id: str, delta: float) -> None:
        with self.db.session() as s:
            s.execute(
                update(SessionTemplate)
                .where(SessionTemplate.id == template_id)
                .values(rating=_clamped_rating(SessionTemplate.rating, delta))
            )

    # ─────────────────────────────────────────────────────────────────────
    # Audio versions
    # ─────────────────────────────────────────────────────────────────────

    def get_audio_version(self, affirmation_id: str, voice_id: str) -> Optional[AudioVersion]:
        with self.db.session() as s:
            return s.scalar(
                select(AudioVersion).where(
                    AudioVersion.affirmation_id == affirmation_id,
                    AudioVersion.voice_id == voice_id,
                )
            )

    def audio_versions_for_lines(self, ids: Sequence[str]) -> Dict[str, List[AudioVersion]]:
        result: Dict[str, List[AudioVersion]] = defaultdict(list)
        if not ids:
            return result
        with self.db.session() as s:
            rows = s.scalars(
                select(AudioVersion)
                .where(AudioVersion.affirmation_id.in_(list(ids)))
                .order_by(AudioVersion.created_at)
            ).all()
        for row in rows:
            result[row.affirmation_id].append(row)
        return result

    def upsert_audio_version(
        self,
        affirmation_id: str,
        voice_id: str,
        pace: str,
        cache_key: str,
        audio_url: str,
        duration_ms: int,
    ) -> AudioVersion:
        """Insert or update the unique (affirmation_id, voice_id) row."""
        values = {
            "pace": pace,
            "cache_key": cache_key,
            "audio_url": audio_url,
            "duration_ms": int(duration_ms),
        }
        existing = self.get_audio_version(affirmation_id, voice_id)
        if existing is None:
            try:
                with self.db.session() as s:
                    row = AudioVersion(affirmation_id=affirmation_id, voice_id=voice_id, **values)
                    s.add(row)
                return row
            except IntegrityError:
                pass
        with self.db.session() as s:
            s.execute(
                update(AudioVersion)
                .where(
                    AudioVersion.affirmation_id == affirmation_id,
                    AudioVersion.voice_id == voice_id,
                )
                .values(**values)
            )
        row = self.get_audio_version(affirmation_id, voice_id)
        if row is None:
            raise NotFoundError(
                "audio version removed during upsert",
                {"affirmation_id": affirmation_id, "voice_id": voice_id},
            )
        return row

    # ─────────────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────────────

    def create_session(
        self,
        goal: str,
        intention: str,
        voice_id: str,
        pace: str,
        silence_between_ms: int,
        affirmation_ids: Sequence[str],
        session_id: Optional[str] = None,
    ) -> AffirmationSession:
        """Create a session with links at positions 0..n-1."""
        with self.db.session() as s:
            session = AffirmationSession(
                goal=goal,
                intention=intention,
                voice_id=voice_id,
                pace=pace,
                silence_between_ms=silence_between_ms,
            )
            if session_id:
                session.id = session_id
            s.add(session)
            s.flush()
            for position, affirmation_id in enumerate(affirmation_ids):
                s.add(SessionLineLink(
                    session_id=session.id,
                    affirmation_id=affirmation_id,
                    position=position,
                ))
        return session

    def replace_session_lines(self, session_id: str, affirmation_ids: Sequence[str]) -> None:
        """Rewrite a session's ordered lines, keeping positions contiguous."""
        with self.db.session() as s:
            s.execute(delete(SessionLineLink).where(SessionLineLink.session_id == session_id))
            s.flush()
            for position, affirmation_id in enumerate(affirmation_ids):
                s.add(SessionLineLink(
                    session_id=session_id,
                    affirmation_id=affirmation_id,
                    position=position,
                ))

    def get_session(self, session_id: str) -> Optional[AffirmationSession]:
        with self.db.session() as s:
            return s.get(AffirmationSession, session_id)

    def session_lines(self, session_id: str) -> List[SessionLineRow]:
        with self.db.session() as s:
            rows = s.execute(
                select(SessionLineLink, AffirmationLine)
                .join(AffirmationLine, AffirmationLine.id == SessionLineLink.affirmation_id)
                .where(SessionLineLink.session_id == session_id)
                .order_by(SessionLineLink.position)
            ).all()
        return [
            SessionLineRow(position=link.position, silence_after_ms=link.silence_after_ms, line=line)
            for link, line in rows
        ]

    # ─────────────────────────────────────────────────────────────────────
    # Generation log
    # ─────────────────────────────────────────────────────────────────────

    def add_generation_log(
        self,
        goal: str,
        intention: str,
        tier: str,
        affirmation_ids: Sequence[str],
        confidence: float,
        cost: float,
        template_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> GenerationLog:
        with self.db.session() as s:
            row = GenerationLog(
                goal=goal,
                intention=intention,
                tier=tier,
                affirmation_ids=list(affirmation_ids),
                confidence=confidence,
                cost=cost,
                template_id=template_id,
                session_id=session_id,
            )
            s.add(row)
        return row

    def attach_log_to_session(self, log_id: str, session_id: str) -> None:
        with self.db.session() as s:
            s.execute(update(GenerationLog).where(GenerationLog.id == log_id).values(session_id=session_id))

    def latest_log(self, session_id: str) -> Optional[GenerationLog]:
        with self.db.session() as s:
            return s.scalar(
                select(GenerationLog)
                .where(GenerationLog.session_id == session_id)
                .order_by(GenerationLog.created_at.desc())
                .limit(1)
            )

    def record_log_feedback(self, log_id: str, rating: int, replayed: bool) -> None:
        with self.db.session() as s:
            s.execute(
                update(GenerationLog)
                .where(GenerationLog.id == log_id)
                .values(was_rated=True, rating=rating, was_replayed=replayed)
            )

    def counts(self) -> Dict[str, int]:
        """Row counts used by the health endpoint."""
        with self.db.session() as s:
            return {
                "lines": s.scalar(select(func.count()).select_from(AffirmationLine)) or 0,
                "audio_versions": s.scalar(select(func.count()).select_from(AudioVersion)) or 0,
                "templates": s.scalar(select(func.count()).select_from(SessionTemplate)) or 0,
                "sessions": s.scalar(select(func.count()).select_from(AffirmationSession)) or 0,
            }
