"""Data-access layer — thin async wrappers around SQLAlchemy queries."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from skane_core.engine.context import FEEDBACK_SAMPLE_SIZE, summarise_history
from skane_core.engine.models import UserHistory
from skane_core.flow.orchestrator import SessionContext
from skane_core.storage.database import SessionRow, get_session_factory


class BaseRepository:
    """Shared base with session management for all repositories."""

    def __init__(self, session: AsyncSession | None = None) -> None:
        self._external_session = session

    async def _session(self) -> AsyncSession:
        if self._external_session is not None:
            return self._external_session
        return get_session_factory()()

    async def _release(self, session: AsyncSession) -> None:
        if session is not self._external_session:
            await session.close()


class SessionRepository(BaseRepository):
    """Snapshot persistence and history queries for skane sessions."""

    # ── Write ─────────────────────────────────────────────────

    async def save_snapshot(self, context: SessionContext) -> None:
        """Insert or update the row for ``context.session_id``."""
        session = await self._session()
        try:
            row = await session.get(SessionRow, context.session_id)
            if row is None:
                row = SessionRow(session_id=context.session_id, created_at=datetime.utcnow())
                session.add(row)
            row.user_id = context.user_id
            row.flow_state = context.flow_state.value
            row.internal_state = context.internal_state.value if context.internal_state else None
            row.raw_dysregulation = context.raw_dysregulation
            row.before_index = context.before_index
            row.after_index = context.after_index
            row.selected_action_id = context.micro_action.value if context.micro_action else None
            row.amplifier_type = (
                context.amplifier.type.value
                if context.amplifier is not None and context.amplifier.type is not None
                else None
            )
            row.feedback = context.feedback.value if context.feedback else None
            row.snapshot_json = context.model_dump_json()
            row.updated_at = datetime.utcnow()
            await session.commit()
        finally:
            await self._release(session)

    async def delete_for_user(self, user_id: str) -> int:
        session = await self._session()
        try:
            result = await session.execute(delete(SessionRow).where(SessionRow.user_id == user_id))
            await session.commit()
            return result.rowcount or 0
        finally:
            await self._release(session)

    # ── Read ──────────────────────────────────────────────────

    async def load_snapshot(self, session_id: str) -> str | None:
        """Return the raw snapshot JSON, or ``None`` if the session is unknown."""
        session = await self._session()
        try:
            row = await session.get(SessionRow, session_id)
            return row.snapshot_json if row is not None else None
        finally:
            await self._release(session)

    async def get_user_history(self, user_id: str | None) -> UserHistory:
        """Last chosen action plus mean feedback per action (newest rated first)."""
        if not user_id:
            return UserHistory()
        session = await self._session()
        try:
            last_stmt = (
                select(SessionRow.selected_action_id)
                .where(SessionRow.user_id == user_id)
                .where(SessionRow.selected_action_id.is_not(None))
                .order_by(SessionRow.created_at.desc())
                .limit(1)
            )
            last_action = (await session.execute(last_stmt)).scalar_one_or_none()

            rated_stmt = (
                select(SessionRow.selected_action_id, SessionRow.feedback)
                .where(SessionRow.user_id == user_id)
                .where(SessionRow.feedback.is_not(None))
                .order_by(SessionRow.created_at.desc())
                .limit(FEEDBACK_SAMPLE_SIZE)
            )
            rated = (await session.execute(rated_stmt)).all()
        finally:
            await self._release(session)

        return summarise_history(((a, f) for a, f in rated), last_action_id=last_action)

    async def amplifier_used_today(self, user_id: str | None) -> bool:
        """Whether the user already had an amplifier since midnight (UTC)."""
        if not user_id:
            return False
        midnight = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        session = await self._session()
        try:
            stmt = (
                select(SessionRow.session_id)
                .where(SessionRow.user_id == user_id)
                .where(SessionRow.amplifier_type.is_not(None))
                .where(SessionRow.updated_at >= midnight)
                .limit(1)
            )
            return (await session.execute(stmt)).first() is not None
        finally:
            await self._release(session)
