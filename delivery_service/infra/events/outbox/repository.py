"""Repository for OutboxEvent status transitions.

Provides methods for:
- Selecting PENDING events that are due
- Claiming an event atomically (PENDING -> PROCESSING)
- Recording the publish outcome
- Recovering claims abandoned by a crashed relay
- Counting events per status

Every transition is a conditional UPDATE on the expected current status, so
two relays racing for the same row cannot both move it. Nothing here commits;
the relay owns the transaction boundaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update

from delivery_service.core.database.repository import BaseRepository
from delivery_service.infra.events.outbox.models import OutboxEvent, OutboxStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

# error_message is truncated to keep rows small
MAX_ERROR_LENGTH = 1000


class OutboxRepository(BaseRepository[OutboxEvent]):
    """Repository for outbox event operations."""

    def __init__(self) -> None:
        """Initialize repository with OutboxEvent model."""
        super().__init__(OutboxEvent)

    async def fetch_pending(
        self,
        session: AsyncSession,
        *,
        now: datetime,
        batch_size: int = 100,
    ) -> Sequence[OutboxEvent]:
        """Fetch PENDING events whose next attempt is due, oldest first.

        Args:
            session: Database session
            now: Current time; rows with ``next_attempt_at`` after it are skipped
            batch_size: Maximum number of events to return

        Returns:
            Sequence of PENDING OutboxEvent records
        """
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatus.PENDING,
                or_(OutboxEvent.next_attempt_at.is_(None), OutboxEvent.next_attempt_at <= now),
            )
            .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id.asc())
            .limit(batch_size)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def claim(
        self,
        session: AsyncSession,
        event_id: Any,
        *,
        now: datetime,
    ) -> OutboxEvent | None:
        """Move an event from PENDING to PROCESSING.

        Returns:
            The freshly loaded event if this caller won the claim, None if the
            event was no longer PENDING.
        """
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id, OutboxEvent.status == OutboxStatus.PENDING)
            .values(status=OutboxStatus.PROCESSING, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._logger.debug("Outbox claim lost", extra={"event_id": str(event_id)})
            return None

        reload = (
            select(OutboxEvent)
            .where(OutboxEvent.id == event_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(reload)).scalar_one()

    async def mark_processed(
        self,
        session: AsyncSession,
        event_id: Any,
        *,
        now: datetime,
    ) -> bool:
        """PROCESSING -> PROCESSED, setting processed_at."""
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id, OutboxEvent.status == OutboxStatus.PROCESSING)
            .values(
                status=OutboxStatus.PROCESSED,
                processed_at=now,
                claimed_at=None,
                error_message=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def schedule_retry(
        self,
        session: AsyncSession,
        event_id: Any,
        *,
        retry_count: int,
        error_message: str,
        next_attempt_at: datetime | None,
    ) -> bool:
        """PROCESSING -> PENDING after a failed publish."""
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id, OutboxEvent.status == OutboxStatus.PROCESSING)
            .values(
                status=OutboxStatus.PENDING,
                retry_count=retry_count,
                error_message=error_message[:MAX_ERROR_LENGTH],
                next_attempt_at=next_attempt_at,
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def mark_failed(
        self,
        session: AsyncSession,
        event_id: Any,
        *,
        retry_count: int,
        error_message: str,
    ) -> bool:
        """PROCESSING -> FAILED once retries are exhausted."""
        stmt = (
            update(OutboxEvent)
            .where(OutboxEvent.id == event_id, OutboxEvent.status == OutboxStatus.PROCESSING)
            .values(
                status=OutboxStatus.FAILED,
                retry_count=retry_count,
                error_message=error_message[:MAX_ERROR_LENGTH],
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def release_stale_claims(
        self,
        session: AsyncSession,
        *,
        claimed_before: datetime,
    ) -> int:
        """Return PROCESSING events claimed before ``claimed_before`` to PENDING.

        A relay that crashes between claiming and recording the outcome
        leaves its row in PROCESSING; releasing it means the event is
        published again (at-least-once).

        Returns:
            Number of events released
        """
        stmt = (
            update(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatus.PROCESSING,
                or_(OutboxEvent.claimed_at.is_(None), OutboxEvent.claimed_at < claimed_before),
            )
            .values(status=OutboxStatus.PENDING, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    async def count_by_status(self, session: AsyncSession) -> dict[OutboxStatus, int]:
        """Count events per status; statuses with no rows report 0."""
        stmt = select(OutboxEvent.status, func.count()).group_by(OutboxEvent.status)
        result = await session.execute(stmt)
        counts = {status: 0 for status in OutboxStatus}
        for status, count in result.all():
            counts[OutboxStatus(status)] = count
        return counts


__all__ = ["MAX_ERROR_LENGTH", "OutboxRepository"]
