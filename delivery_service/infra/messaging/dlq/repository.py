"""Repository for DeadLetterEvent status transitions.

Provides methods for:
- Selecting pending dead letters whose backoff has elapsed
- Claiming a dead letter with a short lease (claimed_until)
- Recording the republish outcome
- Resetting a dead letter for a manual retry
- Aggregate counts for statistics

``next_retry_at`` is only ever moved forward, except by reset_for_retry.
Nothing here commits; the processor owns the transaction boundaries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update

from delivery_service.core.database.repository import BaseRepository
from delivery_service.infra.messaging.dlq.models import DeadLetterEvent, DeadLetterStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql.elements import ColumnElement

MAX_ERROR_LENGTH = 1000


def _lease_free(now: datetime) -> ColumnElement[bool]:
    return or_(DeadLetterEvent.claimed_until.is_(None), DeadLetterEvent.claimed_until <= now)


class DeadLetterRepository(BaseRepository[DeadLetterEvent]):
    """Repository for dead letter operations."""

    def __init__(self) -> None:
        """Initialize repository with DeadLetterEvent model."""
        super().__init__(DeadLetterEvent)

    async def fetch_retryable(
        self,
        session: AsyncSession,
        *,
        now: datetime,
        max_retries: int,
        limit: int = 100,
    ) -> Sequence[DeadLetterEvent]:
        """Pending dead letters with retries left whose ``next_retry_at`` has passed.

        Returned oldest first (by created_at).
        """
        stmt = (
            select(DeadLetterEvent)
            .where(
                DeadLetterEvent.status == DeadLetterStatus.PENDING,
                DeadLetterEvent.retry_count < max_retries,
                DeadLetterEvent.next_retry_at <= now,
                _lease_free(now),
            )
            .order_by(DeadLetterEvent.created_at.asc(), DeadLetterEvent.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def claim(
        self,
        session: AsyncSession,
        message_id: Any,
        *,
        now: datetime,
        lease_until: datetime,
    ) -> DeadLetterEvent | None:
        """Claim a due dead letter until ``lease_until``.

        The update only matches a pending, due row whose previous lease (if
        any) has ended, so a concurrent processor that already claimed it
        makes this return None. If the claimant dies, the row becomes
        claimable again once the lease ends.
        """
        stmt = (
            update(DeadLetterEvent)
            .where(
                DeadLetterEvent.id == message_id,
                DeadLetterEvent.status == DeadLetterStatus.PENDING,
                DeadLetterEvent.next_retry_at <= now,
                _lease_free(now),
            )
            .values(claimed_until=lease_until)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            self._logger.debug("Dead letter claim lost", extra={"message_id": str(message_id)})
            return None
        return await self.reload(session, message_id)

    async def reload(self, session: AsyncSession, message_id: Any) -> DeadLetterEvent | None:
        """Load the current row state, overwriting any stale identity-map copy."""
        stmt = (
            select(DeadLetterEvent)
            .where(DeadLetterEvent.id == message_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def mark_processed(
        self,
        session: AsyncSession,
        message_id: Any,
        *,
        retry_count: int,
        now: datetime,
    ) -> bool:
        """pending -> processed after a successful republish."""
        stmt = (
            update(DeadLetterEvent)
            .where(DeadLetterEvent.id == message_id, DeadLetterEvent.status == DeadLetterStatus.PENDING)
            .values(
                status=DeadLetterStatus.PROCESSED,
                retry_count=retry_count,
                processed_at=now,
                claimed_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def schedule_retry(
        self,
        session: AsyncSession,
        message_id: Any,
        *,
        retry_count: int,
        last_error: str,
        next_retry_at: datetime,
    ) -> bool:
        """Persist a failed attempt and its backoff; status stays pending."""
        stmt = (
            update(DeadLetterEvent)
            .where(DeadLetterEvent.id == message_id, DeadLetterEvent.status == DeadLetterStatus.PENDING)
            .values(
                retry_count=retry_count,
                last_error=last_error[:MAX_ERROR_LENGTH],
                next_retry_at=next_retry_at,
                claimed_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def mark_failed(
        self,
        session: AsyncSession,
        message_id: Any,
        *,
        retry_count: int,
        last_error: str,
        now: datetime,
    ) -> bool:
        """pending -> failed once retries are exhausted."""
        stmt = (
            update(DeadLetterEvent)
            .where(DeadLetterEvent.id == message_id, DeadLetterEvent.status == DeadLetterStatus.PENDING)
            .values(
                status=DeadLetterStatus.FAILED,
                retry_count=retry_count,
                last_error=last_error[:MAX_ERROR_LENGTH],
                processed_at=now,
                claimed_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def reset_for_retry(
        self,
        session: AsyncSession,
        message_id: Any,
        *,
        now: datetime,
    ) -> bool:
        """Manual retry: back to pending with ``retry_count = 0`` and ``next_retry_at = now``.

        Applies to any status except processed, and only while no other
        processor holds a lease on the row.
        """
        stmt = (
            update(DeadLetterEvent)
            .where(
                DeadLetterEvent.id == message_id,
                DeadLetterEvent.status != DeadLetterStatus.PROCESSED,
                _lease_free(now),
            )
            .values(
                status=DeadLetterStatus.PENDING,
                retry_count=0,
                next_retry_at=now,
                processed_at=None,
                claimed_until=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    async def count_by_status(self, session: AsyncSession) -> dict[DeadLetterStatus, int]:
        """Count dead letters per status; statuses with no rows report 0."""
        stmt = select(DeadLetterEvent.status, func.count()).group_by(DeadLetterEvent.status)
        result = await session.execute(stmt)
        counts = {status: 0 for status in DeadLetterStatus}
        for status, count in result.all():
            counts[DeadLetterStatus(status)] = count
        return counts

    async def pending_by_topic(self, session: AsyncSession) -> dict[str, int]:
        """Pending dead letters grouped by original topic."""
        stmt = (
            select(DeadLetterEvent.original_topic, func.count())
            .where(DeadLetterEvent.status == DeadLetterStatus.PENDING)
            .group_by(DeadLetterEvent.original_topic)
            .order_by(DeadLetterEvent.original_topic)
        )
        result = await session.execute(stmt)
        return {topic: count for topic, count in result.all()}


__all__ = ["DeadLetterRepository"]
