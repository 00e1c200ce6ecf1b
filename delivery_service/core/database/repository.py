"""Generic primary-key lookups for the pipeline repositories.

The stage repositories (outbox, dead letters) subclass BaseRepository and
add their own status transitions as conditional UPDATE statements. None of
them commit: the caller owns the transaction.

Example:
    class DeadLetterRepository(BaseRepository[DeadLetterEvent]):
        def __init__(self) -> None:
            super().__init__(DeadLetterEvent)

    message = await DeadLetterRepository().get_or_raise(session, message_id)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from delivery_service.core.database.exceptions import NotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """Lookups by primary key with an explicit session."""

    __slots__ = ("model", "_logger")

    def __init__(self, model: type[T]) -> None:
        self.model = model
        self._logger = logging.getLogger(f"repository.{model.__name__}")

    async def get(self, session: AsyncSession, id: Any) -> T | None:  # noqa: A002
        """Return the row with primary key ``id``, or None.

        Uses the session's identity map first, so call it on a fresh session
        (or after ``populate_existing``) when the row may have changed.
        """
        instance = await session.get(self.model, id)
        self._logger.debug("%s(%s) %s", self.model.__name__, id, "found" if instance else "missing")
        return instance

    async def get_or_raise(self, session: AsyncSession, id: Any) -> T:  # noqa: A002
        """Like get(), but a missing row raises NotFoundError."""
        instance = await self.get(session, id)
        if instance is None:
            raise NotFoundError(self.model.__name__, {"id": id})
        return instance


__all__ = ["BaseRepository"]
