"""Optimistic concurrency control for change request writes.

The row's ``updated_at`` column is the version token. Every governed write
is a single conditional UPDATE on (id, updated_at); a write that matches no
row lost the race and is reported as a ConcurrencyConflictError carrying the
token the caller expected and the one now stored.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from changegov.db.base import utcnow
from changegov.db.models import ChangeRequest

from .errors import ConcurrencyConflictError, InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)


def as_naive_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Normalize a version token to the naive-UTC form stored in the database."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInputError("expected_version must be an ISO-8601 timestamp", expected_version=value)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class ConcurrencyGuard:
    """Compare-and-swap writer for ChangeRequest rows."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self._clock = clock

    def next_version(self, current: Optional[datetime]) -> datetime:
        """Return a token strictly after ``current``, even if the clock has not moved."""
        now = self._clock()
        if current is not None and now <= current:
            now = current + timedelta(microseconds=1)
        return now

    def check(self, change: ChangeRequest, expected_version: Union[datetime, str, None]) -> None:
        """Fail early when the caller's token is already stale."""
        expected = as_naive_utc(expected_version)
        if expected is not None and expected != change.updated_at:
            raise ConcurrencyConflictError(expected, change.updated_at)

    def current_version(self, change_id: UUID) -> Optional[datetime]:
        return self.db.execute(
            select(ChangeRequest.updated_at).where(ChangeRequest.id == change_id)
        ).scalar_one_or_none()

    def write(
        self,
        change: ChangeRequest,
        values: Dict[str, Any],
        *,
        expected_version: Union[datetime, str, None] = None,
    ) -> datetime:
        """
        Apply ``values`` to the change request if nobody else wrote it first.

        The write is conditioned on the caller's token when one is given,
        otherwise on the token the change was loaded with. The transaction is
        left open; the caller commits.

        Returns:
            The new version token

        Raises:
            ConcurrencyConflictError: If the stored token no longer matches
            NotFoundError: If the change request has been deleted
        """
        expected = as_naive_utc(expected_version) or change.updated_at
        new_version = self.next_version(expected)

        self.db.flush()
        stmt = (
            update(ChangeRequest)
            .where(ChangeRequest.id == change.id)
            .where(ChangeRequest.updated_at == expected)
            .values(**values, updated_at=new_version)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)

        if result.rowcount != 1:
            current = self.current_version(change.id)
            if current is None:
                raise NotFoundError("Change request not found", change_id=str(change.id))
            logger.info(
                "Version conflict on change %s: expected %s, current %s",
                change.id, expected, current,
            )
            raise ConcurrencyConflictError(expected, current)

        self.db.refresh(change)
        return new_version

    def delete(self, change: ChangeRequest, *, expected_version: Union[datetime, str, None] = None) -> None:
        """Delete the change request under the same version condition as write()."""
        expected = as_naive_utc(expected_version) or change.updated_at

        self.db.flush()
        result = self.db.execute(
            delete(ChangeRequest)
            .where(ChangeRequest.id == change.id)
            .where(ChangeRequest.updated_at == expected)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self.current_version(change.id)
            if current is None:
                raise NotFoundError("Change request not found", change_id=str(change.id))
            raise ConcurrencyConflictError(expected, current)
        self.db.expunge(change)
