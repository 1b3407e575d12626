"""Flush and commit helpers translating database collisions into billing errors."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from completion_billing.errors import ConcurrentModificationError, ConflictError

logger = logging.getLogger(__name__)


@contextmanager
def _translate_collisions(what: str) -> Iterator[None]:
    try:
        yield
    except StaleDataError as e:
        logger.warning("Concurrent modification of %s", what)
        raise ConcurrentModificationError(
            detail=f"{what} was modified concurrently, retry the request",
        ) from e
    except IntegrityError as e:
        logger.warning("Constraint violated writing %s: %s", what, e.orig)
        raise ConflictError(detail=f"{what} conflicts with an existing record") from e
    except OperationalError as e:
        # sqlite reports a competing writer as "database is locked"
        logger.warning("Database refused write of %s: %s", what, e.orig)
        raise ConcurrentModificationError(
            detail=f"{what} is being written by another request, retry the request",
        ) from e


async def flush_changes(session: AsyncSession, what: str) -> None:
    """Flush pending writes.

    A stale version column or a competing writer raises
    ConcurrentModificationError and a violated unique constraint raises
    ConflictError. Either way the session must be rolled back by its owner.
    """
    with _translate_collisions(what):
        await session.flush()


async def commit_changes(session: AsyncSession, what: str) -> None:
    """Commit the request's transaction, translating collisions like flush_changes."""
    with _translate_collisions(what):
        await session.commit()
