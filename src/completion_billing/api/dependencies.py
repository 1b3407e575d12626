"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from completion_billing.database import init_db
from completion_billing.services.locking_service import EntityLockRegistry, entity_locks

USER_TYPES = ("freelancer", "commissioner")


@dataclass(frozen=True)
class Caller:
    """Verified identity of the user making the request."""

    user_id: int
    user_type: str

    @property
    def is_commissioner(self) -> bool:
        return self.user_type == "commissioner"

    @property
    def is_freelancer(self) -> bool:
        return self.user_type == "freelancer"


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency.

    Routes commit explicitly; anything raised rolls the session back.
    """
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def get_caller(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_type: Annotated[str | None, Header()] = None,
) -> Caller:
    """Extract the caller from identity headers."""
    if not x_user_id or not x_user_type:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID and X-User-Type headers are required",
        )
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )
    user_type = x_user_type.lower()
    if user_type not in USER_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Type must be 'freelancer' or 'commissioner'",
        )
    return Caller(user_id=user_id, user_type=user_type)


def get_locks() -> EntityLockRegistry:
    """Process-wide per-entity lock registry."""
    return entity_locks


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentCaller = Annotated[Caller, Depends(get_caller)]
Locks = Annotated[EntityLockRegistry, Depends(get_locks)]
