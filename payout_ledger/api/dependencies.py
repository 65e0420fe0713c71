"""API dependencies for database access and the acting user."""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.actor import SYSTEM_ACTOR, Actor
from payout_ledger.core.database import get_db
from payout_ledger.services.payout_service import TeacherPayoutService


async def get_actor(
    x_actor_id: Annotated[Optional[str], Header()] = None,
    x_actor_name: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """Resolve the acting staff member from request headers."""
    if x_actor_id is None:
        return SYSTEM_ACTOR

    try:
        user_id = int(x_actor_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Id must be an integer",
        )

    return Actor.user(user_id, x_actor_name or f"User {user_id}")


async def get_payout_service(
    db: Annotated[AsyncSession, Depends(get_db)]
) -> TeacherPayoutService:
    return TeacherPayoutService(db)


# Dependency aliases for easier use
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
PayoutService = Annotated[TeacherPayoutService, Depends(get_payout_service)]
