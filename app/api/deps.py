from dataclasses import dataclass
from typing import Annotated, Optional
import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.cycle_count_service import PlanScope


logger = logging.getLogger(__name__)


@dataclass
class Actor:
    """Caller identity forwarded by the gateway. Not authenticated here."""
    user_id: str
    role: Optional[str] = None

    @property
    def plan_scope(self) -> PlanScope:
        return PlanScope.for_user(self.user_id, self.role)


async def get_current_actor(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Actor:
    """
    Dependency returning the calling user from the X-User-Id / X-User-Role headers.
    """
    if not x_user_id:
        logger.warning("Request without X-User-Id header rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return Actor(user_id=x_user_id, role=x_user_role.upper() if x_user_role else None)


# Type aliases for cleaner dependency injection
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
DB = Annotated[AsyncSession, Depends(get_db)]
