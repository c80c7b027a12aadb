"""FastAPI dependency injection utilities.

Identity is resolved by the host in front of the engine and passed in
headers: ``X-Actor-Id`` names the acting user and ``X-Org-Id`` the
organization. The engine does not authenticate either.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from oos_engine.db.session import get_db


async def get_current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
) -> str:
    """Get the acting user for a mutating request.

    Raises:
        HTTPException: If the host did not supply an actor
    """
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Id header is required",
        )
    return x_actor_id.strip()


async def get_org_id(
    x_org_id: Annotated[str | None, Header()] = None,
) -> str | None:
    """Get the caller's org, or None for a global (single-tenant) caller."""
    if x_org_id is None or not x_org_id.strip():
        return None
    return x_org_id.strip()


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[str, Depends(get_current_actor)]
OrgId = Annotated[str | None, Depends(get_org_id)]
