"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from cleaning_finance.database import init_db
from cleaning_finance.events import EventEmitter, get_emitter
from cleaning_finance.services.actors import Actor, ActorRole


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency. Routes commit explicitly."""
    _, factory = init_db()
    async with factory() as session:
        yield session


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract tenant ID from header."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Tenant-ID format",
        )


async def get_current_actor(
    x_actor_id: Annotated[str | None, Header()] = None,
    x_actor_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Identity of the caller, as asserted by the upstream auth layer."""
    try:
        role = ActorRole(x_actor_role or ActorRole.WORKER.value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Actor-Role; expected worker, admin or system",
        )
    actor_id = None
    if x_actor_id:
        try:
            actor_id = UUID(x_actor_id)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid X-Actor-ID format",
            )
    return Actor(actor_id=actor_id, role=role)


async def get_event_emitter() -> AsyncGenerator[EventEmitter, None]:
    """Request-scoped batch on the shared emitter.

    Routes commit before returning, so events go out only after the commit
    and are dropped when the request fails.
    """
    emitter = get_emitter()
    with emitter.batch():
        yield emitter


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Emitter = Annotated[EventEmitter, Depends(get_event_emitter)]
