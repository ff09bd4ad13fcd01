"""Session-aware dependencies for staff-facing card APIs."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.db.session import get_session
from cardledger_api.models.tenant import StaffUser
from cardledger_api.services.ledger import ActorContext


async def require_staff_user(
    staff_user: str | None = Header(None, alias="X-Staff-User"),
    db: AsyncSession = Depends(get_session),
) -> StaffUser:
    """Resolve the authenticated staff member from forwarded session headers."""

    if not staff_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing staff user context",
        )

    try:
        staff_id = UUID(staff_user)
    except ValueError as error:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid staff user identifier",
        ) from error

    stmt = select(StaffUser).where(StaffUser.id == staff_id)
    result = await db.execute(stmt)
    staff = result.scalar_one_or_none()
    if staff is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Staff user not found",
        )
    if not staff.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff user is deactivated",
        )

    return staff


async def require_actor(staff: StaffUser = Depends(require_staff_user)) -> ActorContext:
    return ActorContext.from_staff(staff)


async def require_tenant_admin(actor: ActorContext = Depends(require_actor)) -> ActorContext:
    if not actor.is_tenant_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant admin role required",
        )
    return actor
