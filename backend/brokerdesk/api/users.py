"""
User management — CRUD operations for user accounts within an organization.

TenantAdmins manage the users of their own organization; Agents may list and
edit client-level users (Member and below). Nobody grants more authority than
they hold, and deleting a user deactivates the account.
"""

import logging
import secrets
import string

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.passwords import MIN_PASSWORD_LENGTH, hash_password
from brokerdesk.auth.permissions import Capability, capabilities_for
from brokerdesk.auth.roles import PRIVILEGE_LEVELS, RoleLabel
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import User
from brokerdesk.schemas.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])

CLIENT_LEVEL = PRIVILEGE_LEVELS[RoleLabel.MEMBER]


def user_response(user: User) -> dict:
    principal = user.to_principal()
    return {
        **principal.to_payload(),
        "phone": user.phone,
        "is_active": user.is_active,
        "capabilities": sorted(c.value for c in capabilities_for(principal.classification)),
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def generate_temp_password() -> str:
    alphabet = string.ascii_letters + string.digits + "!@#$%"
    return "".join(secrets.choice(alphabet) for _ in range(16))


def _parse_role(role: str) -> int:
    try:
        return PRIVILEGE_LEVELS[RoleLabel.parse(role)]
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid role. Must be one of: {sorted(r.value for r in RoleLabel)}",
        )


def check_authority(ctx: RequestContext, privilege_level: int) -> None:
    """Nobody may create or manage an account that outranks them."""
    if privilege_level < ctx.classification.privilege_level:
        raise HTTPException(status_code=403, detail="Cannot grant more authority than you hold")


def _check_manageable(ctx: RequestContext, user: User) -> None:
    ctx.require_in_scope(user.organization_id, what="User")
    if not ctx.has_permission(Capability.DELETE) and user.privilege_level < CLIENT_LEVEL:
        raise HTTPException(status_code=403, detail="Agents may only manage client accounts")
    check_authority(ctx, user.privilege_level)


@router.get("")
async def list_users(ctx: RequestContext = Depends(require(Capability.WRITE)),
                     db: AsyncSession = Depends(get_db),
                     organization_id: str | None = Depends(organization_param),
                     role: str | None = Query(None),
                     search: str | None = Query(None),
                     include_inactive: bool = Query(False)):
    """List users in scope, optionally filtered by role label or name/email search."""
    scope = ctx.organization_scope(organization_id)
    stmt = scope.apply(select(User), User).order_by(User.last_name, User.first_name, User.id)

    if not ctx.has_permission(Capability.DELETE):
        stmt = stmt.where(User.privilege_level >= CLIENT_LEVEL)
    if role is not None:
        stmt = stmt.where(User.privilege_level == _parse_role(role))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern),
        ))
    if not include_inactive:
        stmt = stmt.where(User.is_active.is_(True))

    result = await db.execute(stmt)
    return [user_response(u) for u in result.scalars()]


@router.post("", status_code=201)
async def create_user(body: UserCreate,
                      ctx: RequestContext = Depends(require(Capability.DELETE)),
                      db: AsyncSession = Depends(get_db)):
    """Create a new user account in the caller's organization (SuperAdmin: any)."""
    check_authority(ctx, body.privilege_level)
    scope = ctx.organization_scope(body.organization_id)

    existing = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    password = body.password or generate_temp_password()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    user = User(
        email=body.email,
        password_hash=hash_password(password),
        first_name=body.first_name,
        last_name=body.last_name,
        privilege_level=body.privilege_level,
        organization_id=scope.organization_id,
    )
    db.add(user)
    await db.flush()

    mutations_total.labels(resource="users", action="create").inc()
    logger.info("User created: %s (%s) by %s", user.email, user.role, ctx.actor)

    resp = user_response(user)
    if not body.password:
        resp["temp_password"] = password  # only returned on creation, never stored
    return resp


@router.get("/{user_id}")
async def get_user(user_id: int,
                   ctx: RequestContext = Depends(require(Capability.READ)),
                   db: AsyncSession = Depends(get_db)):
    if user_id != ctx.user_id:
        ctx.require_permission(Capability.WRITE)
    user = await get_or_404(db, User, user_id, "User")
    ctx.require_in_scope(user.organization_id, what="User")
    return user_response(user)


@router.put("/{user_id}")
async def update_user(user_id: int,
                      body: UserUpdate,
                      ctx: RequestContext = Depends(require(Capability.READ)),
                      db: AsyncSession = Depends(get_db)):
    """Update a user's name, phone, privilege level or active status.

    Anyone may edit their own name and phone; everything else needs the
    write capability, and privilege or status changes need delete.
    """
    user = await get_or_404(db, User, user_id, "User")
    changes = body.model_dump(exclude_unset=True)

    if user_id != ctx.user_id or {"privilege_level", "is_active"} & changes.keys():
        ctx.require_permission(Capability.WRITE)
        _check_manageable(ctx, user)

    if "privilege_level" in changes or "is_active" in changes:
        ctx.require_permission(Capability.DELETE)
        if user_id == ctx.user_id:
            raise HTTPException(status_code=400, detail="Cannot change your own privilege level or status")
    if changes.get("privilege_level") is not None:
        check_authority(ctx, changes["privilege_level"])

    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)

    mutations_total.labels(resource="users", action="update").inc()
    logger.info("User updated: %s by %s", user.email, ctx.actor)
    return user_response(user)


@router.delete("/{user_id}")
async def deactivate_user(user_id: int,
                          ctx: RequestContext = Depends(require(Capability.DELETE)),
                          db: AsyncSession = Depends(get_db)):
    if user_id == ctx.user_id:
        raise HTTPException(status_code=400, detail="Cannot deactivate your own account")
    user = await get_or_404(db, User, user_id, "User")
    _check_manageable(ctx, user)
    user.is_active = False

    mutations_total.labels(resource="users", action="delete").inc()
    logger.info("User deactivated: %s by %s", user.email, ctx.actor)
    return {"ok": True}


@router.post("/{user_id}/reset-password")
async def reset_password(user_id: int,
                         ctx: RequestContext = Depends(require(Capability.DELETE)),
                         db: AsyncSession = Depends(get_db)):
    """Admin-initiated password reset — generates a temp password."""
    user = await get_or_404(db, User, user_id, "User")
    _check_manageable(ctx, user)

    temp_password = generate_temp_password()
    user.password_hash = hash_password(temp_password)

    logger.info("Password reset for %s by %s", user.email, ctx.actor)
    return {"temp_password": temp_password}
