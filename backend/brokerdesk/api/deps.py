"""
API Dependencies — DB session, identity resolution, capability guards.

`get_current_principal` is the server-side Identity Resolver:
  1. Extracts the Bearer token from the Authorization header
  2. Decodes and validates the JWT
  3. Validates the claims
  4. Loads the user row: a missing or deactivated user is unauthenticated,
     and privilege level and organization are taken from the row, so
     demotions and moves apply to the very next request
Any failure resolves to None (unauthenticated) rather than raising, so that
optional-identity endpoints (the dashboard shell) can render a denied view.
`get_request_context` is the strict variant used by protected routes: no
principal means 401.
"""

import logging
from typing import AsyncGenerator

from fastapi import Depends, Request, HTTPException, Query
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.database import async_session
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.jwt import decode_access_token, principal_from_claims
from brokerdesk.auth.permissions import Capability
from brokerdesk.auth.principal import Principal
from brokerdesk.auth.roles import RoleLabel
from brokerdesk.models import User
from brokerdesk.scoping import parse_organization_param

logger = logging.getLogger(__name__)


# ── Database session ─────────────────────────────────────────────────────────

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session per request, commit on success, rollback on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ── Identity ─────────────────────────────────────────────────────────────────

async def get_current_principal(request: Request,
                                db: AsyncSession = Depends(get_db)) -> Principal | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None

    token = auth_header[7:]  # strip "Bearer "
    try:
        claims = principal_from_claims(decode_access_token(token))
    except JWTError as e:
        logger.debug("JWT decode failed: %s", e)
        return None
    except ValidationError as e:
        logger.warning("Token claims failed validation: %s", e.errors())
        return None

    # Role, organization and active flag come from the user row, not the token
    user = await db.get(User, claims.id)
    if user is None or not user.is_active:
        logger.info("Token for unknown or inactive user %s rejected", claims.id)
        return None
    return user.to_principal()


async def get_request_context(
    principal: Principal | None = Depends(get_current_principal),
) -> RequestContext:
    if principal is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return RequestContext(principal=principal)


def organization_param(
    organization_id: str | None = Query(None, alias="organizationId"),
) -> str | None:
    """Raw `organizationId` query parameter (an id or "none"); 400 when malformed."""
    if organization_id is not None:
        try:
            parse_organization_param(organization_id)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid organizationId: {organization_id!r}",
            )
    return organization_id


# ── Capability guards ────────────────────────────────────────────────────────

def require(*capabilities: Capability):
    """
    FastAPI dependency that checks the caller holds ALL listed capabilities.

    Usage:
        @router.delete("/{policy_id}")
        async def delete_policy(ctx: RequestContext = Depends(require(Capability.DELETE))):
            ...
    """
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        for c in capabilities:
            ctx.require_permission(c)
        return ctx
    return _check


def require_roles(*roles: RoleLabel):
    """FastAPI dependency that checks the caller holds ANY of the listed roles."""
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        ctx.require_any_role(roles)
        return ctx
    return _check


def require_privilege(level: int):
    """FastAPI dependency that checks `privilege_level <= level`."""
    async def _check(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        ctx.require_privilege_level(level)
        return ctx
    return _check


# ── Lookups ──────────────────────────────────────────────────────────────────

async def get_or_404(db: AsyncSession, model, row_id: int, what: str | None = None):
    """Fetch a row by primary key or raise 404."""
    row = await db.get(model, row_id)
    if row is None:
        raise HTTPException(status_code=404, detail=f"{what or model.__name__} not found")
    return row
