"""Authentication API — login, refresh, logout, current principal, password change."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.config import settings
from brokerdesk.api.deps import get_db, get_request_context
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.jwt import create_access_token, create_refresh_token
from brokerdesk.auth.passwords import MIN_PASSWORD_LENGTH, verify_password, hash_password
from brokerdesk.auth.permissions import capabilities_for
from brokerdesk.auth.roles import PRIVILEGE_LEVELS, RoleLabel
from brokerdesk.auth.sessions import SessionStore, get_session_store
from brokerdesk.models import User
from brokerdesk.schemas.schemas import ChangePasswordRequest, LoginRequest, RefreshRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

# Staff below SuperAdmin sign in to a specific organization
_ORG_LOGIN_LEVELS = {PRIVILEGE_LEVELS[RoleLabel.TENANT_ADMIN], PRIVILEGE_LEVELS[RoleLabel.AGENT]}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = settings.access_token_expire_minutes * 60
    user: dict


def user_payload(user: User) -> dict:
    principal = user.to_principal()
    return {
        **principal.to_payload(),
        "capabilities": sorted(c.value for c in capabilities_for(principal.classification)),
    }


async def _get_user(db: AsyncSession, user_id: int) -> User | None:
    return (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()


def _check_login_organization(user: User, requested: int | None) -> None:
    if user.privilege_level in _ORG_LOGIN_LEVELS and user.organization_id is not None and requested is None:
        raise HTTPException(status_code=400, detail="Organization selection is required")
    if requested is None or user.privilege_level == 0:
        return
    if user.organization_id != requested:
        raise HTTPException(status_code=403, detail="You are not a member of this organization")


async def _issue_tokens(user: User, store: SessionStore) -> TokenResponse:
    refresh_token = create_refresh_token()
    await store.save(refresh_token, user.id)
    return TokenResponse(
        access_token=create_access_token(user.to_principal()),
        refresh_token=refresh_token,
        user=user_payload(user),
    )


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest,
                db: AsyncSession = Depends(get_db),
                store: SessionStore = Depends(get_session_store)):
    """Authenticate with email + password, receive an access token and a refresh token."""
    user = (await db.execute(
        select(User).where(User.email == body.email)
    )).scalar_one_or_none()

    if not user or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")

    _check_login_organization(user, body.organization_id)

    logger.info("Login: %s (%s)", user.email, user.role)
    return await _issue_tokens(user, store)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest,
                  db: AsyncSession = Depends(get_db),
                  store: SessionStore = Depends(get_session_store)):
    """Exchange a valid refresh token for a new access token (the refresh token rotates)."""
    user_id = await store.get(body.refresh_token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired refresh token")

    user = await _get_user(db, user_id)
    if not user or not user.is_active:
        await store.revoke(body.refresh_token)
        raise HTTPException(status_code=401, detail="User not found or disabled")

    await store.revoke(body.refresh_token)
    return await _issue_tokens(user, store)


@router.post("/logout")
async def logout(body: RefreshRequest | None = None,
                 store: SessionStore = Depends(get_session_store)):
    """Revoke the refresh token, if one is given."""
    if body is not None:
        await store.revoke(body.refresh_token)
    return {"ok": True}


@router.get("/user")
async def current_user(ctx: RequestContext = Depends(get_request_context),
                       db: AsyncSession = Depends(get_db)):
    """Return the current principal, fresh from the database."""
    user = await _get_user(db, ctx.user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_payload(user)


@router.put("/me/password")
async def change_password(body: ChangePasswordRequest,
                          ctx: RequestContext = Depends(get_request_context),
                          db: AsyncSession = Depends(get_db)):
    """Change own password (requires current password)."""
    user = await _get_user(db, ctx.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    if len(body.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    user.password_hash = hash_password(body.new_password)
    return {"ok": True}
