"""
Access requests API — self-service sign-up requests reviewed by admins.

Anyone may file a request. TenantAdmins review the requests addressed to
their organization; approving one creates the user account.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.api.users import check_authority, generate_temp_password, user_response
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.passwords import hash_password
from brokerdesk.auth.permissions import Capability
from brokerdesk.database import utcnow
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import AccessRequest, Organization, User
from brokerdesk.schemas.schemas import AccessRequestCreate, AccessRequestReview

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/access-requests", tags=["access-requests"])


def _request_response(r: AccessRequest) -> dict:
    return {
        "id": r.id,
        "organization_id": r.organization_id,
        "email": r.email,
        "first_name": r.first_name,
        "last_name": r.last_name,
        "requested_privilege_level": r.requested_privilege_level,
        "reason": r.reason,
        "status": r.status,
        "reviewed_by": r.reviewed_by,
        "reviewed_at": r.reviewed_at.isoformat() if r.reviewed_at else None,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


async def _get_pending_or_404(db: AsyncSession, ctx: RequestContext, request_id: int) -> AccessRequest:
    access_request = await get_or_404(db, AccessRequest, request_id, "Access request")
    ctx.require_in_scope(access_request.organization_id, what="Access request")
    if access_request.status != "pending":
        raise HTTPException(status_code=409, detail=f"Access request already {access_request.status}")
    return access_request


@router.post("", status_code=201)
async def request_access(body: AccessRequestCreate, db: AsyncSession = Depends(get_db)):
    """Public endpoint: file a request for an account."""
    if body.organization_id is not None:
        await get_or_404(db, Organization, body.organization_id, "Organization")

    existing_user = (await db.execute(
        select(User.id).where(User.email == body.email)
    )).scalar_one_or_none()
    pending = (await db.execute(
        select(AccessRequest.id).where(AccessRequest.email == body.email, AccessRequest.status == "pending")
    )).scalar_one_or_none()
    if existing_user or pending:
        raise HTTPException(status_code=409, detail="An account or pending request already exists for this email")

    access_request = AccessRequest(**body.model_dump())
    db.add(access_request)
    await db.flush()

    logger.info("Access request %d filed for %s", access_request.id, access_request.email)
    return _request_response(access_request)


@router.get("")
async def list_access_requests(ctx: RequestContext = Depends(require(Capability.DELETE)),
                               db: AsyncSession = Depends(get_db),
                               organization_id: str | None = Depends(organization_param),
                               status: str | None = Query(None)):
    stmt = ctx.organization_scope(organization_id).apply(select(AccessRequest), AccessRequest)
    if status:
        stmt = stmt.where(AccessRequest.status == status)
    result = await db.execute(stmt.order_by(AccessRequest.created_at.desc(), AccessRequest.id.desc()))
    return [_request_response(r) for r in result.scalars()]


@router.post("/{request_id}/approve")
async def approve_access_request(request_id: int,
                                 body: AccessRequestReview | None = None,
                                 ctx: RequestContext = Depends(require(Capability.DELETE)),
                                 db: AsyncSession = Depends(get_db)):
    """Approve a request, creating the account (optionally at a different privilege level)."""
    access_request = await _get_pending_or_404(db, ctx, request_id)
    privilege_level = (
        body.privilege_level if body and body.privilege_level is not None
        else access_request.requested_privilege_level
    )
    check_authority(ctx, privilege_level)

    if (await db.execute(select(User.id).where(User.email == access_request.email))).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    temp_password = generate_temp_password()
    user = User(
        email=access_request.email,
        password_hash=hash_password(temp_password),
        first_name=access_request.first_name,
        last_name=access_request.last_name,
        privilege_level=privilege_level,
        organization_id=access_request.organization_id,
    )
    db.add(user)
    access_request.status = "approved"
    access_request.reviewed_by = ctx.user_id
    access_request.reviewed_at = utcnow()
    await db.flush()

    mutations_total.labels(resource="access_requests", action="approve").inc()
    logger.info("Access request %d approved (%s) by %s", access_request.id, user.role, ctx.actor)
    return {
        "request": _request_response(access_request),
        "user": user_response(user),
        "temp_password": temp_password,  # only returned on approval, never stored
    }


@router.post("/{request_id}/reject")
async def reject_access_request(request_id: int,
                                ctx: RequestContext = Depends(require(Capability.DELETE)),
                                db: AsyncSession = Depends(get_db)):
    access_request = await _get_pending_or_404(db, ctx, request_id)
    access_request.status = "rejected"
    access_request.reviewed_by = ctx.user_id
    access_request.reviewed_at = utcnow()

    mutations_total.labels(resource="access_requests", action="reject").inc()
    logger.info("Access request %d rejected by %s", access_request.id, ctx.actor)
    return _request_response(access_request)
