"""
Points API — balances, ledger history, staff awards and the leaderboard.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import POINTS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import PointsTransaction, User
from brokerdesk.schemas.schemas import PointsAward
from brokerdesk.services.points_service import PointsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/points", tags=["points"])


def _transaction_response(tx: PointsTransaction) -> dict:
    return {
        "id": tx.id,
        "user_id": tx.user_id,
        "organization_id": tx.organization_id,
        "points": tx.points,
        "transaction_type": tx.transaction_type,
        "category": tx.category,
        "description": tx.description,
        "awarded_by": tx.awarded_by,
        "created_at": tx.created_at.isoformat() if tx.created_at else None,
    }


async def _resolve_holder(db: AsyncSession, ctx: RequestContext, user_id: int | None) -> int:
    """The points holder a request is about: the caller, or a user in scope."""
    if user_id is None or user_id == ctx.user_id:
        return ctx.user_id
    ctx.require_permission(Capability.WRITE)
    holder = await get_or_404(db, User, user_id, "User")
    ctx.require_in_scope(holder.organization_id, what="User")
    return holder.id


@router.get("/summary")
async def points_summary(ctx: RequestContext = Depends(require(Capability.READ)),
                         db: AsyncSession = Depends(get_db),
                         user_id: int | None = Query(None)):
    """Balance, lifetime totals and tier for the caller (staff: any user in scope)."""
    holder_id = await _resolve_holder(db, ctx, user_id)
    return await PointsService(db).summary(holder_id)


@router.get("/transactions")
async def list_transactions(ctx: RequestContext = Depends(require(Capability.READ)),
                            db: AsyncSession = Depends(get_db),
                            organization_id: str | None = Depends(organization_param),
                            user_id: int | None = Query(None),
                            limit: int = Query(50, ge=1, le=500)):
    stmt = ctx.row_scope(organization_id).apply(select(PointsTransaction), PointsTransaction)
    if user_id is not None:
        stmt = stmt.where(PointsTransaction.user_id == user_id)
    stmt = stmt.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return [_transaction_response(tx) for tx in result.scalars()]


@router.get("/leaderboard")
async def leaderboard(ctx: RequestContext = Depends(require(Capability.READ)),
                      db: AsyncSession = Depends(get_db),
                      organization_id: str | None = Depends(organization_param),
                      limit: int = Query(10, ge=1, le=100)):
    """Top earners in the caller's organization (SuperAdmin: any, or all)."""
    return await PointsService(db).leaderboard(ctx.organization_scope(organization_id), limit)


@router.post("/award", status_code=201)
async def award_points(body: PointsAward,
                       ctx: RequestContext = Depends(require(Capability.WRITE)),
                       db: AsyncSession = Depends(get_db)):
    """Award (or, with negative points, adjust) a member's balance."""
    if body.points == 0:
        raise HTTPException(status_code=400, detail="Points must be non-zero")
    if body.user_id == ctx.user_id:
        raise HTTPException(status_code=400, detail="Cannot award points to yourself")

    holder = await get_or_404(db, User, body.user_id, "User")
    ctx.require_in_scope(holder.organization_id, what="User")

    service = PointsService(db)
    tx = await service.award(
        user_id=holder.id,
        organization_id=holder.organization_id,
        points=body.points,
        category=body.category,
        description=body.description,
        awarded_by=ctx.user_id,
    )

    mutations_total.labels(resource=POINTS, action="award").inc()
    logger.info("Awarded %d points to user %d by %s", body.points, holder.id, ctx.actor)
    return {
        "transaction": _transaction_response(tx),
        "summary": await service.summary(holder.id),
    }
