"""
Rewards API — catalog, redemptions, and catalog management.

A reward with no organization is offered platform-wide. Redeeming debits the
caller's points ledger and records a redemption with a claim code; staff in
scope mark redemptions fulfilled. Catalog management is system-level.
"""

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import POINTS, REWARDS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import Organization, Reward, RewardRedemption
from brokerdesk.schemas.schemas import RewardCreate, RewardUpdate
from brokerdesk.services.points_service import InsufficientPoints, PointsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/rewards", tags=["rewards"])


def _reward_response(r: Reward) -> dict:
    return {
        "id": r.id,
        "organization_id": r.organization_id,
        "name": r.name,
        "description": r.description,
        "category": r.category,
        "points_cost": r.points_cost,
        "stock": r.stock,
        "is_active": r.is_active,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def _redemption_response(rd: RewardRedemption) -> dict:
    return {
        "id": rd.id,
        "organization_id": rd.organization_id,
        "user_id": rd.user_id,
        "reward_id": rd.reward_id,
        "points_transaction_id": rd.points_transaction_id,
        "points_used": rd.points_used,
        "status": rd.status,
        "redemption_code": rd.redemption_code,
        "fulfilled_by": rd.fulfilled_by,
        "created_at": rd.created_at.isoformat() if rd.created_at else None,
    }


def _offered_to(ctx: RequestContext, reward: Reward) -> bool:
    return reward.organization_id is None or ctx.organization_scope().includes(reward.organization_id)


@router.get("")
async def list_rewards(ctx: RequestContext = Depends(require(Capability.READ)),
                       db: AsyncSession = Depends(get_db),
                       organization_id: str | None = Depends(organization_param)):
    """Active rewards offered to the caller's organization, platform-wide ones included."""
    scope = ctx.organization_scope(organization_id)
    stmt = select(Reward).where(Reward.is_active.is_(True))
    if not scope.all_organizations:
        stmt = stmt.where(or_(Reward.organization_id.is_(None), Reward.organization_id == scope.organization_id))
    result = await db.execute(stmt.order_by(Reward.points_cost, Reward.id))
    return [_reward_response(r) for r in result.scalars()]


@router.get("/all")
async def list_all_rewards(ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                           db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Reward).order_by(Reward.organization_id, Reward.name))
    return [_reward_response(r) for r in result.scalars()]


@router.get("/redemptions")
async def list_redemptions(ctx: RequestContext = Depends(require(Capability.READ)),
                           db: AsyncSession = Depends(get_db),
                           organization_id: str | None = Depends(organization_param),
                           status: str | None = Query(None)):
    stmt = ctx.row_scope(organization_id).apply(select(RewardRedemption), RewardRedemption)
    if status:
        stmt = stmt.where(RewardRedemption.status == status)
    result = await db.execute(stmt.order_by(RewardRedemption.created_at.desc(), RewardRedemption.id.desc()))
    return [_redemption_response(rd) for rd in result.scalars()]


@router.put("/redemptions/{redemption_id}/fulfill")
async def fulfill_redemption(redemption_id: int,
                             ctx: RequestContext = Depends(require(Capability.WRITE)),
                             db: AsyncSession = Depends(get_db)):
    redemption = await get_or_404(db, RewardRedemption, redemption_id, "Redemption")
    ctx.require_in_scope(redemption.organization_id, what="Redemption")
    if redemption.status == "fulfilled":
        raise HTTPException(status_code=409, detail="Redemption already fulfilled")

    redemption.status = "fulfilled"
    redemption.fulfilled_by = ctx.user_id

    mutations_total.labels(resource=REWARDS, action="fulfill").inc()
    logger.info("Redemption %d fulfilled by %s", redemption_id, ctx.actor)
    return _redemption_response(redemption)


@router.post("", status_code=201)
async def create_reward(body: RewardCreate,
                        ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                        db: AsyncSession = Depends(get_db)):
    if body.organization_id is not None:
        await get_or_404(db, Organization, body.organization_id, "Organization")

    reward = Reward(
        organization_id=body.organization_id,
        name=body.name,
        description=body.description,
        category=body.category,
        points_cost=body.points_cost,
        stock=body.stock,
    )
    db.add(reward)
    await db.flush()

    mutations_total.labels(resource=REWARDS, action="create").inc()
    logger.info("Reward %d (%s) created by %s", reward.id, reward.name, ctx.actor)
    return _reward_response(reward)


@router.put("/{reward_id}")
async def update_reward(reward_id: int, body: RewardUpdate,
                        ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                        db: AsyncSession = Depends(get_db)):
    reward = await get_or_404(db, Reward, reward_id, "Reward")
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(reward, field, value)
    await db.flush()

    mutations_total.labels(resource=REWARDS, action="update").inc()
    logger.info("Reward %d updated by %s", reward_id, ctx.actor)
    return _reward_response(reward)


@router.delete("/{reward_id}")
async def deactivate_reward(reward_id: int,
                            ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                            db: AsyncSession = Depends(get_db)):
    """Rewards are deactivated, not deleted; past redemptions keep pointing at them."""
    reward = await get_or_404(db, Reward, reward_id, "Reward")
    reward.is_active = False

    mutations_total.labels(resource=REWARDS, action="deactivate").inc()
    logger.info("Reward %d deactivated by %s", reward_id, ctx.actor)
    return {"ok": True}


@router.post("/{reward_id}/redeem", status_code=201)
async def redeem_reward(reward_id: int,
                        ctx: RequestContext = Depends(require(Capability.READ)),
                        db: AsyncSession = Depends(get_db)):
    """Spend the caller's points on a reward."""
    ctx.require_can_act(Capability.WRITE, POINTS, owner_id=ctx.user_id)

    reward = await get_or_404(db, Reward, reward_id, "Reward")
    if not reward.is_active or not _offered_to(ctx, reward):
        raise HTTPException(status_code=404, detail="Reward not found")
    if reward.stock is not None and reward.stock <= 0:
        raise HTTPException(status_code=409, detail="Reward is out of stock")

    service = PointsService(db)
    try:
        tx = await service.redeem(
            user_id=ctx.user_id,
            organization_id=ctx.organization_id,
            points=reward.points_cost,
            description=f"Redeemed: {reward.name}",
        )
    except InsufficientPoints as e:
        raise HTTPException(
            status_code=400,
            detail=f"Insufficient points: balance {e.balance}, required {e.required}",
        )

    redemption = RewardRedemption(
        organization_id=ctx.organization_id,
        user_id=ctx.user_id,
        reward_id=reward.id,
        points_transaction_id=tx.id,
        points_used=reward.points_cost,
        redemption_code=f"RDM-{secrets.token_hex(4).upper()}",
    )
    db.add(redemption)
    if reward.stock is not None:
        reward.stock -= 1
    await db.flush()

    mutations_total.labels(resource=REWARDS, action="redeem").inc()
    logger.info("Reward %d redeemed for %d points by %s", reward.id, reward.points_cost, ctx.actor)
    return {
        "redemption": _redemption_response(redemption),
        "summary": await service.summary(ctx.user_id),
    }
