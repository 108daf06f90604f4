"""Referrals API — referral codes, signups and referral stats."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import REFERRALS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import ReferralSignup, User
from brokerdesk.schemas.schemas import ReferralCodeBody
from brokerdesk.services.referral_service import (
    AlreadyReferred,
    InvalidReferralCode,
    ReferralService,
    signup_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/referrals", tags=["referrals"])


@router.get("")
async def list_referrals(ctx: RequestContext = Depends(require(Capability.READ)),
                         db: AsyncSession = Depends(get_db),
                         organization_id: str | None = Depends(organization_param)):
    """Signups in scope; members see the ones they referred."""
    stmt = ctx.row_scope(organization_id).apply(select(ReferralSignup), ReferralSignup, owner_column="referrer_id")
    result = await db.execute(stmt.order_by(ReferralSignup.created_at.desc(), ReferralSignup.id.desc()))
    return [signup_response(s) for s in result.scalars()]


@router.api_route("/code", methods=["GET", "POST"])
async def referral_code(ctx: RequestContext = Depends(require(Capability.READ)),
                        db: AsyncSession = Depends(get_db)):
    """The caller's active referral code, issued on first request."""
    user = await get_or_404(db, User, ctx.user_id, "User")
    code = await ReferralService(db).get_or_create_code(user)
    return {"code": code.code, "uses": code.uses, "max_uses": code.max_uses}


@router.get("/stats")
async def referral_stats(ctx: RequestContext = Depends(require(Capability.READ)),
                         db: AsyncSession = Depends(get_db)):
    return await ReferralService(db).stats(ctx.user_id)


@router.post("/validate")
async def validate_code(body: ReferralCodeBody, db: AsyncSession = Depends(get_db)):
    """Public check used by the sign-up form."""
    return {"valid": await ReferralService(db).find_usable(body.code) is not None}


@router.post("/complete", status_code=201)
async def complete_referral(body: ReferralCodeBody,
                            ctx: RequestContext = Depends(require(Capability.READ)),
                            db: AsyncSession = Depends(get_db)):
    """Record the caller as referred by the code's owner; both earn points."""
    referee = await get_or_404(db, User, ctx.user_id, "User")
    try:
        signup = await ReferralService(db).complete(body.code, referee)
    except InvalidReferralCode as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AlreadyReferred as e:
        raise HTTPException(status_code=409, detail=str(e))

    mutations_total.labels(resource=REFERRALS, action="complete").inc()
    logger.info("Referral signup %d recorded for %s", signup.id, ctx.actor)
    return signup_response(signup)
