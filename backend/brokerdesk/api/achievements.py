"""Achievements API — the catalog with the caller's progress, and unlocking."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import ACHIEVEMENTS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import User
from brokerdesk.services.achievements import AchievementService
from brokerdesk.services.points_service import PointsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/achievements", tags=["achievements"])


@router.get("")
async def list_achievements(ctx: RequestContext = Depends(require(Capability.READ)),
                            db: AsyncSession = Depends(get_db)):
    return await AchievementService(db).list_for(ctx.user_id)


@router.post("/check")
async def check_achievements(ctx: RequestContext = Depends(require(Capability.READ)),
                             db: AsyncSession = Depends(get_db)):
    """Unlock whatever the caller has newly earned and credit the bonus points."""
    user = await get_or_404(db, User, ctx.user_id, "User")
    newly = await AchievementService(db).check(user)
    if newly:
        mutations_total.labels(resource=ACHIEVEMENTS, action="unlock").inc(len(newly))
    return {
        "unlocked": [
            {"key": a.key, "name": a.name, "points_reward": a.points_reward} for a in newly
        ],
        "summary": await PointsService(db).summary(ctx.user_id),
    }
