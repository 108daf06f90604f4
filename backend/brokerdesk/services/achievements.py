"""
Achievements derived from a user's activity.

The catalog is static. Progress is computed from the points ledger, policies,
applications and referral signups; `check` unlocks every achievement whose
threshold is met and credits its bonus. Bonuses paid by achievements never
count toward other achievements.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.models import Application, PointsTransaction, Policy, ReferralSignup, User, UserAchievement
from brokerdesk.services.points_service import TIER_THRESHOLDS, PointsService

logger = logging.getLogger(__name__)

ACHIEVEMENT_CATEGORY = "achievement"

_TIERS = dict(TIER_THRESHOLDS)


@dataclass(frozen=True)
class Achievement:
    key: str
    name: str
    description: str
    category: str
    points_reward: int
    metric: str  # "activity" | "policies" | "lifetime_earned" | "referrals" | "applications"
    threshold: int


ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("welcome", "Welcome Aboard", "Complete your first action on the platform",
                "Milestone", 50, "activity", 1),
    Achievement("first-policy", "First Policy", "Hold your first insurance policy",
                "Milestone", 100, "policies", 1),
    Achievement("points-collector", "Points Collector", "Earn your first 1000 points",
                "Milestone", 100, "lifetime_earned", 1000),
    Achievement("silver-tier", "Silver Tier", "Reach Silver tier status",
                "Tier", 200, "lifetime_earned", _TIERS["Silver"]),
    Achievement("gold-tier", "Gold Tier", "Reach Gold tier status",
                "Tier", 500, "lifetime_earned", _TIERS["Gold"]),
    Achievement("referral-master", "Referral Master", "Successfully refer 3 new users",
                "Referral", 300, "referrals", 3),
    Achievement("application-pro", "Application Pro", "Submit 5 insurance applications",
                "Activity", 250, "applications", 5),
)


def _count(model, column):
    return select(func.count(model.id)).where(column)


class AchievementService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def progress(self, user_id: int) -> dict[str, int]:
        not_bonus = PointsTransaction.category != ACHIEVEMENT_CATEGORY
        activity, earned = (await self.session.execute(
            select(
                func.count(PointsTransaction.id),
                func.coalesce(func.sum(case((PointsTransaction.points > 0, PointsTransaction.points), else_=0)), 0),
            ).where(PointsTransaction.user_id == user_id, not_bonus)
        )).one()
        policies = (await self.session.execute(_count(Policy, Policy.user_id == user_id))).scalar_one()
        applications = (await self.session.execute(
            _count(Application, Application.user_id == user_id).where(Application.status != "draft")
        )).scalar_one()
        referrals = (await self.session.execute(
            _count(ReferralSignup, ReferralSignup.referrer_id == user_id)
        )).scalar_one()
        return {
            "activity": int(activity),
            "lifetime_earned": int(earned),
            "policies": int(policies),
            "applications": int(applications),
            "referrals": int(referrals),
        }

    async def unlocked(self, user_id: int) -> dict[str, UserAchievement]:
        result = await self.session.execute(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        )
        return {ua.achievement_key: ua for ua in result.scalars()}

    async def list_for(self, user_id: int) -> list[dict]:
        progress = await self.progress(user_id)
        unlocked = await self.unlocked(user_id)
        out = []
        for a in ACHIEVEMENTS:
            ua = unlocked.get(a.key)
            out.append({
                "key": a.key,
                "name": a.name,
                "description": a.description,
                "category": a.category,
                "points_reward": a.points_reward,
                "threshold": a.threshold,
                "progress": min(progress[a.metric], a.threshold),
                "unlocked": ua is not None,
                "unlocked_at": ua.unlocked_at.isoformat() if ua and ua.unlocked_at else None,
            })
        return out

    async def check(self, user: User) -> list[Achievement]:
        """Unlock every newly met achievement for `user` and credit the bonuses."""
        progress = await self.progress(user.id)
        unlocked = await self.unlocked(user.id)
        points = PointsService(self.session)

        newly: list[Achievement] = []
        for a in ACHIEVEMENTS:
            if a.key in unlocked or progress[a.metric] < a.threshold:
                continue
            self.session.add(UserAchievement(
                organization_id=user.organization_id,
                user_id=user.id,
                achievement_key=a.key,
                points_awarded=a.points_reward,
            ))
            await points.award(
                user_id=user.id,
                organization_id=user.organization_id,
                points=a.points_reward,
                category=ACHIEVEMENT_CATEGORY,
                description=f"Achievement unlocked: {a.name}",
                awarded_by=None,
            )
            newly.append(a)

        if newly:
            logger.info("User %d unlocked %s", user.id, [a.key for a in newly])
        return newly
