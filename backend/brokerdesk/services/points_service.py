"""
Points ledger: summaries, awards, redemptions and the leaderboard.

Balances are derived from the transaction ledger: earned and adjusted
transactions add, redemptions carry negative points. Tiers are reached on
lifetime earned points.
"""

from dataclasses import dataclass

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.models import PointsTransaction, User
from brokerdesk.scoping import OrganizationScope

# (name, lifetime points threshold), highest first
TIER_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("Diamond", 15000),
    ("Platinum", 5000),
    ("Gold", 1500),
    ("Silver", 500),
    ("Bronze", 0),
)


class InsufficientPoints(Exception):
    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient points: balance {balance}, required {required}")


@dataclass(frozen=True)
class TierInfo:
    tier: str
    progress: int
    next_threshold: int | None


def calculate_tier(lifetime_points: int) -> TierInfo:
    """Current tier, points earned within it, and the next tier's threshold."""
    current = next(
        ((name, threshold) for name, threshold in TIER_THRESHOLDS if lifetime_points >= threshold),
        TIER_THRESHOLDS[-1],
    )
    higher = [threshold for _, threshold in TIER_THRESHOLDS if threshold > lifetime_points]
    next_threshold = min(higher) if higher else None
    progress = lifetime_points - current[1] if next_threshold is not None else 0
    return TierInfo(tier=current[0], progress=max(progress, 0), next_threshold=next_threshold)


class PointsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def summary(self, user_id: int) -> dict:
        earned = func.coalesce(func.sum(case((PointsTransaction.points > 0, PointsTransaction.points), else_=0)), 0)
        redeemed = func.coalesce(func.sum(case((PointsTransaction.points < 0, -PointsTransaction.points), else_=0)), 0)
        row = (await self.session.execute(
            select(earned, redeemed).where(PointsTransaction.user_id == user_id)
        )).one()
        lifetime_earned, lifetime_redeemed = int(row[0]), int(row[1])
        tier = calculate_tier(lifetime_earned)
        return {
            "user_id": user_id,
            "balance": lifetime_earned - lifetime_redeemed,
            "lifetime_earned": lifetime_earned,
            "lifetime_redeemed": lifetime_redeemed,
            "tier": tier.tier,
            "tier_progress": tier.progress,
            "next_tier_threshold": tier.next_threshold,
        }

    async def award(
        self,
        *,
        user_id: int,
        organization_id: int | None,
        points: int,
        category: str,
        description: str | None,
        awarded_by: int | None,
    ) -> PointsTransaction:
        tx = PointsTransaction(
            organization_id=organization_id,
            user_id=user_id,
            points=points,
            transaction_type="earned" if points > 0 else "adjusted",
            category=category,
            description=description,
            awarded_by=awarded_by,
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def redeem(
        self,
        *,
        user_id: int,
        organization_id: int | None,
        points: int,
        description: str,
    ) -> PointsTransaction:
        """Debit `points` from the holder. Raises InsufficientPoints."""
        balance = (await self.summary(user_id))["balance"]
        if balance < points:
            raise InsufficientPoints(balance, points)
        tx = PointsTransaction(
            organization_id=organization_id,
            user_id=user_id,
            points=-points,
            transaction_type="redeemed",
            category="redemption",
            description=description,
        )
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def leaderboard(self, scope: OrganizationScope, limit: int = 10) -> list[dict]:
        """Top point earners in scope, by lifetime earned points."""
        earned = func.sum(case((PointsTransaction.points > 0, PointsTransaction.points), else_=0)).label("earned")
        stmt = scope.apply(
            select(User.id, User.first_name, User.last_name, earned)
            .join(PointsTransaction, PointsTransaction.user_id == User.id)
            .where(User.is_active.is_(True)),
            User,
        )
        stmt = stmt.group_by(User.id, User.first_name, User.last_name).order_by(earned.desc(), User.id).limit(limit)
        rows = (await self.session.execute(stmt)).all()
        return [
            {
                "rank": rank,
                "user_id": row.id,
                "name": " ".join(p for p in (row.first_name, row.last_name) if p),
                "lifetime_earned": int(row.earned),
                "tier": calculate_tier(int(row.earned)).tier,
            }
            for rank, row in enumerate(rows, start=1)
        ]
