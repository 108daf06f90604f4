"""
Referral codes and signups.

Each user holds at most one active code. A signup is recorded when a user
enters another user's code from the same organization; both sides earn points
on the ledger. A user can be referred only once.
"""

import logging
import secrets

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.models import ReferralCode, ReferralSignup, User
from brokerdesk.services.points_service import PointsService

logger = logging.getLogger(__name__)

REFERRER_POINTS = 200
REFEREE_POINTS = 100
MAX_CODE_ATTEMPTS = 10


class InvalidReferralCode(ValueError):
    pass


class AlreadyReferred(ValueError):
    pass


def _new_code(user_id: int) -> str:
    return f"R{user_id}{secrets.token_hex(3).upper()}"


class ReferralService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def active_code(self, user_id: int) -> ReferralCode | None:
        return (await self.session.execute(
            select(ReferralCode).where(ReferralCode.user_id == user_id, ReferralCode.is_active.is_(True))
        )).scalars().first()

    async def get_or_create_code(self, user: User) -> ReferralCode:
        existing = await self.active_code(user.id)
        if existing is not None:
            return existing

        for _ in range(MAX_CODE_ATTEMPTS):
            code = _new_code(user.id)
            taken = (await self.session.execute(
                select(ReferralCode.id).where(ReferralCode.code == code)
            )).first()
            if taken is None:
                break
        else:
            raise RuntimeError(f"Unable to generate a unique referral code for user {user.id}")

        referral_code = ReferralCode(organization_id=user.organization_id, user_id=user.id, code=code)
        self.session.add(referral_code)
        await self.session.flush()
        logger.info("Referral code %s issued to user %d", code, user.id)
        return referral_code

    async def find_usable(self, code: str) -> ReferralCode | None:
        """The active code matching `code` that still has uses left."""
        referral_code = (await self.session.execute(
            select(ReferralCode).where(
                ReferralCode.code == code.strip().upper(),
                ReferralCode.is_active.is_(True),
            )
        )).scalar_one_or_none()
        if referral_code is None:
            return None
        if referral_code.max_uses is not None and referral_code.uses >= referral_code.max_uses:
            return None
        return referral_code

    async def complete(self, code: str, referee: User) -> ReferralSignup:
        """
        Record `referee` as referred through `code` and credit both sides.

        Raises InvalidReferralCode for unknown, exhausted, own or
        cross-organization codes, and AlreadyReferred when the referee already
        has a signup.
        """
        referral_code = await self.find_usable(code)
        if referral_code is None:
            raise InvalidReferralCode("Invalid or expired referral code")
        if referral_code.user_id == referee.id:
            raise InvalidReferralCode("You cannot use your own referral code")
        if referral_code.organization_id != referee.organization_id:
            raise InvalidReferralCode("Invalid or expired referral code")

        already = (await self.session.execute(
            select(ReferralSignup.id).where(ReferralSignup.referee_id == referee.id)
        )).first()
        if already is not None:
            raise AlreadyReferred("This account has already been referred")

        signup = ReferralSignup(
            organization_id=referee.organization_id,
            referral_code_id=referral_code.id,
            referrer_id=referral_code.user_id,
            referee_id=referee.id,
            referrer_points=REFERRER_POINTS,
            referee_points=REFEREE_POINTS,
        )
        referral_code.uses += 1
        self.session.add(signup)

        points = PointsService(self.session)
        await points.award(
            user_id=referral_code.user_id,
            organization_id=referral_code.organization_id,
            points=REFERRER_POINTS,
            category="referral",
            description="Referral signup",
            awarded_by=None,
        )
        await points.award(
            user_id=referee.id,
            organization_id=referee.organization_id,
            points=REFEREE_POINTS,
            category="referral_bonus",
            description="Welcome bonus for joining by referral",
            awarded_by=None,
        )
        await self.session.flush()
        logger.info(
            "Referral %s completed: user %d referred user %d",
            referral_code.code, referral_code.user_id, referee.id,
        )
        return signup

    async def stats(self, user_id: int) -> dict:
        code = await self.active_code(user_id)
        total, earned = (await self.session.execute(
            select(func.count(ReferralSignup.id), func.coalesce(func.sum(ReferralSignup.referrer_points), 0))
            .where(ReferralSignup.referrer_id == user_id)
        )).one()
        recent = (await self.session.execute(
            select(ReferralSignup)
            .where(ReferralSignup.referrer_id == user_id)
            .order_by(ReferralSignup.created_at.desc(), ReferralSignup.id.desc())
            .limit(10)
        )).scalars()
        return {
            "referral_code": code.code if code else None,
            "code_active": code is not None,
            "total_referrals": int(total),
            "total_points_earned": int(earned),
            "recent_referrals": [signup_response(s) for s in recent],
        }


def signup_response(s: ReferralSignup) -> dict:
    return {
        "id": s.id,
        "organization_id": s.organization_id,
        "referrer_id": s.referrer_id,
        "referee_id": s.referee_id,
        "referrer_points": s.referrer_points,
        "referee_points": s.referee_points,
        "status": s.status,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }
