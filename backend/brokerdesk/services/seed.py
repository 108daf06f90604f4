"""
Demo data seed: one SuperAdmin, two brokerages, their admins, agents and
members, plus a few policies, dependents and points.

    python -m brokerdesk.services.seed            # seed if empty
    python -m brokerdesk.services.seed --clean    # drop rows first

Default passwords: SuperAdmin123!, Admin123!, Agent123!, Member123!
"""

import asyncio
import sys
from datetime import date
from decimal import Decimal

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.auth.passwords import hash_password
from brokerdesk.database import async_session, engine, init_models
from brokerdesk.models import (
    AccessRequest,
    Application,
    ClientAssignment,
    Dependent,
    Organization,
    PointsTransaction,
    Policy,
    ReferralCode,
    ReferralSignup,
    Reward,
    RewardRedemption,
    User,
    UserAchievement,
)

ORGANIZATIONS = [
    ("harbor-health", "Harbor Health Brokers"),
    ("summit-life", "Summit Life & Benefits"),
]

# (email, first, last, privilege_level, org index or None, password)
USERS = [
    ("superadmin@brokerdesk.com", "Sam", "Root", 0, None, "SuperAdmin123!"),
    ("admin@harborhealth.com", "Ada", "Harbor", 1, 0, "Admin123!"),
    ("agent@harborhealth.com", "Alan", "Reyes", 2, 0, "Agent123!"),
    ("member@harborhealth.com", "Maya", "Lopez", 3, 0, "Member123!"),
    ("admin@summitlife.com", "Sofia", "Summit", 1, 1, "Admin123!"),
    ("agent@summitlife.com", "Omar", "Khan", 2, 1, "Agent123!"),
    ("member@summitlife.com", "Lena", "Park", 3, 1, "Member123!"),
]

# (name, category, points_cost, stock, org index or None)
REWARDS = [
    ("$25 Gift Card", "gift_card", 500, None, None),
    ("Premium Discount 5%", "discount", 1000, None, 0),
    ("Wellness Kit", "merchandise", 300, 20, 1),
]

_TABLES = (
    UserAchievement, ReferralSignup, ReferralCode, RewardRedemption, Reward,
    PointsTransaction, ClientAssignment, Dependent, Application,
    Policy, AccessRequest, User, Organization,
)


async def clean_all(session: AsyncSession) -> None:
    for model in _TABLES:
        await session.execute(delete(model))
    await session.commit()
    print("All data cleaned.")


async def seed_demo_data(session: AsyncSession) -> dict[str, User]:
    orgs = [Organization(name=name, display_name=display) for name, display in ORGANIZATIONS]
    session.add_all(orgs)
    await session.flush()

    users: dict[str, User] = {}
    for email, first, last, level, org_idx, password in USERS:
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first,
            last_name=last,
            privilege_level=level,
            organization_id=orgs[org_idx].id if org_idx is not None else None,
        )
        session.add(user)
        users[email] = user
    await session.flush()

    for org_idx, domain in enumerate(("harborhealth.com", "summitlife.com")):
        org_id = orgs[org_idx].id
        agent = users[f"agent@{domain}"]
        member = users[f"member@{domain}"]
        session.add_all([
            Policy(
                policy_number=f"POL-{org_id:03d}-0001",
                organization_id=org_id,
                user_id=member.id,
                agent_id=agent.id,
                insurance_type="health",
                carrier="Blue Harbor Mutual",
                monthly_premium=Decimal("412.50"),
                status="active",
                effective_date=date(2026, 1, 1),
            ),
            Dependent(
                organization_id=org_id,
                user_id=member.id,
                first_name="Noah",
                last_name=member.last_name or "",
                relationship="child",
                date_of_birth=date(2015, 6, 12),
            ),
            ClientAssignment(
                organization_id=org_id,
                client_id=member.id,
                agent_id=agent.id,
                assigned_by=users[f"admin@{domain}"].id,
            ),
            PointsTransaction(
                organization_id=org_id,
                user_id=member.id,
                points=750,
                transaction_type="earned",
                category="policy_purchase",
                description="Welcome bonus",
            ),
        ])
    session.add_all([
        Reward(
            name=name,
            category=category,
            points_cost=cost,
            stock=stock,
            organization_id=orgs[org_idx].id if org_idx is not None else None,
        )
        for name, category, cost, stock, org_idx in REWARDS
    ])
    await session.flush()
    return users


async def run_seed():
    await init_models()
    clean = "--clean" in sys.argv

    async with async_session() as session:
        if clean:
            await clean_all(session)

        existing = (await session.execute(select(func.count()).select_from(User))).scalar()
        if existing and not clean:
            print("Database already seeded. Use --clean to re-seed.")
        else:
            users = await seed_demo_data(session)
            await session.commit()
            print(f"Seeded {len(ORGANIZATIONS)} organizations and {len(users)} users.")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(run_seed())
