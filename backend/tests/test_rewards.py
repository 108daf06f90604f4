"""Tests for the rewards catalog, referrals, achievements and the leaderboard."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from brokerdesk.models import PointsTransaction, Reward, User

HARBOR = "harborhealth.com"
SUMMIT = "summitlife.com"


async def reward_named(db_session, name: str) -> Reward:
    return (await db_session.execute(select(Reward).where(Reward.name == name))).scalar_one()


async def add_member(db_session, users, email: str) -> User:
    user = User(
        email=email, password_hash="x", privilege_level=3,
        organization_id=users[f"member@{HARBOR}"].organization_id,
    )
    db_session.add(user)
    await db_session.flush()
    return user


@pytest.mark.asyncio
class TestRewardCatalog:
    async def test_member_sees_platform_and_own_rewards(self, member_client: AsyncClient, users):
        resp = await member_client.get("/api/rewards")
        assert resp.status_code == 200
        assert [r["name"] for r in resp.json()] == ["$25 Gift Card", "Premium Discount 5%"]

    async def test_super_admin_sees_every_reward(self, superadmin_client: AsyncClient, users):
        resp = await superadmin_client.get("/api/rewards")
        assert {r["name"] for r in resp.json()} == {"$25 Gift Card", "Premium Discount 5%", "Wellness Kit"}

    async def test_catalog_management_is_system_level(self, admin_client: AsyncClient,
                                                      superadmin_client: AsyncClient,
                                                      member_client: AsyncClient, users):
        body = {"name": "Movie Tickets", "points_cost": 250}
        assert (await admin_client.post("/api/rewards", json=body)).status_code == 403
        assert (await admin_client.get("/api/rewards/all")).status_code == 403

        created = await superadmin_client.post("/api/rewards", json=body)
        assert created.status_code == 201
        assert created.json()["organization_id"] is None
        assert "Movie Tickets" in [r["name"] for r in (await member_client.get("/api/rewards")).json()]

        reward_id = created.json()["id"]
        resp = await superadmin_client.put(f"/api/rewards/{reward_id}", json={"points_cost": 300})
        assert resp.json()["points_cost"] == 300
        assert (await superadmin_client.delete(f"/api/rewards/{reward_id}")).status_code == 200
        assert "Movie Tickets" not in [r["name"] for r in (await member_client.get("/api/rewards")).json()]
        assert len((await superadmin_client.get("/api/rewards/all")).json()) == 4

    async def test_reward_for_unknown_organization_is_404(self, superadmin_client: AsyncClient, users):
        resp = await superadmin_client.post("/api/rewards", json={
            "name": "Nowhere", "points_cost": 10, "organization_id": 9999,
        })
        assert resp.status_code == 404


@pytest.mark.asyncio
class TestRedemption:
    async def test_redeem_debits_the_ledger(self, member_client: AsyncClient, users, db_session):
        gift = await reward_named(db_session, "$25 Gift Card")
        resp = await member_client.post(f"/api/rewards/{gift.id}/redeem")
        assert resp.status_code == 201
        data = resp.json()
        assert data["summary"]["balance"] == 250
        assert data["summary"]["lifetime_redeemed"] == 500
        assert data["redemption"]["status"] == "pending"
        assert data["redemption"]["redemption_code"].startswith("RDM-")

        tx = await db_session.get(PointsTransaction, data["redemption"]["points_transaction_id"])
        assert tx.points == -500
        assert tx.transaction_type == "redeemed"

    async def test_insufficient_points(self, member_client: AsyncClient, users, db_session):
        discount = await reward_named(db_session, "Premium Discount 5%")
        resp = await member_client.post(f"/api/rewards/{discount.id}/redeem")
        assert resp.status_code == 400
        assert "Insufficient points" in resp.json()["detail"]
        summary = (await member_client.get("/api/points/summary")).json()
        assert summary["balance"] == 750

    async def test_other_organizations_reward_is_not_found(self, member_client: AsyncClient, users, db_session):
        kit = await reward_named(db_session, "Wellness Kit")
        assert (await member_client.post(f"/api/rewards/{kit.id}/redeem")).status_code == 404

    async def test_inactive_reward_is_not_found(self, member_client: AsyncClient, users, db_session):
        gift = await reward_named(db_session, "$25 Gift Card")
        gift.is_active = False
        await db_session.flush()
        assert (await member_client.post(f"/api/rewards/{gift.id}/redeem")).status_code == 404

    async def test_out_of_stock(self, member_client: AsyncClient, users, db_session):
        gift = await reward_named(db_session, "$25 Gift Card")
        gift.stock = 1
        await db_session.flush()
        assert (await member_client.post(f"/api/rewards/{gift.id}/redeem")).status_code == 201
        assert gift.stock == 0
        assert (await member_client.post(f"/api/rewards/{gift.id}/redeem")).status_code == 409

    async def test_guest_cannot_redeem(self, member_client: AsyncClient, users, db_session):
        users[f"member@{HARBOR}"].privilege_level = 4
        await db_session.flush()
        gift = await reward_named(db_session, "$25 Gift Card")
        assert (await member_client.post(f"/api/rewards/{gift.id}/redeem")).status_code == 403

    async def test_fulfilment_is_staff_and_scoped(self, member_client: AsyncClient, agent_client: AsyncClient,
                                                  client_for, users, db_session):
        gift = await reward_named(db_session, "$25 Gift Card")
        redemption = (await member_client.post(f"/api/rewards/{gift.id}/redeem")).json()["redemption"]
        path = f"/api/rewards/redemptions/{redemption['id']}/fulfill"

        assert (await member_client.put(path)).status_code == 403
        summit_agent = client_for(users[f"agent@{SUMMIT}"])
        assert (await summit_agent.put(path)).status_code == 404

        resp = await agent_client.put(path)
        assert resp.status_code == 200
        assert resp.json()["status"] == "fulfilled"
        assert resp.json()["fulfilled_by"] == users[f"agent@{HARBOR}"].id
        assert (await agent_client.put(path)).status_code == 409

    async def test_redemption_list_is_row_scoped(self, member_client: AsyncClient, client_for, users, db_session):
        gift = await reward_named(db_session, "$25 Gift Card")
        await member_client.post(f"/api/rewards/{gift.id}/redeem")

        mine = (await member_client.get("/api/rewards/redemptions")).json()
        assert [r["user_id"] for r in mine] == [users[f"member@{HARBOR}"].id]
        summit_admin = client_for(users[f"admin@{SUMMIT}"])
        assert (await summit_admin.get("/api/rewards/redemptions")).json() == []


@pytest.mark.asyncio
class TestReferrals:
    async def test_code_is_stable(self, member_client: AsyncClient, users):
        first = (await member_client.get("/api/referrals/code")).json()
        second = (await member_client.post("/api/referrals/code")).json()
        assert first["code"] == second["code"]
        assert first["uses"] == 0

    async def test_validate_is_public(self, member_client: AsyncClient, anon_client: AsyncClient, users):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        assert (await anon_client.post("/api/referrals/validate", json={"code": code.lower()})).json() == {"valid": True}
        assert (await anon_client.post("/api/referrals/validate", json={"code": "NOPE"})).json() == {"valid": False}

    async def test_complete_credits_both_sides(self, member_client: AsyncClient, agent_client: AsyncClient, users):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        resp = await agent_client.post("/api/referrals/complete", json={"code": code})
        assert resp.status_code == 201
        assert resp.json()["referrer_id"] == users[f"member@{HARBOR}"].id
        assert resp.json()["referee_id"] == users[f"agent@{HARBOR}"].id

        assert (await member_client.get("/api/points/summary")).json()["balance"] == 950
        assert (await agent_client.get("/api/points/summary")).json()["balance"] == 100

        stats = (await member_client.get("/api/referrals/stats")).json()
        assert stats["referral_code"] == code
        assert stats["total_referrals"] == 1
        assert stats["total_points_earned"] == 200

    async def test_own_code_is_rejected(self, member_client: AsyncClient, users):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        resp = await member_client.post("/api/referrals/complete", json={"code": code})
        assert resp.status_code == 400

    async def test_code_from_another_organization_is_rejected(self, member_client: AsyncClient, client_for, users):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        summit_member = client_for(users[f"member@{SUMMIT}"])
        resp = await summit_member.post("/api/referrals/complete", json={"code": code})
        assert resp.status_code == 400

    async def test_referee_is_referred_once(self, member_client: AsyncClient, agent_client: AsyncClient,
                                            admin_client: AsyncClient, users):
        member_code = (await member_client.get("/api/referrals/code")).json()["code"]
        admin_code = (await admin_client.get("/api/referrals/code")).json()["code"]
        assert (await agent_client.post("/api/referrals/complete", json={"code": member_code})).status_code == 201
        assert (await agent_client.post("/api/referrals/complete", json={"code": admin_code})).status_code == 409

    async def test_signup_list_is_scoped(self, member_client: AsyncClient, agent_client: AsyncClient,
                                         admin_client: AsyncClient, client_for, users):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        await agent_client.post("/api/referrals/complete", json={"code": code})

        assert len((await member_client.get("/api/referrals")).json()) == 1
        assert len((await admin_client.get("/api/referrals")).json()) == 1
        summit_admin = client_for(users[f"admin@{SUMMIT}"])
        assert (await summit_admin.get("/api/referrals")).json() == []


@pytest.mark.asyncio
class TestAchievements:
    async def test_check_unlocks_from_activity(self, member_client: AsyncClient, users):
        resp = await member_client.post("/api/achievements/check")
        assert resp.status_code == 200
        assert {a["key"] for a in resp.json()["unlocked"]} == {"welcome", "first-policy", "silver-tier"}
        assert resp.json()["summary"]["balance"] == 750 + 50 + 100 + 200

        listing = (await member_client.get("/api/achievements")).json()
        unlocked = {a["key"] for a in listing if a["unlocked"]}
        assert unlocked == {"welcome", "first-policy", "silver-tier"}
        collector = next(a for a in listing if a["key"] == "points-collector")
        assert collector["progress"] == 750
        assert collector["threshold"] == 1000

    async def test_check_is_idempotent(self, member_client: AsyncClient, users):
        await member_client.post("/api/achievements/check")
        again = await member_client.post("/api/achievements/check")
        assert again.json()["unlocked"] == []
        assert again.json()["summary"]["balance"] == 1100

    async def test_nothing_to_unlock_without_activity(self, agent_client: AsyncClient, users):
        resp = await agent_client.post("/api/achievements/check")
        assert resp.json()["unlocked"] == []

    async def test_referral_master(self, member_client: AsyncClient, client_for, users, db_session):
        code = (await member_client.get("/api/referrals/code")).json()["code"]
        for n in range(3):
            friend = await add_member(db_session, users, f"friend{n}@{HARBOR}")
            resp = await client_for(friend).post("/api/referrals/complete", json={"code": code})
            assert resp.status_code == 201

        unlocked = {a["key"] for a in (await member_client.post("/api/achievements/check")).json()["unlocked"]}
        assert "referral-master" in unlocked
        assert "points-collector" in unlocked


@pytest.mark.asyncio
class TestLeaderboard:
    async def test_tenant_leaderboard_is_scoped(self, admin_client: AsyncClient, users):
        resp = await admin_client.get("/api/points/leaderboard")
        assert resp.status_code == 200
        board = resp.json()
        assert [row["user_id"] for row in board] == [users[f"member@{HARBOR}"].id]
        assert board[0]["rank"] == 1
        assert board[0]["tier"] == "Silver"

    async def test_super_admin_sees_every_organization(self, superadmin_client: AsyncClient, users):
        board = (await superadmin_client.get("/api/points/leaderboard")).json()
        assert {row["user_id"] for row in board} == {
            users[f"member@{HARBOR}"].id, users[f"member@{SUMMIT}"].id,
        }

    async def test_foreign_organization_is_forbidden(self, admin_client: AsyncClient, users):
        other = users[f"admin@{SUMMIT}"].organization_id
        resp = await admin_client.get("/api/points/leaderboard", params={"organizationId": other})
        assert resp.status_code == 403
