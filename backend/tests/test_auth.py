"""Tests for authentication endpoints and JWT flow."""

import pytest
from httpx import AsyncClient
from jose import JWTError

from brokerdesk.auth.jwt import create_access_token, decode_access_token, principal_from_claims
from brokerdesk.auth.principal import Principal


HARBOR_ADMIN = "admin@harborhealth.com"


# ── JWT utility tests ─────────────────────────────────────────────────────────

class TestJWTUtils:
    def test_create_and_decode_access_token(self):
        principal = Principal.model_validate({
            "id": 1, "email": "user@brokerdesk.com", "organization_id": 7,
            "privilege_level": 2, "additional_roles": ["Member"],
        })
        claims = decode_access_token(create_access_token(principal))
        assert claims["sub"] == "1"
        assert claims["org"] == 7
        assert claims["plv"] == 2
        assert claims["type"] == "access"
        assert principal_from_claims(claims) == principal

    def test_decode_invalid_token_raises(self):
        with pytest.raises(JWTError):
            decode_access_token("invalid.token.here")


# ── Login endpoint tests ─────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestLogin:
    async def test_member_login(self, anon_client: AsyncClient, users):
        resp = await anon_client.post("/api/auth/login", json={
            "email": "member@harborhealth.com", "password": "Member123!",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["access_token"] and data["refresh_token"]
        assert data["user"]["role"] == "Member"
        assert data["user"]["capabilities"] == ["read"]

    async def test_staff_login_requires_organization(self, anon_client: AsyncClient, users):
        resp = await anon_client.post("/api/auth/login", json={"email": HARBOR_ADMIN, "password": "Admin123!"})
        assert resp.status_code == 400

    async def test_staff_login_with_own_organization(self, anon_client: AsyncClient, users):
        org_id = users[HARBOR_ADMIN].organization_id
        resp = await anon_client.post("/api/auth/login", json={
            "email": HARBOR_ADMIN, "password": "Admin123!", "organization_id": org_id,
        })
        assert resp.status_code == 200
        assert resp.json()["user"]["organization_id"] == org_id

    async def test_staff_login_with_other_organization(self, anon_client: AsyncClient, users):
        other = users["admin@summitlife.com"].organization_id
        resp = await anon_client.post("/api/auth/login", json={
            "email": HARBOR_ADMIN, "password": "Admin123!", "organization_id": other,
        })
        assert resp.status_code == 403

    async def test_super_admin_may_pick_any_organization(self, anon_client: AsyncClient, users):
        other = users["admin@summitlife.com"].organization_id
        resp = await anon_client.post("/api/auth/login", json={
            "email": "superadmin@brokerdesk.com", "password": "SuperAdmin123!", "organization_id": other,
        })
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "SuperAdmin"

    async def test_login_wrong_password(self, anon_client: AsyncClient, users):
        resp = await anon_client.post("/api/auth/login", json={
            "email": "member@harborhealth.com", "password": "Wrong123!",
        })
        assert resp.status_code == 401

    async def test_login_nonexistent_user(self, anon_client: AsyncClient, users):
        resp = await anon_client.post("/api/auth/login", json={
            "email": "nobody@brokerdesk.com", "password": "Whatever123!",
        })
        assert resp.status_code == 401

    async def test_login_disabled_account(self, anon_client: AsyncClient, users, db_session):
        users["member@harborhealth.com"].is_active = False
        await db_session.flush()
        resp = await anon_client.post("/api/auth/login", json={
            "email": "member@harborhealth.com", "password": "Member123!",
        })
        assert resp.status_code == 403


# ── Current principal ────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestCurrentUser:
    async def test_returns_principal(self, agent_client: AsyncClient, users):
        resp = await agent_client.get("/api/auth/user")
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "agent@harborhealth.com"
        assert data["privilege_level"] == 2
        assert data["role"] == "Agent"
        assert Principal.model_validate(data).id == users["agent@harborhealth.com"].id

    async def test_unauthenticated_request_returns_401(self, anon_client: AsyncClient, users):
        resp = await anon_client.get("/api/auth/user")
        assert resp.status_code == 401

    async def test_invalid_token_returns_401(self, client_for):
        client = client_for()
        resp = await client.get("/api/auth/user", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401

    async def test_privilege_changes_are_visible(self, member_client: AsyncClient, users, db_session):
        users["member@harborhealth.com"].privilege_level = 4
        await db_session.flush()
        resp = await member_client.get("/api/auth/user")
        assert resp.json()["role"] == "Guest"

    async def test_deactivated_user_is_unauthenticated(self, member_client: AsyncClient, users, db_session):
        users["member@harborhealth.com"].is_active = False
        await db_session.flush()
        resp = await member_client.get("/api/auth/user")
        assert resp.status_code == 401

    async def test_health_endpoint_is_exempt(self, anon_client: AsyncClient):
        resp = await anon_client.get("/api/health")
        assert resp.status_code == 200


# ── Refresh / logout / password ──────────────────────────────────────────────

@pytest.mark.asyncio
class TestSessions:
    async def _login(self, client: AsyncClient) -> dict:
        resp = await client.post("/api/auth/login", json={
            "email": "member@harborhealth.com", "password": "Member123!",
        })
        assert resp.status_code == 200
        return resp.json()

    async def test_refresh_rotates_token(self, anon_client: AsyncClient, users):
        tokens = await self._login(anon_client)
        resp = await anon_client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        assert resp.json()["refresh_token"] != tokens["refresh_token"]

        reused = await anon_client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert reused.status_code == 401

    async def test_logout_revokes_refresh_token(self, anon_client: AsyncClient, users):
        tokens = await self._login(anon_client)
        resp = await anon_client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        resp = await anon_client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401

    async def test_change_password(self, member_client: AsyncClient, anon_client: AsyncClient, users):
        resp = await member_client.put("/api/auth/me/password", json={
            "current_password": "Member123!", "new_password": "Brand-new-pass1",
        })
        assert resp.status_code == 200
        resp = await anon_client.post("/api/auth/login", json={
            "email": "member@harborhealth.com", "password": "Brand-new-pass1",
        })
        assert resp.status_code == 200

    async def test_change_password_checks_current(self, member_client: AsyncClient, users):
        resp = await member_client.put("/api/auth/me/password", json={
            "current_password": "not-it", "new_password": "Brand-new-pass1",
        })
        assert resp.status_code == 400
