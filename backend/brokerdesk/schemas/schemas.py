"""
Pydantic schemas for API request bodies.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field

from brokerdesk.auth.roles import LOWEST_PRIVILEGE_LEVEL


# ── Auth ──

class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    organization_id: int | None = None


class RefreshRequest(BaseModel):
    refresh_token: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


# ── Organizations ──

class OrganizationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    display_name: str = Field(min_length=2, max_length=200)
    email: EmailStr | None = None
    phone: str | None = None
    max_agents: int = Field(10, ge=1)
    max_members: int = Field(1000, ge=1)


class OrganizationUpdate(BaseModel):
    display_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    status: str | None = None
    max_agents: int | None = Field(None, ge=1)
    max_members: int | None = Field(None, ge=1)


# ── Users ──

class UserCreate(BaseModel):
    email: EmailStr
    first_name: str | None = None
    last_name: str | None = None
    privilege_level: int = Field(3, ge=0, le=LOWEST_PRIVILEGE_LEVEL)
    organization_id: int | None = None
    password: str | None = None  # auto-generated if omitted


class UserUpdate(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    privilege_level: int | None = Field(None, ge=0, le=LOWEST_PRIVILEGE_LEVEL)
    is_active: bool | None = None


class AgentProfileUpdate(BaseModel):
    phone: str | None = None
    license_number: str | None = None
    specializations: list[str] | None = None
    bio: str | None = Field(None, max_length=1000)


# ── Policies ──

class PolicyCreate(BaseModel):
    user_id: int
    agent_id: int | None = None
    insurance_type: str
    carrier: str | None = None
    monthly_premium: Decimal = Field(Decimal("0"), ge=0)
    status: str = "pending"
    effective_date: date | None = None


class PolicyUpdate(BaseModel):
    carrier: str | None = None
    monthly_premium: Decimal | None = Field(None, ge=0)
    status: str | None = None
    effective_date: date | None = None
    agent_id: int | None = None


# ── Applications ──

class ApplicationCreate(BaseModel):
    insurance_type: str
    notes: str | None = None
    user_id: int | None = None  # staff may file on behalf of a client


class ApplicationStatusUpdate(BaseModel):
    status: str
    notes: str | None = None


# ── Dependents ──

class DependentCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    relationship: str
    date_of_birth: date | None = None
    user_id: int | None = None


# ── Client assignments ──

class ClientAssignmentCreate(BaseModel):
    client_id: int
    agent_id: int
    notes: str | None = None


class ClientAssignmentTransfer(BaseModel):
    new_agent_id: int
    reason: str | None = None


# ── Access requests ──

class AccessRequestCreate(BaseModel):
    email: EmailStr
    first_name: str | None = None
    last_name: str | None = None
    organization_id: int | None = None
    requested_privilege_level: int = Field(3, ge=1, le=LOWEST_PRIVILEGE_LEVEL)
    reason: str | None = Field(None, max_length=1000)


class AccessRequestReview(BaseModel):
    privilege_level: int | None = Field(None, ge=1, le=LOWEST_PRIVILEGE_LEVEL)


# ── Points ──

class PointsAward(BaseModel):
    user_id: int
    points: int
    category: str = "manual"
    description: str | None = None


# ── Rewards ──

class RewardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    category: str = "gift_card"
    points_cost: int = Field(..., gt=0)
    stock: int | None = Field(None, ge=0)
    organization_id: int | None = None


class RewardUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=1000)
    category: str | None = None
    points_cost: int | None = Field(None, gt=0)
    stock: int | None = Field(None, ge=0)
    is_active: bool | None = None


# ── Referrals ──

class ReferralCodeBody(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)
