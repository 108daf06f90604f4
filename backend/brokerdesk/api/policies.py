"""
Policies API — insurance policies held by members of an organization.

Lists are organization-scoped from the principal; Members only ever see the
policies they hold.
"""

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import POLICIES, Capability
from brokerdesk.auth.roles import PRIVILEGE_LEVELS, RoleLabel
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import Policy, User
from brokerdesk.schemas.schemas import PolicyCreate, PolicyUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/policies", tags=["policies"])

VALID_STATUSES = {"pending", "active", "lapsed", "cancelled"}


def _policy_response(p: Policy) -> dict:
    return {
        "id": p.id,
        "policy_number": p.policy_number,
        "organization_id": p.organization_id,
        "user_id": p.user_id,
        "agent_id": p.agent_id,
        "insurance_type": p.insurance_type,
        "carrier": p.carrier,
        "monthly_premium": float(p.monthly_premium or 0),
        "status": p.status,
        "effective_date": p.effective_date.isoformat() if p.effective_date else None,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def _check_status(status: str | None) -> None:
    if status is not None and status not in VALID_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {sorted(VALID_STATUSES)}")


async def _get_policy_or_404(db: AsyncSession, ctx: RequestContext, policy_id: int) -> Policy:
    policy = await get_or_404(db, Policy, policy_id, "Policy")
    ctx.require_in_scope(policy.organization_id, policy.user_id, what="Policy")
    return policy


@router.get("")
async def list_policies(ctx: RequestContext = Depends(require(Capability.READ)),
                        db: AsyncSession = Depends(get_db),
                        organization_id: str | None = Depends(organization_param),
                        status: str | None = Query(None),
                        user_id: int | None = Query(None)):
    stmt = ctx.row_scope(organization_id).apply(select(Policy), Policy)
    if status:
        stmt = stmt.where(Policy.status == status)
    if user_id is not None:
        stmt = stmt.where(Policy.user_id == user_id)
    result = await db.execute(stmt.order_by(Policy.created_at.desc(), Policy.id.desc()))
    return [_policy_response(p) for p in result.scalars()]


@router.get("/{policy_id}")
async def get_policy(policy_id: int,
                     ctx: RequestContext = Depends(require(Capability.READ)),
                     db: AsyncSession = Depends(get_db)):
    return _policy_response(await _get_policy_or_404(db, ctx, policy_id))


@router.post("", status_code=201)
async def create_policy(body: PolicyCreate,
                        ctx: RequestContext = Depends(require(Capability.WRITE)),
                        db: AsyncSession = Depends(get_db)):
    """Issue a policy to a member; the policy belongs to the holder's organization."""
    _check_status(body.status)
    holder = await get_or_404(db, User, body.user_id, "User")
    ctx.require_in_scope(holder.organization_id, what="User")

    agent_id = body.agent_id
    if agent_id is None and ctx.classification.privilege_level == PRIVILEGE_LEVELS[RoleLabel.AGENT]:
        agent_id = ctx.user_id

    policy = Policy(
        policy_number=f"POL-{uuid4().hex[:10].upper()}",
        organization_id=holder.organization_id,
        user_id=holder.id,
        agent_id=agent_id,
        insurance_type=body.insurance_type,
        carrier=body.carrier,
        monthly_premium=body.monthly_premium,
        status=body.status,
        effective_date=body.effective_date,
    )
    db.add(policy)
    await db.flush()

    mutations_total.labels(resource=POLICIES, action="create").inc()
    logger.info("Policy %s created for user %d by %s", policy.policy_number, holder.id, ctx.actor)
    return _policy_response(policy)


@router.put("/{policy_id}")
async def update_policy(policy_id: int,
                        body: PolicyUpdate,
                        ctx: RequestContext = Depends(require(Capability.READ)),
                        db: AsyncSession = Depends(get_db)):
    policy = await _get_policy_or_404(db, ctx, policy_id)
    ctx.require_can_act(Capability.WRITE, POLICIES, owner_id=policy.user_id)

    changes = body.model_dump(exclude_unset=True)
    _check_status(changes.get("status"))
    if "agent_id" in changes:
        ctx.require_permission(Capability.WRITE)
    for field, value in changes.items():
        setattr(policy, field, value)

    mutations_total.labels(resource=POLICIES, action="update").inc()
    logger.info("Policy %s updated by %s", policy.policy_number, ctx.actor)
    return _policy_response(policy)


@router.delete("/{policy_id}")
async def delete_policy(policy_id: int,
                        ctx: RequestContext = Depends(require(Capability.DELETE)),
                        db: AsyncSession = Depends(get_db)):
    policy = await _get_policy_or_404(db, ctx, policy_id)
    await db.delete(policy)

    mutations_total.labels(resource=POLICIES, action="delete").inc()
    logger.info("Policy %s deleted by %s", policy.policy_number, ctx.actor)
    return {"ok": True}
