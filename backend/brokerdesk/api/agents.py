"""
Agents API — agent directory and profiles.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import Capability
from brokerdesk.auth.roles import PRIVILEGE_LEVELS, RoleLabel
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import ClientAssignment, User
from brokerdesk.schemas.schemas import AgentProfileUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/agents", tags=["agents"])

AGENT_LEVEL = PRIVILEGE_LEVELS[RoleLabel.AGENT]


def _agent_response(agent: User, client_count: int = 0) -> dict:
    return {
        "id": agent.id,
        "email": agent.email,
        "first_name": agent.first_name,
        "last_name": agent.last_name,
        "phone": agent.phone,
        "organization_id": agent.organization_id,
        "license_number": agent.license_number,
        "specializations": agent.specializations or [],
        "bio": agent.bio,
        "client_count": client_count,
    }


async def _client_counts(db: AsyncSession, agent_ids: list[int]) -> dict[int, int]:
    if not agent_ids:
        return {}
    rows = await db.execute(
        select(ClientAssignment.agent_id, func.count())
        .where(ClientAssignment.agent_id.in_(agent_ids), ClientAssignment.is_active.is_(True))
        .group_by(ClientAssignment.agent_id)
    )
    return dict(rows.all())


async def _get_agent_or_404(db: AsyncSession, ctx: RequestContext, agent_id: int) -> User:
    agent = await get_or_404(db, User, agent_id, "Agent")
    if agent.privilege_level != AGENT_LEVEL:
        raise HTTPException(status_code=404, detail="Agent not found")
    ctx.require_in_scope(agent.organization_id, what="Agent")
    return agent


@router.get("")
async def list_agents(ctx: RequestContext = Depends(require(Capability.READ)),
                      db: AsyncSession = Depends(get_db),
                      organization_id: str | None = Depends(organization_param),
                      search: str | None = Query(None)):
    """Active agents in scope, with their active client counts."""
    scope = ctx.organization_scope(organization_id)
    stmt = scope.apply(
        select(User).where(User.privilege_level == AGENT_LEVEL, User.is_active.is_(True)),
        User,
    ).order_by(User.last_name, User.first_name)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            User.email.ilike(pattern), User.first_name.ilike(pattern), User.last_name.ilike(pattern),
        ))

    agents = list((await db.execute(stmt)).scalars())
    counts = await _client_counts(db, [a.id for a in agents])
    return [_agent_response(a, counts.get(a.id, 0)) for a in agents]


@router.get("/{agent_id}")
async def get_agent(agent_id: int,
                    ctx: RequestContext = Depends(require(Capability.READ)),
                    db: AsyncSession = Depends(get_db)):
    agent = await _get_agent_or_404(db, ctx, agent_id)
    counts = await _client_counts(db, [agent.id])
    return _agent_response(agent, counts.get(agent.id, 0))


@router.put("/{agent_id}/profile")
async def update_agent_profile(agent_id: int,
                               body: AgentProfileUpdate,
                               ctx: RequestContext = Depends(require(Capability.WRITE)),
                               db: AsyncSession = Depends(get_db)):
    """Agents edit their own profile; TenantAdmins edit any agent in their organization."""
    agent = await _get_agent_or_404(db, ctx, agent_id)
    if agent.id != ctx.user_id:
        ctx.require_permission(Capability.DELETE)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(agent, field, value)

    mutations_total.labels(resource="agents", action="update").inc()
    logger.info("Agent profile updated: %s by %s", agent.email, ctx.actor)
    counts = await _client_counts(db, [agent.id])
    return _agent_response(agent, counts.get(agent.id, 0))
