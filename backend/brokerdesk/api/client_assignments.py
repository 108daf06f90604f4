"""
Client assignments API — which agent looks after which member.

A client has at most one active assignment. Transferring closes the current
assignment (keeping the reason) and opens a new one with the target agent.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import Capability
from brokerdesk.auth.roles import PRIVILEGE_LEVELS, RoleLabel
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import ClientAssignment, User
from brokerdesk.schemas.schemas import ClientAssignmentCreate, ClientAssignmentTransfer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/client-assignments", tags=["client-assignments"])

AGENT_LEVEL = PRIVILEGE_LEVELS[RoleLabel.AGENT]
CLIENT_LEVEL = PRIVILEGE_LEVELS[RoleLabel.MEMBER]


def _assignment_response(a: ClientAssignment) -> dict:
    return {
        "id": a.id,
        "organization_id": a.organization_id,
        "client_id": a.client_id,
        "agent_id": a.agent_id,
        "assigned_by": a.assigned_by,
        "is_active": a.is_active,
        "notes": a.notes,
        "transfer_reason": a.transfer_reason,
        "assigned_at": a.assigned_at.isoformat() if a.assigned_at else None,
    }


async def _get_user_in_scope(db: AsyncSession, ctx: RequestContext, user_id: int, what: str) -> User:
    user = await get_or_404(db, User, user_id, what)
    ctx.require_in_scope(user.organization_id, what=what)
    if not user.is_active:
        raise HTTPException(status_code=400, detail=f"{what} account is inactive")
    return user


async def _get_agent(db: AsyncSession, ctx: RequestContext, agent_id: int) -> User:
    agent = await _get_user_in_scope(db, ctx, agent_id, "Agent")
    if agent.privilege_level != AGENT_LEVEL:
        raise HTTPException(status_code=400, detail=f"User {agent_id} is not an agent")
    return agent


async def _get_assignment_or_404(db: AsyncSession, ctx: RequestContext, assignment_id: int) -> ClientAssignment:
    assignment = await get_or_404(db, ClientAssignment, assignment_id, "Assignment")
    ctx.require_in_scope(assignment.organization_id, what="Assignment")
    return assignment


@router.get("")
async def list_assignments(ctx: RequestContext = Depends(require(Capability.READ)),
                           db: AsyncSession = Depends(get_db),
                           organization_id: str | None = Depends(organization_param),
                           agent_id: int | None = Query(None),
                           active_only: bool = Query(True)):
    """Admins see every assignment in scope, agents their own clients, members their own agent."""
    stmt = ctx.row_scope(organization_id).apply(
        select(ClientAssignment), ClientAssignment, owner_column="client_id",
    )
    if not ctx.has_permission(Capability.DELETE) and ctx.has_permission(Capability.WRITE):
        stmt = stmt.where(ClientAssignment.agent_id == ctx.user_id)
    if agent_id is not None:
        stmt = stmt.where(ClientAssignment.agent_id == agent_id)
    if active_only:
        stmt = stmt.where(ClientAssignment.is_active.is_(True))

    result = await db.execute(stmt.order_by(ClientAssignment.assigned_at.desc(), ClientAssignment.id.desc()))
    return [_assignment_response(a) for a in result.scalars()]


@router.post("", status_code=201)
async def assign_client(body: ClientAssignmentCreate,
                        ctx: RequestContext = Depends(require(Capability.DELETE)),
                        db: AsyncSession = Depends(get_db)):
    client = await _get_user_in_scope(db, ctx, body.client_id, "Client")
    if client.privilege_level < CLIENT_LEVEL:
        raise HTTPException(status_code=400, detail="Only member accounts can be assigned to an agent")
    agent = await _get_agent(db, ctx, body.agent_id)
    if agent.organization_id != client.organization_id:
        raise HTTPException(status_code=400, detail="Agent and client belong to different organizations")

    existing = (await db.execute(
        select(ClientAssignment).where(
            ClientAssignment.client_id == client.id, ClientAssignment.is_active.is_(True),
        )
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Client already has an active agent; transfer instead")

    assignment = ClientAssignment(
        organization_id=client.organization_id,
        client_id=client.id,
        agent_id=agent.id,
        assigned_by=ctx.user_id,
        notes=body.notes,
    )
    db.add(assignment)
    await db.flush()

    mutations_total.labels(resource="client_assignments", action="create").inc()
    logger.info("Client %d assigned to agent %d by %s", client.id, agent.id, ctx.actor)
    return _assignment_response(assignment)


@router.put("/{assignment_id}/transfer")
async def transfer_client(assignment_id: int,
                          body: ClientAssignmentTransfer,
                          ctx: RequestContext = Depends(require(Capability.DELETE)),
                          db: AsyncSession = Depends(get_db)):
    current = await _get_assignment_or_404(db, ctx, assignment_id)
    if not current.is_active:
        raise HTTPException(status_code=409, detail="Assignment is no longer active")
    if body.new_agent_id == current.agent_id:
        raise HTTPException(status_code=400, detail="Client is already assigned to this agent")

    agent = await _get_agent(db, ctx, body.new_agent_id)
    if agent.organization_id != current.organization_id:
        raise HTTPException(status_code=400, detail="Agent and client belong to different organizations")

    current.is_active = False
    current.transfer_reason = body.reason
    transferred = ClientAssignment(
        organization_id=current.organization_id,
        client_id=current.client_id,
        agent_id=agent.id,
        assigned_by=ctx.user_id,
        notes=current.notes,
        transfer_reason=body.reason,
    )
    db.add(transferred)
    await db.flush()

    mutations_total.labels(resource="client_assignments", action="transfer").inc()
    logger.info("Client %d transferred %d -> %d by %s", current.client_id, current.agent_id, agent.id, ctx.actor)
    return _assignment_response(transferred)


@router.delete("/{assignment_id}")
async def unassign_client(assignment_id: int,
                          ctx: RequestContext = Depends(require(Capability.DELETE)),
                          db: AsyncSession = Depends(get_db)):
    assignment = await _get_assignment_or_404(db, ctx, assignment_id)
    assignment.is_active = False

    mutations_total.labels(resource="client_assignments", action="delete").inc()
    logger.info("Assignment %d closed by %s", assignment.id, ctx.actor)
    return {"ok": True}
