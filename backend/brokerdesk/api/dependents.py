"""Dependents API — family members covered under a member's account."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import DEPENDENTS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import Dependent, User
from brokerdesk.schemas.schemas import DependentCreate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/dependents", tags=["dependents"])

VALID_RELATIONSHIPS = {"spouse", "child", "parent", "other"}


def _dependent_response(d: Dependent) -> dict:
    return {
        "id": d.id,
        "organization_id": d.organization_id,
        "user_id": d.user_id,
        "first_name": d.first_name,
        "last_name": d.last_name,
        "relationship": d.relationship,
        "date_of_birth": d.date_of_birth.isoformat() if d.date_of_birth else None,
    }


@router.get("")
async def list_dependents(ctx: RequestContext = Depends(require(Capability.READ)),
                          db: AsyncSession = Depends(get_db),
                          organization_id: str | None = Depends(organization_param)):
    stmt = ctx.row_scope(organization_id).apply(select(Dependent), Dependent)
    result = await db.execute(stmt.order_by(Dependent.last_name, Dependent.first_name))
    return [_dependent_response(d) for d in result.scalars()]


@router.post("", status_code=201)
async def add_dependent(body: DependentCreate,
                        ctx: RequestContext = Depends(require(Capability.READ)),
                        db: AsyncSession = Depends(get_db)):
    if body.relationship not in VALID_RELATIONSHIPS:
        raise HTTPException(status_code=400, detail=f"Invalid relationship. Must be one of: {sorted(VALID_RELATIONSHIPS)}")

    member_id = body.user_id if body.user_id is not None else ctx.user_id
    ctx.require_can_act(Capability.WRITE, DEPENDENTS, owner_id=member_id)

    if member_id == ctx.user_id:
        organization_id = ctx.organization_id
    else:
        member = await get_or_404(db, User, member_id, "User")
        ctx.require_in_scope(member.organization_id, what="User")
        organization_id = member.organization_id

    dependent = Dependent(
        organization_id=organization_id,
        user_id=member_id,
        first_name=body.first_name,
        last_name=body.last_name,
        relationship=body.relationship,
        date_of_birth=body.date_of_birth,
    )
    db.add(dependent)
    await db.flush()

    mutations_total.labels(resource=DEPENDENTS, action="create").inc()
    logger.info("Dependent %d added for user %d by %s", dependent.id, member_id, ctx.actor)
    return _dependent_response(dependent)


@router.delete("/{dependent_id}")
async def remove_dependent(dependent_id: int,
                           ctx: RequestContext = Depends(require(Capability.READ)),
                           db: AsyncSession = Depends(get_db)):
    dependent = await get_or_404(db, Dependent, dependent_id, "Dependent")
    ctx.require_in_scope(dependent.organization_id, dependent.user_id, what="Dependent")
    ctx.require_can_act(Capability.DELETE, DEPENDENTS, owner_id=dependent.user_id)

    await db.delete(dependent)

    mutations_total.labels(resource=DEPENDENTS, action="delete").inc()
    logger.info("Dependent %d removed by %s", dependent_id, ctx.actor)
    return {"ok": True}
