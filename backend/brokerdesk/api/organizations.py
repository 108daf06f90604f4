"""
Organizations API — tenant CRUD.

SuperAdmin manages every organization; a TenantAdmin may view and edit only
their own. Deleting an organization deactivates it.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import Organization, User
from brokerdesk.schemas.schemas import OrganizationCreate, OrganizationUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/organizations", tags=["organizations"])


async def _organization_response(db: AsyncSession, org: Organization) -> dict:
    counts = dict((await db.execute(
        select(User.privilege_level, func.count())
        .where(User.organization_id == org.id, User.is_active.is_(True))
        .group_by(User.privilege_level)
    )).all())
    return {
        "id": org.id,
        "name": org.name,
        "display_name": org.display_name,
        "email": org.email,
        "phone": org.phone,
        "status": org.status,
        "max_agents": org.max_agents,
        "max_members": org.max_members,
        "agent_count": counts.get(2, 0),
        "member_count": counts.get(3, 0),
        "created_at": org.created_at.isoformat() if org.created_at else None,
    }


@router.get("")
async def list_organizations(ctx: RequestContext = Depends(require(Capability.READ)),
                             db: AsyncSession = Depends(get_db)):
    """SuperAdmin sees every organization; everyone else sees their own."""
    stmt = select(Organization).order_by(Organization.name)
    if not ctx.is_super_admin:
        stmt = stmt.where(Organization.id == ctx.organization_id)
    orgs = (await db.execute(stmt)).scalars().all()
    return [await _organization_response(db, o) for o in orgs]


@router.post("", status_code=201)
async def create_organization(body: OrganizationCreate,
                              ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                              db: AsyncSession = Depends(get_db)):
    existing = (await db.execute(
        select(Organization).where(Organization.name == body.name)
    )).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="Organization name already taken")

    org = Organization(**body.model_dump())
    db.add(org)
    await db.flush()

    mutations_total.labels(resource="organizations", action="create").inc()
    logger.info("Organization created: %s by %s", org.name, ctx.actor)
    return await _organization_response(db, org)


@router.get("/{organization_id}")
async def get_organization(organization_id: int,
                           ctx: RequestContext = Depends(require(Capability.READ)),
                           db: AsyncSession = Depends(get_db)):
    ctx.require_in_scope(organization_id, what="Organization")
    org = await get_or_404(db, Organization, organization_id, "Organization")
    return await _organization_response(db, org)


@router.put("/{organization_id}")
async def update_organization(organization_id: int,
                              body: OrganizationUpdate,
                              ctx: RequestContext = Depends(require(Capability.DELETE)),
                              db: AsyncSession = Depends(get_db)):
    """TenantAdmin edits their own organization; quotas are SuperAdmin-only."""
    ctx.require_in_scope(organization_id, what="Organization")
    org = await get_or_404(db, Organization, organization_id, "Organization")

    changes = body.model_dump(exclude_unset=True)
    if {"max_agents", "max_members", "status"} & changes.keys():
        ctx.require_permission(Capability.MANAGE_SYSTEM)
    for field, value in changes.items():
        setattr(org, field, value)

    mutations_total.labels(resource="organizations", action="update").inc()
    logger.info("Organization updated: %s by %s", org.name, ctx.actor)
    return await _organization_response(db, org)


@router.delete("/{organization_id}")
async def deactivate_organization(organization_id: int,
                                  ctx: RequestContext = Depends(require(Capability.MANAGE_SYSTEM)),
                                  db: AsyncSession = Depends(get_db)):
    org = await get_or_404(db, Organization, organization_id, "Organization")
    org.status = "inactive"

    mutations_total.labels(resource="organizations", action="delete").inc()
    logger.info("Organization deactivated: %s by %s", org.name, ctx.actor)
    return {"ok": True}
