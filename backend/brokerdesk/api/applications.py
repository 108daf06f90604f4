"""
Applications API — insurance applications filed by (or on behalf of) members.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from brokerdesk.api.deps import get_db, get_or_404, organization_param, require
from brokerdesk.auth.context import RequestContext
from brokerdesk.auth.permissions import APPLICATIONS, Capability
from brokerdesk.middleware.metrics import mutations_total
from brokerdesk.models import Application, User
from brokerdesk.schemas.schemas import ApplicationCreate, ApplicationStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/applications", tags=["applications"])

REVIEW_STATUSES = {"submitted", "under_review", "approved", "rejected"}
FINAL_STATUSES = {"approved", "rejected"}


def _application_response(a: Application) -> dict:
    return {
        "id": a.id,
        "organization_id": a.organization_id,
        "user_id": a.user_id,
        "insurance_type": a.insurance_type,
        "status": a.status,
        "notes": a.notes,
        "reviewed_by": a.reviewed_by,
        "created_at": a.created_at.isoformat() if a.created_at else None,
        "updated_at": a.updated_at.isoformat() if a.updated_at else None,
    }


async def _get_application_or_404(db: AsyncSession, ctx: RequestContext, application_id: int) -> Application:
    application = await get_or_404(db, Application, application_id, "Application")
    ctx.require_in_scope(application.organization_id, application.user_id, what="Application")
    return application


@router.get("")
async def list_applications(ctx: RequestContext = Depends(require(Capability.READ)),
                            db: AsyncSession = Depends(get_db),
                            organization_id: str | None = Depends(organization_param),
                            status: str | None = Query(None)):
    stmt = ctx.row_scope(organization_id).apply(select(Application), Application)
    if status:
        stmt = stmt.where(Application.status == status)
    result = await db.execute(stmt.order_by(Application.created_at.desc(), Application.id.desc()))
    return [_application_response(a) for a in result.scalars()]


@router.get("/{application_id}")
async def get_application(application_id: int,
                          ctx: RequestContext = Depends(require(Capability.READ)),
                          db: AsyncSession = Depends(get_db)):
    return _application_response(await _get_application_or_404(db, ctx, application_id))


@router.post("", status_code=201)
async def create_application(body: ApplicationCreate,
                             ctx: RequestContext = Depends(require(Capability.READ)),
                             db: AsyncSession = Depends(get_db)):
    """Members file for themselves; staff may file on behalf of a client in scope."""
    applicant_id = body.user_id if body.user_id is not None else ctx.user_id
    ctx.require_can_act(Capability.WRITE, APPLICATIONS, owner_id=applicant_id)

    if applicant_id == ctx.user_id:
        organization_id = ctx.organization_id
    else:
        applicant = await get_or_404(db, User, applicant_id, "User")
        ctx.require_in_scope(applicant.organization_id, what="User")
        organization_id = applicant.organization_id

    application = Application(
        organization_id=organization_id,
        user_id=applicant_id,
        insurance_type=body.insurance_type,
        status="submitted",
        notes=body.notes,
    )
    db.add(application)
    await db.flush()

    mutations_total.labels(resource=APPLICATIONS, action="create").inc()
    logger.info("Application %d filed for user %d by %s", application.id, applicant_id, ctx.actor)
    return _application_response(application)


@router.put("/{application_id}/status")
async def update_application_status(application_id: int,
                                    body: ApplicationStatusUpdate,
                                    ctx: RequestContext = Depends(require(Capability.WRITE)),
                                    db: AsyncSession = Depends(get_db)):
    if body.status not in REVIEW_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {sorted(REVIEW_STATUSES)}")
    application = await _get_application_or_404(db, ctx, application_id)

    application.status = body.status
    application.reviewed_by = ctx.user_id
    if body.notes is not None:
        application.notes = body.notes

    mutations_total.labels(resource=APPLICATIONS, action="review").inc()
    logger.info("Application %d -> %s by %s", application.id, body.status, ctx.actor)
    return _application_response(application)


@router.delete("/{application_id}")
async def delete_application(application_id: int,
                             ctx: RequestContext = Depends(require(Capability.READ)),
                             db: AsyncSession = Depends(get_db)):
    """Applicants may withdraw their own applications until a decision is made."""
    application = await _get_application_or_404(db, ctx, application_id)
    ctx.require_can_act(Capability.DELETE, APPLICATIONS, owner_id=application.user_id)
    if application.status in FINAL_STATUSES and not ctx.has_permission(Capability.DELETE):
        raise HTTPException(status_code=409, detail="Application has already been decided")

    await db.delete(application)

    mutations_total.labels(resource=APPLICATIONS, action="delete").inc()
    logger.info("Application %d deleted by %s", application_id, ctx.actor)
    return {"ok": True}
