"""
Dashboard API — composed page descriptors for the current principal.

Identity here is optional: an unauthenticated or under-privileged caller gets a
200 with a DENIED shell (and no sections or queries), mirroring what the
dashboard renders, rather than an error.
"""

from fastapi import APIRouter, Depends, HTTPException

from brokerdesk.api.deps import get_current_principal
from brokerdesk.auth.principal import IdentityState, Principal
from brokerdesk.dashboard.composer import compose_page
from brokerdesk.dashboard.navigation import navigation_for
from brokerdesk.dashboard.pages import get_page

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/pages")
async def list_pages(principal: Principal | None = Depends(get_current_principal)):
    """Pages the caller may open, in navigation order."""
    identity = IdentityState.from_principal(principal)
    return {
        "identity": identity.status.value,
        "user": principal.to_payload() if principal else None,
        "pages": [item.to_dict() for item in navigation_for(identity)],
    }


@router.get("/pages/{slug}")
async def get_page_view(slug: str, principal: Principal | None = Depends(get_current_principal)):
    page = get_page(slug)
    if page is None:
        raise HTTPException(status_code=404, detail=f"Page {slug} not found")

    view = compose_page(page, IdentityState.from_principal(principal))
    return view.to_dict()
