"""
api/routes/dashboard.py -- Role-aware landing payload for the admin SPA.

The dashboard widgets themselves (charts, counts) belong to the business
services. This route tells the front end who is logged in and which areas the
role can reach, using the same catalog the guard enforces.
"""

from fastapi import APIRouter, Depends, Request

from api.models import DashboardResponse
from auth.dependencies import require_permission
from auth.mirror import PolicyMirror
from auth.models import TokenClaims
from auth.permissions import Permission, PermissionCatalog

# Auth policy:
# - GET /api/dashboard: requires dashboard:view (every shipped role has it)
router = APIRouter()


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    request: Request,
    identity: TokenClaims = Depends(require_permission(Permission.DASHBOARD_VIEW)),
) -> DashboardResponse:
    """Return a welcome message, the caller's grants and their visible menu."""
    catalog: PermissionCatalog = request.app.state.catalog
    mirror: PolicyMirror = request.app.state.policy_mirror
    return DashboardResponse(
        message=f"Welcome {identity.username}",
        role=identity.role,
        access=sorted(catalog.grants_for(identity.role)),
        menu=[mirror.menu_entry(m) for m in mirror.menu_for(identity)],
    )
