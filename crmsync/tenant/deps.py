"""FastAPI dependencies for tenant resolution."""

from __future__ import annotations

import uuid

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.organization import Organization


async def get_current_organization(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Organization:
    """Resolve the tenant header to an Organization. 400 if missing/invalid, 404 if unknown."""
    raw = request.headers.get(settings.tenant_header, "").strip()
    if not raw:
        raise HTTPException(status_code=400, detail=f"{settings.tenant_header} header required")
    try:
        org_id = uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {settings.tenant_header}")

    organization = await db.get(Organization, org_id)
    if organization is None or not organization.is_active:
        raise HTTPException(status_code=404, detail=f"Organization '{raw}' not found")
    return organization


async def get_organization_id(
    organization: Organization = Depends(get_current_organization),
) -> uuid.UUID:
    """Shorthand dependency that returns just the organization id."""
    return organization.id
