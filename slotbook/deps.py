from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Header, Query, Request

from slotbook.database import DocumentStore


def get_organization_id(
    request: Request,
    x_organization_id: Annotated[str | None, Header()] = None,
    organization_id: Annotated[str | None, Query()] = None,
) -> str:
    """Tenant for the request: header, then query string, then the configured default."""
    return (
        x_organization_id
        or organization_id
        or request.app.state.settings.default_organization_id
    )


OrgId = Annotated[str, Depends(get_organization_id)]


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def pending_ttl(request: Request) -> timedelta:
    return timedelta(minutes=request.app.state.settings.pending_hold_minutes)
