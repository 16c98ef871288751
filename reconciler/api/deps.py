"""FastAPI dependency injection: contact store and identity service."""
from __future__ import annotations

from fastapi import Depends, Request

from reconciler.db.session import ContactStore
from reconciler.identity.service import IdentityService


def get_store(request: Request) -> ContactStore:
    """Return the contact store opened by the application lifespan."""
    return request.app.state.store


def get_identity_service(store: ContactStore = Depends(get_store)) -> IdentityService:
    """Return an IdentityService whose units of work come from *store*."""
    return IdentityService(store.unit_of_work)
