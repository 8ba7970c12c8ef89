"""API router."""

from fastapi import APIRouter

from cont3xt.api import integration, link_group, roles

router = APIRouter()

router.include_router(integration.router, prefix="/integration", tags=["Integrations"])
router.include_router(link_group.router, prefix="/linkGroup", tags=["Link Groups"])
router.include_router(roles.router, prefix="/roles", tags=["Roles"])
