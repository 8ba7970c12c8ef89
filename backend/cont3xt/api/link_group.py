"""Link group endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from cont3xt.api.auth import get_current_user
from cont3xt.api.deps import get_link_group_service
from cont3xt.models.link_group import LinkGroup, LinkGroupCreate
from cont3xt.models.user import User
from cont3xt.services.link_groups import LinkGroupService

router = APIRouter()


def _serialize(group: LinkGroup) -> dict[str, Any]:
    return {"id": group.id, **group.to_document()}


@router.get("/getViewable")
async def get_viewable(
    current_user: User = Depends(get_current_user),
    service: LinkGroupService = Depends(get_link_group_service),
) -> dict[str, Any]:
    """Link groups the caller may view."""
    groups = await service.get_viewable(current_user)
    return {"success": True, "linkGroups": [_serialize(group) for group in groups]}


@router.get("/getEditable")
async def get_editable(
    current_user: User = Depends(get_current_user),
    service: LinkGroupService = Depends(get_link_group_service),
) -> dict[str, Any]:
    """Link groups the caller may edit."""
    groups = await service.get_editable(current_user)
    return {"success": True, "linkGroups": [_serialize(group) for group in groups]}


@router.put("")
async def create_link_group(
    body: LinkGroupCreate,
    current_user: User = Depends(get_current_user),
    service: LinkGroupService = Depends(get_link_group_service),
) -> dict[str, Any]:
    group = await service.create(current_user, body)
    return {"success": True, "linkGroup": _serialize(group)}


@router.put("/{group_id}")
async def update_link_group(
    group_id: str,
    body: LinkGroupCreate,
    current_user: User = Depends(get_current_user),
    service: LinkGroupService = Depends(get_link_group_service),
) -> dict[str, Any]:
    group = await service.update(current_user, group_id, body)
    return {"success": True, "linkGroup": _serialize(group)}


@router.delete("/{group_id}")
async def delete_link_group(
    group_id: str,
    current_user: User = Depends(get_current_user),
    service: LinkGroupService = Depends(get_link_group_service),
) -> dict[str, Any]:
    await service.delete(current_user, group_id)
    return {"success": True}
