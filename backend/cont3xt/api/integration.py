"""Integration endpoints: listing, streaming search and user settings."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from cont3xt.api.auth import get_current_user
from cont3xt.api.deps import (
    get_link_group_service,
    get_orchestrator,
    get_registry,
    get_user_settings_service,
)
from cont3xt.indicators import normalize
from cont3xt.integrations.merger import merge_stream
from cont3xt.integrations.orchestrator import QueryOrchestrator, QueryRequest, SourceOutcome
from cont3xt.integrations.registry import IntegrationRegistry
from cont3xt.models.user import User
from cont3xt.services.link_groups import LinkGroupService
from cont3xt.services.user_settings import UserSettingsService

logger = logging.getLogger(__name__)

router = APIRouter()

NDJSON_MEDIA_TYPE = "application/x-ndjson"


# =============================================================================
# Request Models
# =============================================================================


class UserSettingsUpdate(BaseModel):
    """Body of ``PUT /api/integration/userSettings``."""

    model_config = ConfigDict(populate_by_name=True)

    enabled_source_ids: list[str] | None = Field(default=None, alias="enabledSourceIds")
    secrets: dict[str, dict[str, str]] | None = None
    enable_all: bool = Field(default=False, alias="enableAll")


# =============================================================================
# Endpoints
# =============================================================================


@router.get("")
async def list_integrations(
    current_user: User = Depends(get_current_user),
    registry: IntegrationRegistry = Depends(get_registry),
) -> dict[str, Any]:
    """List every registered integration and its declared capabilities."""
    return {
        "success": True,
        "integrations": [source.describe() for source in registry.list()],
    }


async def _ndjson(outcomes: AsyncIterator[SourceOutcome]) -> AsyncIterator[str]:
    async for outcome in outcomes:
        yield json.dumps(outcome.to_dict(), default=str) + "\n"


@router.get("/search/{indicator:path}")
async def search(
    indicator: str,
    itype: str | None = Query(default=None, alias="type"),
    sources: str | None = Query(default=None),
    skip_cache: bool = Query(default=False, alias="skipCache"),
    current_user: User = Depends(get_current_user),
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
    link_group_service: LinkGroupService = Depends(get_link_group_service),
) -> StreamingResponse:
    """Query every eligible integration for one indicator.

    Streams one JSON object per integration, newline delimited, in the order
    the integrations finish. Malformed input is rejected with a 400 before
    any integration is contacted.
    """
    normalized = normalize(indicator, itype)
    source_ids = None
    if sources is not None:
        source_ids = [source_id.strip() for source_id in sources.split(",") if source_id.strip()]

    user_settings = await settings_service.get(current_user.user_id)
    link_groups = await link_group_service.snapshot()

    outcomes = orchestrator.orchestrate(
        QueryRequest(
            indicator=normalized,
            user=current_user,
            user_settings=user_settings,
            sources=source_ids,
            skip_cache=skip_cache,
        )
    )
    logger.info(
        "User %s searching %s %s", current_user.user_id, normalized.itype.value, normalized.value
    )

    return StreamingResponse(
        _ndjson(merge_stream(outcomes, current_user, link_groups)),
        media_type=NDJSON_MEDIA_TYPE,
    )


@router.get("/userSettings")
async def get_user_settings(
    current_user: User = Depends(get_current_user),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
) -> dict[str, Any]:
    """Get the caller's integration settings with secrets masked."""
    settings = await settings_service.get(current_user.user_id)
    return {"success": True, "settings": settings_service.masked(settings)}


@router.put("/userSettings")
async def update_user_settings(
    body: UserSettingsUpdate,
    current_user: User = Depends(get_current_user),
    settings_service: UserSettingsService = Depends(get_user_settings_service),
) -> dict[str, Any]:
    """Update the caller's enabled integrations and credentials."""
    settings = await settings_service.update(
        current_user.user_id,
        enabled_source_ids=body.enabled_source_ids,
        secrets=body.secrets,
        enable_all=body.enable_all,
    )
    return {"success": True, "settings": settings_service.masked(settings)}
