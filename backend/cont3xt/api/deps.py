"""Request-scoped accessors for the components built in ``create_app``."""

from fastapi import Request

from cont3xt.config import Settings
from cont3xt.database import Db
from cont3xt.integrations.orchestrator import QueryOrchestrator
from cont3xt.integrations.registry import IntegrationRegistry
from cont3xt.services.link_groups import LinkGroupService
from cont3xt.services.user_settings import UserSettingsService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Db:
    return request.app.state.db


def get_registry(request: Request) -> IntegrationRegistry:
    return request.app.state.registry


def get_orchestrator(request: Request) -> QueryOrchestrator:
    return request.app.state.orchestrator


def get_user_settings_service(request: Request) -> UserSettingsService:
    return request.app.state.user_settings


def get_link_group_service(request: Request) -> LinkGroupService:
    return request.app.state.link_groups
