"""Cont3xt services package.

Contains the business logic behind the API:
- Link groups: role-gated CRUD over link group documents
- User settings: per-user integration flags and encrypted credentials
"""

from cont3xt.services.link_groups import LinkGroupService
from cont3xt.services.user_settings import UserSettingsService

__all__ = [
    "LinkGroupService",
    "UserSettingsService",
]
