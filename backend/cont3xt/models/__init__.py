"""Cont3xt document models."""

from cont3xt.models.link_group import Link, LinkGroup, LinkGroupCreate
from cont3xt.models.user import User, UserIntegrationSettings

__all__ = [
    "Link",
    "LinkGroup",
    "LinkGroupCreate",
    "User",
    "UserIntegrationSettings",
]
