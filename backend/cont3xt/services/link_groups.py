"""Role-gated link group management."""

import logging

from cont3xt.database import Db
from cont3xt.exceptions import AuthorizationError, NotFoundError
from cont3xt.models.link_group import LinkGroup, LinkGroupCreate
from cont3xt.models.user import User

logger = logging.getLogger(__name__)


class LinkGroupService:
    """CRUD over link groups with view/edit role checks."""

    def __init__(self, db: Db):
        self.db = db

    async def snapshot(self) -> list[LinkGroup]:
        """Every link group, for the result filter."""
        return await self.db.list_link_groups()

    async def get_viewable(self, user: User) -> list[LinkGroup]:
        groups = await self.db.list_link_groups()
        return [group for group in groups if group.viewable_by(user.roles)]

    async def get_editable(self, user: User) -> list[LinkGroup]:
        groups = await self.db.list_link_groups()
        return [group for group in groups if group.editable_by(user.user_id, user.roles)]

    async def create(self, user: User, data: LinkGroupCreate) -> LinkGroup:
        group = await self.db.create_link_group(data, creator=user.user_id)
        logger.info("User %s created link group %s", user.user_id, group.id)
        return group

    async def _editable(self, user: User, group_id: str) -> LinkGroup:
        group = await self.db.get_link_group(group_id)
        if group is None:
            raise NotFoundError("Link group", group_id)
        if not group.editable_by(user.user_id, user.roles):
            raise AuthorizationError("You do not have permission to edit this link group")
        return group

    async def update(self, user: User, group_id: str, data: LinkGroupCreate) -> LinkGroup:
        existing = await self._editable(user, group_id)
        group = LinkGroup(id=existing.id, creator=existing.creator, **data.model_dump())
        await self.db.put_link_group(group)
        logger.info("User %s updated link group %s", user.user_id, group_id)
        return group

    async def delete(self, user: User, group_id: str) -> None:
        await self._editable(user, group_id)
        if not await self.db.delete_link_group(group_id):
            raise NotFoundError("Link group", group_id)
        logger.info("User %s deleted link group %s", user.user_id, group_id)
