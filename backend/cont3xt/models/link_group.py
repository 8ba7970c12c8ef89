"""LinkGroup documents.

A link group is a named, role-gated bundle of cross-reference links. Links
from a group are only ever shown to users holding one of its view roles.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cont3xt.indicators import IndicatorType


class Link(BaseModel):
    """A link template, e.g. ``https://example.org/lookup?q=${indicator}``."""

    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1)
    itypes: list[IndicatorType] = []
    color: str | None = None


class LinkGroupCreate(BaseModel):
    """Body of a create or update request."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=255)
    links: list[Link] = []
    view_roles: set[str] = Field(default_factory=set, alias="viewRoles")
    edit_roles: set[str] = Field(default_factory=set, alias="editRoles")

    @field_validator("view_roles", "edit_roles")
    @classmethod
    def strip_roles(cls, v: set[str]) -> set[str]:
        return {role.strip() for role in v if role and role.strip()}


class LinkGroup(LinkGroupCreate):
    """A stored link group."""

    id: str
    creator: str

    def viewable_by(self, roles: frozenset[str] | set[str]) -> bool:
        return not self.view_roles.isdisjoint(roles)

    def editable_by(self, user_id: str, roles: frozenset[str] | set[str]) -> bool:
        return self.creator == user_id or not self.edit_roles.isdisjoint(roles)

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "links": [link.model_dump(mode="json") for link in self.links],
            "viewRoles": sorted(self.view_roles),
            "editRoles": sorted(self.edit_roles),
            "creator": self.creator,
        }
