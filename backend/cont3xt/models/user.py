"""User and per-user integration settings documents."""

from pydantic import BaseModel, ConfigDict, Field


class UserIntegrationSettings(BaseModel):
    """A user's integration preferences.

    ``secrets`` maps source id to setting name to an encrypted token; the
    plaintext is never stored here.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId")
    enabled_source_ids: set[str] | None = Field(default=None, alias="enabledSourceIds")
    secrets: dict[str, dict[str, str]] = {}

    def is_enabled(self, source_id: str) -> bool:
        return self.enabled_source_ids is None or source_id in self.enabled_source_ids

    def to_document(self) -> dict:
        return {
            "userId": self.user_id,
            "enabledSourceIds": (
                sorted(self.enabled_source_ids) if self.enabled_source_ids is not None else None
            ),
            "secrets": self.secrets,
        }


class User(BaseModel):
    """Requesting user as resolved by the auth layer."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    user_id: str = Field(alias="userId")
    user_name: str | None = Field(default=None, alias="userName")
    roles: frozenset[str] = frozenset()
    enabled: bool = True

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: set[str] | frozenset[str] | list[str]) -> bool:
        return not self.roles.isdisjoint(roles)
