"""Per-user integration settings.

Credentials are encrypted before they reach the document store and are only
decrypted by ``SourceContext.secret`` when a driver is about to use them.
"""

from __future__ import annotations

import logging
from typing import Any

from cont3xt.database import Db
from cont3xt.exceptions import ValidationError
from cont3xt.integrations.registry import IntegrationRegistry
from cont3xt.models.user import UserIntegrationSettings
from cont3xt.utils.secrets import SecretCodec

logger = logging.getLogger(__name__)

MASK = "********"


class UserSettingsService:
    """Reads and writes UserIntegrationSettings documents."""

    def __init__(self, db: Db, codec: SecretCodec, registry: IntegrationRegistry):
        self.db = db
        self.codec = codec
        self.registry = registry

    async def get(self, user_id: str) -> UserIntegrationSettings:
        """Settings for ``user_id``; defaults (everything enabled) if none stored."""
        settings = await self.db.get_user_settings(user_id)
        if settings is None:
            return UserIntegrationSettings(user_id=user_id)
        return settings

    async def set(self, user_id: str, settings: UserIntegrationSettings) -> UserIntegrationSettings:
        """Persist already-encrypted settings for ``user_id``."""
        if settings.user_id != user_id:
            settings = settings.model_copy(update={"user_id": user_id})
        await self.db.put_user_settings(settings)
        logger.info("Updated integration settings for %s", user_id)
        return settings

    async def update(
        self,
        user_id: str,
        enabled_source_ids: list[str] | set[str] | None = None,
        secrets: dict[str, dict[str, str]] | None = None,
        enable_all: bool = False,
    ) -> UserIntegrationSettings:
        """Apply a partial update from plaintext input.

        Args:
            user_id: Owner of the settings
            enabled_source_ids: New enabled set; None leaves it unchanged
            secrets: ``{source_id: {setting: plaintext}}``. The mask
                placeholder keeps the stored value; an empty value removes it.
            enable_all: Reset to "every integration enabled"

        Raises:
            ValidationError: On unknown integrations or settings.
        """
        current = await self.get(user_id)

        enabled = current.enabled_source_ids
        if enable_all:
            enabled = None
        elif enabled_source_ids is not None:
            unknown = set(enabled_source_ids) - set(self.registry.list_ids())
            if unknown:
                raise ValidationError(f"Unknown integration(s): {', '.join(sorted(unknown))}")
            enabled = set(enabled_source_ids)

        stored = {source_id: dict(values) for source_id, values in current.secrets.items()}
        for source_id, values in (secrets or {}).items():
            source = self.registry.get(source_id)
            if source is None:
                raise ValidationError(f"Unknown integration: {source_id}")
            for name, value in values.items():
                if name not in source.config_schema:
                    raise ValidationError(f"Integration '{source_id}' has no setting '{name}'")
                if value == MASK:
                    continue
                if value:
                    stored.setdefault(source_id, {})[name] = self.codec.encrypt(value)
                else:
                    stored.get(source_id, {}).pop(name, None)
            if not stored.get(source_id):
                stored.pop(source_id, None)

        return await self.set(
            user_id,
            UserIntegrationSettings(user_id=user_id, enabled_source_ids=enabled, secrets=stored),
        )

    def masked(self, settings: UserIntegrationSettings) -> dict[str, Any]:
        """API view of the settings with every secret replaced by the mask."""
        integrations = {}
        for source in self.registry.list():
            stored = settings.secrets.get(source.id, {})
            integrations[source.id] = {
                "enabled": settings.is_enabled(source.id),
                "settings": {
                    name: {**schema.to_dict(), "value": MASK if name in stored else None}
                    for name, schema in source.config_schema.items()
                },
            }
        return {
            "userId": settings.user_id,
            "enabledSourceIds": (
                sorted(settings.enabled_source_ids)
                if settings.enabled_source_ids is not None
                else None
            ),
            "integrations": integrations,
        }
