"""Integration registry.

The registry is built once at startup, frozen, and then handed to the
orchestrator and API by reference:

    registry = IntegrationRegistry()
    registry.register(HttpIntegration("passivedns", url=..., supported_types={"ip"}))
    registry.freeze()

    for source in registry.sources_for(IndicatorType.IP, user_settings):
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from cont3xt.config import Settings
from cont3xt.exceptions import DuplicateSourceError
from cont3xt.indicators import IndicatorType
from cont3xt.integrations.base import Integration
from cont3xt.integrations.http import HttpIntegration
from cont3xt.models.user import UserIntegrationSettings

logger = logging.getLogger(__name__)


class IntegrationRegistry:
    """Catalogue of integration drivers and their capabilities."""

    def __init__(self):
        self._sources: dict[str, Integration] = {}
        self._order: list[str] = []
        self._frozen = False

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self) -> Iterator[Integration]:
        return iter(self.list())

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, source: Integration) -> None:
        """Register an integration driver.

        Raises:
            DuplicateSourceError: If ``source.id`` is already registered.
            RuntimeError: If the registry has been frozen.
        """
        if self._frozen:
            raise RuntimeError("Integration registry is frozen")
        if source.id in self._sources:
            raise DuplicateSourceError(source.id)
        self._sources[source.id] = source
        self._order.append(source.id)
        logger.debug("Registered integration: %s", source.id)

    def freeze(self) -> None:
        """Disallow further registrations."""
        self._frozen = True

    def get(self, source_id: str) -> Integration | None:
        return self._sources.get(source_id)

    def list(self) -> list[Integration]:
        """All integrations by priority, registration order breaking ties."""
        # sorted() is stable, and _order is registration order
        return sorted(
            (self._sources[source_id] for source_id in self._order),
            key=lambda source: source.priority,
        )

    def list_ids(self) -> list[str]:
        return [source.id for source in self.list()]

    def sources_for(
        self,
        itype: IndicatorType,
        user_settings: UserIntegrationSettings | None = None,
    ) -> list[Integration]:
        """Integrations eligible to answer ``itype`` for this user.

        Absent settings, or settings without an explicit enabled list, mean
        every integration is enabled.
        """
        enabled = user_settings.enabled_source_ids if user_settings else None
        return [
            source
            for source in self.list()
            if source.supports(itype) and (enabled is None or source.id in enabled)
        ]

    async def close_all(self) -> None:
        for source in self._sources.values():
            try:
                await source.close()
            except Exception as e:
                logger.error("Closing integration %s failed: %s", source.id, e)


def build_registry(
    settings: Settings,
    extra: list[Integration] | None = None,
) -> IntegrationRegistry:
    """Build and freeze the registry from ``[integration:<id>]`` sections.

    Raises:
        DuplicateSourceError: If two drivers share an id.
    """
    registry = IntegrationRegistry()

    for source_id, config in settings.integrations.items():
        registry.register(HttpIntegration.from_config(source_id, config))

    for source in extra or []:
        registry.register(source)

    registry.freeze()
    if len(registry):
        logger.info("Initialized integrations: %s", ", ".join(registry.list_ids()))
    else:
        logger.info("No integrations configured")
    return registry
