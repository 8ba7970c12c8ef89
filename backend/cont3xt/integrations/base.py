"""Integration driver contract.

Every lookup source implements ``Integration``. Drivers are registered once
at startup; the orchestrator owns caching, deduplication, concurrency,
rate limiting and timeouts, so a driver only has to perform one lookup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cont3xt.exceptions import SecretDecodeError, SourceFetchError
from cont3xt.indicators import Indicator, IndicatorType

if TYPE_CHECKING:
    from cont3xt.models.user import UserIntegrationSettings
    from cont3xt.utils.secrets import SecretCodec


@dataclass(frozen=True)
class SettingSchema:
    """A per-user setting an integration understands."""

    description: str = ""
    secret: bool = False
    required: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "secret": self.secret,
            "required": self.required,
        }


@dataclass
class SourceContext:
    """Per-request view of the caller's settings for one source.

    Secrets stay encrypted until a driver asks for one.
    """

    source_id: str
    user_id: str | None = None
    settings: "UserIntegrationSettings | None" = None
    codec: "SecretCodec | None" = None

    def has_setting(self, name: str) -> bool:
        """Whether the caller stored a value for ``name``, without decrypting it."""
        if self.settings is None:
            return False
        return bool(self.settings.secrets.get(self.source_id, {}).get(name))

    def secret(self, name: str) -> str | None:
        """Decrypt and return the caller's secret ``name`` for this source."""
        if self.settings is None or self.codec is None:
            return None
        token = self.settings.secrets.get(self.source_id, {}).get(name)
        if not token:
            return None
        try:
            return self.codec.decrypt(token)
        except SecretDecodeError as e:
            raise SourceFetchError(
                self.source_id, f"Stored setting '{name}' cannot be decrypted"
            ) from e


class Integration(ABC):
    """Abstract base class for lookup sources.

    Subclasses set the class attributes (or pass them to ``__init__``) and
    implement ``fetch``. Raising any exception from ``fetch`` produces an
    ``error`` outcome for this source only.
    """

    id: str = "base"
    description: str = ""
    supported_types: frozenset[IndicatorType] = frozenset()
    cacheable: bool = True
    timeout: float = 10.0
    rate_limit: int = 0  # calls per minute, 0 = unlimited
    retries: int = 0
    retry_backoff: float = 1.0
    priority: int = 100
    cache_ttl: float | None = None  # falls back to the cache default
    config_schema: dict[str, SettingSchema] = {}

    def __init__(self, **overrides: Any):
        for attr, value in overrides.items():
            if not hasattr(type(self), attr):
                raise TypeError(f"Unknown integration attribute: {attr}")
            setattr(self, attr, value)
        self.supported_types = frozenset(IndicatorType(t) for t in self.supported_types)
        self.config_schema = dict(self.config_schema)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"

    def supports(self, itype: IndicatorType) -> bool:
        return itype in self.supported_types

    def cache_params(self, indicator: Indicator) -> dict[str, Any]:
        """Extra parameters that change this source's answer for ``indicator``."""
        return {}

    @abstractmethod
    async def fetch(self, indicator: Indicator, context: SourceContext) -> Any:
        """Look up ``indicator``.

        Returns:
            JSON-serializable payload; None when the source knows nothing.
        """
        ...

    async def close(self) -> None:
        """Release driver resources."""

    def describe(self) -> dict[str, Any]:
        """Capabilities as listed by the integration API."""
        return {
            "id": self.id,
            "description": self.description,
            "supportedTypes": sorted(t.value for t in self.supported_types),
            "cacheable": self.cacheable,
            "timeout": self.timeout,
            "rateLimit": self.rate_limit,
            "retries": self.retries,
            "priority": self.priority,
            "configSchema": {
                name: schema.to_dict() for name, schema in self.config_schema.items()
            },
        }
