"""Generic HTTP JSON integration.

Drives any source that answers ``GET``/``POST`` requests with JSON, described
entirely by an ``[integration:<id>]`` configuration section::

    [integration:passivedns]
    url = https://pdns.example.org/api/v1/{itype}/{indicator}
    itypes = ip,domain
    timeout = 5
    rate_limit = 60
    secret_setting = apiKey
    secret_header = X-Api-Key
"""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from cont3xt.config import IntegrationConfig
from cont3xt.exceptions import SourceFetchError
from cont3xt.indicators import Indicator
from cont3xt.integrations.base import Integration, SettingSchema, SourceContext

logger = logging.getLogger(__name__)


class HttpIntegration(Integration):
    """Integration that fetches a JSON document from a templated URL.

    Concurrent lookups of one indicator share a single request, sent with the
    credential of the caller that started it. Callers without the credential
    are never attached to a request made with one, or the other way round.
    """

    def __init__(
        self,
        source_id: str,
        url: str,
        method: str = "GET",
        secret_setting: str | None = None,
        secret_header: str = "Authorization",
        verify_ssl: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
        **overrides: Any,
    ):
        """Initialize the integration.

        Args:
            source_id: Unique integration id
            url: URL template; ``{indicator}`` and ``{itype}`` are substituted
            method: GET or POST (POST sends ``{"indicator", "itype"}`` as JSON)
            secret_setting: Name of the per-user setting holding the credential
            secret_header: Header the credential is sent in
            verify_ssl: Verify upstream TLS certificates
            transport: Optional httpx transport (tests)
        """
        super().__init__(id=source_id, **overrides)
        self.url = url
        self.method = method.upper()
        self.secret_setting = secret_setting
        self.secret_header = secret_header
        self.verify_ssl = verify_ssl
        self._transport = transport
        if secret_setting and secret_setting not in self.config_schema:
            self.config_schema[secret_setting] = SettingSchema(
                description=f"{secret_header} credential for {source_id}",
                secret=True,
                required=True,
            )

    @classmethod
    def from_config(cls, source_id: str, config: IntegrationConfig) -> "HttpIntegration":
        return cls(
            source_id=source_id,
            url=config.url,
            method=config.method,
            secret_setting=config.secret_setting,
            secret_header=config.secret_header,
            verify_ssl=config.verify_ssl,
            description=config.description,
            supported_types=frozenset(config.itypes),
            cacheable=config.cacheable,
            timeout=config.timeout,
            rate_limit=config.rate_limit,
            retries=config.retries,
            retry_backoff=config.retry_backoff,
            priority=config.priority,
            cache_ttl=config.cache_ttl,
        )

    def build_url(self, indicator: Indicator) -> str:
        return self.url.format(
            indicator=quote(indicator.value, safe=""),
            itype=indicator.itype.value,
        )

    async def fetch(self, indicator: Indicator, context: SourceContext) -> Any:
        headers = {"Accept": "application/json"}
        if self.secret_setting:
            credential = context.secret(self.secret_setting)
            if not credential:
                raise SourceFetchError(
                    self.id, f"Missing required setting '{self.secret_setting}'"
                )
            headers[self.secret_header] = credential

        url = self.build_url(indicator)
        async with httpx.AsyncClient(
            verify=self.verify_ssl,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            if self.method == "POST":
                response = await client.post(url, headers=headers, json=indicator.to_dict())
            else:
                response = await client.get(url, headers=headers)

        if response.status_code == 404:
            logger.debug("%s: indicator not found: %s", self.id, indicator.value)
            return None

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceFetchError(
                self.id, f"Upstream returned HTTP {e.response.status_code}"
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(self.id, "Upstream returned invalid JSON") from e
