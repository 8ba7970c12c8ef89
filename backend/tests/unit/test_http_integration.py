"""Unit tests for the generic HTTP JSON integration."""

import json

import httpx
import pytest

from cont3xt.config import IntegrationConfig
from cont3xt.exceptions import SourceFetchError
from cont3xt.indicators import IndicatorType, normalize
from cont3xt.integrations.base import SourceContext
from cont3xt.integrations.http import HttpIntegration
from cont3xt.models.user import UserIntegrationSettings


pytestmark = pytest.mark.unit


def make_source(handler, **kwargs) -> tuple[HttpIntegration, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    kwargs.setdefault("url", "https://api.example/{itype}/{indicator}")
    source = HttpIntegration(
        "example",
        supported_types={"ip", "url"},
        transport=httpx.MockTransport(record),
        **kwargs,
    )
    return source, requests


class TestHttpIntegration:
    """Tests for request building and response handling."""

    @pytest.mark.asyncio
    async def test_get_json(self):
        source, requests = make_source(lambda r: httpx.Response(200, json={"asn": 15169}))

        payload = await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example"))

        assert payload == {"asn": 15169}
        assert str(requests[0].url) == "https://api.example/ip/8.8.8.8"
        assert requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_indicator_is_quoted(self):
        source, requests = make_source(lambda r: httpx.Response(200, json={}))

        await source.fetch(normalize("https://evil.example/a?b=c"), SourceContext(source_id="example"))
        assert "https%3A%2F%2Fevil.example%2Fa%3Fb%3Dc" in str(requests[0].url)

    @pytest.mark.asyncio
    async def test_post_sends_indicator(self):
        source, requests = make_source(
            lambda r: httpx.Response(200, json=[1]),
            url="https://api.example/lookup",
            method="post",
        )

        payload = await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example"))

        assert payload == [1]
        assert requests[0].method == "POST"
        assert json.loads(requests[0].content) == {"itype": "ip", "value": "8.8.8.8"}

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        source, _ = make_source(lambda r: httpx.Response(404))
        assert await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example")) is None

    @pytest.mark.asyncio
    async def test_server_error(self):
        source, _ = make_source(lambda r: httpx.Response(503))

        with pytest.raises(SourceFetchError) as exc_info:
            await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example"))
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        source, _ = make_source(lambda r: httpx.Response(200, text="<html>"))

        with pytest.raises(SourceFetchError):
            await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example"))

    @pytest.mark.asyncio
    async def test_secret_header(self, codec):
        source, requests = make_source(
            lambda r: httpx.Response(200, json={}),
            secret_setting="apiKey",
            secret_header="X-Api-Key",
        )
        settings = UserIntegrationSettings(
            user_id="analyst", secrets={"example": {"apiKey": codec.encrypt("s3cr3t")}}
        )
        context = SourceContext(source_id="example", settings=settings, codec=codec)

        await source.fetch(normalize("8.8.8.8"), context)
        assert requests[0].headers["X-Api-Key"] == "s3cr3t"

    @pytest.mark.asyncio
    async def test_missing_secret(self):
        source, requests = make_source(
            lambda r: httpx.Response(200, json={}), secret_setting="apiKey"
        )

        with pytest.raises(SourceFetchError):
            await source.fetch(normalize("8.8.8.8"), SourceContext(source_id="example"))
        assert requests == []

    def test_secret_setting_in_schema(self):
        source, _ = make_source(lambda r: httpx.Response(200), secret_setting="apiKey")
        schema = source.describe()["configSchema"]["apiKey"]
        assert schema["secret"] is True
        assert schema["required"] is True

    def test_from_config(self):
        config = IntegrationConfig(
            url="https://x.example/{indicator}",
            itypes="domain",
            timeout=3,
            rate_limit=10,
            cacheable=False,
            priority=1,
        )
        source = HttpIntegration.from_config("x", config)

        assert source.id == "x"
        assert source.supported_types == {IndicatorType.DOMAIN}
        assert source.timeout == 3
        assert source.rate_limit == 10
        assert not source.cacheable
        assert source.priority == 1

    def test_unknown_override_rejected(self):
        with pytest.raises(TypeError):
            HttpIntegration("x", url="https://x/{indicator}", colour="red")
