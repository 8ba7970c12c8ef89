"""Pytest fixtures and configuration for Cont3xt tests.

Everything runs in process: the document store is ``MemoryDb``, the cache is
a ``MemoryCache`` and integrations are ``FakeIntegration`` drivers. API tests
talk to the app through httpx's ASGI transport.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from cont3xt.cache import MemoryCache
from cont3xt.config import CacheConfig, Cont3xtConfig, Settings
from cont3xt.integrations.registry import IntegrationRegistry
from cont3xt.main import create_app
from cont3xt.models.link_group import Link, LinkGroup
from cont3xt.models.user import User
from cont3xt.utils.secrets import SecretCodec
from tests.mocks import FakeIntegration, MemoryDb

TEST_SECRET = "test-secret-key-for-testing-only"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Settings for header-mode auth with no configured integrations."""
    return Settings(
        cont3xt=Cont3xtConfig(
            elasticsearch=["http://localhost:9200"],
            user_name_header="x-remote-user",
            password_secret=TEST_SECRET,
            max_concurrent_fetches=8,
            log_level="DEBUG",
        ),
        cache=CacheConfig(type="memory", cache_size=100, cache_timeout=60),
        integrations={},
    )


@pytest.fixture
def codec() -> SecretCodec:
    return SecretCodec(TEST_SECRET)


# =============================================================================
# Users and Link Groups
# =============================================================================


@pytest.fixture
def analyst() -> User:
    return User(user_id="analyst", user_name="Analyst", roles=frozenset({"cont3xtUser"}))


@pytest.fixture
def admin() -> User:
    return User(
        user_id="admin",
        user_name="Admin",
        roles=frozenset({"cont3xtUser", "cont3xtAdmin"}),
    )


@pytest.fixture
def outsider() -> User:
    return User(user_id="outsider", roles=frozenset({"guest"}))


@pytest.fixture
def admin_links() -> LinkGroup:
    return LinkGroup(
        id="g-admin",
        name="Admin links",
        creator="admin",
        links=[Link(name="Whois", url="https://whois.example/${indicator}", itypes=["ip"])],
        view_roles={"cont3xtAdmin"},
        edit_roles={"cont3xtAdmin"},
    )


@pytest.fixture
def shared_links() -> LinkGroup:
    return LinkGroup(
        id="g-shared",
        name="Shared links",
        creator="admin",
        links=[Link(name="Search", url="https://search.example/?q=${indicator}")],
        view_roles={"cont3xtUser"},
        edit_roles={"cont3xtAdmin"},
    )


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def memory_db(analyst, admin, outsider) -> MemoryDb:
    db = MemoryDb()
    for user in (analyst, admin, outsider):
        db.add_user(user.user_id, roles=user.roles)
    db.add_user("disabled", roles={"cont3xtUser"}, enabled=False)
    return db


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache(max_entries=100)


@pytest.fixture
def fake_sources() -> list[FakeIntegration]:
    return [
        FakeIntegration("alpha", supported_types=("ip", "domain"), payload={"asn": 15169}),
        FakeIntegration("beta", supported_types=("ip",), payload={"country": "US"}, priority=50),
        FakeIntegration("gamma", supported_types=("hash",), payload={"malicious": False}),
    ]


@pytest.fixture
def registry(fake_sources) -> IntegrationRegistry:
    registry = IntegrationRegistry()
    for source in fake_sources:
        registry.register(source)
    registry.freeze()
    return registry


@pytest.fixture
def app(test_settings, memory_db, memory_cache, registry) -> FastAPI:
    return create_app(test_settings, db=memory_db, cache=memory_cache, registry=registry)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app; requests default to the analyst user."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"x-remote-user": "analyst"},
    ) as ac:
        yield ac
