"""Document store for link groups, users and user integration settings.

Backed by Elasticsearch. Users may live on a separate cluster from the link
groups (``users_elasticsearch``), mirroring a shared Arkime users index.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any
from uuid import uuid4

from elasticsearch import ApiError, AsyncElasticsearch, NotFoundError, TransportError

from cont3xt.config import Cont3xtConfig
from cont3xt.exceptions import ServiceUnavailableError
from cont3xt.models.link_group import LinkGroup, LinkGroupCreate
from cont3xt.models.user import User, UserIntegrationSettings

logger = logging.getLogger(__name__)

LINKS_INDEX = "cont3xt_links"
BUILTIN_ROLES = ["cont3xtUser", "cont3xtAdmin", "usersAdmin", "superAdmin"]


class Db(ABC):
    """Document store capability used by the services."""

    @abstractmethod
    async def list_link_groups(self) -> list[LinkGroup]: ...

    @abstractmethod
    async def get_link_group(self, group_id: str) -> LinkGroup | None: ...

    @abstractmethod
    async def create_link_group(self, data: LinkGroupCreate, creator: str) -> LinkGroup: ...

    @abstractmethod
    async def put_link_group(self, group: LinkGroup) -> LinkGroup: ...

    @abstractmethod
    async def delete_link_group(self, group_id: str) -> bool: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None: ...

    @abstractmethod
    async def get_user_settings(self, user_id: str) -> UserIntegrationSettings | None: ...

    @abstractmethod
    async def put_user_settings(self, settings: UserIntegrationSettings) -> None: ...

    @abstractmethod
    async def list_roles(self) -> list[str]: ...

    async def ensure_indices(self) -> None:
        """Create any missing indices."""

    async def close(self) -> None:
        """Release client resources."""


def _client_kwargs(
    hosts: list[str],
    api_key: str | None,
    basic_auth: str | None,
    insecure: bool,
) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"hosts": hosts, "verify_certs": not insecure}
    if api_key:
        kwargs["api_key"] = api_key
    elif basic_auth:
        user, _, password = basic_auth.partition(":")
        kwargs["basic_auth"] = (user, password)
    return kwargs


class ElasticsearchDb(Db):
    """Elasticsearch implementation of the document store."""

    def __init__(
        self,
        es: AsyncElasticsearch,
        users_es: AsyncElasticsearch | None = None,
        users_prefix: str = "",
    ):
        self.es = es
        self.users_es = users_es or es
        self.users_index = f"{users_prefix}users"

    @classmethod
    def from_config(cls, config: Cont3xtConfig) -> "ElasticsearchDb":
        es = AsyncElasticsearch(
            **_client_kwargs(
                config.elasticsearch,
                config.elasticsearch_api_key,
                config.elasticsearch_basic_auth,
                config.insecure,
            )
        )
        users_es = None
        if config.users_elasticsearch:
            users_es = AsyncElasticsearch(
                **_client_kwargs(
                    config.users_elasticsearch,
                    config.users_elasticsearch_api_key,
                    config.users_elasticsearch_basic_auth,
                    config.insecure,
                )
            )
        return cls(es, users_es, users_prefix=config.users_prefix)

    # -------------------------------------------------------------------------
    # Link groups
    # -------------------------------------------------------------------------

    @staticmethod
    def _link_group(hit: dict[str, Any]) -> LinkGroup:
        return LinkGroup(id=hit["_id"], **hit["_source"])

    async def list_link_groups(self) -> list[LinkGroup]:
        try:
            response = await self.es.search(
                index=LINKS_INDEX,
                query={"match_all": {}},
                size=10000,
            )
        except NotFoundError:
            return []
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Listing link groups failed: {e}") from e
        return [self._link_group(hit) for hit in response["hits"]["hits"]]

    async def get_link_group(self, group_id: str) -> LinkGroup | None:
        try:
            response = await self.es.get(index=LINKS_INDEX, id=group_id)
        except NotFoundError:
            return None
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Reading link group failed: {e}") from e
        return self._link_group(response)

    async def create_link_group(self, data: LinkGroupCreate, creator: str) -> LinkGroup:
        group = LinkGroup(id=uuid4().hex, creator=creator, **data.model_dump())
        return await self.put_link_group(group)

    async def put_link_group(self, group: LinkGroup) -> LinkGroup:
        try:
            await self.es.index(
                index=LINKS_INDEX,
                id=group.id,
                document=group.to_document(),
                refresh=True,
            )
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Saving link group failed: {e}") from e
        return group

    async def delete_link_group(self, group_id: str) -> bool:
        try:
            await self.es.delete(index=LINKS_INDEX, id=group_id, refresh=True)
        except NotFoundError:
            return False
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Deleting link group failed: {e}") from e
        return True

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    async def _get_user_source(self, user_id: str) -> dict[str, Any] | None:
        try:
            response = await self.users_es.get(index=self.users_index, id=user_id)
        except NotFoundError:
            return None
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Reading user failed: {e}") from e
        return response["_source"]

    async def get_user(self, user_id: str) -> User | None:
        source = await self._get_user_source(user_id)
        if source is None:
            return None
        return User(
            user_id=source.get("userId", user_id),
            user_name=source.get("userName"),
            roles=frozenset(source.get("roles", [])),
            enabled=source.get("enabled", True),
        )

    async def get_user_settings(self, user_id: str) -> UserIntegrationSettings | None:
        source = await self._get_user_source(user_id)
        if source is None or not source.get("cont3xt"):
            return None
        return UserIntegrationSettings.model_validate({"userId": user_id, **source["cont3xt"]})

    async def put_user_settings(self, settings: UserIntegrationSettings) -> None:
        document = settings.to_document()
        document.pop("userId")
        try:
            await self.users_es.update(
                index=self.users_index,
                id=settings.user_id,
                doc={"cont3xt": document},
                doc_as_upsert=True,
                refresh=True,
            )
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Saving user settings failed: {e}") from e

    async def list_roles(self) -> list[str]:
        try:
            response = await self.users_es.search(
                index=self.users_index,
                size=0,
                aggs={"roles": {"terms": {"field": "roles", "size": 1000}}},
            )
        except NotFoundError:
            return list(BUILTIN_ROLES)
        except (ApiError, TransportError) as e:
            raise ServiceUnavailableError("elasticsearch", f"Listing roles failed: {e}") from e

        roles = set(BUILTIN_ROLES)
        for bucket in response.get("aggregations", {}).get("roles", {}).get("buckets", []):
            roles.add(bucket["key"])
        return sorted(roles)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ensure_indices(self) -> None:
        if await self.es.indices.exists(index=LINKS_INDEX):
            return
        await self.es.indices.create(
            index=LINKS_INDEX,
            mappings={
                "dynamic": "strict",
                "properties": {
                    "name": {"type": "keyword"},
                    "creator": {"type": "keyword"},
                    "viewRoles": {"type": "keyword"},
                    "editRoles": {"type": "keyword"},
                    "links": {"type": "object", "enabled": False},
                },
            },
        )
        logger.info("Created index %s", LINKS_INDEX)

    async def close(self) -> None:
        await self.es.close()
        if self.users_es is not self.es:
            await self.users_es.close()
