"""Query orchestrator.

Fans one indicator query out to every eligible integration and yields a
``SourceOutcome`` per source as soon as that source is done:

- cache hits are answered without invoking the driver
- concurrent misses for the same cache key share one driver invocation
- driver calls run under a process-wide concurrency cap, the source's rate
  limit and the source's timeout
- one source failing or timing out never affects the others
"""

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from cont3xt.cache import CacheEntry, CacheStore, make_cache_key
from cont3xt.exceptions import CacheBackendError, SourceFetchError, SourceTimeoutError, ValidationError
from cont3xt.indicators import Indicator
from cont3xt.integrations.base import Integration, SourceContext
from cont3xt.integrations.ratelimit import limiter_for
from cont3xt.integrations.registry import IntegrationRegistry
from cont3xt.models.user import User, UserIntegrationSettings
from cont3xt.utils.secrets import SecretCodec

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Terminal status of one source within one query."""

    CACHED = "cached"
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class QueryState(str, Enum):
    """Lifecycle of one (request, source) pair."""

    PENDING = "pending"
    CACHED = "cached"
    DISPATCHED = "dispatched"
    SUCCESS = "success"
    TIMEOUT = "timeout"
    ERROR = "error"


_TRANSITIONS: dict[QueryState, frozenset[QueryState]] = {
    QueryState.PENDING: frozenset({QueryState.CACHED, QueryState.DISPATCHED}),
    QueryState.DISPATCHED: frozenset({QueryState.SUCCESS, QueryState.TIMEOUT, QueryState.ERROR}),
}


@dataclass
class SourceOutcome:
    """Per-source result record of one orchestrated query."""

    source: str
    status: OutcomeStatus
    payload: Any = None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": self.source,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.CACHED):
            data["payload"] = self.payload
        else:
            data["error"] = self.error
        return data


@dataclass
class QueryRequest:
    """One indicator query on behalf of one user."""

    indicator: Indicator
    user: User | None = None
    user_settings: UserIntegrationSettings | None = None
    sources: list[str] | None = None  # None = all eligible
    skip_cache: bool = False


@dataclass
class SourceQuery:
    """State machine for one source within one request."""

    source: Integration
    key: str
    state: QueryState = QueryState.PENDING

    def transition(self, new_state: QueryState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(
                f"{self.source.id}: illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state


@dataclass(frozen=True)
class _FetchResult:
    """Result of one shared driver invocation, seen by every attached caller."""

    status: OutcomeStatus
    payload: Any = None
    error: str | None = None


def _describe_error(exc: BaseException) -> str:
    if isinstance(exc, SourceFetchError):
        return exc.message
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class QueryOrchestrator:
    """Runs indicator queries across integrations.

    The orchestrator is the sole writer of cache entries for the lookups it
    performs, and owns the in-flight table that guarantees at most one
    outstanding driver invocation per cache key in this process.
    """

    def __init__(
        self,
        registry: IntegrationRegistry,
        cache: CacheStore,
        codec: SecretCodec | None = None,
        max_concurrent: int = 16,
        default_ttl: float = 3600,
    ):
        """Initialize the orchestrator.

        Args:
            registry: Frozen integration registry
            cache: Store for per-source results
            codec: Decrypts per-user secrets at the point a driver needs them
            max_concurrent: Process-wide cap on simultaneous driver calls
            default_ttl: Cache TTL for sources that do not set their own
        """
        self.registry = registry
        self.cache = cache
        self.codec = codec
        self.default_ttl = default_ttl
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._limiters = {source.id: limiter_for(source.rate_limit) for source in registry}
        self._inflight: dict[str, asyncio.Task[_FetchResult]] = {}
        self._inflight_lock = asyncio.Lock()
        self._invocations: Counter[str] = Counter()
        self._attached = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def resolve_sources(self, request: QueryRequest) -> list[Integration]:
        """Eligible integrations for a request, in registry order.

        Raises:
            ValidationError: If an explicitly requested source is unknown.
        """
        eligible = self.registry.sources_for(request.indicator.itype, request.user_settings)
        if request.sources is None:
            return eligible

        unknown = [source_id for source_id in request.sources if source_id not in self.registry]
        if unknown:
            raise ValidationError(f"Unknown integration(s): {', '.join(sorted(unknown))}")

        wanted = set(request.sources)
        return [source for source in eligible if source.id in wanted]

    def orchestrate(self, request: QueryRequest) -> AsyncIterator[SourceOutcome]:
        """Start a query and return its outcomes in completion order.

        Validation happens before this returns, so errors surface before any
        fan-out. The returned iterator is single-use.

        Raises:
            ValidationError: If the request names unknown sources.
        """
        sources = self.resolve_sources(request)
        logger.debug(
            "Query %s:%s -> %s",
            request.indicator.itype.value,
            request.indicator.value,
            [source.id for source in sources],
        )
        return self._run(request, sources)

    async def query(self, request: QueryRequest) -> list[SourceOutcome]:
        """Run a query to completion and collect every outcome."""
        return [outcome async for outcome in self.orchestrate(request)]

    async def invalidate(self, source_id: str, indicator: Indicator) -> None:
        """Drop the cached result of one source for one indicator."""
        source = self.registry.get(source_id)
        if source is None:
            raise ValidationError(f"Unknown integration: {source_id}")
        key = make_cache_key(source.id, indicator, source.cache_params(indicator))
        try:
            await self.cache.invalidate(key)
        except CacheBackendError as e:
            logger.warning("Cache invalidate failed for %s: %s", key, e.message)

    def invocation_count(self, source_id: str) -> int:
        return self._invocations[source_id]

    def stats(self) -> dict[str, Any]:
        return {
            "in_flight": len(self._inflight),
            "max_concurrent": self.max_concurrent,
            "invocations": dict(self._invocations),
            "attached": self._attached,
            "cache": self.cache.stats(),
        }

    async def shutdown(self) -> None:
        """Cancel outstanding fetches (process shutdown only)."""
        async with self._inflight_lock:
            tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Fan-out
    # -------------------------------------------------------------------------

    async def _run(
        self, request: QueryRequest, sources: list[Integration]
    ) -> AsyncIterator[SourceOutcome]:
        tasks = [asyncio.create_task(self._query_source(request, source)) for source in sources]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            # Consumer went away: stop waiting, shared fetches keep running
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _query_source(self, request: QueryRequest, source: Integration) -> SourceOutcome:
        try:
            return await self._resolve_outcome(request, source)
        except Exception as e:
            logger.exception("Unexpected failure querying %s", source.id)
            return SourceOutcome(
                source=source.id,
                status=OutcomeStatus.ERROR,
                error=_describe_error(e),
            )

    async def _resolve_outcome(self, request: QueryRequest, source: Integration) -> SourceOutcome:
        indicator = request.indicator
        query = SourceQuery(
            source=source,
            key=make_cache_key(source.id, indicator, source.cache_params(indicator)),
        )

        entry = None if request.skip_cache else await self._cache_get(query.key)
        if entry is None:
            entry, task = await self._attach_or_dispatch(query.key, source, request)
        if entry is not None:
            query.transition(QueryState.CACHED)
            return SourceOutcome(
                source=source.id,
                status=OutcomeStatus.CACHED,
                payload=entry.payload,
            )

        query.transition(QueryState.DISPATCHED)
        # shield: cancelling this waiter must not cancel the shared fetch
        result = await asyncio.shield(task)
        query.transition(QueryState(result.status.value))
        return SourceOutcome(
            source=source.id,
            status=result.status,
            payload=result.payload,
            error=result.error,
        )

    async def _attach_or_dispatch(
        self, key: str, source: Integration, request: QueryRequest
    ) -> tuple[CacheEntry | None, asyncio.Task[_FetchResult] | None]:
        """Attach to the in-flight fetch for ``key`` or start one.

        A fetch that completed between the caller's cache miss and taking the
        lock has already written its result, so the cache is read again
        before dispatching.
        """
        context = SourceContext(
            source_id=source.id,
            user_id=request.user.user_id if request.user else None,
            settings=request.user_settings,
            codec=self.codec,
        )
        # Callers lacking a required setting only share with each other
        missing = sorted(
            name
            for name, schema in source.config_schema.items()
            if schema.required and not context.has_setting(name)
        )
        inflight_key = f"{key}|missing:{','.join(missing)}" if missing else key

        async with self._inflight_lock:
            task = self._inflight.get(inflight_key)
            if task is not None:
                self._attached += 1
                logger.debug("Attached to in-flight fetch %s", inflight_key)
                return None, task

            if not request.skip_cache:
                entry = await self._cache_get(key)
                if entry is not None:
                    return entry, None

            task = asyncio.create_task(self._fetch(key, source, request.indicator, context))
            self._inflight[inflight_key] = task
            task.add_done_callback(lambda done, key=inflight_key: self._release(key, done))
            return None, task

    def _release(self, key: str, task: asyncio.Task[_FetchResult]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    # -------------------------------------------------------------------------
    # Driver invocation
    # -------------------------------------------------------------------------

    async def _fetch(
        self,
        key: str,
        source: Integration,
        indicator: Indicator,
        context: SourceContext,
    ) -> _FetchResult:
        attempts = source.retries + 1
        result = _FetchResult(status=OutcomeStatus.ERROR, error="not attempted")

        for attempt in range(1, attempts + 1):
            try:
                payload = await self._invoke(source, indicator, context)
            except SourceTimeoutError as e:
                logger.warning("Integration %s timed out for %s", source.id, indicator.value)
                result = _FetchResult(status=OutcomeStatus.TIMEOUT, error=e.message)
            except Exception as e:
                logger.warning(
                    "Integration %s failed for %s: %s", source.id, indicator.value, _describe_error(e)
                )
                result = _FetchResult(status=OutcomeStatus.ERROR, error=_describe_error(e))
            else:
                if source.cacheable:
                    await self._cache_set(key, payload, source.cache_ttl or self.default_ttl)
                return _FetchResult(status=OutcomeStatus.SUCCESS, payload=payload)

            if attempt < attempts:
                logger.info(
                    "Retrying %s (attempt %d of %d) in %ss",
                    source.id, attempt + 1, attempts, source.retry_backoff,
                )
                await asyncio.sleep(source.retry_backoff)

        return result

    async def _invoke(
        self, source: Integration, indicator: Indicator, context: SourceContext
    ) -> Any:
        # The rate-limit wait and the driver call share one timeout budget;
        # only the driver call holds a concurrency slot
        loop = asyncio.get_running_loop()
        deadline = loop.time() + source.timeout
        limiter = self._limiters.get(source.id) or limiter_for(0)
        try:
            await asyncio.wait_for(limiter.acquire(), timeout=source.timeout)
            remaining = max(deadline - loop.time(), 0)
            async with self._semaphore:
                self._invocations[source.id] += 1
                return await asyncio.wait_for(source.fetch(indicator, context), timeout=remaining)
        except TimeoutError:
            raise SourceTimeoutError(source.id, source.timeout) from None

    # -------------------------------------------------------------------------
    # Cache access, degrading to miss/no-op when the backend is down
    # -------------------------------------------------------------------------

    async def _cache_get(self, key: str) -> CacheEntry | None:
        try:
            return await self.cache.get(key)
        except CacheBackendError as e:
            logger.warning("Cache read failed, treating %s as a miss: %s", key, e.message)
            return None

    async def _cache_set(self, key: str, payload: Any, ttl: float) -> None:
        try:
            await self.cache.set(key, payload, ttl)
        except CacheBackendError as e:
            logger.warning("Cache write failed for %s: %s", key, e.message)
