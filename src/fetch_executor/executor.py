"""
Request execution core.

For each logical request: fingerprint, coalesce with an identical in-flight
request, serve from cache, otherwise take a concurrency slot and call the
transport under the retry policy, then populate the cache.
"""
import asyncio
import logging
from typing import Any, Iterable, Optional

from cache_store import CacheEngine, create_cache_store, create_cache_strategy
from fetch_errors import HttpStatusError, RequestTimeoutError
from fetch_scheduler import ConcurrencyScheduler
from request_coalesce import RequestCoalescer
from request_fingerprint import FingerprintConfig, FingerprintGenerator
from retry_policy import RetryPolicy

from .config import FetchCoreSettings
from .types import (
    BatchResult,
    ExecutorStatus,
    RequestDescriptor,
    ResponseDescriptor,
    Transport,
)

logger = logging.getLogger(__name__)


def build_cache_engine(
    settings: FetchCoreSettings,
    fingerprint: Optional[FingerprintGenerator] = None,
) -> CacheEngine:
    """Build the cache engine described by ``settings.cache``."""
    cache = settings.cache
    if cache.strategy in ("lru", "lfu"):
        strategy = create_cache_strategy(cache.strategy, max_size=cache.max_size)
    else:
        strategy = create_cache_strategy(cache.strategy)

    if cache.storage == "memory":
        store = create_cache_store("memory", max_entries=max(cache.max_size, 1))
    elif cache.storage == "local":
        store = create_cache_store("local", prefix=cache.prefix, path=cache.path)
    else:
        store = create_cache_store(
            "indexeddb",
            path=cache.path or ":memory:",
            prefix=cache.prefix,
            max_items=max(cache.max_size, 1),
        )

    return CacheEngine(
        store=store,
        strategy=strategy,
        config=cache.to_cache_config(),
        fingerprint=fingerprint,
    )


class RequestExecutor:
    """
    Request Executor

    Composes the coalescer, cache engine, scheduler and retry policy around
    a transport. The scheduler wraps the coalesced factory, so coalesced
    callers share one concurrency slot and one transport call.

    Example:
        executor = RequestExecutor(
            HttpxTransport(base_url="https://api.example.com"),
            FetchCoreSettings(max_concurrent=4, cache=CacheSettings(enabled=True)),
        )
        response = await executor.execute(RequestDescriptor(url="/users"))
        await executor.close()
    """

    def __init__(
        self,
        transport: Transport,
        settings: Optional[FetchCoreSettings] = None,
        *,
        cache_engine: Optional[CacheEngine] = None,
        coalescer: Optional[RequestCoalescer] = None,
        scheduler: Optional[ConcurrencyScheduler] = None,
        retry_policy: Optional[RetryPolicy] = None,
        fingerprint_config: Optional[FingerprintConfig] = None,
    ) -> None:
        self._transport = transport
        self._settings = settings or FetchCoreSettings()
        self._fingerprint = FingerprintGenerator(fingerprint_config)
        self._cache = cache_engine or build_cache_engine(self._settings, self._fingerprint)
        self._coalescer = coalescer or RequestCoalescer(self._settings.to_coalesce_config())
        self._scheduler = scheduler or ConcurrencyScheduler(self._settings.to_scheduler_config())
        self._retry = retry_policy or RetryPolicy(self._settings.retry.to_retry_config())

    @property
    def settings(self) -> FetchCoreSettings:
        return self._settings

    @property
    def cache(self) -> CacheEngine:
        return self._cache

    @property
    def coalescer(self) -> RequestCoalescer:
        return self._coalescer

    @property
    def scheduler(self) -> ConcurrencyScheduler:
        return self._scheduler

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    def fingerprint(self, descriptor: RequestDescriptor) -> str:
        return self._fingerprint.generate(descriptor)

    async def execute(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        """
        Execute a logical request.

        Raises:
            HttpStatusError: The response status is 400 or above
            NetworkError, RequestTimeoutError, CancelError: From the transport
            QueueFullError: No concurrency slot and the queue is full
        """
        key = self.fingerprint(descriptor)

        if self._settings.deduplication_enabled:
            return await self._coalescer.execute(key, lambda: self._execute_once(descriptor, key))
        return await self._execute_once(descriptor, key)

    async def _execute_once(self, descriptor: RequestDescriptor, key: str) -> ResponseDescriptor:
        options = descriptor.cache
        enabled = options.enabled if options is not None else None

        entry = await self._cache.get(descriptor, key=key, enabled=enabled)
        if entry is not None:
            logger.debug(f"RequestExecutor._execute_once: Served {key} from cache")
            return ResponseDescriptor.from_dict(entry.value)

        response = await self._scheduler.schedule(
            lambda: self._send_with_retry(descriptor),
            priority=descriptor.priority,
        )

        await self._cache.set(
            descriptor,
            response,
            ttl_seconds=options.ttl_seconds if options else None,
            tags=list(options.tags) if options else None,
            dependencies=list(options.dependencies) if options else None,
            key=key,
            enabled=enabled,
        )
        return response

    def _policy_for(self, descriptor: RequestDescriptor) -> RetryPolicy:
        """Per-request retry options take precedence over the global policy."""
        options = descriptor.retry
        if options is None:
            return self._retry
        return self._retry.with_overrides(
            max_retries=options.retries,
            base_delay_seconds=options.retry_delay_seconds,
            retry_condition=options.retry_condition,
            delay_calculator=options.retry_delay_calculator,
        )

    async def _send_with_retry(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        policy = self._policy_for(descriptor)
        result = await policy.execute(lambda: self._send(descriptor))
        if result.retries:
            logger.debug(
                f"RequestExecutor._send_with_retry: {descriptor.method} {descriptor.url} "
                f"succeeded after {result.retries} retries"
            )
        return result.result

    async def _send(self, descriptor: RequestDescriptor) -> ResponseDescriptor:
        response = await self._transport.execute(descriptor)
        if response.status >= 400:
            raise HttpStatusError(response, descriptor=descriptor)
        return response

    async def execute_batch(
        self,
        descriptors: Iterable[RequestDescriptor],
        parallel: bool = False,
        continue_on_error: bool = False,
    ) -> list[BatchResult]:
        """
        Execute several requests.

        In parallel mode every request runs and each outcome is reported.
        Sequentially, the first failure stops the batch unless
        ``continue_on_error`` is set, and is then raised.
        """
        descriptors = list(descriptors)

        if parallel:
            outcomes = await asyncio.gather(
                *(self.execute(d) for d in descriptors), return_exceptions=True
            )
            results = []
            for outcome in outcomes:
                if isinstance(outcome, Exception):
                    results.append(BatchResult(success=False, error=outcome))
                elif isinstance(outcome, BaseException):
                    raise outcome
                else:
                    results.append(BatchResult(success=True, response=outcome))
            return results

        results = []
        for descriptor in descriptors:
            try:
                response = await self.execute(descriptor)
            except Exception as error:
                if not continue_on_error:
                    raise
                results.append(BatchResult(success=False, error=error))
            else:
                results.append(BatchResult(success=True, response=response))
        return results

    async def execute_with_timeout(
        self,
        descriptor: RequestDescriptor,
        timeout_seconds: float,
    ) -> ResponseDescriptor:
        """Execute a request, failing with RequestTimeoutError after ``timeout_seconds``."""
        try:
            return await asyncio.wait_for(self.execute(descriptor), timeout_seconds)
        except asyncio.TimeoutError as error:
            raise RequestTimeoutError(
                f"Request timed out after {timeout_seconds}s",
                descriptor=descriptor,
                cause=error,
            ) from error

    async def invalidate(self, descriptor: RequestDescriptor) -> bool:
        """Remove the cached response of a request."""
        return await self._cache.delete(descriptor, key=self.fingerprint(descriptor))

    async def invalidate_by_tag(self, tag: str) -> int:
        return await self._cache.invalidate_by_tag(tag)

    async def invalidate_by_dependency(self, dependency: str) -> int:
        return await self._cache.invalidate_by_dependency(dependency)

    async def clear_cache(self) -> None:
        await self._cache.clear()

    def cancel_queue(self, reason: str = "Queue cancelled") -> int:
        """Reject every queued request; active requests continue."""
        return self._scheduler.cancel_queue(reason)

    async def get_status(self) -> ExecutorStatus:
        scheduler_status = self._scheduler.get_status()
        cache_stats = await self._cache.get_stats()
        coalesce_stats = self._coalescer.get_stats()
        return ExecutorStatus(
            active_count=scheduler_status.active_count,
            queued_count=scheduler_status.queued_count,
            max_concurrent=scheduler_status.max_concurrent,
            max_queue_size=scheduler_status.max_queue_size,
            in_flight=coalesce_stats.pending_count,
            deduplication_rate=coalesce_stats.deduplication_rate,
            cache_enabled=self._cache.enabled,
            cache_size=cache_stats.size,
            cache_hit_rate=cache_stats.hit_rate,
        )

    async def close(self) -> None:
        """Reject queued work, stop background sweeps and release the cache store."""
        self._scheduler.close()
        self._coalescer.close()
        await self._cache.close()
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()


def create_request_executor(
    transport: Transport,
    settings: Optional[FetchCoreSettings] = None,
    **kwargs: Any,
) -> RequestExecutor:
    """Create a request executor."""
    return RequestExecutor(transport, settings, **kwargs)
