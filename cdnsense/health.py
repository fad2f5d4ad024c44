"""Resolver health cache.

A resolver is healthy when it answers any one of a few well-known probe
domains with an IP literal.  Results, positive and negative, are cached
per resolver address for a fixed TTL so repeated domain tests do not
re-probe the roster.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Protocol

from cdnsense.config import (
    HEALTH_ATTEMPT_TIMEOUT,
    HEALTH_OVERALL_TIMEOUT,
    HEALTH_PROBE_DOMAINS,
    HEALTH_TTL,
)
from cdnsense.dnsquery import DnsClient, first_valid_ip, get_default_client
from cdnsense.errors import ResolverHealthCheckFailure, ResolverQueryError
from cdnsense.models import ResolverHealth

logger = logging.getLogger(__name__)


class HealthStore(Protocol):
    def get(self, address: str) -> Optional[ResolverHealth]:
        ...

    def put(self, address: str, health: ResolverHealth) -> None:
        ...


class InMemoryHealthStore:
    """Process-local :class:`HealthStore`."""

    def __init__(self) -> None:
        self._entries: dict[str, ResolverHealth] = {}

    def get(self, address: str) -> Optional[ResolverHealth]:
        return self._entries.get(address)

    def put(self, address: str, health: ResolverHealth) -> None:
        self._entries[address] = health

    def __len__(self) -> int:
        return len(self._entries)


class ResolverHealthCache:
    """Check and remember whether resolvers are answering.

    Parameters
    ----------
    store : HealthStore, optional
        Where health records live.  Defaults to a fresh in-memory store.
    client : DnsClient, optional
        Used for the probe queries.  Defaults to the dnspython client.
    clock : callable
        Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        store: HealthStore | None = None,
        client: DnsClient | None = None,
        ttl: float = HEALTH_TTL,
        probe_domains: tuple[str, ...] = HEALTH_PROBE_DOMAINS,
        attempt_timeout: float = HEALTH_ATTEMPT_TIMEOUT,
        overall_timeout: float = HEALTH_OVERALL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store if store is not None else InMemoryHealthStore()
        self._client = client
        self.ttl = ttl
        self.probe_domains = probe_domains
        self.attempt_timeout = attempt_timeout
        self.overall_timeout = overall_timeout
        self.clock = clock
        self._inflight: dict[str, asyncio.Task] = {}

    @property
    def client(self) -> DnsClient:
        return self._client or get_default_client()

    def is_fresh(self, health: ResolverHealth) -> bool:
        return self.clock() - health.last_checked_at <= self.ttl

    async def get_health(self, address: str) -> ResolverHealth:
        """Return the cached health of *address*, re-probing when stale.

        Concurrent callers asking about the same address share one probe.
        """
        cached = self.store.get(address)
        if cached is not None and self.is_fresh(cached):
            return cached

        task = self._inflight.get(address)
        if task is None:
            task = asyncio.ensure_future(self._refresh(address))
            self._inflight[address] = task
            task.add_done_callback(lambda _t: self._inflight.pop(address, None))
        return await asyncio.shield(task)

    async def _refresh(self, address: str) -> ResolverHealth:
        try:
            elapsed_ms = await self._race_probes(address)
        except ResolverHealthCheckFailure as exc:
            logger.debug("Resolver %s unhealthy: %s", address, exc)
            health = ResolverHealth(
                healthy=False,
                last_checked_at=self.clock(),
                error=str(exc),
            )
        else:
            health = ResolverHealth(
                healthy=True,
                last_checked_at=self.clock(),
                response_time_ms=round(elapsed_ms, 3),
            )
        self.store.put(address, health)
        return health

    async def _race_probes(self, address: str) -> float:
        """Query every probe domain at once; return the first success's latency.

        Raises
        ------
        ResolverHealthCheckFailure
            If no probe succeeds before the overall timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.overall_timeout
        pending = {
            asyncio.ensure_future(self._probe_once(address, domain))
            for domain in self.probe_domains
        }
        errors: list[str] = []

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    errors.append(f"health check timed out after {self.overall_timeout}s")
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    errors.append(f"health check timed out after {self.overall_timeout}s")
                    break
                for task in done:
                    exc = task.exception()
                    if exc is None:
                        return task.result()
                    errors.append(_probe_error_text(exc))
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        raise ResolverHealthCheckFailure(address, errors)

    async def _probe_once(self, address: str, domain: str) -> float:
        t0 = time.perf_counter()
        lines = await asyncio.wait_for(
            self.client.resolve(address, domain, self.attempt_timeout),
            timeout=self.attempt_timeout,
        )
        if first_valid_ip(lines) is None:
            raise ResolverQueryError(address, domain, "no valid IP address in DNS response")
        return (time.perf_counter() - t0) * 1000.0


def _probe_error_text(exc: BaseException) -> str:
    if isinstance(exc, ResolverQueryError):
        return f"{exc.domain}: {exc.reason}"
    if isinstance(exc, asyncio.TimeoutError):
        return "probe timed out"
    return str(exc) or type(exc).__name__


_default_cache: ResolverHealthCache | None = None


def get_default_cache() -> ResolverHealthCache:
    """Return the process-wide health cache shared by all requests."""
    global _default_cache
    if _default_cache is None:
        _default_cache = ResolverHealthCache()
    return _default_cache
