"""Resolver query engine.

Sends a single A/AAAA question for a domain to one specific resolver
through dnspython, with bounded retries and a per-attempt timeout, and
validates that the answer carries an IP literal.
"""

from __future__ import annotations

import asyncio
import ipaddress
import logging
import socket
import time
from typing import Optional, Protocol

import dns.asyncresolver
import dns.rdatatype

from cdnsense.config import QUERY_MAX_RETRIES, QUERY_RETRY_DELAY, QUERY_TIMEOUT
from cdnsense.errors import DnsResolutionError, ResolverQueryError
from cdnsense.models import QueryOutcome

logger = logging.getLogger(__name__)


def is_valid_ip(value: str) -> bool:
    """Return True when *value* is an IPv4 or IPv6 literal."""
    try:
        ipaddress.ip_address(value.strip())
    except ValueError:
        return False
    return True


def first_valid_ip(lines: list[str]) -> Optional[str]:
    """Return the first entry of *lines* that parses as an IP literal."""
    for line in lines:
        candidate = line.strip()
        if candidate and is_valid_ip(candidate):
            return candidate
    return None


class DnsClient(Protocol):
    """Anything that can ask one resolver for a domain's addresses."""

    async def resolve(self, server: str, domain: str, timeout: float) -> list[str]:
        ...


class DnsPythonClient:
    """:class:`DnsClient` backed by :mod:`dns.asyncresolver`.

    A fresh resolver pinned to *server* is built per call so concurrent
    queries against different servers never share nameserver state.
    Tries A first and falls back to AAAA when the A lookup yields nothing.
    """

    rdtypes = (dns.rdatatype.A, dns.rdatatype.AAAA)

    async def resolve(self, server: str, domain: str, timeout: float) -> list[str]:
        resolver = dns.asyncresolver.Resolver(configure=False)
        resolver.nameservers = [server]
        resolver.timeout = timeout
        resolver.lifetime = timeout

        last_error: Exception | None = None
        for rdtype in self.rdtypes:
            try:
                answer = await resolver.resolve(domain, rdtype, search=False)
                return [rdata.to_text() for rdata in answer]
            except Exception as exc:
                last_error = exc
                continue

        raise ResolverQueryError(server, domain, _describe(last_error))


_default_client: DnsClient | None = None


def get_default_client() -> DnsClient:
    global _default_client
    if _default_client is None:
        _default_client = DnsPythonClient()
    return _default_client


def _describe(exc: BaseException | None) -> str:
    if exc is None:
        return "Unknown error"
    if isinstance(exc, asyncio.TimeoutError):
        return "query timed out"
    return str(exc) or type(exc).__name__


async def query_domain(
    server: str,
    domain: str,
    max_retries: int = QUERY_MAX_RETRIES,
    client: DnsClient | None = None,
    timeout: float = QUERY_TIMEOUT,
    retry_delay: float = QUERY_RETRY_DELAY,
) -> QueryOutcome:
    """Resolve *domain* against *server*, returning one IP on success.

    Makes up to *max_retries* sequential attempts, sleeping
    ``attempt * retry_delay`` seconds between them.  Never raises for
    resolver failures; the last error is carried in the outcome.
    """
    client = client or get_default_client()
    attempts = max(1, max_retries)
    last_error: str = "Unknown error"

    for attempt in range(1, attempts + 1):
        try:
            t0 = time.perf_counter()
            lines = await asyncio.wait_for(
                client.resolve(server, domain, timeout),
                timeout=timeout,
            )
            elapsed_ms = (time.perf_counter() - t0) * 1000.0

            ip = first_valid_ip(lines)
            if ip is None:
                raise ResolverQueryError(server, domain, "no valid IP address in DNS response")
            return QueryOutcome(ip=ip, elapsed_ms=round(elapsed_ms, 3), success=True)
        except ResolverQueryError as exc:
            last_error = exc.reason
        except asyncio.TimeoutError:
            last_error = f"query timed out after {timeout}s"
        except Exception as exc:
            last_error = _describe(exc)

        logger.debug("Attempt %d/%d against %s for %s failed: %s",
                     attempt, attempts, server, domain, last_error)
        if attempt < attempts:
            await asyncio.sleep(retry_delay * attempt)

    return QueryOutcome(success=False, error=last_error)


async def lookup_system(domain: str) -> tuple[list[str], float]:
    """Resolve *domain* with the operating-system resolver.

    Returns (addresses in resolver order, elapsed_ms).

    Raises
    ------
    DnsResolutionError
        When the system resolver cannot resolve the name.
    """
    loop = asyncio.get_running_loop()
    t0 = time.perf_counter()
    try:
        infos = await loop.getaddrinfo(domain, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError, OSError) as exc:
        raise DnsResolutionError(domain, str(exc) or type(exc).__name__) from exc
    elapsed_ms = (time.perf_counter() - t0) * 1000.0

    addresses = list(dict.fromkeys(info[4][0] for info in infos))
    if not addresses:
        raise DnsResolutionError(domain, "no addresses returned")
    return addresses, round(elapsed_ms, 3)
