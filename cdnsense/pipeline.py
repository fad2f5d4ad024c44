"""Top-level domain test.

Runs the full sequence for one domain:

    DNS lookup -> (multi-location resolution || HTTP(S) probe)
               -> header evidence -> classification -> optimization advice

and returns a :class:`DomainTestResult`.  Step failures are recorded in the
result rather than raised, so a partially successful test still reports
everything it learned.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, Sequence

from cdnsense.advisor import advise
from cdnsense.classifier import classify
from cdnsense.detection import build_header_evidence
from cdnsense.dnsquery import DnsClient, lookup_system
from cdnsense.engine import probe_with_fallback
from cdnsense.errors import DnsResolutionError, HttpProbeError, InvalidInputError
from cdnsense.health import ResolverHealthCache
from cdnsense.models import (
    DomainTestResult,
    HttpProbeResult,
    MultiLocationResult,
    PerformanceFacts,
    ResolverDescriptor,
    RunConfig,
)
from cdnsense.multilocation import SystemLookup, resolve_from_all_locations
from cdnsense.resolvers import MULTI_LOCATION_RESOLVERS

logger = logging.getLogger(__name__)

Prober = Callable[..., Awaitable[HttpProbeResult]]


def normalize_domain(raw: Optional[str]) -> str:
    """Strip any scheme and path from user input, leaving the bare host.

    Raises
    ------
    InvalidInputError
        If *raw* is not a string or nothing usable remains.
    """
    if raw is not None and not isinstance(raw, str):
        raise InvalidInputError("Domain parameter must be a string")
    domain = (raw or "").strip()
    for prefix in ("https://", "http://"):
        if domain.lower().startswith(prefix):
            domain = domain[len(prefix):]
            break
    domain = domain.split("/")[0].strip()
    if not domain:
        raise InvalidInputError("Domain parameter is required")
    return domain


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


async def run_domain_test(
    domain: str,
    config: RunConfig | None = None,
    *,
    roster: Sequence[ResolverDescriptor] = MULTI_LOCATION_RESOLVERS,
    health_cache: ResolverHealthCache | None = None,
    dns_client: DnsClient | None = None,
    system_lookup: SystemLookup = lookup_system,
    prober: Prober = probe_with_fallback,
) -> DomainTestResult:
    """Test *domain* end to end.

    Parameters
    ----------
    domain:
        Bare hostname (see :func:`normalize_domain`).
    config:
        Per-run tunables; defaults apply when omitted.
    roster, health_cache, dns_client, system_lookup, prober:
        Collaborators, injectable for tests.
    """
    config = config or RunConfig()
    result = DomainTestResult(domain=domain, timestamp=utc_timestamp())

    # ---- DNS ----
    try:
        addresses, dns_ms = await system_lookup(domain)
    except DnsResolutionError as exc:
        logger.info("DNS lookup for %s failed: %s", domain, exc.reason)
        result.dns.error = str(exc)
        result.connection.error = str(exc)
        return result
    result.dns.resolved_ips = addresses
    result.dns.resolution_time = dns_ms
    result.connection.dns_time = dns_ms

    # ---- Multi-location resolution alongside the HTTP probe ----
    async def _multi_location() -> Optional[MultiLocationResult]:
        if not config.multi_location:
            return None
        return await resolve_from_all_locations(
            domain,
            roster=roster,
            health_cache=health_cache,
            client=dns_client,
            timeout=config.multi_location_timeout,
            max_retries=config.query_retries,
            system_lookup=system_lookup,
        )

    ml_outcome, probe_outcome = await asyncio.gather(
        _multi_location(),
        prober(domain, timeout=config.probe_timeout, connect_ip=addresses[0]),
        return_exceptions=True,
    )

    if isinstance(ml_outcome, BaseException):
        if not isinstance(ml_outcome, Exception):
            raise ml_outcome
        logger.warning("Multi-location resolution for %s failed: %s", domain, ml_outcome)
        multi_location = None
    else:
        multi_location = ml_outcome
    result.multi_location_ping = multi_location

    if isinstance(probe_outcome, HttpProbeError):
        logger.info("Probe of %s failed: %s", domain, probe_outcome.reason)
        result.connection.error = str(probe_outcome)
        return result
    if isinstance(probe_outcome, BaseException):
        raise probe_outcome
    response: HttpProbeResult = probe_outcome

    # ---- Connection and server facts ----
    conn = result.connection
    conn.total_time = response.total_time_ms
    conn.tcp_time = response.tcp_time_ms
    conn.ssl_time = response.ssl_time_ms
    conn.ttfb = response.ttfb_ms
    conn.download_time = response.download_time_ms
    conn.status_code = response.status_code

    result.server.software = response.headers.get("server") or "Unknown"
    result.server.headers = response.headers
    result.server.response_size = response.content_length
    result.server.response_time = response.total_time_ms

    # ---- CDN evidence and classification ----
    evidence = build_header_evidence(response.headers)
    verdict = classify(multi_location, evidence, response.headers)

    cdn = result.cdn
    cdn.is_through_cdn = evidence.is_through_cdn
    cdn.has_proxy_headers = evidence.has_proxy_headers
    cdn.headers = evidence.cdn_headers
    cdn.proxy_headers = evidence.proxy_headers
    cdn.provider = evidence.provider
    cdn.pop = evidence.pop
    cdn.connection_type = verdict.connection_type
    cdn.confidence = verdict.confidence
    cdn.analysis = verdict.rationale
    cdn.multi_location_analysis = verdict.multi_location_analysis
    cdn.advanced_metrics = verdict.advanced_metrics

    if response.is_https and response.certificate is not None:
        result.ssl = response.certificate

    # ---- Optimization ----
    facts = PerformanceFacts(
        response_time_ms=response.total_time_ms,
        dns_time_ms=dns_ms,
        response_size=response.content_length,
        status_code=response.status_code,
    )
    # Graded from the verdict alone; the classifier stops accumulating its
    # score at the first short-circuit rule, so cdn_score undercounts.
    graded = replace(verdict, advanced_metrics=None)
    result.optimization = advise(graded, facts, has_ssl=result.ssl is not None)
    return result
