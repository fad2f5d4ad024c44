"""Multi-location DNS resolution.

Resolves one domain through every resolver in the roster, then reduces the
per-location answers into IP diversity, regional coverage and a short
analysis sentence.  Differing answers across vantage points are the main
signal that a domain is served from geographically distributed edges.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from cdnsense.config import (
    COVERAGE_LEVELS,
    LOW_HEALTHY_RATIO,
    LOW_SUCCESS_RATE,
    MULTI_LOCATION_TIMEOUT,
    QUERY_MAX_RETRIES,
)
from cdnsense.dnsquery import DnsClient, first_valid_ip, lookup_system, query_domain
from cdnsense.errors import DnsResolutionError
from cdnsense.health import ResolverHealthCache, get_default_cache
from cdnsense.models import (
    GeographicDistribution,
    HealthStats,
    MultiLocationResult,
    PingOutcome,
    ResolverDescriptor,
    ResolverHealth,
)
from cdnsense.resolvers import MULTI_LOCATION_RESOLVERS, distinct_regions, is_domestic

logger = logging.getLogger(__name__)

SystemLookup = Callable[[str], Awaitable[tuple[list[str], float]]]

DEADLINE_ERROR = "global deadline exceeded"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def resolve_from_all_locations(
    domain: str,
    roster: Sequence[ResolverDescriptor] = MULTI_LOCATION_RESOLVERS,
    health_cache: ResolverHealthCache | None = None,
    client: DnsClient | None = None,
    timeout: float = MULTI_LOCATION_TIMEOUT,
    max_retries: int = QUERY_MAX_RETRIES,
    system_lookup: SystemLookup = lookup_system,
) -> MultiLocationResult:
    """Resolve *domain* from every roster location and aggregate the answers.

    Parameters
    ----------
    domain : str
        Bare hostname to resolve.
    roster : sequence of ResolverDescriptor
        Vantage points to use.
    health_cache : ResolverHealthCache, optional
        Defaults to the process-wide cache.
    timeout : float
        Global deadline in seconds for the query fan-out.  Locations still
        outstanding at the deadline are recorded as failed.

    Returns
    -------
    MultiLocationResult
        Never raises for per-resolver failures.
    """
    roster = list(roster)
    cache = health_cache or get_default_cache()

    # All health checks complete before any query starts.
    healths: list[ResolverHealth] = list(await asyncio.gather(
        *(cache.get_health(r.address) for r in roster)
    ))
    healthy_count = sum(1 for h in healths if h.healthy)
    if roster and healthy_count < len(roster) * LOW_HEALTHY_RATIO:
        logger.warning(
            "Only %d of %d resolvers are healthy; multi-location results for %s may be sparse",
            healthy_count, len(roster), domain,
        )

    outcomes: list[Optional[PingOutcome]] = [None] * len(roster)
    tasks: dict[asyncio.Task, int] = {}

    for index, (descriptor, health) in enumerate(zip(roster, healths)):
        if not health.healthy:
            outcomes[index] = PingOutcome(
                location=descriptor.label,
                region=descriptor.region,
                success=False,
                error=f"DNS server unhealthy: {health.error or 'unknown error'}",
            )
            continue
        task = asyncio.ensure_future(
            _query_location(descriptor, domain, client, max_retries, system_lookup)
        )
        tasks[task] = index

    if tasks:
        done, pending = await asyncio.wait(tasks.keys(), timeout=timeout)
        if pending:
            logger.warning(
                "Multi-location deadline of %.1fs hit for %s; %d locations outstanding",
                timeout, domain, len(pending),
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task, index in tasks.items():
            descriptor = roster[index]
            if task in done and not task.cancelled() and task.exception() is None:
                outcomes[index] = task.result()
            else:
                error = DEADLINE_ERROR
                if task in done and not task.cancelled():
                    error = str(task.exception()) or type(task.exception()).__name__
                outcomes[index] = PingOutcome(
                    location=descriptor.label,
                    region=descriptor.region,
                    success=False,
                    error=error,
                )

    ordered = order_outcomes([o for o in outcomes if o is not None])
    return summarize(roster, ordered, healthy_count)


# ---------------------------------------------------------------------------
# Per-location query
# ---------------------------------------------------------------------------

async def _query_location(
    descriptor: ResolverDescriptor,
    domain: str,
    client: DnsClient | None,
    max_retries: int,
    system_lookup: SystemLookup,
) -> PingOutcome:
    outcome = await query_domain(descriptor.address, domain, max_retries=max_retries, client=client)
    if outcome.success:
        return PingOutcome(
            location=descriptor.label,
            region=descriptor.region,
            ip=outcome.ip,
            elapsed_ms=outcome.elapsed_ms,
            success=True,
        )

    logger.debug("%s (%s) failed for %s: %s; falling back to system resolver",
                 descriptor.label, descriptor.address, domain, outcome.error)
    try:
        addresses, elapsed_ms = await system_lookup(domain)
        ip = first_valid_ip(addresses)
        if ip is None:
            raise DnsResolutionError(domain, "no valid IP address returned")
    except DnsResolutionError as exc:
        return PingOutcome(
            location=descriptor.label,
            region=descriptor.region,
            success=False,
            error=f"remote query failed: {outcome.error}; local fallback also failed: {exc.reason}",
        )

    # Recorded under the targeted location even though the system resolver answered.
    return PingOutcome(
        location=descriptor.label,
        region=descriptor.region,
        ip=ip,
        elapsed_ms=elapsed_ms,
        success=True,
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def order_outcomes(outcomes: Sequence[PingOutcome]) -> list[PingOutcome]:
    """Order roster-ordered outcomes as successful-domestic,
    successful-international, failed-domestic, failed-international.

    The sort is stable, so roster order is kept within each bucket.
    """
    def bucket(o: PingOutcome) -> int:
        return (0 if o.success else 2) + (0 if is_domestic(o.region) else 1)

    return sorted(outcomes, key=bucket)


def classify_consistency(unique_ip_count: int) -> str:
    if unique_ip_count == 1:
        return "consistent"
    if unique_ip_count >= 3:
        return "inconsistent"
    return "mixed"


def coverage_label(percent: int) -> str:
    for threshold, label in COVERAGE_LEVELS:
        if percent >= threshold:
            return label
    return COVERAGE_LEVELS[-1][1]


def build_analysis(unique_ips: list[str], coverage_percent: int, success_rate: float) -> str:
    """Compose the one-line verdict for a multi-location run."""
    rate = round(success_rate * 100)
    count = len(unique_ips)

    if count == 0:
        text = f"No location returned an IP address, {coverage_percent}% coverage, success rate {rate}%"
    elif count == 1:
        text = (
            f"All locations returned the same IP ({unique_ips[0]}), "
            f"{coverage_percent}% coverage, success rate {rate}%, likely a direct connection"
        )
    else:
        if count >= 5:
            verdict = "strongly indicates a global CDN"
        elif count >= 3:
            verdict = "likely served through a CDN"
        else:
            verdict = "possibly a CDN or load balancing"
        text = (
            f"Detected {count} distinct IPs, {coverage_percent}% coverage, "
            f"success rate {rate}%, {verdict}"
        )

    if success_rate < LOW_SUCCESS_RATE:
        text += "; low query success rate, results may be incomplete"
    return text


def summarize(
    roster: Sequence[ResolverDescriptor],
    outcomes: list[PingOutcome],
    healthy_count: int,
) -> MultiLocationResult:
    """Reduce ordered per-location outcomes into a MultiLocationResult."""
    all_regions = distinct_regions(roster)
    successes = [o for o in outcomes if o.success and o.ip]

    unique_ips = list(dict.fromkeys(o.ip for o in successes))

    ip_distribution: dict[str, list[str]] = {}
    for o in successes:
        regions = ip_distribution.setdefault(o.ip, [])
        if o.region not in regions:
            regions.append(o.region)

    covered = {o.region for o in successes}
    coverage_percent = round(len(covered) / len(all_regions) * 100) if all_regions else 0

    avg_ms = round(sum(o.elapsed_ms for o in successes) / len(successes)) if successes else 0

    result = MultiLocationResult(
        locations=[d.label for d in roster],
        regions=all_regions,
        ping_results=outcomes,
        unique_ips=unique_ips,
        ip_consistency=classify_consistency(len(unique_ips)),
        geographic_distribution=GeographicDistribution(
            regions=all_regions,
            ip_distribution=ip_distribution,
            coverage=coverage_label(coverage_percent),
            coverage_percent=coverage_percent,
        ),
        health_stats=HealthStats(
            total_servers=len(roster),
            healthy_servers=healthy_count,
            successful_queries=len(successes),
            average_response_time=avg_ms,
        ),
    )
    result.analysis = build_analysis(unique_ips, coverage_percent, result.success_rate)
    return result
