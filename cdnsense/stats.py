"""Statistical aggregation across repeated domain test runs."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from cdnsense.models import LatencyStats, RunRecord, RunSummary


def compute_stats(values: Sequence[float]) -> LatencyStats:
    """Compute statistical summary from a list of values."""
    if not values:
        return LatencyStats()

    sorted_vals = sorted(values)
    n = len(sorted_vals)

    avg = sum(sorted_vals) / n
    median = _percentile(sorted_vals, 50)
    p95 = _percentile(sorted_vals, 95)

    variance = sum((v - avg) ** 2 for v in sorted_vals) / n if n > 1 else 0.0
    stdev = math.sqrt(variance)

    jitter = _compute_jitter(values)

    return LatencyStats(
        min=sorted_vals[0],
        max=sorted_vals[-1],
        avg=round(avg, 2),
        median=round(median, 2),
        p95=round(p95, 2),
        stdev=round(stdev, 2),
        jitter=round(jitter, 2),
    )


def _percentile(sorted_vals: list[float], pct: float) -> float:
    """Compute the given percentile from pre-sorted values."""
    n = len(sorted_vals)
    if n == 1:
        return sorted_vals[0]
    k = (pct / 100) * (n - 1)
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_vals[int(k)]
    return sorted_vals[f] * (c - k) + sorted_vals[c] * (k - f)


def _compute_jitter(values: Sequence[float]) -> float:
    """Compute jitter as average absolute difference between consecutive samples."""
    if len(values) < 2:
        return 0.0
    diffs = [abs(values[i + 1] - values[i]) for i in range(len(values) - 1)]
    return sum(diffs) / len(diffs)


def _phase_values(test_results: dict) -> dict[str, Optional[float]]:
    conn = test_results.get("connection") or {}
    return {
        "dns": (test_results.get("dns") or {}).get("resolutionTime"),
        "tcp": conn.get("tcpTime"),
        "ssl": conn.get("sslTime"),
        "ttfb": conn.get("ttfb"),
        "download": conn.get("downloadTime"),
        "total": conn.get("totalTime"),
    }


def summarize_runs(records: Sequence[RunRecord]) -> RunSummary:
    """Aggregate a batch of CLI runs.

    Only successful runs contribute to timing statistics and rates.
    """
    successes = [r for r in records if r.success]
    summary = RunSummary(
        total=len(records),
        successful=len(successes),
        failed=len(records) - len(successes),
    )
    if not successes:
        return summary

    phases: dict[str, list[float]] = {}
    sizes: list[float] = []
    for r in successes:
        tr = r.test_results
        for phase, value in _phase_values(tr).items():
            if value is not None:
                phases.setdefault(phase, []).append(float(value))
        sizes.append(float((tr.get("server") or {}).get("responseSize") or 0))

        cdn = tr.get("cdn") or {}
        kind = cdn.get("connectionType")
        if kind:
            summary.connection_types[kind] = summary.connection_types.get(kind, 0) + 1
        if cdn.get("hasProxyHeaders"):
            summary.proxy_header_count += 1
        if tr.get("ssl"):
            summary.ssl_count += 1

    summary.phase_stats = {phase: compute_stats(vals) for phase, vals in phases.items()}
    summary.avg_response_size = round(sum(sizes) / len(sizes), 2)
    return summary


def performance_rating(avg_total_ms: float) -> tuple[str, str]:
    """Rate an average total response time.  Returns (label, color)."""
    if avg_total_ms < 200:
        return "excellent", "green"
    if avg_total_ms < 500:
        return "good", "yellow"
    if avg_total_ms < 1000:
        return "fair", "dark_orange"
    return "slow", "red"


def dns_rating(avg_dns_ms: float) -> tuple[str, str]:
    """Rate an average DNS resolution time.  Returns (label, color)."""
    if avg_dns_ms < 50:
        return "excellent", "green"
    if avg_dns_ms < 100:
        return "good", "yellow"
    return "slow", "red"
