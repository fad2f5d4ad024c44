"""JSON and CSV export for domain test results.

The dict builders here define the camelCase JSON contract served by the
HTTP API and consumed by the CLI.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Optional

from cdnsense.config import PHASE_NAMES
from cdnsense.models import (
    AdvancedMetrics,
    CategoryAnalysis,
    CertificateInfo,
    DomainTestResult,
    MultiLocationAnalysis,
    MultiLocationResult,
    OptimizationReport,
    PoPIdentity,
    RunRecord,
    RunSummary,
)


# ── API payloads ──────────────────────────────────────────────────────


def build_api_payload(result: DomainTestResult) -> dict:
    """Wrap a result in the ``{timestamp, domain, testResults}`` envelope."""
    return {
        "timestamp": result.timestamp,
        "domain": result.domain,
        "testResults": result_to_dict(result),
    }


def result_to_dict(result: DomainTestResult) -> dict:
    """Convert a DomainTestResult to a serializable camelCase dict."""
    dns: dict = {
        "resolvedIPs": list(result.dns.resolved_ips),
        "resolutionTime": result.dns.resolution_time,
    }
    if result.dns.error:
        dns["error"] = result.dns.error

    c = result.connection
    connection: dict = {
        "totalTime": c.total_time,
        "dnsTime": c.dns_time,
        "tcpTime": c.tcp_time,
        "ttfb": c.ttfb,
        "downloadTime": c.download_time,
        "statusCode": c.status_code,
    }
    if c.ssl_time is not None:
        connection["sslTime"] = c.ssl_time
    if c.error:
        connection["error"] = c.error

    cdn = result.cdn
    cdn_data: dict = {
        "isThroughCDN": cdn.is_through_cdn,
        "hasProxyHeaders": cdn.has_proxy_headers,
        "provider": cdn.provider,
        "pop": _pop_to_dict(cdn.pop),
        "headers": dict(cdn.headers),
        "proxyHeaders": dict(cdn.proxy_headers),
        "connectionType": cdn.connection_type,
        "confidence": cdn.confidence,
        "analysis": list(cdn.analysis),
        "multiLocationAnalysis": _ml_analysis_to_dict(cdn.multi_location_analysis),
        "advancedMetrics": _metrics_to_dict(cdn.advanced_metrics),
    }

    data: dict = {
        "domain": result.domain,
        "timestamp": result.timestamp,
        "dns": dns,
        "multiLocationPing": multi_location_to_dict(result.multi_location_ping),
        "connection": connection,
        "server": {
            "software": result.server.software,
            "headers": dict(result.server.headers),
            "responseSize": result.server.response_size,
            "responseTime": result.server.response_time,
        },
        "cdn": cdn_data,
        "ssl": _cert_to_dict(result.ssl),
        "optimization": optimization_to_dict(result.optimization),
    }
    return data


def multi_location_to_dict(ml: Optional[MultiLocationResult]) -> Optional[dict]:
    if ml is None:
        return None
    geo = ml.geographic_distribution
    hs = ml.health_stats
    return {
        "locations": list(ml.locations),
        "regions": list(ml.regions),
        "pingResults": [
            {
                "location": p.location,
                "region": p.region,
                "ip": p.ip,
                "time": p.elapsed_ms,
                "success": p.success,
                **({"error": p.error} if p.error else {}),
            }
            for p in ml.ping_results
        ],
        "uniqueIPs": list(ml.unique_ips),
        "ipConsistency": ml.ip_consistency,
        "analysis": ml.analysis,
        "geographicDistribution": {
            "regions": list(geo.regions),
            "ipDistribution": {ip: list(r) for ip, r in geo.ip_distribution.items()},
            "coverage": geo.coverage,
            "coveragePercent": geo.coverage_percent,
        },
        "healthStats": {
            "totalServers": hs.total_servers,
            "healthyServers": hs.healthy_servers,
            "successfulQueries": hs.successful_queries,
            "averageResponseTime": hs.average_response_time,
        },
    }


def optimization_to_dict(report: Optional[OptimizationReport]) -> Optional[dict]:
    if report is None:
        return None
    overall = report.overall
    competitive = overall.competitive_analysis
    return {
        "cdn": _category_to_dict(report.cdn),
        "performance": _category_to_dict(report.performance),
        "ssl": _category_to_dict(report.ssl),
        "overall": {
            "score": overall.score,
            "grade": overall.grade,
            "recommendations": list(overall.recommendations),
            "actionPlan": {
                "immediate": list(overall.action_plan.immediate),
                "shortTerm": list(overall.action_plan.short_term),
                "longTerm": list(overall.action_plan.long_term),
            },
            "competitiveAnalysis": {
                "ranking": competitive.ranking,
                "industryAverage": competitive.industry_average,
                "improvementPotential": competitive.improvement_potential,
            } if competitive else None,
        },
    }


def _category_to_dict(cat: CategoryAnalysis) -> dict:
    return {
        "status": cat.status,
        "suggestions": [
            {"text": s.text, "level": s.level, "category": s.category, "reasoning": s.reasoning}
            for s in cat.suggestions
        ],
        "reasoning": cat.reasoning,
        "priority": cat.priority,
        "estimatedImprovement": cat.estimated_improvement,
    }


def _pop_to_dict(pop: Optional[PoPIdentity]) -> Optional[dict]:
    if pop is None:
        return None
    return {"code": pop.code, "confidence": pop.confidence, "rawHeader": pop.raw_header}


def _ml_analysis_to_dict(a: Optional[MultiLocationAnalysis]) -> Optional[dict]:
    if a is None:
        return None
    return {"isCDNByIP": a.is_cdn_by_ip, "confidence": a.confidence, "reasoning": a.reasoning}


def _metrics_to_dict(m: Optional[AdvancedMetrics]) -> Optional[dict]:
    if m is None:
        return None
    return {
        "cdnScore": m.cdn_score,
        "detectionMethods": list(m.detection_methods),
        "ipAnalysisScore": m.ip_analysis_score,
        "headerAnalysisScore": m.header_analysis_score,
        "serverAnalysisScore": m.server_analysis_score,
    }


def _cert_to_dict(cert: Optional[CertificateInfo]) -> Optional[dict]:
    if cert is None:
        return None
    return {
        "issuer": cert.issuer,
        "validFrom": cert.valid_from,
        "validTo": cert.valid_to,
        "subjectAltName": cert.subject_alt_name,
    }


# ── CLI run exports ───────────────────────────────────────────────────


def export_json(records: list[RunRecord], summary: RunSummary, indent: int = 2) -> str:
    """Export a batch of CLI runs and their summary as a JSON string."""
    data = {
        "summary": _summary_to_dict(summary),
        "runs": [
            {
                "index": r.index,
                "domain": r.domain,
                "success": r.success,
                "apiTime": r.api_time_ms,
                "error": r.error,
                "result": r.data,
            }
            for r in records
        ],
    }
    return json.dumps(data, indent=indent, default=str)


def _summary_to_dict(summary: RunSummary) -> dict:
    return {
        "total": summary.total,
        "successful": summary.successful,
        "failed": summary.failed,
        "avgResponseSize": summary.avg_response_size,
        "connectionTypes": dict(summary.connection_types),
        "proxyHeaderRate": round(summary.proxy_header_rate, 1),
        "sslRate": round(summary.ssl_rate, 1),
        "stats": {
            phase: {
                "min": s.min,
                "max": s.max,
                "avg": s.avg,
                "median": s.median,
                "p95": s.p95,
                "stdev": s.stdev,
                "jitter": s.jitter,
            }
            for phase, s in summary.phase_stats.items()
        },
    }


CSV_COLUMNS = [
    "run",
    "domain",
    "success",
    "error",
    "api_time",
    "status_code",
    *PHASE_NAMES,
    "response_size",
    "server",
    "connection_type",
    "confidence",
    "provider",
    "pop",
    "proxy_headers",
    "ssl_issuer",
    "score",
    "grade",
]


def export_csv(records: list[RunRecord]) -> str:
    """Export CLI runs as CSV (one row per run)."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_COLUMNS)

    for r in records:
        tr = r.test_results
        conn = tr.get("connection") or {}
        cdn = tr.get("cdn") or {}
        ssl = tr.get("ssl") or {}
        overall = (tr.get("optimization") or {}).get("overall") or {}
        timings = {
            "dns": (tr.get("dns") or {}).get("resolutionTime"),
            "tcp": conn.get("tcpTime"),
            "ssl": conn.get("sslTime"),
            "ttfb": conn.get("ttfb"),
            "download": conn.get("downloadTime"),
            "total": conn.get("totalTime"),
        }
        writer.writerow([
            r.index,
            r.domain,
            r.success,
            r.error or "",
            r.api_time_ms,
            conn.get("statusCode", ""),
            *[_blank(timings[p]) for p in PHASE_NAMES],
            _blank((tr.get("server") or {}).get("responseSize")),
            _blank((tr.get("server") or {}).get("software")),
            _blank(cdn.get("connectionType")),
            _blank(cdn.get("confidence")),
            _blank(cdn.get("provider")),
            _blank((cdn.get("pop") or {}).get("code")),
            cdn.get("hasProxyHeaders", ""),
            _blank(ssl.get("issuer")),
            _blank(overall.get("score")),
            _blank(overall.get("grade")),
        ])

    return output.getvalue()


def _blank(value) -> object:
    return "" if value is None else value


def write_to_file(content: str, filepath: str) -> None:
    """Write export content to a file."""
    with open(filepath, "w") as f:
        f.write(content)
