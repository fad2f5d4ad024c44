"""Connection classifier.

Fuses multi-location IP evidence, CDN/proxy header evidence and server
signatures into a single verdict: ``direct``, ``cdn``, ``proxy`` or
``mixed``, with a confidence level and a human-readable rationale.

The rules are evaluated in a fixed order and the first one that applies
decides the verdict; the additive ``cdn_score`` only matters when none of
the earlier rules fire.  :func:`classify` is pure and deterministic.
"""

from __future__ import annotations

from typing import Mapping, Optional

from cdnsense.detection import detect_proxy_types
from cdnsense.models import (
    AdvancedMetrics,
    ConnectionVerdict,
    HeaderEvidence,
    MultiLocationAnalysis,
    MultiLocationResult,
)

METHOD_IP = "Multi-location IP analysis"
METHOD_HEADERS = "HTTP header analysis"
METHOD_PROXY = "Proxy header analysis"
METHOD_SERVER = "Server analysis"

# Hosts whose name in the ``server`` header hints at a CDN in front of a proxy.
EDGE_HOSTED_SERVERS = ("cloudflare", "netlify", "vercel")

# (header, needle, points, indicator)
SERVER_SIGNATURES = (
    ("server", "cloudflare", 40, "Cloudflare"),
    ("server", "netlify", 35, "Netlify"),
    ("server", "vercel", 35, "Vercel"),
    ("server", "fly.io", 30, "Fly.io"),
    ("server", "heroku", 25, "Heroku"),
    ("x-powered-by", "netlify", 30, "Netlify"),
    ("x-powered-by", "vercel", 30, "Vercel"),
)
CACHE_VENDORS = ("cloudflare", "fastly", "akamai", "cloudfront")
VIA_VENDORS = ("cloudflare", "fastly", "akamai", "cloudfront", "google", "azure")


def server_signature(headers: Mapping[str, str]) -> tuple[int, list[str]]:
    """Score CDN/PaaS hints in ``server``, ``x-powered-by``, ``x-cache`` and ``via``.

    Returns (raw_points, indicators).
    """
    def lowered(name: str) -> str:
        return (headers.get(name) or "").lower()

    points = 0
    indicators: list[str] = []
    for header, needle, value, indicator in SERVER_SIGNATURES:
        if needle in lowered(header):
            points += value
            indicators.append(indicator)

    x_cache = lowered("x-cache")
    if any(v in x_cache for v in CACHE_VENDORS):
        points += 25
        indicators.append("Cache header")

    via = lowered("via")
    if any(v in via for v in VIA_VENDORS):
        points += 20
        indicators.append("Via header")

    return points, indicators


def _ip_evidence(ml: MultiLocationResult, metrics: AdvancedMetrics) -> None:
    ip_count = len(ml.unique_ips)
    if ml.ip_consistency == "inconsistent" and ip_count >= 5:
        metrics.ip_analysis_score, bonus = 100, 40
    elif ml.ip_consistency == "inconsistent" and ip_count >= 3:
        metrics.ip_analysis_score, bonus = 80, 32
    elif ml.ip_consistency == "mixed" and ip_count >= 2:
        metrics.ip_analysis_score, bonus = 60, 24
    elif ml.ip_consistency == "consistent":
        metrics.ip_analysis_score, bonus = 20, 8
    else:
        bonus = 0
    metrics.cdn_score += bonus

    if ml.success_rate >= 0.8:
        metrics.ip_analysis_score = min(100, metrics.ip_analysis_score + 10)
    elif ml.success_rate < 0.6:
        metrics.ip_analysis_score = max(0, metrics.ip_analysis_score - 10)


def _fmt_score(score: float) -> str:
    return f"{score:g}"


def classify(
    multi_location: Optional[MultiLocationResult],
    evidence: HeaderEvidence,
    headers: Mapping[str, str],
) -> ConnectionVerdict:
    """Decide how *headers*' response reached us.

    Parameters
    ----------
    multi_location:
        Result of the multi-location run, or None if it was skipped or
        failed.
    evidence:
        CDN and proxy header facts for the probed response.
    headers:
        Full response headers, lower-cased names.
    """
    metrics = AdvancedMetrics()
    rationale: list[str] = []
    provider = evidence.provider
    cdn = evidence.is_through_cdn

    def verdict(kind: str, confidence: str,
                analysis: Optional[MultiLocationAnalysis] = None) -> ConnectionVerdict:
        return ConnectionVerdict(
            connection_type=kind,
            confidence=confidence,
            rationale=rationale,
            provider=provider,
            advanced_metrics=metrics,
            multi_location_analysis=analysis,
        )

    # ── 1-3. Multi-location IP evidence ──
    ml_analysis: Optional[MultiLocationAnalysis] = None
    if multi_location is not None:
        ml = multi_location
        rationale.append(ml.analysis)
        metrics.detection_methods.append(METHOD_IP)
        _ip_evidence(ml, metrics)

        ip_count = len(ml.unique_ips)
        rate = round(ml.success_rate * 100)

        if ml.ip_consistency == "inconsistent" and ip_count >= 3:
            ml_analysis = MultiLocationAnalysis(
                is_cdn_by_ip=True,
                confidence="high",
                reasoning=f"Multi-location resolution found {ip_count} distinct IPs "
                          f"(success rate {rate}%), typical of a CDN",
            )
            if cdn and provider:
                rationale.append(f"Multi-location IPs and HTTP headers confirm a CDN ({provider})")
                metrics.detection_methods.append(METHOD_HEADERS)
            elif cdn:
                rationale.append("Multi-location IPs and HTTP headers confirm a CDN, provider unknown")
                metrics.detection_methods.append(METHOD_HEADERS)
            else:
                rationale.append(
                    "Multi-IP evidence without header confirmation: strongly indicates a CDN "
                    "(possibly hidden or custom configured)"
                )
            return verdict("cdn", "high", ml_analysis)

        if ml.ip_consistency == "mixed" and ip_count >= 2:
            ml_analysis = MultiLocationAnalysis(
                is_cdn_by_ip=True,
                confidence="medium",
                reasoning=f"Multi-location resolution found {ip_count} distinct IPs "
                          f"(success rate {rate}%), possibly a CDN or load balancing",
            )
            if cdn:
                suffix = f" ({provider})" if provider else ""
                rationale.append(f"Multi-location IPs and HTTP headers suggest a CDN{suffix}")
                metrics.detection_methods.append(METHOD_HEADERS)
                return verdict("cdn", "medium", ml_analysis)
            rationale.append(
                "Multi-location IPs suggest a CDN or load balancing, but no CDN headers were found"
            )
            return verdict("mixed", "medium", ml_analysis)

        if ml.ip_consistency == "consistent":
            ml_analysis = MultiLocationAnalysis(
                is_cdn_by_ip=False,
                confidence="high",
                reasoning=f"Every location resolved to the same IP (success rate {rate}%), "
                          f"likely a direct connection",
            )
            if cdn and provider:
                rationale.append(
                    f"Single IP across locations, but HTTP headers indicate a CDN ({provider}); "
                    f"possibly a single-PoP CDN or custom setup"
                )
                metrics.detection_methods.append(METHOD_HEADERS)
                return verdict("mixed", "medium", ml_analysis)
            if cdn:
                rationale.append(
                    "Single IP across locations, but HTTP headers show CDN traits; "
                    "possibly a single-PoP CDN or misconfiguration"
                )
                metrics.detection_methods.append(METHOD_HEADERS)
                return verdict("mixed", "low", ml_analysis)

    # ── 4. CDN headers ──
    if cdn:
        metrics.detection_methods.append(METHOD_HEADERS)
        if provider:
            metrics.header_analysis_score = 90
            metrics.cdn_score += 35
            rationale.append(f"HTTP headers indicate a CDN: {provider}")
        else:
            metrics.header_analysis_score = 70
            metrics.cdn_score += 25
            rationale.append("HTTP headers show CDN traits, but the provider could not be determined")
        return verdict("cdn", "medium" if multi_location is not None else "high", ml_analysis)

    # ── 5. Proxy headers ──
    if evidence.has_proxy_headers:
        metrics.detection_methods.append(METHOD_PROXY)
        metrics.header_analysis_score = max(metrics.header_analysis_score, 50)
        metrics.cdn_score += 15
        rationale.append(f"Proxy headers detected: {', '.join(detect_proxy_types(headers))}")

        server = (headers.get("server") or "").lower()
        if any(host in server for host in EDGE_HOSTED_SERVERS):
            rationale.append("Server header suggests a CDN or edge platform")
            metrics.detection_methods.append(METHOD_SERVER)
            metrics.server_analysis_score = 60
            metrics.cdn_score += 10
            return verdict("mixed", "medium", ml_analysis)
        return verdict("proxy", "high", ml_analysis)

    # ── 6. Server signature ──
    points, indicators = server_signature(headers)
    if points > 0:
        metrics.detection_methods.append(METHOD_SERVER)
        metrics.server_analysis_score = min(100, points)
        metrics.cdn_score += min(10, points / 10)
        rationale.append(f"Server or cache headers suggest a CDN: {', '.join(indicators)}")
        return verdict("mixed", "medium" if points >= 60 else "low", ml_analysis)

    # ── 7. Combined score ──
    score = _fmt_score(metrics.cdn_score)
    if metrics.cdn_score >= 70:
        rationale.append(f"Combined score {score}, strongly indicates a CDN")
        return verdict("cdn", "high", ml_analysis)
    if metrics.cdn_score >= 40:
        rationale.append(f"Combined score {score}, possibly a CDN")
        return verdict("mixed", "medium", ml_analysis)
    if metrics.cdn_score >= 20:
        rationale.append(f"Combined score {score}, possibly a proxy or custom setup")
        return verdict("mixed", "low", ml_analysis)

    rationale.append("No CDN or proxy traits detected")
    if multi_location is None or not multi_location.unique_ips:
        rationale.append("Insufficient data: no resolver returned an IP address")
        return verdict("direct", "low", ml_analysis)
    return verdict("direct", "high", ml_analysis)
