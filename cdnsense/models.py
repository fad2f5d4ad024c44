"""Data models for cdnsense."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from cdnsense.config import (
    MULTI_LOCATION_TIMEOUT,
    PROBE_TIMEOUT,
    QUERY_MAX_RETRIES,
)


# ── Resolvers ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ResolverDescriptor:
    """One entry of the multi-location resolver roster."""

    label: str  # e.g. "Beijing"
    address: str  # resolver IP
    region: str  # static region label, not measured geolocation


@dataclass
class ResolverHealth:
    """Cached liveness of a single resolver."""

    healthy: bool
    last_checked_at: float  # time.monotonic() of the check
    response_time_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class QueryOutcome:
    """Result of querying one resolver for one domain."""

    ip: str = ""
    elapsed_ms: float = 0.0
    success: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class PingOutcome:
    """Per-location outcome of an orchestrated run."""

    location: str
    region: str
    ip: str = ""
    elapsed_ms: float = 0.0
    success: bool = False
    error: Optional[str] = None


@dataclass
class GeographicDistribution:
    regions: list[str] = field(default_factory=list)
    ip_distribution: dict[str, list[str]] = field(default_factory=dict)
    coverage: str = ""
    coverage_percent: int = 0


@dataclass
class HealthStats:
    total_servers: int = 0
    healthy_servers: int = 0
    successful_queries: int = 0
    average_response_time: int = 0


@dataclass
class MultiLocationResult:
    """Aggregate over every PingOutcome of one run."""

    locations: list[str] = field(default_factory=list)
    regions: list[str] = field(default_factory=list)
    ping_results: list[PingOutcome] = field(default_factory=list)
    unique_ips: list[str] = field(default_factory=list)
    ip_consistency: str = "mixed"  # consistent | inconsistent | mixed
    analysis: str = ""
    geographic_distribution: GeographicDistribution = field(
        default_factory=GeographicDistribution
    )
    health_stats: HealthStats = field(default_factory=HealthStats)

    @property
    def success_rate(self) -> float:
        if self.health_stats.total_servers <= 0:
            return 0.0
        return self.health_stats.successful_queries / self.health_stats.total_servers


# ── HTTP probing ──────────────────────────────────────────────────────


@dataclass
class CertificateInfo:
    issuer: str = "Unknown"
    valid_from: str = ""
    valid_to: str = ""
    subject_alt_name: str = "N/A"


@dataclass
class HttpProbeResult:
    """Outcome of a single timed HTTP(S) request."""

    url: str
    status_code: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    content_length: int = 0
    total_time_ms: float = 0.0
    tcp_time_ms: float = 0.0
    ssl_time_ms: Optional[float] = None  # None for plain HTTP
    ttfb_ms: float = 0.0
    download_time_ms: float = 0.0
    certificate: Optional[CertificateInfo] = None
    http_version: str = ""
    tls_version: Optional[str] = None
    remote_ip: Optional[str] = None

    @property
    def is_https(self) -> bool:
        return self.url.startswith("https://")


# ── Evidence and classification ───────────────────────────────────────


@dataclass
class PoPIdentity:
    """Edge Point of Presence reported by a CDN's headers."""

    code: Optional[str] = None  # IATA code (e.g. "SJC")
    confidence: str = "unknown"  # confirmed | inferred | unknown
    raw_header: Optional[str] = None


@dataclass
class HeaderEvidence:
    """CDN and proxy header facts extracted from a response."""

    cdn_headers: dict[str, Optional[str]] = field(default_factory=dict)
    proxy_headers: dict[str, Optional[str]] = field(default_factory=dict)
    is_through_cdn: bool = False
    has_proxy_headers: bool = False
    provider: Optional[str] = None
    pop: Optional[PoPIdentity] = None


@dataclass
class AdvancedMetrics:
    cdn_score: float = 0
    detection_methods: list[str] = field(default_factory=list)
    ip_analysis_score: int = 0
    header_analysis_score: int = 0
    server_analysis_score: int = 0


@dataclass
class MultiLocationAnalysis:
    is_cdn_by_ip: bool
    confidence: str
    reasoning: str


@dataclass
class ConnectionVerdict:
    connection_type: str  # direct | cdn | proxy | mixed
    confidence: str  # high | medium | low
    rationale: list[str] = field(default_factory=list)
    provider: Optional[str] = None
    advanced_metrics: Optional[AdvancedMetrics] = None
    multi_location_analysis: Optional[MultiLocationAnalysis] = None


# ── Optimization ──────────────────────────────────────────────────────


@dataclass
class PerformanceFacts:
    response_time_ms: float = 0.0
    dns_time_ms: float = 0.0
    response_size: int = 0
    status_code: int = 0


@dataclass(frozen=True)
class Suggestion:
    text: str
    level: int  # 1 (most urgent) .. 5 (forward-looking)
    category: str  # cdn | performance | ssl
    reasoning: str


@dataclass
class CategoryAnalysis:
    status: str  # excellent | good | needs_improvement | critical
    suggestions: list[Suggestion] = field(default_factory=list)
    reasoning: str = ""
    priority: str = "medium"  # high | medium | low
    estimated_improvement: str = ""


@dataclass
class ActionPlan:
    immediate: list[str] = field(default_factory=list)
    short_term: list[str] = field(default_factory=list)
    long_term: list[str] = field(default_factory=list)


@dataclass
class CompetitiveAnalysis:
    ranking: str
    industry_average: int
    improvement_potential: str


@dataclass
class OverallAssessment:
    score: int
    grade: str
    recommendations: list[str] = field(default_factory=list)
    action_plan: ActionPlan = field(default_factory=ActionPlan)
    competitive_analysis: Optional[CompetitiveAnalysis] = None


@dataclass
class OptimizationReport:
    cdn: CategoryAnalysis
    performance: CategoryAnalysis
    ssl: CategoryAnalysis
    overall: OverallAssessment
    performance_score: int = 100


# ── Domain test result ────────────────────────────────────────────────


@dataclass
class DnsSection:
    resolved_ips: list[str] = field(default_factory=list)
    resolution_time: float = 0.0
    error: Optional[str] = None


@dataclass
class ConnectionSection:
    total_time: float = 0.0
    dns_time: float = 0.0
    tcp_time: float = 0.0
    ssl_time: Optional[float] = None
    ttfb: float = 0.0
    download_time: float = 0.0
    status_code: int = 0
    error: Optional[str] = None


@dataclass
class ServerSection:
    software: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    response_size: int = 0
    response_time: float = 0.0


@dataclass
class CdnSection:
    is_through_cdn: bool = False
    has_proxy_headers: bool = False
    provider: Optional[str] = None
    pop: Optional[PoPIdentity] = None
    headers: dict[str, Optional[str]] = field(default_factory=dict)
    proxy_headers: dict[str, Optional[str]] = field(default_factory=dict)
    connection_type: Optional[str] = None  # None until classified
    confidence: Optional[str] = None
    analysis: list[str] = field(default_factory=list)
    multi_location_analysis: Optional[MultiLocationAnalysis] = None
    advanced_metrics: Optional[AdvancedMetrics] = None


@dataclass
class DomainTestResult:
    """Complete output of one domain test.

    ``multi_location_ping``, ``ssl`` and ``optimization`` are None when the
    step was not reached or did not produce data; ``dns.error`` and
    ``connection.error`` record steps that were attempted and failed.
    """

    domain: str
    timestamp: str
    dns: DnsSection = field(default_factory=DnsSection)
    multi_location_ping: Optional[MultiLocationResult] = None
    connection: ConnectionSection = field(default_factory=ConnectionSection)
    server: ServerSection = field(default_factory=ServerSection)
    cdn: CdnSection = field(default_factory=CdnSection)
    ssl: Optional[CertificateInfo] = None
    optimization: Optional[OptimizationReport] = None


@dataclass
class RunConfig:
    """Tunables for one domain test run."""

    probe_timeout: float = PROBE_TIMEOUT
    multi_location_timeout: float = MULTI_LOCATION_TIMEOUT
    query_retries: int = QUERY_MAX_RETRIES
    multi_location: bool = True


# ── CLI runs ──────────────────────────────────────────────────────────


@dataclass
class LatencyStats:
    """Aggregated statistics for a timing phase."""

    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    median: float = 0.0
    p95: float = 0.0
    stdev: float = 0.0
    jitter: float = 0.0


@dataclass
class RunRecord:
    """One invocation of the test-domain API made by the CLI."""

    index: int
    domain: str
    success: bool
    api_time_ms: float = 0.0
    data: Optional[dict] = None  # decoded API payload
    error: Optional[str] = None

    @property
    def test_results(self) -> dict:
        if not self.data:
            return {}
        return self.data.get("testResults", {})


@dataclass
class RunSummary:
    """Aggregate over a batch of RunRecords."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    phase_stats: dict[str, LatencyStats] = field(default_factory=dict)
    avg_response_size: float = 0.0
    connection_types: dict[str, int] = field(default_factory=dict)
    proxy_header_count: int = 0
    ssl_count: int = 0

    @property
    def ssl_rate(self) -> float:
        return self.ssl_count / self.successful * 100 if self.successful else 0.0

    @property
    def proxy_header_rate(self) -> float:
        return self.proxy_header_count / self.successful * 100 if self.successful else 0.0
