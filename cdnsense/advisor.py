"""Optimization advisor.

Turns a connection verdict and a handful of performance facts into graded
recommendations for three categories (CDN, performance, SSL), an overall
score and grade, an action plan and a rough competitive position.

Every suggestion carries a level from 1 to 5:

    1  urgent, severely hurts users today
    2  high priority
    3  worthwhile improvement
    4  potential optimisation, weigh the cost
    5  forward-looking
"""

from __future__ import annotations

from typing import Optional

from cdnsense.config import (
    GRADE_LEVELS,
    INDUSTRY_AVERAGE,
    PERFORMANCE_SCORE_FLOOR,
    SCORE_WEIGHTS,
    STATUS_SCORES,
)
from cdnsense.models import (
    ActionPlan,
    CategoryAnalysis,
    CompetitiveAnalysis,
    ConnectionVerdict,
    OptimizationReport,
    OverallAssessment,
    PerformanceFacts,
    Suggestion,
)

# Catalogue entries are (text, level, reasoning).
Catalogue = tuple[tuple[str, int, str], ...]

# ── CDN, scored from advanced metrics ─────────────────────────────────

CDN_METRIC_CATALOGUE: dict[str, Catalogue] = {
    "excellent": (
        ("CDN is configured well; keep monitoring its performance", 4,
         "Configuration is already excellent, continue monitoring"),
        ("Consider advanced CDN features: HTTP/3, QUIC and smart compression", 5,
         "Forward-looking, can bring a competitive edge"),
        ("Tune the caching policy to raise the cache hit ratio", 3,
         "Worthwhile, improves performance further"),
        ("Use edge compute to cut origin fetches", 4,
         "Potential optimisation, higher cost but clear gains"),
    ),
    "good": (
        ("CDN is configured reasonably but has room to improve", 3,
         "Worthwhile, brings a noticeable gain"),
        ("Review and tune cache rules and cache lifetimes", 3,
         "Worthwhile, tuning has a visible effect"),
        ("Consider more CDN nodes for wider global coverage", 4,
         "Potential optimisation, needs a cost-benefit check"),
        ("Enable image optimisation and automatic compression", 3,
         "Worthwhile, simple to roll out"),
    ),
    "needs_improvement": (
        ("CDN configuration needs work; review the whole setup", 2,
         "High priority, seriously hurts performance"),
        ("Confirm DNS points at the CDN correctly", 2,
         "High priority, misconfiguration bypasses the CDN"),
        ("Tune caching with sensible cache lifetimes", 3,
         "Worthwhile, noticeably improves results"),
        ("Consider a higher CDN service tier", 4,
         "Potential optimisation, needs an investment review"),
    ),
    "critical": (
        ("No working CDN configuration; set one up now", 1,
         "Urgent, severely hurts user experience and performance"),
        ("Use a mainstream CDN such as Cloudflare, Alibaba Cloud CDN or Tencent Cloud CDN", 1,
         "Urgent, missing CDN causes serious performance problems"),
        ("Enable global CDN acceleration covering your main user regions", 2,
         "High priority, affects users worldwide"),
        ("Set up a sensible caching policy and compression", 2,
         "High priority, basic configuration is missing"),
    ),
}
CDN_METRIC_PRIORITY = {
    "excellent": ("low", "5-10% performance gain"),
    "good": ("medium", "15-25% performance gain"),
    "needs_improvement": ("high", "30-50% performance gain"),
    "critical": ("high", "50-80% performance gain"),
}

# ── CDN, derived from the verdict alone ───────────────────────────────

CDN_VERDICT_CATALOGUE: dict[str, Catalogue] = {
    "excellent": (
        ("CDN is configured well; keep monitoring its performance", 4,
         "Potential optimisation, configuration is already good"),
        ("Consider advanced CDN features such as cache tuning and compression", 5,
         "Forward-looking, brings a technical edge"),
        ("Regularly check CDN coverage and node health", 3,
         "Worthwhile, keeps delivery stable"),
    ),
    "good": (
        ("CDN is enabled but its configuration may need tuning", 3,
         "Worthwhile, there is room to improve"),
        ("Check CDN cache rules and the cache hit ratio", 3,
         "Worthwhile, improves performance"),
        ("Consider more CDN nodes for wider coverage", 4,
         "Potential optimisation, needs an investment review"),
    ),
    "needs_improvement": (
        ("A CDN may be in place; confirm and complete its setup", 2,
         "High priority, an incomplete setup limits its effect"),
        ("Check that DNS points at the CDN correctly", 2,
         "High priority, DNS configuration problem"),
        ("Consider a global CDN to speed up access", 3,
         "Worthwhile, noticeably improves performance"),
    ),
    "critical": (
        ("No CDN in use; configuring one is strongly recommended", 1,
         "Urgent, severely hurts user experience and performance"),
        ("Consider Cloudflare, Alibaba Cloud CDN, Tencent Cloud CDN or similar", 1,
         "Urgent, basic CDN service is missing"),
        ("A CDN can cut latency considerably and improve user experience", 2,
         "High priority, core infrastructure is missing"),
    ),
}
CDN_VERDICT_DETAILS = {
    "excellent": ("low", "5-15% performance gain",
                  "CDN detected with high confidence, delivery is well optimised"),
    "good": ("medium", "15-30% performance gain",
             "CDN detected with medium confidence, configuration can be tuned further"),
    "needs_improvement": ("high", "25-45% performance gain",
                          "Mixed connection type, CDN setup may be incomplete"),
    "critical": ("high", "40-70% performance gain",
                 "No CDN detected, there is significant room for improvement"),
}

# ── Performance ───────────────────────────────────────────────────────

PERFORMANCE_CATALOGUE: dict[str, Catalogue] = {
    "excellent": (
        ("Response time is excellent; keep the current setup", 4,
         "Potential optimisation, performance is already excellent"),
        ("Monitor performance metrics regularly to keep it stable", 3,
         "Worthwhile, prevents regressions"),
        ("Consider further features such as HTTP/2 and Brotli compression", 5,
         "Forward-looking, adopts current standards"),
        ("Adopt a performance budget to prevent regressions", 4,
         "Potential optimisation, long-term performance management"),
    ),
    "good": (
        ("Performance is good with room for further gains", 3,
         "Worthwhile, there is room to improve"),
        ("Review and optimise database queries and API calls", 3,
         "Worthwhile, speeds up responses"),
        ("Add browser caching and server-side caching", 3,
         "Worthwhile, reduces repeated requests"),
        ("Consider resource preloading and preconnect", 4,
         "Potential optimisation, smoother user experience"),
    ),
    "needs_improvement": (
        ("Performance needs work; act now", 2,
         "High priority, hurts user experience"),
        ("Optimise images: serve WebP and responsive images", 2,
         "High priority, greatly reduces page weight"),
        ("Enable Gzip/Brotli compression to cut transfer size", 2,
         "High priority, improves transfer efficiency"),
        ("Consider a CDN for static assets", 3,
         "Worthwhile, noticeably faster loading"),
        ("Optimise JavaScript and CSS loading, remove render-blocking resources", 3,
         "Worthwhile, improves rendering performance"),
    ),
    "critical": (
        ("Performance is severely lacking; a full optimisation pass is urgent", 1,
         "Urgent, severely hurts user experience and SEO"),
        ("Check server configuration and resource loading immediately", 1,
         "Urgent, likely a configuration error"),
        ("Optimise database queries and add multi-layer caching", 1,
         "Urgent, backend bottleneck"),
        ("Compress and optimise all static assets, split code bundles", 2,
         "High priority, essential front-end work"),
        ("Configure CDN acceleration and adopt modern web technologies", 2,
         "High priority, infrastructure upgrade"),
    ),
}
PERFORMANCE_DETAILS = {
    "excellent": ("low", "5-10% performance gain", "excellent"),
    "good": ("medium", "10-20% performance gain", "good"),
    "needs_improvement": ("high", "25-40% performance gain", "needs optimisation"),
    "critical": ("high", "40-70% performance gain", "severely lacking"),
}
SLOW_DNS_SUGGESTIONS: Catalogue = (
    ("DNS resolution is slow; use a faster DNS service", 2,
     "High priority, slow DNS drags down overall performance"),
    ("Use DNS prefetching and preconnect", 3,
     "Worthwhile, reduces DNS lookup latency"),
)
LARGE_BODY_SUGGESTIONS: Catalogue = (
    ("Page weight is too large; reduce resource sizes", 2,
     "High priority, large payloads slow down loading"),
    ("Apply resource compression and lazy loading", 3,
     "Worthwhile, improves transfer efficiency"),
)

# ── SSL ───────────────────────────────────────────────────────────────

SSL_CATALOGUE: dict[str, Catalogue] = {
    "excellent": (
        ("SSL certificate is configured; data in transit is protected", 4,
         "Potential optimisation, configuration is already good"),
        ("Check the certificate expiry date regularly", 3,
         "Worthwhile, prevents outages"),
        ("Consider enabling HSTS for stronger security", 4,
         "Potential optimisation, raises the security level"),
        ("Review the TLS configuration and enable modern ciphers", 4,
         "Potential optimisation, stays current"),
        ("Set up certificate monitoring and automatic renewal", 3,
         "Worthwhile, automates operations"),
    ),
    "critical": (
        ("No SSL certificate configured; the site has a serious security risk", 1,
         "Urgent, data is transmitted insecurely"),
        ("Obtain and configure an SSL certificate now (Let's Encrypt is free)", 1,
         "Urgent, basic security is missing"),
        ("Enable HTTPS to protect user data", 1,
         "Urgent, protects user privacy"),
        ("Search engines favour HTTPS sites, which affects SEO ranking", 2,
         "High priority, affects search ranking"),
        ("Modern browsers mark HTTP sites as \"Not secure\"", 2,
         "High priority, erodes user trust"),
    ),
}
SSL_DETAILS = {
    "excellent": ("low", "Security and SEO gains",
                  "SSL certificate configured, good security that helps SEO and user trust"),
    "critical": ("high", "Significant security and SEO ranking gains",
                 "No SSL configuration detected, security needs urgent attention"),
}

# ── Overall ───────────────────────────────────────────────────────────

IMMEDIATE_ACTIONS = (
    ("ssl", "Configure an SSL certificate and enable HTTPS"),
    ("performance", "Optimize site performance and reduce response time"),
    ("cdn", "Configure a CDN"),
)
SHORT_TERM_ACTIONS = (
    ("performance", "Further optimize site performance"),
    ("cdn", "Optimize CDN configuration"),
)
LONG_TERM_ACTIONS = (
    "Establish performance monitoring",
    "Run regular performance audits",
    "Continuously improve user experience",
)
# (min score, ranking, improvement potential), checked top-down
COMPETITIVE_LEVELS = (
    (85, "leading", "5-10%"),
    (70, "good", "10-20%"),
    (55, "average", "20-40%"),
    (0, "behind", "40-60%"),
)
CATEGORY_NAMES = {"ssl": "Security", "performance": "Performance", "cdn": "CDN"}


def _suggestions(category: str, entries: Catalogue) -> list[Suggestion]:
    return [Suggestion(text, level, category, reasoning) for text, level, reasoning in entries]


def _status_from_score(score: float, levels: tuple[int, int, int]) -> str:
    excellent, good, fair = levels
    if score >= excellent:
        return "excellent"
    if score >= good:
        return "good"
    if score >= fair:
        return "needs_improvement"
    return "critical"


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def analyze_cdn(verdict: Optional[ConnectionVerdict]) -> CategoryAnalysis:
    """Grade CDN usage from the classifier's score, or its verdict alone."""
    metrics = verdict.advanced_metrics if verdict is not None else None

    if metrics is not None:
        score = f"{metrics.cdn_score:g}"
        status = _status_from_score(metrics.cdn_score, (80, 60, 30))
        priority, improvement = CDN_METRIC_PRIORITY[status]
        reasoning = {
            "excellent": f"CDN score {score}, detected via "
                         f"{' + '.join(metrics.detection_methods) or 'no method'}, excellent configuration",
            "good": f"CDN score {score}, good configuration with room to improve",
            "needs_improvement": f"CDN score {score}, configuration has clear problems",
            "critical": f"CDN score {score}, CDN acceleration is not used effectively",
        }[status]
        return CategoryAnalysis(
            status=status,
            suggestions=_suggestions("cdn", CDN_METRIC_CATALOGUE[status]),
            reasoning=reasoning,
            priority=priority,
            estimated_improvement=improvement,
        )

    kind = verdict.connection_type if verdict is not None else None
    confidence = verdict.confidence if verdict is not None else None
    if kind == "cdn" and confidence == "high":
        status = "excellent"
    elif kind == "cdn" and confidence == "medium":
        status = "good"
    elif kind == "mixed":
        status = "needs_improvement"
    else:
        status = "critical"

    priority, improvement, reasoning = CDN_VERDICT_DETAILS[status]
    return CategoryAnalysis(
        status=status,
        suggestions=_suggestions("cdn", CDN_VERDICT_CATALOGUE[status]),
        reasoning=reasoning,
        priority=priority,
        estimated_improvement=improvement,
    )


def performance_score(facts: PerformanceFacts) -> int:
    """Score response speed out of 100 by subtracting penalties."""
    score = 100

    rt = facts.response_time_ms
    if rt < 100:
        pass
    elif rt < 200:
        score -= 10
    elif rt < 500:
        score -= 25
    elif rt < 1000:
        score -= 45
    else:
        score -= 70

    if facts.dns_time_ms > 100:
        score -= 15
    elif facts.dns_time_ms > 50:
        score -= 5

    if facts.response_size > 1_000_000:
        score -= 20
    elif facts.response_size > 500_000:
        score -= 10

    if facts.status_code >= 400:
        score -= 30
    elif facts.status_code >= 300:
        score -= 10

    return score


def analyze_performance(facts: PerformanceFacts) -> tuple[int, CategoryAnalysis]:
    """Return (raw performance score, analysis)."""
    score = performance_score(facts)
    status = _status_from_score(score, (85, 70, 50))
    priority, improvement, verdict = PERFORMANCE_DETAILS[status]

    suggestions = _suggestions("performance", PERFORMANCE_CATALOGUE[status])
    if facts.dns_time_ms > 100:
        suggestions += _suggestions("performance", SLOW_DNS_SUGGESTIONS)
    if facts.response_size > 1_000_000:
        suggestions += _suggestions("performance", LARGE_BODY_SUGGESTIONS)

    analysis = CategoryAnalysis(
        status=status,
        suggestions=suggestions,
        reasoning=f"Performance score {score}, response time "
                  f"{round(facts.response_time_ms)}ms, {verdict}",
        priority=priority,
        estimated_improvement=improvement,
    )
    return score, analysis


def analyze_ssl(has_ssl: bool) -> CategoryAnalysis:
    status = "excellent" if has_ssl else "critical"
    priority, improvement, reasoning = SSL_DETAILS[status]
    return CategoryAnalysis(
        status=status,
        suggestions=_suggestions("ssl", SSL_CATALOGUE[status]),
        reasoning=reasoning,
        priority=priority,
        estimated_improvement=improvement,
    )


# ---------------------------------------------------------------------------
# Overall
# ---------------------------------------------------------------------------

def grade_for(score: int) -> str:
    for threshold, grade in GRADE_LEVELS:
        if score >= threshold:
            return grade
    return GRADE_LEVELS[-1][1]


def overall_score(cdn_status: str, perf_score: int, ssl_status: str) -> int:
    """Weighted 0-100 score; the performance score is floored before weighting."""
    cdn = STATUS_SCORES[cdn_status]
    perf = max(PERFORMANCE_SCORE_FLOOR, perf_score)
    ssl = STATUS_SCORES[ssl_status]
    weighted = (
        cdn * SCORE_WEIGHTS["cdn"]
        + perf * SCORE_WEIGHTS["performance"]
        + ssl * SCORE_WEIGHTS["ssl"]
    ) / 100
    return round(weighted)


def _overall(
    cdn: CategoryAnalysis,
    performance: CategoryAnalysis,
    perf_score: int,
    ssl: CategoryAnalysis,
) -> OverallAssessment:
    score = overall_score(cdn.status, perf_score, ssl.status)
    statuses = {"cdn": cdn.status, "performance": performance.status, "ssl": ssl.status}

    plan = ActionPlan(
        immediate=[text for cat, text in IMMEDIATE_ACTIONS if statuses[cat] == "critical"],
        short_term=[text for cat, text in SHORT_TERM_ACTIONS if statuses[cat] == "needs_improvement"],
        long_term=list(LONG_TERM_ACTIONS),
    )

    for threshold, ranking, potential in COMPETITIVE_LEVELS:
        if score >= threshold:
            break
    competitive = CompetitiveAnalysis(
        ranking=ranking,
        industry_average=INDUSTRY_AVERAGE,
        improvement_potential=potential,
    )

    recommendations: list[str] = []
    if score < 70:
        recommendations.append(
            "Overall performance needs significant improvement; address the critical issues first"
        )
        recommendations.append("Draw up a detailed optimization plan and timeline")

    category_scores = [
        ("ssl", STATUS_SCORES[ssl.status]),
        ("performance", max(PERFORMANCE_SCORE_FLOOR, perf_score)),
        ("cdn", STATUS_SCORES[cdn.status]),
    ]
    category_scores.sort(key=lambda item: item[1])  # stable
    for index, (category, cat_score) in enumerate(category_scores):
        name = CATEGORY_NAMES[category]
        if statuses[category] == "critical":
            recommendations.append(f"{name} configuration needs immediate attention")
        elif cat_score < 80 and index < 2:
            recommendations.append(f"{name} optimization is key to improving overall results")

    return OverallAssessment(
        score=score,
        grade=grade_for(score),
        recommendations=recommendations,
        action_plan=plan,
        competitive_analysis=competitive,
    )


def advise(
    verdict: Optional[ConnectionVerdict],
    facts: PerformanceFacts,
    has_ssl: bool,
) -> OptimizationReport:
    """Build the full optimization report.  Pure; never raises for valid input."""
    cdn = analyze_cdn(verdict)
    perf_score, performance = analyze_performance(facts)
    ssl = analyze_ssl(has_ssl)
    return OptimizationReport(
        cdn=cdn,
        performance=performance,
        ssl=ssl,
        overall=_overall(cdn, performance, perf_score, ssl),
        performance_score=perf_score,
    )
