"""Constants and configuration for cdnsense."""

# Latency color thresholds for display (milliseconds)
PHASE_THRESHOLDS = {
    "dns": {"fast": 50.0, "medium": 100.0},
    "tcp": {"fast": 50.0, "medium": 150.0},
    "ssl": {"fast": 100.0, "medium": 250.0},
    "ttfb": {"fast": 200.0, "medium": 500.0},
    "download": {"fast": 100.0, "medium": 500.0},
    "total": {"fast": 200.0, "medium": 500.0},
}

# Resolver health checks
HEALTH_TTL = 300.0                 # seconds a health record stays fresh
HEALTH_ATTEMPT_TIMEOUT = 2.0       # per probe-domain attempt
HEALTH_OVERALL_TIMEOUT = 5.0       # whole health check for one resolver
HEALTH_PROBE_DOMAINS = ("google.com", "cloudflare.com", "github.com")

# Resolver queries
QUERY_TIMEOUT = 3.0
QUERY_RETRY_DELAY = 0.5            # linear back-off base (attempt * delay)
QUERY_MAX_RETRIES = 1

# Multi-location fan-out
MULTI_LOCATION_TIMEOUT = 15.0
LOW_HEALTHY_RATIO = 0.5
LOW_SUCCESS_RATE = 0.7

# Coverage labels, checked top-down (percent, label)
COVERAGE_LEVELS = [
    (80, "global"),
    (60, "broad"),
    (40, "moderate"),
    (0, "limited"),
]

# HTTP probing
PROBE_TIMEOUT = 10.0
MAX_BODY_BYTES = 10 * 1024 * 1024  # cap for bodies read until EOF
USER_AGENT = "cdnsense/0.1.0"

# Optimization scoring
STATUS_SCORES = {
    "excellent": 100,
    "good": 80,
    "needs_improvement": 50,
    "critical": 20,
}
SCORE_WEIGHTS = {"cdn": 30, "performance": 40, "ssl": 30}
PERFORMANCE_SCORE_FLOOR = 20
INDUSTRY_AVERAGE = 72

# Grade thresholds, checked top-down
GRADE_LEVELS = [
    (95, "A+"),
    (85, "A"),
    (70, "B"),
    (55, "C"),
    (0, "D"),
]

# CLI defaults
DEFAULT_COUNT = 5
DEFAULT_INTERVAL_MS = 1000
DEFAULT_API_URL = "http://localhost:8000/api/test-domain"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000
API_CLIENT_TIMEOUT = 30.0

# Phase display names
PHASE_NAMES = ["dns", "tcp", "ssl", "ttfb", "download", "total"]
PHASE_LABELS = {
    "dns": "DNS",
    "tcp": "TCP",
    "ssl": "TLS",
    "ttfb": "TTFB",
    "download": "Download",
    "total": "Total",
}
