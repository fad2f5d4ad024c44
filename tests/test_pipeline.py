import unittest
from unittest.mock import AsyncMock, patch

from cdnsense.errors import DnsResolutionError, HttpProbeError, InvalidInputError
from cdnsense.models import (
    CertificateInfo,
    HttpProbeResult,
    ResolverDescriptor,
    ResolverHealth,
    RunConfig,
)
from cdnsense.pipeline import normalize_domain, run_domain_test

ROSTER = (
    ResolverDescriptor("Beijing", "10.0.0.1", "North China"),
    ResolverDescriptor("Tokyo", "10.0.0.2", "Japan"),
    ResolverDescriptor("Frankfurt", "10.0.0.3", "Germany"),
)


class HealthyCache:
    async def get_health(self, address):
        return ResolverHealth(healthy=True, last_checked_at=0.0)


class MapClient:
    def __init__(self, answers):
        self.answers = answers

    async def resolve(self, server, domain, timeout):
        return self.answers[server]


def https_response(headers):
    return HttpProbeResult(
        url="https://example.com/",
        status_code=200,
        headers=headers,
        content_length=1256,
        total_time_ms=120.5,
        tcp_time_ms=20.0,
        ssl_time_ms=40.0,
        ttfb_ms=50.0,
        download_time_ms=10.5,
        certificate=CertificateInfo(issuer="Let's Encrypt", valid_from="2025-01-01T00:00:00+00:00",
                                    valid_to="2025-04-01T00:00:00+00:00",
                                    subject_alt_name="DNS:example.com"),
    )


class TestNormalizeDomain(unittest.TestCase):
    def test_strips_scheme_and_path(self):
        self.assertEqual(normalize_domain("https://example.com/a/b?c=1"), "example.com")
        self.assertEqual(normalize_domain("HTTP://Example.com"), "Example.com")
        self.assertEqual(normalize_domain("  example.com  "), "example.com")

    def test_empty_input(self):
        for raw in (None, "", "   ", "https://", "https:///path"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidInputError) as ctx:
                    normalize_domain(raw)
                self.assertEqual(str(ctx.exception), "Domain parameter is required")

    def test_non_string_input(self):
        for raw in (123, ["example.com"], {"host": "example.com"}):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidInputError):
                    normalize_domain(raw)


class TestRunDomainTest(unittest.IsolatedAsyncioTestCase):
    def kwargs(self, prober, answers=None, lookup=None):
        answers = answers or {r.address: ["203.0.113.1"] for r in ROSTER}
        return dict(
            roster=ROSTER,
            health_cache=HealthyCache(),
            dns_client=MapClient(answers),
            system_lookup=lookup or AsyncMock(return_value=(["203.0.113.1"], 4.2)),
            prober=prober,
        )

    async def test_full_run_through_cloudflare(self):
        prober = AsyncMock(return_value=https_response({
            "server": "cloudflare",
            "cf-ray": "8a1b2c3d4e5f6789-SJC",
            "content-type": "text/html",
        }))
        answers = {"10.0.0.1": ["203.0.113.1"], "10.0.0.2": ["203.0.113.2"], "10.0.0.3": ["203.0.113.3"]}
        result = await run_domain_test("example.com", **self.kwargs(prober, answers))

        prober.assert_awaited_once_with("example.com", timeout=10.0, connect_ip="203.0.113.1")
        self.assertEqual(result.dns.resolved_ips, ["203.0.113.1"])
        self.assertEqual(result.dns.resolution_time, 4.2)
        self.assertEqual(result.connection.dns_time, 4.2)
        self.assertEqual(result.connection.total_time, 120.5)
        self.assertEqual(result.connection.ssl_time, 40.0)
        self.assertEqual(result.connection.status_code, 200)
        self.assertIsNone(result.connection.error)
        self.assertEqual(result.server.software, "cloudflare")
        self.assertEqual(result.server.response_size, 1256)

        self.assertEqual(len(result.multi_location_ping.unique_ips), 3)
        self.assertEqual(result.cdn.connection_type, "cdn")
        self.assertEqual(result.cdn.confidence, "high")
        self.assertEqual(result.cdn.provider, "Cloudflare")
        self.assertEqual(result.cdn.pop.code, "SJC")
        self.assertTrue(result.cdn.is_through_cdn)
        self.assertTrue(result.cdn.multi_location_analysis.is_cdn_by_ip)
        self.assertIsNotNone(result.cdn.advanced_metrics)

        self.assertEqual(result.ssl.issuer, "Let's Encrypt")
        self.assertEqual(result.optimization.ssl.status, "excellent")
        self.assertEqual(result.optimization.cdn.status, "excellent")
        self.assertEqual(result.optimization.overall.grade, "A+")
        self.assertIsInstance(result.optimization.overall.score, int)
        self.assertTrue(result.timestamp.endswith("Z"))

    async def test_dns_failure_stops_before_probing(self):
        prober = AsyncMock()
        lookup = AsyncMock(side_effect=DnsResolutionError("nope.invalid", "Name or service not known"))
        result = await run_domain_test("nope.invalid", **self.kwargs(prober, lookup=lookup))

        prober.assert_not_awaited()
        self.assertEqual(result.dns.error, "DNS resolution failed for nope.invalid: Name or service not known")
        self.assertEqual(result.connection.error, result.dns.error)
        self.assertIsNone(result.multi_location_ping)
        self.assertIsNone(result.optimization)
        self.assertIsNone(result.cdn.connection_type)

    async def test_probe_failure_keeps_dns_sections(self):
        prober = AsyncMock(side_effect=HttpProbeError(
            "example.com", "HTTPS failed: timed out; HTTP failed: timed out"))
        result = await run_domain_test("example.com", **self.kwargs(prober))

        self.assertEqual(result.connection.error,
                         "example.com: HTTPS failed: timed out; HTTP failed: timed out")
        self.assertEqual(result.dns.resolved_ips, ["203.0.113.1"])
        self.assertIsNotNone(result.multi_location_ping)
        self.assertIsNone(result.optimization)
        self.assertIsNone(result.ssl)

    async def test_plain_http_has_no_ssl_section(self):
        response = HttpProbeResult(url="http://example.com/", status_code=200,
                                   headers={"server": "nginx"}, total_time_ms=90.0)
        result = await run_domain_test("example.com", **self.kwargs(AsyncMock(return_value=response)))
        self.assertIsNone(result.ssl)
        self.assertEqual(result.optimization.ssl.status, "critical")
        self.assertEqual(result.cdn.connection_type, "direct")
        self.assertEqual(result.cdn.confidence, "high")

    async def test_missing_server_header(self):
        response = HttpProbeResult(url="http://example.com/", status_code=200, headers={})
        result = await run_domain_test("example.com", **self.kwargs(AsyncMock(return_value=response)))
        self.assertEqual(result.server.software, "Unknown")

    async def test_multi_location_can_be_skipped(self):
        prober = AsyncMock(return_value=https_response({"x-forwarded-for": "198.51.100.1"}))
        config = RunConfig(probe_timeout=3.0, multi_location=False)
        result = await run_domain_test("example.com", config, **self.kwargs(prober))
        self.assertIsNone(result.multi_location_ping)
        self.assertEqual(result.cdn.connection_type, "proxy")
        prober.assert_awaited_once_with("example.com", timeout=3.0, connect_ip="203.0.113.1")

    async def test_multi_location_failure_is_omitted(self):
        prober = AsyncMock(return_value=https_response({"server": "nginx"}))
        with patch("cdnsense.pipeline.resolve_from_all_locations",
                   AsyncMock(side_effect=RuntimeError("resolver pool exploded"))):
            with self.assertLogs("cdnsense.pipeline", level="WARNING"):
                result = await run_domain_test("example.com", **self.kwargs(prober))
        self.assertIsNone(result.multi_location_ping)
        self.assertEqual(result.connection.status_code, 200)
        self.assertIn("Insufficient data: no resolver returned an IP address", result.cdn.analysis)


if __name__ == "__main__":
    unittest.main()
