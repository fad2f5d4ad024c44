import csv
import io
import json
import unittest

from cdnsense.export import (
    CSV_COLUMNS,
    build_api_payload,
    export_csv,
    export_json,
    result_to_dict,
)
from cdnsense.models import (
    DomainTestResult,
    MultiLocationResult,
    PingOutcome,
    PoPIdentity,
    RunRecord,
)
from cdnsense.stats import compute_stats, dns_rating, performance_rating, summarize_runs


def record(index, total, dns=10.0, kind="cdn", ssl=True, proxy=False, size=1000, success=True):
    if not success:
        return RunRecord(index, "example.com", False, 50.0, error="connection refused")
    data = {
        "timestamp": "2025-01-01T00:00:00Z",
        "domain": "example.com",
        "testResults": {
            "dns": {"resolvedIPs": ["203.0.113.1"], "resolutionTime": dns},
            "connection": {
                "totalTime": total, "dnsTime": dns, "tcpTime": 20.0, "sslTime": 30.0,
                "ttfb": 40.0, "downloadTime": 5.0, "statusCode": 200,
            },
            "server": {"software": "nginx", "responseSize": size},
            "cdn": {
                "connectionType": kind, "confidence": "high", "provider": "Cloudflare",
                "pop": {"code": "SJC", "confidence": "confirmed", "rawHeader": "1-SJC"},
                "hasProxyHeaders": proxy,
            },
            "ssl": {"issuer": "Let's Encrypt"} if ssl else None,
            "optimization": {"overall": {"score": 88, "grade": "A"}},
        },
    }
    return RunRecord(index, "example.com", True, 150.0, data)


class TestComputeStats(unittest.TestCase):
    def test_basic(self):
        stats = compute_stats([100.0, 200.0, 300.0])
        self.assertEqual(stats.min, 100.0)
        self.assertEqual(stats.max, 300.0)
        self.assertEqual(stats.avg, 200.0)
        self.assertEqual(stats.median, 200.0)
        self.assertEqual(stats.p95, 290.0)
        self.assertEqual(stats.jitter, 100.0)

    def test_empty(self):
        self.assertEqual(compute_stats([]).avg, 0.0)


class TestSummarizeRuns(unittest.TestCase):
    def test_only_successful_runs_count(self):
        records = [
            record(0, 100.0, kind="cdn", ssl=True, proxy=True, size=1000),
            record(1, 300.0, kind="direct", ssl=False, size=3000),
            record(2, 0, success=False),
        ]
        summary = summarize_runs(records)
        self.assertEqual((summary.total, summary.successful, summary.failed), (3, 2, 1))
        self.assertEqual(summary.phase_stats["total"].avg, 200.0)
        self.assertEqual(summary.phase_stats["total"].min, 100.0)
        self.assertEqual(summary.phase_stats["total"].max, 300.0)
        self.assertEqual(summary.avg_response_size, 2000.0)
        self.assertEqual(summary.connection_types, {"cdn": 1, "direct": 1})
        self.assertEqual(summary.ssl_rate, 50.0)
        self.assertEqual(summary.proxy_header_rate, 50.0)

    def test_no_successes(self):
        summary = summarize_runs([record(0, 0, success=False)])
        self.assertEqual(summary.successful, 0)
        self.assertEqual(summary.phase_stats, {})

    def test_ratings(self):
        self.assertEqual(performance_rating(150)[0], "excellent")
        self.assertEqual(performance_rating(200)[0], "good")
        self.assertEqual(performance_rating(999)[0], "fair")
        self.assertEqual(performance_rating(1000)[0], "slow")
        self.assertEqual(dns_rating(49)[0], "excellent")
        self.assertEqual(dns_rating(50)[0], "good")
        self.assertEqual(dns_rating(100)[0], "slow")


class TestApiContract(unittest.TestCase):
    def test_envelope_and_optional_sections(self):
        result = DomainTestResult(domain="example.com", timestamp="2025-01-01T00:00:00Z")
        result.connection.error = "example.com: HTTPS failed: x; HTTP failed: y"
        payload = build_api_payload(result)
        self.assertEqual(set(payload), {"timestamp", "domain", "testResults"})
        tr = payload["testResults"]
        self.assertIsNone(tr["ssl"])
        self.assertIsNone(tr["optimization"])
        self.assertIsNone(tr["multiLocationPing"])
        self.assertNotIn("sslTime", tr["connection"])
        self.assertNotIn("error", tr["dns"])
        self.assertEqual(tr["connection"]["error"], result.connection.error)
        json.dumps(payload)

    def test_ping_results_use_time_key(self):
        result = DomainTestResult(domain="example.com", timestamp="t")
        result.multi_location_ping = MultiLocationResult(
            ping_results=[
                PingOutcome("Tokyo", "Japan", ip="192.0.2.1", elapsed_ms=23.0, success=True),
                PingOutcome("Paris", "France", error="global deadline exceeded"),
            ],
        )
        result.cdn.pop = PoPIdentity(code="NRT", confidence="confirmed", raw_header="NRT57-P2")
        data = result_to_dict(result)
        pings = data["multiLocationPing"]["pingResults"]
        self.assertEqual(pings[0], {"location": "Tokyo", "region": "Japan", "ip": "192.0.2.1",
                                    "time": 23.0, "success": True})
        self.assertEqual(pings[1]["error"], "global deadline exceeded")
        self.assertEqual(data["cdn"]["pop"], {"code": "NRT", "confidence": "confirmed",
                                              "rawHeader": "NRT57-P2"})


class TestRunExports(unittest.TestCase):
    def setUp(self):
        self.records = [record(0, 100.0), record(1, 0, success=False)]
        self.summary = summarize_runs(self.records)

    def test_json(self):
        data = json.loads(export_json(self.records, self.summary))
        self.assertEqual(data["summary"]["total"], 2)
        self.assertEqual(data["summary"]["stats"]["total"]["avg"], 100.0)
        self.assertEqual(len(data["runs"]), 2)
        self.assertEqual(data["runs"][1]["error"], "connection refused")
        self.assertEqual(data["runs"][0]["result"]["domain"], "example.com")

    def test_csv(self):
        rows = list(csv.reader(io.StringIO(export_csv(self.records))))
        self.assertEqual(rows[0], CSV_COLUMNS)
        self.assertEqual(len(rows), 3)
        first = dict(zip(CSV_COLUMNS, rows[1]))
        self.assertEqual(first["total"], "100.0")
        self.assertEqual(first["pop"], "SJC")
        self.assertEqual(first["grade"], "A")
        failed = dict(zip(CSV_COLUMNS, rows[2]))
        self.assertEqual(failed["success"], "False")
        self.assertEqual(failed["total"], "")
        self.assertEqual(failed["error"], "connection refused")


if __name__ == "__main__":
    unittest.main()
