import json
import unittest
from unittest.mock import AsyncMock, patch

import httpx
from click.testing import CliRunner

from cdnsense.cli import _record_from_payload, _run_remote, main
from cdnsense.models import DomainTestResult, RunRecord


def ok_payload(domain="example.com"):
    return {
        "timestamp": "2025-01-01T00:00:00Z",
        "domain": domain,
        "testResults": {
            "dns": {"resolvedIPs": ["203.0.113.1"], "resolutionTime": 5.0},
            "connection": {"totalTime": 120.0, "tcpTime": 20.0, "ttfb": 50.0,
                           "downloadTime": 5.0, "statusCode": 200},
            "server": {"software": "nginx", "responseSize": 512},
            "cdn": {"connectionType": "direct", "confidence": "high", "hasProxyHeaders": False},
            "ssl": None,
        },
    }


class TestRecordFromPayload(unittest.TestCase):
    def test_success(self):
        record = _record_from_payload(0, "example.com", 150.0, ok_payload())
        self.assertTrue(record.success)
        self.assertIsNone(record.error)
        self.assertEqual(record.test_results["connection"]["statusCode"], 200)

    def test_connection_error_is_failure(self):
        payload = ok_payload()
        payload["testResults"]["connection"]["error"] = "example.com: HTTPS failed: x; HTTP failed: y"
        record = _record_from_payload(1, "example.com", 150.0, payload)
        self.assertFalse(record.success)
        self.assertEqual(record.error, "example.com: HTTPS failed: x; HTTP failed: y")


class TestRunRemote(unittest.IsolatedAsyncioTestCase):
    async def _call(self, handler):
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            return await _run_remote(client, 0, "example.com", "http://api.test/api/test-domain")

    async def test_ok(self):
        seen = []

        def handler(request):
            seen.append(request.url.params["domain"])
            return httpx.Response(200, json=ok_payload())

        record = await self._call(handler)
        self.assertTrue(record.success)
        self.assertEqual(seen, ["example.com"])
        self.assertGreaterEqual(record.api_time_ms, 0)

    async def test_api_error_body(self):
        record = await self._call(lambda r: httpx.Response(400, json={"error": "Domain parameter is required"}))
        self.assertFalse(record.success)
        self.assertEqual(record.error, "Domain parameter is required")

    async def test_non_json_response(self):
        record = await self._call(lambda r: httpx.Response(502, text="Bad Gateway"))
        self.assertFalse(record.success)
        self.assertEqual(record.error, "HTTP 502: invalid JSON response")

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        record = await self._call(handler)
        self.assertFalse(record.success)
        self.assertTrue(record.error.startswith("API request failed"))


class TestTestCommand(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()

    def test_remote_json_output(self):
        remote = AsyncMock(side_effect=lambda client, index, domain, url: RunRecord(
            index, domain, True, 100.0, ok_payload(domain)))
        with patch("cdnsense.cli._run_remote", remote):
            result = self.runner.invoke(
                main, ["test", "-d", "https://example.com/", "-c", "3", "-i", "0", "--json"]
            )
        self.assertEqual(result.exit_code, 0, result.output)
        data = json.loads(result.output)
        self.assertEqual(data["summary"]["total"], 3)
        self.assertEqual(data["summary"]["successful"], 3)
        self.assertEqual(data["summary"]["connectionTypes"], {"direct": 3})
        self.assertEqual([r["index"] for r in data["runs"]], [0, 1, 2])
        self.assertEqual(remote.await_count, 3)
        self.assertEqual(remote.await_args.args[2], "example.com")

    def test_local_csv_output(self):
        local = AsyncMock(side_effect=lambda domain, config: DomainTestResult(domain=domain, timestamp="t"))
        with patch("cdnsense.pipeline.run_domain_test", local):
            result = self.runner.invoke(
                main, ["test", "-d", "example.com", "-c", "1", "--local", "--no-multi-location", "--csv"]
            )
        self.assertEqual(result.exit_code, 0, result.output)
        lines = result.output.strip().splitlines()
        self.assertTrue(lines[0].startswith("run,domain,success"))
        self.assertEqual(len(lines), 2)
        config = local.await_args.args[1]
        self.assertFalse(config.multi_location)

    def test_env_var_count(self):
        remote = AsyncMock(return_value=RunRecord(0, "example.com", True, 1.0, ok_payload()))
        with patch("cdnsense.cli._run_remote", remote):
            result = self.runner.invoke(
                main, ["test", "-i", "0", "--json"], env={"CDNSENSE_COUNT": "2"}
            )
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(remote.await_count, 2)

    def test_output_file(self):
        remote = AsyncMock(return_value=RunRecord(0, "example.com", True, 1.0, ok_payload()))
        with self.runner.isolated_filesystem():
            with patch("cdnsense.cli._run_remote", remote):
                result = self.runner.invoke(
                    main, ["test", "-c", "1", "--json", "-o", "runs.json"]
                )
            self.assertEqual(result.exit_code, 0, result.output)
            with open("runs.json") as f:
                self.assertEqual(json.load(f)["summary"]["total"], 1)

    def test_all_failed_runs_warn(self):
        remote = AsyncMock(return_value=RunRecord(0, "example.com", False, 1.0, error="HTTP 502"))
        with patch("cdnsense.cli._run_remote", remote):
            result = self.runner.invoke(main, ["test", "-c", "1"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("All 1 runs failed", result.output)

    def test_empty_domain_is_rejected(self):
        result = self.runner.invoke(main, ["test", "-d", "https://", "--json"])
        self.assertEqual(result.exit_code, 1)

    def test_zero_count_is_rejected(self):
        result = self.runner.invoke(main, ["test", "-c", "0", "--json"])
        self.assertEqual(result.exit_code, 1)


class TestServeCommand(unittest.TestCase):
    def test_serve_starts_uvicorn(self):
        with patch("cdnsense.server.run_server") as run_server:
            result = CliRunner().invoke(main, ["serve", "--host", "0.0.0.0", "--port", "9000"])
        self.assertEqual(result.exit_code, 0, result.output)
        run_server.assert_called_once_with(host="0.0.0.0", port=9000, log_level="info")


if __name__ == "__main__":
    unittest.main()
