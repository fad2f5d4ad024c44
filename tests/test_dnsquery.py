import asyncio
import socket
import unittest
from unittest.mock import AsyncMock, patch

from cdnsense.dnsquery import first_valid_ip, is_valid_ip, lookup_system, query_domain
from cdnsense.errors import DnsResolutionError, ResolverQueryError


class ScriptedClient:
    """DnsClient that replays a list of answers (or exceptions) in order."""

    def __init__(self, *answers, delay=0.0):
        self.answers = list(answers)
        self.delay = delay
        self.calls = []

    async def resolve(self, server, domain, timeout):
        self.calls.append((server, domain))
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, BaseException):
            raise answer
        return answer


class TestIpValidation(unittest.TestCase):
    def test_ipv4_and_ipv6_literals(self):
        self.assertTrue(is_valid_ip("93.184.216.34"))
        self.assertTrue(is_valid_ip("2606:2800:220:1::1"))
        self.assertTrue(is_valid_ip(" 1.1.1.1 "))

    def test_rejects_names_and_garbage(self):
        self.assertFalse(is_valid_ip("example.com"))
        self.assertFalse(is_valid_ip("300.1.1.1"))
        self.assertFalse(is_valid_ip(""))

    def test_first_valid_ip_skips_cnames(self):
        lines = ["edge.example.net.", "", "203.0.113.7", "203.0.113.8"]
        self.assertEqual(first_valid_ip(lines), "203.0.113.7")

    def test_first_valid_ip_none(self):
        self.assertIsNone(first_valid_ip(["alias.example.net."]))


class TestQueryDomain(unittest.IsolatedAsyncioTestCase):
    async def test_returns_first_ip(self):
        client = ScriptedClient(["cdn.example.net.", "198.51.100.1"])
        outcome = await query_domain("8.8.8.8", "example.com", client=client)
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.ip, "198.51.100.1")
        self.assertIsNone(outcome.error)
        self.assertEqual(client.calls, [("8.8.8.8", "example.com")])

    async def test_answer_without_ip_is_failure(self):
        client = ScriptedClient(["alias.example.net."])
        outcome = await query_domain("8.8.8.8", "example.com", client=client)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "no valid IP address in DNS response")

    async def test_resolver_error_reason_is_kept(self):
        client = ScriptedClient(ResolverQueryError("8.8.8.8", "example.com", "NXDOMAIN"))
        outcome = await query_domain("8.8.8.8", "example.com", client=client)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "NXDOMAIN")

    async def test_retries_until_success(self):
        client = ScriptedClient(
            ResolverQueryError("8.8.8.8", "example.com", "SERVFAIL"),
            ["192.0.2.10"],
        )
        outcome = await query_domain(
            "8.8.8.8", "example.com", max_retries=2, client=client, retry_delay=0
        )
        self.assertTrue(outcome.success)
        self.assertEqual(outcome.ip, "192.0.2.10")
        self.assertEqual(len(client.calls), 2)

    async def test_attempts_are_bounded(self):
        client = ScriptedClient(ResolverQueryError("8.8.8.8", "example.com", "REFUSED"))
        outcome = await query_domain(
            "8.8.8.8", "example.com", max_retries=3, client=client, retry_delay=0
        )
        self.assertFalse(outcome.success)
        self.assertEqual(len(client.calls), 3)

    async def test_zero_retries_still_makes_one_attempt(self):
        client = ScriptedClient(["192.0.2.1"])
        outcome = await query_domain("8.8.8.8", "example.com", max_retries=0, client=client)
        self.assertTrue(outcome.success)
        self.assertEqual(len(client.calls), 1)

    async def test_timeout_becomes_error(self):
        client = ScriptedClient(["192.0.2.1"], delay=1.0)
        outcome = await query_domain("8.8.8.8", "example.com", client=client, timeout=0.05)
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.error, "query timed out after 0.05s")


class TestLookupSystem(unittest.IsolatedAsyncioTestCase):
    async def test_deduplicates_addresses_in_order(self):
        infos = [
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.1", 0)),
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.2", 0)),
            (socket.AF_INET, socket.SOCK_STREAM, 6, "", ("192.0.2.1", 0)),
        ]
        loop = asyncio.get_running_loop()
        with patch.object(loop, "getaddrinfo", AsyncMock(return_value=infos)):
            addresses, elapsed = await lookup_system("example.com")
        self.assertEqual(addresses, ["192.0.2.1", "192.0.2.2"])
        self.assertGreaterEqual(elapsed, 0)

    async def test_failure_raises_dns_resolution_error(self):
        loop = asyncio.get_running_loop()
        error = socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        with patch.object(loop, "getaddrinfo", AsyncMock(side_effect=error)):
            with self.assertRaises(DnsResolutionError) as ctx:
                await lookup_system("does-not-exist.invalid")
        self.assertEqual(ctx.exception.domain, "does-not-exist.invalid")
        self.assertIn("does-not-exist.invalid", str(ctx.exception))

    async def test_empty_answer_raises(self):
        loop = asyncio.get_running_loop()
        with patch.object(loop, "getaddrinfo", AsyncMock(return_value=[])):
            with self.assertRaises(DnsResolutionError):
                await lookup_system("example.com")


if __name__ == "__main__":
    unittest.main()
