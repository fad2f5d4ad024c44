import asyncio
import datetime
import os
import ssl
import tempfile
import unittest
from unittest.mock import AsyncMock, patch

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from cdnsense.engine import (
    _add_header,
    _read_chunked_body,
    _read_exact,
    _read_until_eof,
    parse_certificate,
    parse_head,
    probe,
    probe_with_fallback,
)
from cdnsense.errors import HttpProbeError
from cdnsense.models import HttpProbeResult


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def _build_cert(issuer_org=None, sans=("example.com", "www.example.com")):
    key = ec.generate_private_key(ec.SECP256R1())
    attrs = [x509.NameAttribute(NameOID.COMMON_NAME, "Test CA")]
    if issuer_org:
        attrs.insert(0, x509.NameAttribute(NameOID.ORGANIZATION_NAME, issuer_org))
    name = x509.Name(attrs)
    now = datetime.datetime(2025, 1, 1, tzinfo=datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=90))
    )
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(s) for s in sans]), critical=False
        )
    return builder.sign(key, hashes.SHA256()), key


def _self_signed(issuer_org=None, sans=("example.com", "www.example.com")) -> bytes:
    cert, _ = _build_cert(issuer_org, sans)
    return cert.public_bytes(serialization.Encoding.DER)


def _server_context(directory, issuer_org, sans) -> ssl.SSLContext:
    cert, key = _build_cert(issuer_org, sans)
    cert_path = os.path.join(directory, "cert.pem")
    key_path = os.path.join(directory, "key.pem")
    with open(cert_path, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(key_path, "wb") as f:
        f.write(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ctx.load_cert_chain(cert_path, key_path)
    return ctx


class TestHeaderParsing(unittest.TestCase):
    def test_add_header_lowercases_and_joins(self):
        headers = {}
        _add_header(headers, "Set-Cookie", " a=1 ")
        _add_header(headers, "set-cookie", "b=2")
        self.assertEqual(headers, {"set-cookie": "a=1, b=2"})

    def test_parse_head(self):
        block = "HTTP/1.1 301 Moved Permanently\r\nLocation: https://example.com/\r\nServer: nginx"
        version, status, headers = parse_head(block)
        self.assertEqual(version, "HTTP/1.1")
        self.assertEqual(status, 301)
        self.assertEqual(headers["location"], "https://example.com/")
        self.assertEqual(headers["server"], "nginx")

    def test_parse_head_rejects_garbage(self):
        with self.assertRaises(ValueError):
            parse_head("SSH-2.0-OpenSSH_9.6")


class TestBodyReaders(unittest.IsolatedAsyncioTestCase):
    async def test_chunked_body(self):
        reader = _reader(b"llo\r\n6;ext=1\r\n world\r\n0\r\n\r\n")
        body = await _read_chunked_body(reader, b"5\r\nhe")
        self.assertEqual(body, b"hello world")

    async def test_chunked_body_truncated(self):
        body = await _read_chunked_body(_reader(b""), b"5\r\nhello\r\n")
        self.assertEqual(body, b"hello")

    async def test_read_exact_stops_at_length(self):
        body = await _read_exact(_reader(b"3456789"), b"012", 6)
        self.assertEqual(body, b"012345")

    async def test_read_exact_stops_at_eof(self):
        body = await _read_exact(_reader(b"34"), b"012", 10)
        self.assertEqual(body, b"01234")

    async def test_read_until_eof(self):
        body = await _read_until_eof(_reader(b"lo world"), b"hel")
        self.assertEqual(body, b"hello world")

    async def test_read_until_eof_is_capped(self):
        body = await _read_until_eof(_reader(b"x" * 100), b"abc", limit=10)
        self.assertEqual(body, b"abcxxxxxxx")


class TestCertificate(unittest.TestCase):
    def test_organisation_issuer_and_sans(self):
        info = parse_certificate(_self_signed(issuer_org="Example Trust"))
        self.assertEqual(info.issuer, "Example Trust")
        self.assertEqual(info.subject_alt_name, "DNS:example.com, DNS:www.example.com")
        self.assertTrue(info.valid_from.startswith("2025-01-01T00:00:00"))
        self.assertTrue(info.valid_to.startswith("2025-04-01"))

    def test_common_name_fallback_and_no_sans(self):
        info = parse_certificate(_self_signed(sans=()))
        self.assertEqual(info.issuer, "Test CA")
        self.assertEqual(info.subject_alt_name, "N/A")


class TestProbe(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.requests = []

        async def handle(reader, writer):
            head = await reader.readuntil(b"\r\n\r\n")
            self.requests.append(head.decode())
            body = b"<html>hello</html>"
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Server: test-origin\r\n"
                b"X-Forwarded-For: 198.51.100.7\r\n"
                b"Content-Length: " + str(len(body)).encode() + b"\r\n\r\n" + body
            )
            await writer.drain()
            writer.close()

        self.server = await asyncio.start_server(handle, "127.0.0.1", 0)
        self.port = self.server.sockets[0].getsockname()[1]

    async def asyncTearDown(self):
        self.server.close()
        await self.server.wait_closed()

    async def test_plain_http_probe(self):
        result = await probe(f"http://origin.test:{self.port}/", timeout=5, connect_ip="127.0.0.1")
        self.assertEqual(result.status_code, 200)
        self.assertEqual(result.headers["server"], "test-origin")
        self.assertEqual(result.content_length, len(b"<html>hello</html>"))
        self.assertIsNone(result.ssl_time_ms)
        self.assertIsNone(result.certificate)
        self.assertFalse(result.is_https)
        self.assertEqual(result.remote_ip, "127.0.0.1")
        self.assertEqual(result.http_version, "HTTP/1.1")
        self.assertGreaterEqual(result.total_time_ms, result.ttfb_ms)
        self.assertIn(f"Host: origin.test:{self.port}", self.requests[0])
        self.assertIn("Connection: close", self.requests[0])

    async def test_connection_refused_becomes_probe_error(self):
        self.server.close()
        await self.server.wait_closed()
        with self.assertRaises(HttpProbeError) as ctx:
            await probe(f"http://origin.test:{self.port}/", timeout=5, connect_ip="127.0.0.1")
        self.assertTrue(ctx.exception.reason)

    async def test_unsupported_url(self):
        with self.assertRaises(HttpProbeError) as ctx:
            await probe("ftp://example.com/")
        self.assertEqual(ctx.exception.reason, "unsupported URL")

    async def test_timeout(self):
        async def slow(url, connect_ip):
            await asyncio.sleep(5)

        with patch("cdnsense.engine._probe", slow):
            with self.assertRaises(HttpProbeError) as ctx:
                await probe("https://example.com/", timeout=0.05)
        self.assertEqual(ctx.exception.reason, "request timed out after 0.05s")


class TestTlsProbe(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        ctx = _server_context(self.tmp.name, "Origin Trust", ("origin.test",))

        async def handle(reader, writer):
            await reader.readuntil(b"\r\n\r\n")
            writer.write(
                b"HTTP/1.1 404 Not Found\r\n"
                b"Set-Cookie: a=1\r\n"
                b"Set-Cookie: b=2\r\n"
                b"Content-Length: 9\r\n\r\nnot found"
            )
            await writer.drain()
            writer.close()

        self.server = await asyncio.start_server(handle, "127.0.0.1", 0, ssl=ctx)
        self.port = self.server.sockets[0].getsockname()[1]

    async def asyncTearDown(self):
        self.server.close()
        await self.server.wait_closed()
        self.tmp.cleanup()

    async def test_self_signed_origin(self):
        result = await probe(f"https://origin.test:{self.port}/", timeout=5, connect_ip="127.0.0.1")
        self.assertTrue(result.is_https)
        self.assertEqual(result.status_code, 404)
        self.assertEqual(result.headers["set-cookie"], "a=1, b=2")
        self.assertEqual(result.content_length, 9)
        self.assertIsNotNone(result.ssl_time_ms)
        self.assertTrue(result.tls_version.startswith("TLS"))
        self.assertEqual(result.http_version, "HTTP/1.1")
        self.assertEqual(result.certificate.issuer, "Origin Trust")
        self.assertEqual(result.certificate.subject_alt_name, "DNS:origin.test")
        self.assertTrue(result.certificate.valid_from.startswith("2025-01-01"))
        self.assertTrue(result.certificate.valid_to.startswith("2025-04-01"))


class TestProbeWithFallback(unittest.IsolatedAsyncioTestCase):
    async def test_falls_back_to_http(self):
        http_result = HttpProbeResult(url="http://example.com/", status_code=200)
        mock_probe = AsyncMock(side_effect=[
            HttpProbeError("https://example.com/", "connection refused"),
            http_result,
        ])
        with patch("cdnsense.engine.probe", mock_probe):
            result = await probe_with_fallback("example.com", timeout=3, connect_ip="192.0.2.1")
        self.assertIs(result, http_result)
        self.assertEqual(mock_probe.await_args_list[0].args[0], "https://example.com/")
        self.assertEqual(mock_probe.await_args_list[1].args[0], "http://example.com/")
        self.assertEqual(mock_probe.await_args_list[1].kwargs["connect_ip"], "192.0.2.1")

    async def test_https_error_status_is_not_retried(self):
        https_result = HttpProbeResult(url="https://example.com/", status_code=503)
        mock_probe = AsyncMock(return_value=https_result)
        with patch("cdnsense.engine.probe", mock_probe):
            result = await probe_with_fallback("example.com")
        self.assertIs(result, https_result)
        mock_probe.assert_awaited_once()

    async def test_both_schemes_fail(self):
        mock_probe = AsyncMock(side_effect=[
            HttpProbeError("https://example.com/", "handshake failed"),
            HttpProbeError("http://example.com/", "connection reset"),
        ])
        with patch("cdnsense.engine.probe", mock_probe):
            with self.assertRaises(HttpProbeError) as ctx:
                await probe_with_fallback("example.com")
        self.assertEqual(
            ctx.exception.reason,
            "HTTPS failed: handshake failed; HTTP failed: connection reset",
        )


if __name__ == "__main__":
    unittest.main()
