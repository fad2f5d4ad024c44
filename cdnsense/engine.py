"""HTTP probe engine for cdnsense.

Times one GET request phase by phase:
  TCP -> TLS -> TTFB -> Download

Each phase is timed with time.perf_counter() for monotonic,
high-resolution measurements.  After TLS, the existing socket is
reused for the HTTP request (h2 or HTTP/1.1) so that TTFB reflects
only application-level latency, not a redundant TCP+TLS handshake.

Certificates are not validated, but the peer certificate is still
captured and summarised so callers can report on it.

Public API:
    probe               -- time a single request to a URL
    probe_with_fallback -- HTTPS first, plain HTTP if HTTPS fails outright
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import h2.config
import h2.connection
import h2.events
from cryptography import x509
from cryptography.x509.oid import ExtensionOID, NameOID

from cdnsense.config import MAX_BODY_BYTES, PROBE_TIMEOUT, USER_AGENT
from cdnsense.errors import HttpProbeError
from cdnsense.models import CertificateInfo, HttpProbeResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Engine-internal HTTP result
# ---------------------------------------------------------------------------

@dataclass
class HttpResult:
    """Lightweight container for the HTTP response collected on the raw socket."""

    status_code: int = 0
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    http_version: str = ""
    first_byte_at: float = 0.0


def _add_header(headers: dict[str, str], name: str, value: str) -> None:
    """Store a header under its lower-cased name, joining repeats with ", "."""
    key = name.strip().lower()
    value = value.strip()
    if key in headers:
        headers[key] = f"{headers[key]}, {value}"
    else:
        headers[key] = value


# ---------------------------------------------------------------------------
# TCP connect
# ---------------------------------------------------------------------------

async def _measure_tcp(
    host: str,
    port: int,
) -> tuple[asyncio.StreamReader, asyncio.StreamWriter, float]:
    """Open a raw TCP connection to *host*:*port* and return (reader, writer, ms).

    The caller is responsible for closing the writer when done.
    """
    t0 = time.perf_counter()
    reader, writer = await asyncio.open_connection(host, port)
    elapsed_ms = (time.perf_counter() - t0) * 1000.0
    return reader, writer, round(elapsed_ms, 3)


# ---------------------------------------------------------------------------
# TLS upgrade
# ---------------------------------------------------------------------------

def _build_ssl_context() -> ssl.SSLContext:
    """Build a context that offers h2 and accepts any server certificate."""
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.set_alpn_protocols(["h2", "http/1.1"])
    return ctx


async def _measure_tls(
    writer: asyncio.StreamWriter,
    hostname: str,
) -> tuple[float, Optional[str]]:
    """Upgrade an existing TCP connection to TLS via ``start_tls``.

    Returns (elapsed_ms, tls_version_string | None).
    """
    ctx = _build_ssl_context()

    t0 = time.perf_counter()
    await writer.start_tls(ctx, server_hostname=hostname)
    elapsed_ms = (time.perf_counter() - t0) * 1000.0

    ssl_obj = writer.get_extra_info("ssl_object")
    tls_version = ssl_obj.version() if ssl_obj is not None else None
    return round(elapsed_ms, 3), tls_version


def _detect_alpn(writer: asyncio.StreamWriter) -> Optional[str]:
    """Extract the negotiated ALPN protocol from the TLS socket.

    Returns ``"h2"``, ``"http/1.1"``, or ``None``.
    """
    ssl_obj = writer.get_extra_info("ssl_object")
    if ssl_obj is not None:
        return ssl_obj.selected_alpn_protocol()
    return None


# ---------------------------------------------------------------------------
# Certificate summary
# ---------------------------------------------------------------------------

def _peer_certificate(writer: asyncio.StreamWriter) -> Optional[CertificateInfo]:
    """Summarise the server certificate of a TLS connection, if any.

    ``getpeercert()`` returns an empty dict when verification is disabled,
    so the DER form is parsed instead.
    """
    ssl_obj = writer.get_extra_info("ssl_object")
    if ssl_obj is None:
        return None
    der = ssl_obj.getpeercert(binary_form=True)
    if not der:
        return None
    try:
        return parse_certificate(der)
    except ValueError as exc:
        logger.debug("Could not parse peer certificate: %s", exc)
        return None


def parse_certificate(der: bytes) -> CertificateInfo:
    """Build a :class:`CertificateInfo` from a DER-encoded certificate.

    The issuer is the organisation name, falling back to the common name.
    Subject alternative names are rendered as ``"DNS:a, DNS:b"``.
    """
    cert = x509.load_der_x509_certificate(der)

    issuer = "Unknown"
    for oid in (NameOID.ORGANIZATION_NAME, NameOID.COMMON_NAME):
        attrs = cert.issuer.get_attributes_for_oid(oid)
        if attrs:
            issuer = str(attrs[0].value)
            break

    try:
        ext = cert.extensions.get_extension_for_oid(ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
    except x509.ExtensionNotFound:
        san = "N/A"
    else:
        names = [f"DNS:{name}" for name in ext.value.get_values_for_type(x509.DNSName)]
        names += [f"IP Address:{ip}" for ip in ext.value.get_values_for_type(x509.IPAddress)]
        san = ", ".join(names) or "N/A"

    return CertificateInfo(
        issuer=issuer,
        valid_from=cert.not_valid_before_utc.isoformat(),
        valid_to=cert.not_valid_after_utc.isoformat(),
        subject_alt_name=san,
    )


# ---------------------------------------------------------------------------
# HTTP/2 on the existing TLS socket
# ---------------------------------------------------------------------------

async def _request_h2(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    authority: str,
    path: str,
) -> tuple[float, HttpResult]:
    """Send a GET over HTTP/2 via the h2 library.

    Returns (request_sent_at, HttpResult).
    """
    config = h2.config.H2Configuration(client_side=True, header_encoding="utf-8")
    conn = h2.connection.H2Connection(config=config)

    conn.initiate_connection()
    writer.write(conn.data_to_send())
    await writer.drain()

    # Wait for server SETTINGS (not timed as TTFB)
    preface_data = await reader.read(65535)
    if not preface_data:
        raise ConnectionError("connection closed during HTTP/2 preface")
    conn.receive_data(preface_data)
    writer.write(conn.data_to_send())
    await writer.drain()

    headers = [
        (":method", "GET"),
        (":path", path),
        (":scheme", "https"),
        (":authority", authority),
        ("user-agent", USER_AGENT),
        ("accept", "*/*"),
    ]

    stream_id = conn.get_next_available_stream_id()
    conn.send_headers(stream_id, headers, end_stream=True)
    t_send = time.perf_counter()
    writer.write(conn.data_to_send())
    await writer.drain()

    result = HttpResult(http_version="HTTP/2")
    body_chunks: list[bytes] = []
    stream_ended = False

    while not stream_ended:
        data = await reader.read(65535)
        if not data:
            break
        if not result.first_byte_at:
            result.first_byte_at = time.perf_counter()

        for event in conn.receive_data(data):
            if isinstance(event, h2.events.ResponseReceived):
                for name, value in event.headers:
                    if name == ":status":
                        result.status_code = int(value)
                    elif not name.startswith(":"):
                        _add_header(result.headers, name, value)

            elif isinstance(event, h2.events.DataReceived):
                body_chunks.append(event.data)
                conn.acknowledge_received_data(
                    event.flow_controlled_length, event.stream_id,
                )

            elif isinstance(event, h2.events.StreamEnded):
                stream_ended = True

            elif isinstance(event, h2.events.StreamReset):
                raise ConnectionError(
                    f"HTTP/2 stream reset: error code {event.error_code}"
                )

        pending = conn.data_to_send()
        if pending:
            writer.write(pending)
            await writer.drain()

    if result.status_code == 0:
        raise ConnectionError("connection closed before HTTP/2 response")
    result.body = b"".join(body_chunks)
    return t_send, result


# ---------------------------------------------------------------------------
# HTTP/1.1 on the existing socket
# ---------------------------------------------------------------------------

async def _request_h1(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    authority: str,
    path: str,
) -> tuple[float, HttpResult]:
    """Send a raw HTTP/1.1 GET and read the full response.

    Returns (request_sent_at, HttpResult).
    """
    request_lines = [
        f"GET {path} HTTP/1.1",
        f"Host: {authority}",
        f"User-Agent: {USER_AGENT}",
        "Accept: */*",
        "Connection: close",
        "",
        "",
    ]
    request_bytes = "\r\n".join(request_lines).encode()

    t_send = time.perf_counter()
    writer.write(request_bytes)
    await writer.drain()

    result = HttpResult()

    # Read until we get the full header block (\r\n\r\n)
    header_buf = b""
    while b"\r\n\r\n" not in header_buf:
        chunk = await reader.read(4096)
        if not chunk:
            raise ConnectionError("connection closed before response headers")
        if not result.first_byte_at:
            result.first_byte_at = time.perf_counter()
        header_buf += chunk

    header_end = header_buf.index(b"\r\n\r\n")
    header_block = header_buf[:header_end].decode("iso-8859-1")
    body_so_far = header_buf[header_end + 4:]

    result.http_version, result.status_code, result.headers = parse_head(header_block)

    content_length = result.headers.get("content-length")
    transfer_encoding = result.headers.get("transfer-encoding", "").lower()

    if "chunked" in transfer_encoding:
        result.body = await _read_chunked_body(reader, body_so_far)
    elif content_length is not None:
        result.body = await _read_exact(reader, body_so_far, int(content_length.split(",")[0]))
    else:
        result.body = await _read_until_eof(reader, body_so_far)

    return t_send, result


def parse_head(header_block: str) -> tuple[str, int, dict[str, str]]:
    """Parse an HTTP/1.x status line and header block.

    Returns (http_version, status_code, headers).

    Raises
    ------
    ValueError
        If the status line is malformed.
    """
    lines = header_block.split("\r\n")
    parts = lines[0].split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise ValueError(f"malformed status line: {lines[0]!r}")
    http_version = parts[0]
    status_code = int(parts[1])

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if ":" in line:
            name, _, value = line.partition(":")
            _add_header(headers, name, value)
    return http_version, status_code, headers


async def _read_exact(
    reader: asyncio.StreamReader,
    initial_data: bytes,
    length: int,
) -> bytes:
    """Read a body of known length, stopping early if the peer closes."""
    remaining = length - len(initial_data)
    body_parts = [initial_data]
    while remaining > 0:
        chunk = await reader.read(min(remaining, 65535))
        if not chunk:
            break
        body_parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(body_parts)[:length]


async def _read_until_eof(
    reader: asyncio.StreamReader,
    initial_data: bytes,
    limit: int = MAX_BODY_BYTES,
) -> bytes:
    """Read a body with no framing until the peer closes, keeping at most *limit* bytes."""
    body_parts = [initial_data]
    received = len(initial_data)
    while received < limit:
        chunk = await reader.read(65535)
        if not chunk:
            break
        body_parts.append(chunk)
        received += len(chunk)
    return b"".join(body_parts)[:limit]


async def _read_chunked_body(
    reader: asyncio.StreamReader,
    initial_data: bytes,
) -> bytes:
    """Read a chunked transfer-encoded body."""
    buf = initial_data
    body_parts: list[bytes] = []

    while True:
        while b"\r\n" not in buf:
            chunk = await reader.read(4096)
            if not chunk:
                return b"".join(body_parts)
            buf += chunk

        line_end = buf.index(b"\r\n")
        size_str = buf[:line_end].decode(errors="replace").split(";")[0].strip()
        buf = buf[line_end + 2:]

        chunk_size = int(size_str, 16)
        if chunk_size == 0:
            break

        needed = chunk_size + 2  # data + \r\n
        while len(buf) < needed:
            data = await reader.read(min(needed - len(buf), 65535))
            if not data:
                break
            buf += data

        body_parts.append(buf[:chunk_size])
        buf = buf[chunk_size + 2:]

    return b"".join(body_parts)


def _safe_close_writer(writer: asyncio.StreamWriter | None) -> None:
    """Close a stream writer without raising on already-closed transports."""
    if writer is None:
        return
    try:
        writer.close()
    except (OSError, RuntimeError):
        pass


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def _probe(url: str, connect_ip: Optional[str]) -> HttpProbeResult:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise HttpProbeError(url, "unsupported URL")
    hostname = parsed.hostname
    is_https = parsed.scheme == "https"
    port = parsed.port or (443 if is_https else 80)
    authority = hostname if parsed.port is None else f"{hostname}:{port}"
    path = parsed.path or "/"
    if parsed.query:
        path = f"{path}?{parsed.query}"

    result = HttpProbeResult(url=url)
    writer: asyncio.StreamWriter | None = None

    try:
        t_start = time.perf_counter()

        # ---- TCP ----
        reader, writer, result.tcp_time_ms = await _measure_tcp(connect_ip or hostname, port)
        peer = writer.get_extra_info("peername")
        result.remote_ip = peer[0] if peer else connect_ip

        # ---- TLS ----
        alpn: Optional[str] = None
        if is_https:
            result.ssl_time_ms, result.tls_version = await _measure_tls(writer, hostname)
            alpn = _detect_alpn(writer)
            result.certificate = _peer_certificate(writer)

        # ---- TTFB + Download ----
        if alpn == "h2":
            t_send, http = await _request_h2(reader, writer, authority, path)
        else:
            t_send, http = await _request_h1(reader, writer, authority, path)
        t_end = time.perf_counter()
    finally:
        _safe_close_writer(writer)

    first_byte_at = http.first_byte_at or t_end
    result.status_code = http.status_code
    result.headers = http.headers
    result.http_version = http.http_version
    result.content_length = len(http.body)
    result.ttfb_ms = round((first_byte_at - t_send) * 1000.0, 3)
    result.download_time_ms = round((t_end - first_byte_at) * 1000.0, 3)
    result.total_time_ms = round((t_end - t_start) * 1000.0, 3)
    return result


async def probe(
    url: str,
    timeout: float = PROBE_TIMEOUT,
    connect_ip: Optional[str] = None,
) -> HttpProbeResult:
    """Issue one timed GET to *url*.

    Parameters
    ----------
    url:
        Absolute ``http://`` or ``https://`` URL.
    timeout:
        Overall budget in seconds for connect, handshake and body.
    connect_ip:
        Pre-resolved address to connect to.  The hostname is still used
        for SNI and the Host header.  When omitted the hostname is resolved
        as part of the TCP phase.

    Raises
    ------
    HttpProbeError
        If the connection, handshake or response fails or times out.
        HTTP error statuses are returned, not raised.
    """
    try:
        return await asyncio.wait_for(_probe(url, connect_ip), timeout=timeout)
    except HttpProbeError:
        raise
    except asyncio.TimeoutError as exc:
        raise HttpProbeError(url, f"request timed out after {timeout}s") from exc
    except Exception as exc:
        logger.debug("Probe of %s failed: %r", url, exc)
        raise HttpProbeError(url, str(exc) or type(exc).__name__) from exc


async def probe_with_fallback(
    domain: str,
    timeout: float = PROBE_TIMEOUT,
    connect_ip: Optional[str] = None,
) -> HttpProbeResult:
    """Probe ``https://domain/``, retrying once over plain HTTP on failure.

    A 4xx/5xx response over HTTPS counts as success and is returned as is.

    Raises
    ------
    HttpProbeError
        When both schemes fail.
    """
    try:
        return await probe(f"https://{domain}/", timeout=timeout, connect_ip=connect_ip)
    except HttpProbeError as https_exc:
        logger.debug("HTTPS probe of %s failed (%s); trying HTTP", domain, https_exc.reason)
        try:
            return await probe(f"http://{domain}/", timeout=timeout, connect_ip=connect_ip)
        except HttpProbeError as http_exc:
            raise HttpProbeError(
                domain,
                f"HTTPS failed: {https_exc.reason}; HTTP failed: {http_exc.reason}",
            ) from http_exc
