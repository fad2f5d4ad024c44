"""Rich terminal output for cdnsense."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from cdnsense.config import PHASE_LABELS, PHASE_NAMES, PHASE_THRESHOLDS
from cdnsense.models import LatencyStats, RunRecord, RunSummary
from cdnsense.stats import dns_rating, performance_rating

console = Console()

DASH = "—"

CONNECTION_TYPE_LABELS = {
    "cdn": "CDN",
    "direct": "Direct",
    "proxy": "Proxy",
    "mixed": "Mixed",
}
STATUS_STYLES = {
    "excellent": "green",
    "good": "yellow",
    "needs_improvement": "dark_orange",
    "critical": "red",
}


def _color_for_ms(value: float, phase: str = "total") -> str:
    """Return a Rich color name based on latency value and phase thresholds."""
    thresholds = PHASE_THRESHOLDS.get(phase, PHASE_THRESHOLDS["total"])
    if value <= thresholds["fast"]:
        return "green"
    elif value <= thresholds["medium"]:
        return "yellow"
    return "red"


def _fmt_ms(value: Optional[float], phase: str = "total", colorize: bool = True) -> Text:
    """Format a millisecond value with optional color."""
    if value is None:
        return Text(DASH, style="dim")
    text = f"{value:.2f}ms"
    if colorize:
        return Text(text, style=_color_for_ms(value, phase))
    return Text(text)


def _fmt_bytes(size: float) -> str:
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}".replace(".00 ", " ")
        value /= 1024
    return f"{size} B"


def _status_badge(status_code: int) -> Text:
    if 200 <= status_code < 300:
        return Text(f"{status_code} OK", style="green")
    if 300 <= status_code < 400:
        return Text(f"{status_code} redirect", style="cyan")
    if 400 <= status_code < 500:
        return Text(f"{status_code} client error", style="red")
    return Text(f"{status_code} server error", style="bold red")


# ── Per-run rendering ─────────────────────────────────────────────────


def _build_timing_table(tr: dict) -> Table:
    conn = tr.get("connection") or {}
    values = {
        "dns": (tr.get("dns") or {}).get("resolutionTime"),
        "tcp": conn.get("tcpTime"),
        "ssl": conn.get("sslTime"),
        "ttfb": conn.get("ttfb"),
        "download": conn.get("downloadTime"),
        "total": conn.get("totalTime"),
    }
    table = Table(show_header=True, border_style="bright_black", expand=False, header_style="bold")
    for phase in PHASE_NAMES:
        table.add_column(PHASE_LABELS.get(phase, phase.upper()), justify="right")
    table.add_row(*[_fmt_ms(values[p], p) for p in PHASE_NAMES])
    return table


def _render_headers(title: str, headers: dict) -> None:
    present = {k: v for k, v in headers.items() if v}
    if not present:
        return
    console.print(f"\n[bold]{title}[/bold]")
    for key, value in present.items():
        console.print(f"  [dim]{key}:[/dim] {value}")


def _render_multi_location(ml: dict) -> None:
    geo = ml.get("geographicDistribution") or {}
    health = ml.get("healthStats") or {}
    console.print(
        f"\n[bold]Multi-location DNS[/bold] [dim]({health.get('healthyServers', 0)}/"
        f"{health.get('totalServers', 0)} resolvers healthy, "
        f"{geo.get('coverage', '')} coverage {geo.get('coveragePercent', 0)}%)[/dim]"
    )
    console.print(f"  {ml.get('analysis', '')}")

    table = Table(show_header=True, border_style="bright_black", expand=False, header_style="bold")
    table.add_column("Location", style="bold")
    table.add_column("Region")
    table.add_column("IP")
    table.add_column("Time", justify="right")
    for p in ml.get("pingResults") or []:
        if p.get("success"):
            table.add_row(p["location"], p["region"], p["ip"], _fmt_ms(p.get("time"), "dns"))
        else:
            table.add_row(
                p["location"], p["region"],
                Text(p.get("error") or "failed", style="red"), Text(DASH, style="dim"),
            )
    console.print(table)


def _render_optimization(opt: dict) -> None:
    overall = opt.get("overall") or {}
    console.print(
        f"\n[bold]Optimization[/bold]  score [bold]{overall.get('score')}[/bold]"
        f"  grade [bold]{overall.get('grade')}[/bold]"
    )
    for key, label in (("cdn", "CDN"), ("performance", "Performance"), ("ssl", "SSL")):
        cat = opt.get(key) or {}
        style = STATUS_STYLES.get(cat.get("status", ""), "")
        console.print(f"  {label}: [{style}]{cat.get('status')}[/{style}] [dim]{cat.get('reasoning', '')}[/dim]")
        for s in sorted(cat.get("suggestions") or [], key=lambda s: s["level"])[:3]:
            console.print(f"    [dim]L{s['level']}[/dim] {s['text']}")
    for rec in overall.get("recommendations") or []:
        console.print(f"  • {rec}")


def render_run(record: RunRecord, verbose: bool = False) -> None:
    """Print the report for a single test run."""
    console.print()
    console.rule(f"[bold]Run {record.index + 1}: {record.domain}[/bold]", align="left")

    if not record.success:
        console.print(f"[red]Test failed:[/red] {record.error}")
        return

    tr = record.test_results
    conn = tr.get("connection") or {}
    server = tr.get("server") or {}
    cdn = tr.get("cdn") or {}
    dns = tr.get("dns") or {}

    console.print(Text.assemble("API time: ", _fmt_ms(record.api_time_ms, colorize=False)))
    console.print(Text.assemble("HTTP status: ", _status_badge(conn.get("statusCode", 0))))
    console.print(_build_timing_table(tr))

    kind = cdn.get("connectionType")
    info = [
        f"Size: {_fmt_bytes(server.get('responseSize') or 0)}",
        f"Server: {server.get('software') or 'Unknown'}",
        f"Connection: [bold]{CONNECTION_TYPE_LABELS.get(kind, kind or DASH)}[/bold]",
        f"Confidence: {cdn.get('confidence') or DASH}",
        f"Provider: {cdn.get('provider') or 'none'}",
    ]
    pop = cdn.get("pop") or {}
    if pop.get("code"):
        info.append(f"PoP: {pop['code']}")
    info.append(f"Proxy headers: {'detected' if cdn.get('hasProxyHeaders') else 'none'}")
    console.print("  " + " | ".join(info))

    if dns.get("resolvedIPs"):
        console.print(f"  [dim]Resolved IPs: {', '.join(dns['resolvedIPs'])}[/dim]")

    if cdn.get("analysis"):
        console.print("\n[bold]Analysis[/bold]")
        for line in cdn["analysis"]:
            console.print(f"  • {line}")

    if cdn.get("isThroughCDN"):
        _render_headers("CDN headers", cdn.get("headers") or {})
    if cdn.get("hasProxyHeaders"):
        _render_headers("Proxy headers", cdn.get("proxyHeaders") or {})

    ssl = tr.get("ssl")
    if ssl:
        console.print("\n[bold]SSL certificate[/bold]")
        console.print(f"  Issuer: {ssl.get('issuer')}")
        console.print(f"  Valid from: {ssl.get('validFrom')}")
        console.print(f"  Valid to: {ssl.get('validTo')}")

    if verbose and tr.get("multiLocationPing"):
        _render_multi_location(tr["multiLocationPing"])
    if tr.get("optimization"):
        _render_optimization(tr["optimization"])


# ── Summary ───────────────────────────────────────────────────────────


def _build_stats_table(phase_stats: dict[str, LatencyStats]) -> Table:
    """Build the per-phase statistics table."""
    table = Table(
        show_header=True,
        border_style="bright_black",
        expand=False,
        pad_edge=True,
        header_style="bold",
    )
    table.add_column("Phase", style="bold", min_width=7)
    for col in ("Min", "Avg", "Median", "P95", "Max", "Jitter"):
        table.add_column(col, justify="right", min_width=7)

    for phase in PHASE_NAMES:
        stats = phase_stats.get(phase)
        if not stats:
            continue
        table.add_row(
            PHASE_LABELS.get(phase, phase.upper()),
            _fmt_ms(stats.min, phase),
            _fmt_ms(stats.avg, phase),
            _fmt_ms(stats.median, phase),
            _fmt_ms(stats.p95, phase),
            _fmt_ms(stats.max, phase),
            _fmt_ms(stats.jitter, phase),
            end_section=phase == "download",
        )
    return table


def render_summary(summary: RunSummary) -> None:
    """Print the aggregate report across all runs."""
    console.print()
    console.rule("[bold]Summary[/bold]", align="left")

    if summary.total == 0:
        console.print("[dim]No test results.[/dim]")
        return

    console.print(
        f"Runs: {summary.total}  [green]succeeded: {summary.successful}[/green]"
        f"  [red]failed: {summary.failed}[/red]"
    )
    if summary.successful == 0:
        return

    console.print(_build_stats_table(summary.phase_stats))
    console.print(f"  Average response size: {_fmt_bytes(summary.avg_response_size)}")

    console.print("\n[bold]Connection types[/bold]")
    for kind in ("cdn", "direct", "proxy", "mixed"):
        count = summary.connection_types.get(kind, 0)
        pct = count / summary.successful * 100
        console.print(f"  {CONNECTION_TYPE_LABELS[kind]}: {count}/{summary.successful} ({pct:.1f}%)")

    console.print(
        f"\nProxy headers: {summary.proxy_header_count}/{summary.successful}"
        f" ({summary.proxy_header_rate:.1f}%)"
    )
    console.print(
        f"SSL enabled: {summary.ssl_count}/{summary.successful} ({summary.ssl_rate:.1f}%)"
    )

    console.print("\n[bold]Rating[/bold]")
    total = summary.phase_stats.get("total")
    if total:
        label, color = performance_rating(total.avg)
        console.print(f"  Response time: [{color}]{label}[/{color}] (avg {total.avg:.2f}ms)")
    dns = summary.phase_stats.get("dns")
    if dns:
        label, color = dns_rating(dns.avg)
        console.print(f"  DNS resolution: [{color}]{label}[/{color}] (avg {dns.avg:.2f}ms)")


def render_error(message: str) -> None:
    """Display an error message."""
    console.print(f"[bold red]Error:[/bold red] {message}")


def render_warning(message: str) -> None:
    """Display a warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")
