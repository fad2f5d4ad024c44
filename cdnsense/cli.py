"""CLI entry point for cdnsense."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Optional

import click
import httpx

from cdnsense import __version__
from cdnsense.config import (
    API_CLIENT_TIMEOUT,
    DEFAULT_API_URL,
    DEFAULT_COUNT,
    DEFAULT_HOST,
    DEFAULT_INTERVAL_MS,
    DEFAULT_PORT,
    MULTI_LOCATION_TIMEOUT,
    PROBE_TIMEOUT,
)
from cdnsense.models import RunConfig, RunRecord


def _setup_logging(verbose: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    # Keep client libraries quiet unless they matter.
    for name in ("httpx", "httpcore", "hpack", "h2"):
        logging.getLogger(name).setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """cdnsense: domain delivery-path and CDN inspection.

    Probes a domain over HTTP(S), resolves it from resolvers around the
    world and infers whether it is served through a CDN, a proxy or
    directly from the origin.
    """


@main.command()
@click.option("--host", default=DEFAULT_HOST, envvar="CDNSENSE_HOST", help="Bind address", show_default=True)
@click.option("--port", default=DEFAULT_PORT, envvar="CDNSENSE_PORT", help="Bind port", show_default=True)
@click.option("-v", "--verbose", is_flag=True, envvar="CDNSENSE_VERBOSE", help="Debug logging")
def serve(host: str, port: int, verbose: bool) -> None:
    """Run the HTTP API."""
    from cdnsense.server import run_server

    _setup_logging(verbose)
    run_server(host=host, port=port, log_level="debug" if verbose else "info")


@main.command("test")
@click.option("-d", "--domain", default="example.com", envvar="CDNSENSE_DOMAIN", help="Domain to test", show_default=True)
@click.option("-c", "--count", default=DEFAULT_COUNT, envvar="CDNSENSE_COUNT", help="Number of runs", show_default=True)
@click.option("-i", "--interval", default=DEFAULT_INTERVAL_MS, envvar="CDNSENSE_INTERVAL", help="Delay between runs in ms", show_default=True)
@click.option("-a", "--api-url", default=DEFAULT_API_URL, envvar="CDNSENSE_API_URL", help="test-domain endpoint", show_default=True)
@click.option("--local", is_flag=True, envvar="CDNSENSE_LOCAL", help="Run tests in-process instead of calling the API")
@click.option("--no-multi-location", is_flag=True, envvar="CDNSENSE_NO_MULTI_LOCATION", help="Skip multi-location resolution (--local only)")
@click.option("-t", "--timeout", default=PROBE_TIMEOUT, envvar="CDNSENSE_TIMEOUT", help="Probe timeout in seconds (--local only)", show_default=True)
@click.option("--json", "json_output", is_flag=True, help="Output JSON to stdout")
@click.option("--csv", "csv_output", is_flag=True, help="Output CSV to stdout")
@click.option("-o", "--output", default=None, envvar="CDNSENSE_OUTPUT", help="Write results to file")
@click.option("-v", "--verbose", is_flag=True, envvar="CDNSENSE_VERBOSE", help="Show per-location details and debug logs")
def test_command(
    domain: str,
    count: int,
    interval: int,
    api_url: str,
    local: bool,
    no_multi_location: bool,
    timeout: float,
    json_output: bool,
    csv_output: bool,
    output: Optional[str],
    verbose: bool,
) -> None:
    """Test a domain repeatedly and summarize the runs."""
    from cdnsense.display import console, render_error
    from cdnsense.errors import InvalidInputError
    from cdnsense.pipeline import normalize_domain

    _setup_logging(verbose)

    try:
        domain = normalize_domain(domain)
    except InvalidInputError as exc:
        render_error(str(exc))
        sys.exit(1)
    if count < 1:
        render_error("--count must be at least 1")
        sys.exit(1)

    quiet = json_output or csv_output
    config = RunConfig(
        probe_timeout=timeout,
        multi_location_timeout=MULTI_LOCATION_TIMEOUT,
        multi_location=not no_multi_location,
    )

    try:
        records = asyncio.run(
            _run(domain, count, interval, api_url, local, config, quiet=quiet, verbose=verbose)
        )
    except KeyboardInterrupt:
        if not quiet:
            console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)

    _handle_output(records, json_output, csv_output, output)


async def _run(
    domain: str,
    count: int,
    interval_ms: int,
    api_url: str,
    local: bool,
    config: RunConfig,
    quiet: bool = False,
    verbose: bool = False,
) -> list[RunRecord]:
    """Execute *count* runs, printing each one as it completes."""
    from cdnsense.display import console, render_run

    if not quiet:
        target = "in-process" if local else api_url
        console.print(f"[bold]Testing {domain}: {count} runs, {interval_ms}ms apart ({target})[/bold]")

    records: list[RunRecord] = []
    async with httpx.AsyncClient(timeout=API_CLIENT_TIMEOUT) as client:
        for index in range(count):
            if local:
                record = await _run_local(index, domain, config)
            else:
                record = await _run_remote(client, index, domain, api_url)
            records.append(record)
            if not quiet:
                render_run(record, verbose=verbose)
            if index < count - 1:
                await asyncio.sleep(interval_ms / 1000)
    return records


async def _run_remote(client: httpx.AsyncClient, index: int, domain: str, api_url: str) -> RunRecord:
    """Call the test-domain endpoint once."""
    start = time.perf_counter()
    try:
        response = await client.get(api_url, params={"domain": domain})
    except httpx.HTTPError as exc:
        elapsed = round((time.perf_counter() - start) * 1000, 2)
        return RunRecord(index, domain, False, elapsed, error=f"API request failed: {exc}")
    elapsed = round((time.perf_counter() - start) * 1000, 2)

    try:
        data = response.json()
    except ValueError:
        return RunRecord(index, domain, False, elapsed, error=f"HTTP {response.status_code}: invalid JSON response")

    if response.status_code != 200:
        message = data.get("error") if isinstance(data, dict) else None
        return RunRecord(index, domain, False, elapsed, data, error=message or f"HTTP {response.status_code}")
    return _record_from_payload(index, domain, elapsed, data)


async def _run_local(index: int, domain: str, config: RunConfig) -> RunRecord:
    """Run the domain test in this process."""
    from cdnsense.export import build_api_payload
    from cdnsense.pipeline import run_domain_test

    start = time.perf_counter()
    result = await run_domain_test(domain, config)
    elapsed = round((time.perf_counter() - start) * 1000, 2)
    return _record_from_payload(index, domain, elapsed, build_api_payload(result))


def _record_from_payload(index: int, domain: str, elapsed: float, data: dict) -> RunRecord:
    """A run succeeds only if the probe itself produced a connection."""
    error = ((data.get("testResults") or {}).get("connection") or {}).get("error")
    return RunRecord(index, domain, error is None, elapsed, data, error=error)


def _handle_output(
    records: list[RunRecord],
    json_output: bool,
    csv_output: bool,
    output_file: Optional[str],
) -> None:
    """Handle summary rendering and export."""
    from cdnsense.display import console, render_summary, render_warning
    from cdnsense.export import export_csv, export_json, write_to_file
    from cdnsense.stats import summarize_runs

    summary = summarize_runs(records)

    if json_output or csv_output:
        content = export_json(records, summary) if json_output else export_csv(records)
        if output_file:
            write_to_file(content, output_file)
        else:
            click.echo(content)
        return

    render_summary(summary)
    if summary.successful == 0:
        render_warning(f"All {summary.total} runs failed; check the domain or the API URL")

    # -o without --json/--csv writes JSON
    if output_file:
        write_to_file(export_json(records, summary), output_file)
        console.print(f"\n[dim]Results written to {output_file}[/dim]")


if __name__ == "__main__":
    main()
