"""Exception types raised by cdnsense."""

from __future__ import annotations


class CdnSenseError(Exception):
    """Base class for all cdnsense errors."""


class InvalidInputError(CdnSenseError, ValueError):
    """The caller supplied a missing or malformed domain."""


class DnsResolutionError(CdnSenseError):
    """The domain could not be resolved at all."""

    def __init__(self, domain: str, reason: str) -> None:
        self.domain = domain
        self.reason = reason
        super().__init__(f"DNS resolution failed for {domain}: {reason}")


class ResolverQueryError(CdnSenseError):
    """A single resolver failed to answer a query."""

    def __init__(self, server: str, domain: str, reason: str) -> None:
        self.server = server
        self.domain = domain
        self.reason = reason
        super().__init__(f"{server} could not resolve {domain}: {reason}")


class ResolverHealthCheckFailure(CdnSenseError):
    """Every health-check probe against a resolver failed."""

    def __init__(self, server: str, errors: list[str]) -> None:
        self.server = server
        self.errors = errors
        detail = "; ".join(errors) if errors else "no probe succeeded"
        super().__init__(f"All test domains failed ({detail})")


class HttpProbeError(CdnSenseError):
    """An HTTP(S) probe could not complete."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"{url}: {reason}")
