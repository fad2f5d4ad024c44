"""Header evidence: which CDN and proxy headers a response carries.

All functions expect header names already lower-cased.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from cdnsense.models import HeaderEvidence, PoPIdentity
from cdnsense.providers import get_providers
from cdnsense.providers.base import CDNProvider

logger = logging.getLogger(__name__)

# Headers whose presence means the response passed through a CDN.
CDN_HEADER_NAMES = (
    "cf-connecting-ip",
    "cf-ray",
    "cf-visitor",
    "x-azure-ref",
    "x-amz-cf-id",
    "x-edge-location",
    "ali-cdn-real-ip",
    "x-cdn-request-id",
    "x-cdn-log-id",
    "x-cdn-src-ip",
)

# Headers whose presence means an intermediary proxy touched the response.
PROXY_HEADER_NAMES = (
    "x-forwarded-for",
    "x-real-ip",
    "via",
    "x-forwarded-proto",
)

# Display names for every proxy header we recognise, in report order.
PROXY_TYPES = (
    ("x-forwarded-for", "X-Forwarded-For"),
    ("x-real-ip", "X-Real-IP"),
    ("x-forwarded-proto", "X-Forwarded-Proto"),
    ("x-forwarded-host", "X-Forwarded-Host"),
    ("x-forwarded-port", "X-Forwarded-Port"),
    ("x-forwarded-server", "X-Forwarded-Server"),
    ("via", "Via"),
    ("forwarded", "Forwarded"),
    ("x-proxy-user", "X-Proxy-User"),
    ("proxy-connection", "Proxy-Connection"),
)

# Substring fallbacks, tried in order after the provider registry.
VIA_HINTS = (
    ("cloudflare", "Cloudflare"),
    ("fastly", "Fastly"),
    ("akamai", "Akamai"),
    ("azure", "Azure CDN"),
    ("cloudfront", "Amazon CloudFront"),
    ("google", "Google Cloud CDN"),
)
SERVER_HINTS = (
    ("cloudflare", "Cloudflare"),
    ("netlify", "Netlify"),
    ("vercel", "Vercel"),
    ("fly.io", "Fly.io"),
    ("heroku", "Heroku"),
)
CACHE_HINTS = (
    ("cloudflare", "Cloudflare"),
    ("fastly", "Fastly"),
    ("akamai", "Akamai"),
    ("cloudfront", "Amazon CloudFront"),
)


def pick_headers(headers: Mapping[str, str], names: tuple[str, ...]) -> dict[str, Optional[str]]:
    """Return ``{name: value or None}`` for each of *names*."""
    return {name: headers.get(name) or None for name in names}


def match_provider(headers: Mapping[str, str]) -> Optional[CDNProvider]:
    """Return the highest-priority registered provider matching *headers*."""
    for provider in get_providers():
        if provider.matches(headers):
            return provider
    return None


def _scan(value: str, hints: tuple[tuple[str, str], ...]) -> Optional[str]:
    value = value.lower()
    for needle, name in hints:
        if needle in value:
            return name
    return None


def detect_provider(headers: Mapping[str, str]) -> Optional[str]:
    """Name the CDN or hosting platform that served *headers*, if known.

    The provider registry is consulted first, then ``via``, ``server`` and
    ``x-cache`` are scanned for vendor names.  First match wins.
    """
    provider = match_provider(headers)
    if provider is not None:
        return provider.name

    for header, hints in (("via", VIA_HINTS), ("server", SERVER_HINTS), ("x-cache", CACHE_HINTS)):
        value = headers.get(header)
        if value:
            name = _scan(value, hints)
            if name:
                return name
    return None


def detect_proxy_types(headers: Mapping[str, Optional[str]]) -> list[str]:
    """List the display names of proxy headers present in *headers*."""
    return [label for name, label in PROXY_TYPES if headers.get(name)]


def detect_pop(headers: Mapping[str, str]) -> Optional[PoPIdentity]:
    """Report the edge PoP from the matching provider's headers, if any."""
    provider = match_provider(headers)
    if provider is None:
        return None
    pop = provider.detect_pop(headers)
    if pop.code is None and pop.raw_header is None:
        return None
    return pop


def build_header_evidence(headers: Mapping[str, str]) -> HeaderEvidence:
    """Collect CDN and proxy header facts from a response.

    The provider and PoP are only resolved when at least one CDN header is
    present.
    """
    cdn_headers = pick_headers(headers, CDN_HEADER_NAMES)
    proxy_headers = pick_headers(headers, PROXY_HEADER_NAMES)

    evidence = HeaderEvidence(
        cdn_headers=cdn_headers,
        proxy_headers=proxy_headers,
        is_through_cdn=any(v is not None for v in cdn_headers.values()),
        has_proxy_headers=any(v is not None for v in proxy_headers.values()),
    )
    if evidence.is_through_cdn:
        evidence.provider = detect_provider(headers)
        evidence.pop = detect_pop(headers)
        logger.debug("CDN headers present; provider=%s pop=%s",
                     evidence.provider, evidence.pop.code if evidence.pop else None)
    return evidence
