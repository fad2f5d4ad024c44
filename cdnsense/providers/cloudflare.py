"""Cloudflare CDN provider."""

from __future__ import annotations

import re
from typing import Mapping

from cdnsense.models import PoPIdentity
from cdnsense.providers.base import CDNProvider


class CloudflareProvider(CDNProvider):
    """Cloudflare detection via the ``cf-ray`` response header.

    The ray ID ends with the 3-letter IATA code of the serving PoP,
    e.g. ``8a1b2c3d4e5f6789-SJC``.
    """

    @property
    def name(self) -> str:
        return "Cloudflare"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("cf-ray", "cf-connecting-ip", "cf-visitor")

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        raw = headers.get("cf-ray", "")
        if raw:
            match = re.search(r"-([A-Z]{3})$", raw.strip())
            if match:
                return PoPIdentity(
                    code=match.group(1),
                    confidence="confirmed",
                    raw_header=raw,
                )
        return PoPIdentity(confidence="unknown", raw_header=raw or None)
