"""Akamai CDN provider."""

from __future__ import annotations

import re
from typing import Mapping

from cdnsense.models import PoPIdentity
from cdnsense.providers.base import CDNProvider


class AkamaiProvider(CDNProvider):
    """Akamai detection via Akamai request headers or any mention of Akamai.

    The ``x-cache`` header may contain an edge hostname from which a PoP
    code can sometimes be extracted.  This is best-effort, so the
    confidence stays ``"unknown"`` even when a code is found.
    """

    @property
    def name(self) -> str:
        return "Akamai"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("x-akamai-request-id", "x-akamai-cache-status")

    @property
    def markers(self) -> tuple[str, ...]:
        return ("akamai",)

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        x_cache = headers.get("x-cache", "")
        if x_cache:
            match = re.search(r"\b([a-z]{3})\d*\.\w+\.akamaiedge\.net\b", x_cache, re.IGNORECASE)
            if match:
                return PoPIdentity(
                    code=match.group(1).upper(),
                    confidence="unknown",
                    raw_header=x_cache,
                )
        return PoPIdentity(confidence="unknown", raw_header=x_cache or None)
