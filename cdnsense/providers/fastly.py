"""Fastly CDN provider."""

from __future__ import annotations

import re
from typing import Mapping

from cdnsense.models import PoPIdentity
from cdnsense.providers.base import CDNProvider


class FastlyProvider(CDNProvider):
    """Fastly detection via ``x-fastly-request-id`` or any mention of Fastly.

    The ``x-served-by`` header contains cache node identifiers such as
    ``cache-dfw18681-DFW``.  When shielding is active, multiple
    comma-separated entries may be present; the *last* entry is the
    edge node closest to the client.
    """

    @property
    def name(self) -> str:
        return "Fastly"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("x-fastly-request-id",)

    @property
    def markers(self) -> tuple[str, ...]:
        return ("fastly",)

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        raw = headers.get("x-served-by", "")
        if raw:
            last_entry = raw.split(",")[-1].strip()
            match = re.search(r"-([A-Z]{3})$", last_entry)
            if match:
                return PoPIdentity(
                    code=match.group(1),
                    confidence="confirmed",
                    raw_header=raw,
                )
        return PoPIdentity(confidence="unknown", raw_header=raw or None)
