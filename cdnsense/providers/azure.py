"""Azure CDN (Microsoft Edge Network) provider."""

from __future__ import annotations

from typing import Mapping

from cdnsense.models import PoPIdentity
from cdnsense.providers.base import CDNProvider


class AzureProvider(CDNProvider):
    """Azure CDN detection via the ``x-azure-ref`` response header.

    The ``x-msedge-ref`` value is an opaque encoded string that does not
    directly expose a PoP code, so only its presence is reported.
    """

    @property
    def name(self) -> str:
        return "Azure CDN"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("x-azure-ref", "x-azure-request-id")

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        raw = headers.get("x-msedge-ref", "")
        if raw:
            return PoPIdentity(confidence="inferred", raw_header=raw)
        return PoPIdentity(confidence="unknown")
