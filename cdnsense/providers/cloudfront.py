"""Amazon CloudFront CDN provider."""

from __future__ import annotations

import re
from typing import Mapping

from cdnsense.models import PoPIdentity
from cdnsense.providers.base import CDNProvider


class CloudFrontProvider(CDNProvider):
    """CloudFront detection via the ``x-amz-cf-id`` / ``x-amz-cf-pop`` headers.

    The ``x-amz-cf-pop`` value looks like ``DFW55-C1`` where the first 3
    characters are the IATA airport code of the edge location.
    """

    @property
    def name(self) -> str:
        return "Amazon CloudFront"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("x-amz-cf-id", "x-amz-cf-pop")

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        raw = headers.get("x-amz-cf-pop", "")
        if raw:
            match = re.match(r"^([A-Z]{3})", raw)
            if match:
                return PoPIdentity(
                    code=match.group(1),
                    confidence="confirmed",
                    raw_header=raw,
                )
        return PoPIdentity(confidence="unknown", raw_header=raw or None)
