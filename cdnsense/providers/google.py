"""Google Cloud CDN provider."""

from __future__ import annotations

from cdnsense.providers.base import CDNProvider


class GoogleProvider(CDNProvider):
    """Google Cloud CDN detection via ``x-edge-location`` or
    ``x-google-cache-control``.

    Google does not expose a PoP code in response headers.
    """

    @property
    def name(self) -> str:
        return "Google Cloud CDN"

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return ("x-edge-location", "x-google-cache-control")
