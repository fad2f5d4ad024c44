"""Header-signature providers that need no custom PoP parsing."""

from __future__ import annotations

from cdnsense.providers.base import CDNProvider


class GenericProvider(CDNProvider):
    """A provider recognised purely by a fixed set of header names."""

    def __init__(
        self,
        name: str,
        signature_headers: tuple[str, ...],
        markers: tuple[str, ...] = (),
    ) -> None:
        self._name = name
        self._signature_headers = signature_headers
        self._markers = markers

    @property
    def name(self) -> str:
        return self._name

    @property
    def signature_headers(self) -> tuple[str, ...]:
        return self._signature_headers

    @property
    def markers(self) -> tuple[str, ...]:
        return self._markers

    def __repr__(self) -> str:
        return f"GenericProvider({self._name!r})"


ALIBABA = GenericProvider(
    "Alibaba Cloud CDN",
    ("ali-cdn-real-ip", "x-cdn-request-id", "x-oss-request-id"),
)
TENCENT = GenericProvider(
    "Tencent Cloud CDN",
    ("x-cdn-log-id", "x-cdn-src-ip", "x-tencent-request-id"),
)
CLOUDINARY = GenericProvider("Cloudinary", ("x-cld-cache", "x-cld-rtt"))
KEYCDN = GenericProvider("KeyCDN", ("x-keycdn-cache", "x-keycdn-pop"))
STACKPATH = GenericProvider("StackPath", ("x-sp-cache", "x-sp-edge"))
BUNNYCDN = GenericProvider("BunnyCDN", ("x-bcdn-cache", "x-bcdn-pop"))
IMPERVA = GenericProvider("Imperva", ("x-iinfo", "x-cdn"))
SUCURI = GenericProvider("Sucuri", ("x-sucuri-cache", "x-sucuri-id"))
