"""CDN provider registry.

Providers are kept in detection priority order: when response headers
match more than one provider, the earliest entry wins.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cdnsense.providers.base import CDNProvider

_PROVIDERS: list[CDNProvider] | None = None


def _load_providers() -> list[CDNProvider]:
    from cdnsense.providers import generic
    from cdnsense.providers.akamai import AkamaiProvider
    from cdnsense.providers.azure import AzureProvider
    from cdnsense.providers.cloudflare import CloudflareProvider
    from cdnsense.providers.cloudfront import CloudFrontProvider
    from cdnsense.providers.fastly import FastlyProvider
    from cdnsense.providers.google import GoogleProvider

    return [
        CloudflareProvider(),
        AzureProvider(),
        CloudFrontProvider(),
        GoogleProvider(),
        generic.ALIBABA,
        generic.TENCENT,
        FastlyProvider(),
        AkamaiProvider(),
        generic.CLOUDINARY,
        generic.KEYCDN,
        generic.STACKPATH,
        generic.BUNNYCDN,
        generic.IMPERVA,
        generic.SUCURI,
    ]


def get_providers() -> list[CDNProvider]:
    """Return the registered providers in priority order, loading lazily."""
    global _PROVIDERS
    if _PROVIDERS is None:
        _PROVIDERS = _load_providers()
    return _PROVIDERS
