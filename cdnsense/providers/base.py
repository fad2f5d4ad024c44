"""Abstract base class for CDN providers."""

from __future__ import annotations

import abc
from typing import Mapping

from cdnsense.models import PoPIdentity


class CDNProvider(abc.ABC):
    """Base class that each CDN provider must implement.

    A provider is recognised from response headers: either one of its
    distinctive header names is present, or one of its marker substrings
    appears anywhere in the header names or values.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Human-readable provider name (e.g. 'Cloudflare')."""

    @property
    @abc.abstractmethod
    def signature_headers(self) -> tuple[str, ...]:
        """Lower-cased header names that only this provider emits."""

    @property
    def markers(self) -> tuple[str, ...]:
        """Lower-cased substrings that identify the provider in any header."""
        return ()

    def matches(self, headers: Mapping[str, str]) -> bool:
        """Return True when *headers* carry this provider's signature."""
        if any(headers.get(h) for h in self.signature_headers):
            return True
        if self.markers:
            dump = " ".join(f"{k}: {v}" for k, v in headers.items()).lower()
            return any(marker in dump for marker in self.markers)
        return False

    def detect_pop(self, headers: Mapping[str, str]) -> PoPIdentity:
        """Extract the serving PoP from response headers.

        Providers that expose an edge location override this; the default
        reports nothing.
        """
        return PoPIdentity(confidence="unknown")
