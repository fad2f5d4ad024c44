"""cdnsense: domain delivery-path probing and CDN detection."""

__version__ = "0.1.0"
