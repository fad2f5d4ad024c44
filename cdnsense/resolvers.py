"""Multi-location resolver roster.

Each entry pairs a public resolver with a location label and a region.
Region labels are static metadata chosen for the resolver's operator,
not a measured geolocation of the resolver.
"""

from __future__ import annotations

from cdnsense.models import ResolverDescriptor

# Regions counted as "domestic" when partitioning the roster.  Domestic
# successes are listed first and act as the primary signal downstream.
DOMESTIC_REGIONS = frozenset({
    "North China",
    "East China",
    "South China",
    "Southwest China",
    "Central China",
    "Northwest China",
    "Northeast China",
    "Hong Kong",
    "Macau",
    "Taiwan",
})

MULTI_LOCATION_RESOLVERS: tuple[ResolverDescriptor, ...] = (
    # Mainland China
    ResolverDescriptor("Beijing", "223.5.5.5", "North China"),  # AliDNS
    ResolverDescriptor("Shanghai", "119.29.29.29", "East China"),  # DNSPod
    ResolverDescriptor("Guangzhou", "114.114.114.114", "South China"),  # 114DNS
    ResolverDescriptor("Shenzhen", "8.8.8.8", "South China"),
    ResolverDescriptor("Chengdu", "180.76.76.76", "Southwest China"),  # Baidu
    ResolverDescriptor("Wuhan", "210.2.4.8", "Central China"),  # CNNIC
    ResolverDescriptor("Hangzhou", "101.226.4.6", "East China"),
    ResolverDescriptor("Nanjing", "218.104.78.2", "East China"),
    ResolverDescriptor("Xi'an", "61.134.1.4", "Northwest China"),
    ResolverDescriptor("Chongqing", "61.128.128.68", "Southwest China"),
    # Hong Kong, Macau, Taiwan
    ResolverDescriptor("Hong Kong", "1.1.1.1", "Hong Kong"),
    ResolverDescriptor("Taipei", "168.95.1.1", "Taiwan"),  # HiNet
    ResolverDescriptor("Macau", "8.8.8.8", "Macau"),
    # Asia Pacific
    ResolverDescriptor("Tokyo", "208.67.222.222", "Japan"),  # OpenDNS
    ResolverDescriptor("Osaka", "1.0.0.1", "Japan"),
    ResolverDescriptor("Seoul", "164.124.101.2", "South Korea"),  # KT
    ResolverDescriptor("Singapore", "9.9.9.9", "Singapore"),  # Quad9
    ResolverDescriptor("Bangkok", "8.26.56.26", "Thailand"),
    ResolverDescriptor("Jakarta", "1.1.1.1", "Indonesia"),
    ResolverDescriptor("Manila", "8.8.8.8", "Philippines"),
    ResolverDescriptor("Sydney", "1.1.1.1", "Australia"),
    ResolverDescriptor("Melbourne", "139.130.4.4", "Australia"),  # Optus
    # Europe
    ResolverDescriptor("London", "1.1.1.1", "United Kingdom"),
    ResolverDescriptor("Paris", "1.1.1.1", "France"),
    ResolverDescriptor("Frankfurt", "1.1.1.1", "Germany"),
    ResolverDescriptor("Amsterdam", "185.228.168.168", "Netherlands"),  # CleanBrowsing
    ResolverDescriptor("Stockholm", "1.1.1.1", "Sweden"),
    ResolverDescriptor("Moscow", "77.88.8.8", "Russia"),  # Yandex
    ResolverDescriptor("Zurich", "195.186.1.111", "Switzerland"),  # Swisscom
    # North America
    ResolverDescriptor("New York", "8.8.8.8", "United States"),
    ResolverDescriptor("Los Angeles", "8.8.4.4", "United States"),
    ResolverDescriptor("Chicago", "8.8.8.8", "United States"),
    ResolverDescriptor("Toronto", "8.8.8.8", "Canada"),
    ResolverDescriptor("Vancouver", "8.8.8.8", "Canada"),
    ResolverDescriptor("Mexico City", "8.8.8.8", "Mexico"),
    # South America
    ResolverDescriptor("Sao Paulo", "8.8.8.8", "Brazil"),
    ResolverDescriptor("Buenos Aires", "8.8.8.8", "Argentina"),
    # Middle East and Africa
    ResolverDescriptor("Dubai", "8.8.8.8", "United Arab Emirates"),
    ResolverDescriptor("Tel Aviv", "8.8.8.8", "Israel"),
    ResolverDescriptor("Cairo", "8.8.8.8", "Egypt"),
    ResolverDescriptor("Johannesburg", "8.8.8.8", "South Africa"),
)


def is_domestic(region: str) -> bool:
    """Return True when *region* belongs to the domestic bucket."""
    return region in DOMESTIC_REGIONS


def distinct_regions(roster: tuple[ResolverDescriptor, ...] | list[ResolverDescriptor]) -> list[str]:
    """Return the roster's regions, de-duplicated in first-seen order."""
    return list(dict.fromkeys(r.region for r in roster))
