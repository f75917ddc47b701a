"""
Country -> region hints used to narrow the upstream candidate pool.

Brief:
  Static tables mapping ISO country codes to one of six coarse regions and
  each region to the DoH resolvers that tend to answer fastest from there.
  The country itself comes from a request header set by the edge in front
  of the proxy (Cloudflare's CF-IPCountry by default).
"""

from __future__ import annotations

from typing import List, Mapping, Optional

REGIONS = ("NA", "EU", "AS", "OC", "SA", "AF")
DEFAULT_REGION = "NA"
DEFAULT_COUNTRY = "US"
DEFAULT_COUNTRY_HEADER = "CF-IPCountry"

COUNTRY_TO_REGION = {
    "US": "NA", "CA": "NA", "MX": "NA",
    "GB": "EU", "DE": "EU", "FR": "EU", "IT": "EU", "ES": "EU", "NL": "EU",
    "SE": "EU", "NO": "EU", "DK": "EU", "FI": "EU", "PL": "EU", "CH": "EU",
    "AT": "EU", "BE": "EU", "IE": "EU", "PT": "EU", "CZ": "EU", "GR": "EU",
    "RO": "EU", "HU": "EU",
    "CN": "AS", "JP": "AS", "KR": "AS", "IN": "AS", "SG": "AS", "TH": "AS",
    "VN": "AS", "ID": "AS", "MY": "AS", "PH": "AS", "TW": "AS", "HK": "AS",
    "AU": "OC", "NZ": "OC",
    "BR": "SA", "AR": "SA", "CL": "SA", "CO": "SA", "PE": "SA",
    "ZA": "AF", "EG": "AF", "NG": "AF", "KE": "AF",
}  # fmt: skip

REGIONAL_UPSTREAMS = {
    "NA": (
        "https://cloudflare-dns.com/dns-query",
        "https://dns.google/dns-query",
    ),
    "EU": (
        "https://cloudflare-dns.com/dns-query",
        "https://dns.quad9.net/dns-query",
    ),
    "AS": (
        "https://dns.google/dns-query",
        "https://cloudflare-dns.com/dns-query",
        "https://doh.dns.sb/dns-query",
    ),
    "OC": (
        "https://cloudflare-dns.com/dns-query",
        "https://dns.google/dns-query",
    ),
    "SA": (
        "https://cloudflare-dns.com/dns-query",
        "https://dns.google/dns-query",
    ),
    "AF": (
        "https://cloudflare-dns.com/dns-query",
        "https://dns.quad9.net/dns-query",
    ),
}


def region_for_country(country: Optional[str]) -> str:
    """
    Brief: Map an ISO 3166 alpha-2 country code to a region code.

    Inputs:
      - country: country code, any case; None or unknown allowed

    Outputs:
      - str: one of REGIONS; DEFAULT_REGION when the country is unknown.

    Example:
      >>> region_for_country("de")
      'EU'
      >>> region_for_country("ZZ")
      'NA'
    """
    if not country:
        return DEFAULT_REGION
    return COUNTRY_TO_REGION.get(str(country).strip().upper(), DEFAULT_REGION)


def regional_upstreams(region: Optional[str]) -> List[str]:
    """Brief: Ordered upstream URLs for region; [] for unknown regions."""
    return list(REGIONAL_UPSTREAMS.get(str(region or "").upper(), ()))


def geo_lookup(
    headers: Mapping[str, str],
    header_name: str = DEFAULT_COUNTRY_HEADER,
    default_country: str = DEFAULT_COUNTRY,
) -> str:
    """
    Brief: Resolve the client region from inbound request headers.

    Inputs:
      - headers: case-insensitive mapping (e.g. Starlette Headers)
      - header_name: header carrying the client country code
      - default_country: country assumed when the header is absent

    Outputs:
      - str: region code, DEFAULT_REGION when unresolvable.
    """
    country = None
    try:
        country = headers.get(header_name)
    except AttributeError:
        country = None
    return region_for_country(country or default_country)
