"""
Cost of Living Module
=====================
Cost-of-living, rent and purchasing-power indices by city, with New York = 100.

Lookup order:
  1. Exact city match against the major-city table
  2. Country-level average
  3. Remote/unknown default (lower confidence)

Main entry point:
    get_cost_of_living(city, country=None) -> CostOfLiving
"""

from dataclasses import dataclass
from typing import Optional

from config import get_logger
from countries import extract_country, mentions_place

logger = get_logger(__name__)


@dataclass(frozen=True)
class CostOfLiving:
    cost_index: float
    rent_index: float
    purchasing_power_index: float
    source: str  # "city" | "country" | "default"
    label: str


# (cost, rent, purchasing power)
CITY_INDICES: dict[str, tuple[float, float, float]] = {
    "new york": (100, 100, 100),
    "san francisco": (95, 120, 110),
    "los angeles": (82, 85, 105),
    "seattle": (85, 85, 115),
    "boston": (88, 92, 108),
    "chicago": (75, 65, 112),
    "austin": (70, 65, 125),
    "toronto": (70, 70, 95),
    "vancouver": (72, 75, 90),
    "london": (85, 95, 90),
    "dublin": (78, 90, 88),
    "paris": (80, 80, 90),
    "berlin": (65, 55, 110),
    "munich": (75, 75, 110),
    "amsterdam": (80, 90, 95),
    "zurich": (120, 110, 125),
    "stockholm": (70, 55, 100),
    "sydney": (80, 85, 105),
    "singapore": (85, 110, 95),
    "tokyo": (80, 70, 90),
    "seoul": (78, 50, 95),
    "dubai": (70, 80, 120),
    "bangalore": (30, 20, 70),
    "mumbai": (32, 30, 60),
    "remote": (60, 50, 100),
}

CITY_ALIASES = {
    "nyc": "new york",
    "new york city": "new york",
    "manhattan": "new york",
    "sf": "san francisco",
    "bay area": "san francisco",
    "la": "los angeles",
    "bengaluru": "bangalore",
    "zürich": "zurich",
    "global": "remote",
}

COUNTRY_INDICES: dict[str, tuple[float, float, float]] = {
    "United States": (75, 70, 110),
    "Canada": (66, 55, 95),
    "United Kingdom": (70, 60, 90),
    "Ireland": (75, 80, 88),
    "France": (70, 45, 95),
    "Germany": (65, 45, 105),
    "Netherlands": (72, 65, 100),
    "Belgium": (68, 45, 100),
    "Switzerland": (115, 95, 120),
    "Austria": (67, 42, 100),
    "Spain": (53, 32, 82),
    "Portugal": (48, 30, 60),
    "Italy": (62, 35, 80),
    "Sweden": (65, 40, 100),
    "Norway": (80, 45, 100),
    "Denmark": (78, 50, 110),
    "Finland": (68, 38, 100),
    "Poland": (42, 25, 68),
    "Czech Republic": (48, 28, 72),
    "Australia": (75, 60, 105),
    "New Zealand": (70, 55, 90),
    "Singapore": (85, 110, 95),
    "Japan": (65, 30, 90),
    "South Korea": (70, 32, 95),
    "China": (40, 22, 70),
    "Hong Kong": (78, 90, 85),
    "India": (25, 8, 65),
    "United Arab Emirates": (62, 55, 115),
    "Israel": (80, 48, 95),
    "Brazil": (35, 12, 40),
    "Mexico": (38, 18, 45),
    "South Africa": (40, 15, 80),
}

REMOTE_KEY = "remote"


def _normalize_city(city: str) -> str:
    key = city.lower().strip()
    return CITY_ALIASES.get(key, key)


def get_city_indices(city: Optional[str]) -> Optional[tuple[float, float, float]]:
    """Indices for a major city, or None when the city is not in the table."""
    if not city:
        return None
    return CITY_INDICES.get(_normalize_city(city))


def get_cost_of_living(city: Optional[str], country: Optional[str] = None) -> CostOfLiving:
    """
    Resolve indices for a city, falling back to the country, then the remote default.

    The remote default is used for "Remote"/"Global" and for anything unknown.
    """
    indices = get_city_indices(city)
    if indices and _normalize_city(city) != REMOTE_KEY:
        return CostOfLiving(*indices, source="city", label=city.strip())

    if country and country in COUNTRY_INDICES:
        return CostOfLiving(*COUNTRY_INDICES[country], source="country", label=country)

    if city and _normalize_city(city) != REMOTE_KEY:
        logger.info("No cost-of-living data for %s / %s, using remote default", city, country)
    return CostOfLiving(*CITY_INDICES[REMOTE_KEY], source="default", label="Remote (Global)")


def lookup_location(location: Optional[str]) -> CostOfLiving:
    """
    Indices for a free-text location ("Austin, TX", "Berlin", "Remote").

    Matches a known city named as whole words anywhere in the text, then a
    country, then the default.
    """
    if not location:
        return get_cost_of_living(REMOTE_KEY)

    normalized = location.lower()
    first_part = location.split(",")[0].strip()
    if get_city_indices(first_part):
        return get_cost_of_living(first_part)

    # Longest names first so "new york" is not shadowed by a shorter key
    for key in sorted(CITY_INDICES, key=len, reverse=True):
        if key != REMOTE_KEY and mentions_place(normalized, key):
            return get_cost_of_living(key.title())

    return get_cost_of_living(None, extract_country(location))
