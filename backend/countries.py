"""
Country Registry
================
Countries with their major cities, region, default city and currency.
Used to normalize free-text locations ("Berlin, DE", "uk", "Holland").

Main entry points:
    find_country("usa")           -> CountryInfo(name="United States", ...)
    find_region_default("apac")   -> CountryInfo(name="Singapore", ...)
    is_major_city("munich", info) -> bool
    extract_country("Remote (France)") -> "France" | None
"""

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CountryInfo:
    name: str
    major_cities: tuple
    region: str
    default_city: str
    currency: str


def _c(name, cities, region, currency):
    return CountryInfo(name, tuple(cities), region, cities[0], currency)


# Keyed by lowercase name
COUNTRIES: dict[str, CountryInfo] = {
    "argentina": _c("Argentina", ["Buenos Aires", "Córdoba", "Rosario"], "Americas", "ARS"),
    "australia": _c("Australia", ["Sydney", "Melbourne", "Brisbane", "Perth", "Adelaide"], "Oceania", "AUD"),
    "austria": _c("Austria", ["Vienna", "Salzburg", "Graz"], "Europe", "EUR"),
    "bangladesh": _c("Bangladesh", ["Dhaka", "Chittagong"], "Asia", "BDT"),
    "belgium": _c("Belgium", ["Brussels", "Antwerp", "Ghent"], "Europe", "EUR"),
    "brazil": _c("Brazil", ["São Paulo", "Rio de Janeiro", "Brasília", "Salvador"], "Americas", "BRL"),
    "bulgaria": _c("Bulgaria", ["Sofia", "Plovdiv", "Varna"], "Europe", "BGN"),
    "canada": _c("Canada", ["Toronto", "Vancouver", "Montreal", "Calgary", "Ottawa"], "Americas", "CAD"),
    "chile": _c("Chile", ["Santiago", "Valparaíso"], "Americas", "CLP"),
    "china": _c("China", ["Beijing", "Shanghai", "Guangzhou", "Shenzhen", "Chengdu"], "Asia", "CNY"),
    "colombia": _c("Colombia", ["Bogotá", "Medellín", "Cali"], "Americas", "COP"),
    "croatia": _c("Croatia", ["Zagreb", "Split"], "Europe", "EUR"),
    "czech republic": _c("Czech Republic", ["Prague", "Brno"], "Europe", "CZK"),
    "denmark": _c("Denmark", ["Copenhagen", "Aarhus"], "Europe", "DKK"),
    "egypt": _c("Egypt", ["Cairo", "Alexandria"], "Africa", "EGP"),
    "estonia": _c("Estonia", ["Tallinn"], "Europe", "EUR"),
    "finland": _c("Finland", ["Helsinki", "Tampere"], "Europe", "EUR"),
    "france": _c("France", ["Paris", "Lyon", "Marseille", "Toulouse"], "Europe", "EUR"),
    "germany": _c("Germany", ["Berlin", "Munich", "Hamburg", "Frankfurt", "Cologne"], "Europe", "EUR"),
    "greece": _c("Greece", ["Athens", "Thessaloniki"], "Europe", "EUR"),
    "hong kong": _c("Hong Kong", ["Hong Kong"], "Asia", "HKD"),
    "hungary": _c("Hungary", ["Budapest"], "Europe", "HUF"),
    "india": _c("India", ["Mumbai", "Delhi", "Bangalore", "Hyderabad", "Chennai", "Pune", "Kolkata"], "Asia", "INR"),
    "indonesia": _c("Indonesia", ["Jakarta", "Surabaya", "Bandung"], "Asia", "IDR"),
    "ireland": _c("Ireland", ["Dublin", "Cork"], "Europe", "EUR"),
    "israel": _c("Israel", ["Tel Aviv", "Jerusalem"], "Asia", "ILS"),
    "italy": _c("Italy", ["Rome", "Milan", "Naples", "Turin"], "Europe", "EUR"),
    "japan": _c("Japan", ["Tokyo", "Osaka", "Yokohama", "Nagoya"], "Asia", "JPY"),
    "kenya": _c("Kenya", ["Nairobi", "Mombasa"], "Africa", "KES"),
    "luxembourg": _c("Luxembourg", ["Luxembourg"], "Europe", "EUR"),
    "malaysia": _c("Malaysia", ["Kuala Lumpur", "George Town"], "Asia", "MYR"),
    "mexico": _c("Mexico", ["Mexico City", "Guadalajara", "Monterrey"], "Americas", "MXN"),
    "netherlands": _c("Netherlands", ["Amsterdam", "Rotterdam", "The Hague"], "Europe", "EUR"),
    "new zealand": _c("New Zealand", ["Auckland", "Wellington"], "Oceania", "NZD"),
    "nigeria": _c("Nigeria", ["Lagos", "Abuja"], "Africa", "NGN"),
    "north macedonia": _c("North Macedonia", ["Skopje"], "Europe", "MKD"),
    "norway": _c("Norway", ["Oslo", "Bergen"], "Europe", "NOK"),
    "pakistan": _c("Pakistan", ["Karachi", "Lahore", "Islamabad"], "Asia", "PKR"),
    "philippines": _c("Philippines", ["Manila", "Cebu City"], "Asia", "PHP"),
    "poland": _c("Poland", ["Warsaw", "Krakow", "Gdańsk"], "Europe", "PLN"),
    "portugal": _c("Portugal", ["Lisbon", "Porto"], "Europe", "EUR"),
    "qatar": _c("Qatar", ["Doha"], "Asia", "QAR"),
    "romania": _c("Romania", ["Bucharest", "Cluj-Napoca"], "Europe", "RON"),
    "russia": _c("Russia", ["Moscow", "St. Petersburg"], "Europe", "RUB"),
    "saudi arabia": _c("Saudi Arabia", ["Riyadh", "Jeddah"], "Asia", "SAR"),
    "singapore": _c("Singapore", ["Singapore"], "Asia", "SGD"),
    "south africa": _c("South Africa", ["Cape Town", "Johannesburg", "Durban"], "Africa", "ZAR"),
    "south korea": _c("South Korea", ["Seoul", "Busan"], "Asia", "KRW"),
    "spain": _c("Spain", ["Madrid", "Barcelona", "Valencia"], "Europe", "EUR"),
    "sweden": _c("Sweden", ["Stockholm", "Gothenburg"], "Europe", "SEK"),
    "switzerland": _c("Switzerland", ["Zurich", "Geneva"], "Europe", "CHF"),
    "taiwan": _c("Taiwan", ["Taipei"], "Asia", "TWD"),
    "thailand": _c("Thailand", ["Bangkok", "Chiang Mai"], "Asia", "THB"),
    "turkey": _c("Turkey", ["Istanbul", "Ankara"], "Europe", "TRY"),
    "ukraine": _c("Ukraine", ["Kyiv", "Kharkiv"], "Europe", "UAH"),
    "united arab emirates": _c("United Arab Emirates", ["Dubai", "Abu Dhabi"], "Asia", "AED"),
    "united kingdom": _c("United Kingdom", ["London", "Manchester", "Edinburgh"], "Europe", "GBP"),
    "united states": _c(
        "United States",
        ["New York", "Los Angeles", "Chicago", "San Francisco", "Seattle", "Austin", "Boston"],
        "Americas",
        "USD",
    ),
    "vietnam": _c("Vietnam", ["Ho Chi Minh City", "Hanoi"], "Asia", "VND"),
}

# Common spellings and abbreviations
COUNTRY_ALIASES = {
    "usa": "united states",
    "us": "united states",
    "u.s": "united states",
    "america": "united states",
    "uk": "united kingdom",
    "britain": "united kingdom",
    "great britain": "united kingdom",
    "england": "united kingdom",
    "scotland": "united kingdom",
    "uae": "united arab emirates",
    "emirates": "united arab emirates",
    "korea": "south korea",
    "holland": "netherlands",
    "the netherlands": "netherlands",
    "czech": "czech republic",
    "czechia": "czech republic",
    "macedonia": "north macedonia",
    "deutschland": "germany",
}

REGION_DEFAULTS = {
    "apac": "singapore",
    "asia": "singapore",
    "asia pacific": "singapore",
    "europe": "united kingdom",
    "eu": "germany",
    "americas": "united states",
    "north america": "united states",
    "latin america": "brazil",
    "south america": "brazil",
    "africa": "south africa",
    "middle east": "united arab emirates",
    "oceania": "australia",
}


def find_country(name: Optional[str]) -> Optional[CountryInfo]:
    """
    Match a country name, alias or abbreviation.

    Tries direct match, alias table, then substring match in either direction.
    Two-letter inputs only match exactly or via alias.
    """
    if not name:
        return None
    normalized = name.lower().strip().strip(".")
    if not normalized:
        return None

    if normalized in COUNTRIES:
        return COUNTRIES[normalized]
    if normalized in COUNTRY_ALIASES:
        return COUNTRIES[COUNTRY_ALIASES[normalized]]
    if len(normalized) <= 3:
        return None

    for key, info in COUNTRIES.items():
        if normalized in key or re.search(rf"\b{re.escape(key)}\b", normalized):
            return info
    return None


def find_region_default(region: str) -> Optional[CountryInfo]:
    """Default country for a region keyword ("apac", "europe"), or None."""
    key = REGION_DEFAULTS.get(region.lower().strip())
    return COUNTRIES[key] if key else None


# Leading words that turn a city name into a different place ("New London")
_PLACE_PREFIXES = ("new", "port", "fort", "mount", "st", "saint")


def mentions_place(text: str, name: str) -> bool:
    """
    True when `name` appears in `text` as whole words and is not the tail of
    a longer place name. Both arguments are expected lowercase.
    """
    for match in re.finditer(rf"\b{re.escape(name)}\b", text):
        preceding = text[:match.start()].split()
        if not preceding or preceding[-1].rstrip(".") not in _PLACE_PREFIXES:
            return True
    return False


def is_major_city(city: str, country: CountryInfo) -> bool:
    """True when `city` names (or is named inside) one of the country's major cities."""
    normalized = city.lower().strip()
    if not normalized:
        return False
    for major in country.major_cities:
        m = major.lower()
        if m == normalized:
            return True
        if len(normalized) > 2 and (mentions_place(m, normalized) or mentions_place(normalized, m)):
            return True
    return False


def find_city(city: str) -> Optional[CountryInfo]:
    """Country whose major-city list contains `city`, searching every country."""
    for info in COUNTRIES.values():
        if is_major_city(city, info):
            return info
    return None


_WORD_SPLIT = re.compile(r"[,;/()\-|]+")


def extract_country(location: Optional[str]) -> Optional[str]:
    """
    Canonical country name mentioned anywhere in a location string.

    "Nancy, France" -> "France"; "Remote (EU)" -> None; "Tokyo" -> "Japan".
    """
    if not location:
        return None

    parts = [p.strip() for p in _WORD_SPLIT.split(location) if p.strip()]
    # Country usually comes last
    for part in reversed(parts):
        info = find_country(part)
        if info:
            return info.name

    lowered = location.lower()
    for key, info in COUNTRIES.items():
        if re.search(rf"\b{re.escape(key)}\b", lowered):
            return info.name
    for alias, key in COUNTRY_ALIASES.items():
        if len(alias) > 2 and re.search(rf"\b{re.escape(alias)}\b", lowered):
            return COUNTRIES[key].name

    for part in parts:
        info = find_city(part)
        if info:
            return info.name
    return None
