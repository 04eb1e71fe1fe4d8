"""
Location Resolver
=================
Turns a free-text job location into a LocationProfile: where the money is
earned and spent, what living there costs, and which taxes apply.

Resolution order (first hit wins):
  1. Remote keywords / remote work mode  -> user location, hint, or global default
  2. Hybrid keywords / hybrid work mode  -> office location from the text
  3. Vague regions ("EU", "APAC")        -> region default city
  4. "City, [State,] Country"            -> structured parse
  5. Bare major city                     -> city table
  6. Company headquarters                -> known HQ
  7. User profile, then global remote    -> low-confidence fallback

Every resolution carries a confidence in [0.1, 1.0]. Cost-of-living and tax
data are attached afterwards by build_profile(); an external tax lookup, when
configured, supersedes the static tax tables.
"""

import re
from dataclasses import dataclass, field, asdict
from typing import Optional

from config import get_logger
from cost_of_living import get_cost_of_living
from countries import (
    COUNTRIES,
    COUNTRY_ALIASES,
    find_city,
    find_country,
    find_region_default,
    is_major_city,
)
from tax_data import TaxProfile, get_tax_profile

logger = get_logger(__name__)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0

REMOTE_KEYWORDS = [
    "remote", "anywhere", "worldwide", "global", "virtual", "distributed",
    "work from home", "wfh", "telecommute", "home office", "location independent",
    "nomad friendly", "fully remote", "remote-first", "remote work",
]

HYBRID_KEYWORDS = [
    "hybrid", "flexible", "part remote", "remote option", "flexible location",
    "office optional", "partial remote",
]

VAGUE_KEYWORDS = [
    "usa", "us", "united states", "america", "europe", "eu", "asia", "asia pacific",
    "apac", "north america", "latin america", "south america", "middle east",
    "africa", "oceania", "international", "multiple locations",
]

TIMEZONE_LOCATIONS = {
    "pst": ("San Francisco", "United States", 0.7),
    "pdt": ("San Francisco", "United States", 0.7),
    "est": ("New York", "United States", 0.7),
    "edt": ("New York", "United States", 0.7),
    "cst": ("Chicago", "United States", 0.7),
    "cdt": ("Chicago", "United States", 0.7),
    "mst": ("Denver", "United States", 0.7),
    "mdt": ("Denver", "United States", 0.7),
    "gmt": ("London", "United Kingdom", 0.6),
    "bst": ("London", "United Kingdom", 0.6),
    "cet": ("Berlin", "Germany", 0.6),
    "jst": ("Tokyo", "Japan", 0.7),
    "aest": ("Sydney", "Australia", 0.7),
}

COMPANY_HEADQUARTERS = {
    "google": ("Mountain View", "United States", "California"),
    "alphabet": ("Mountain View", "United States", "California"),
    "microsoft": ("Redmond", "United States", "Washington"),
    "amazon": ("Seattle", "United States", "Washington"),
    "apple": ("Cupertino", "United States", "California"),
    "meta": ("Menlo Park", "United States", "California"),
    "facebook": ("Menlo Park", "United States", "California"),
    "netflix": ("Los Gatos", "United States", "California"),
    "uber": ("San Francisco", "United States", "California"),
    "airbnb": ("San Francisco", "United States", "California"),
    "spotify": ("Stockholm", "Sweden", None),
    "shopify": ("Ottawa", "Canada", None),
}

REMOTE_WORK_MODES = ("remote", "remote_country", "remote_global")

GLOBAL = "Global"
REMOTE_CITY = "Remote"


# ─── Types ────────────────────────────────────────────────────────────────────


@dataclass
class UserLocation:
    current_location: Optional[str] = None
    current_country: Optional[str] = None
    current_state: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.current_location and self.current_country)


@dataclass
class LocationResolution:
    city: str
    country: str
    confidence: float
    resolved_by: str
    original_input: str = ""
    state: Optional[str] = None
    is_remote: bool = False
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self):
        self.confidence = _clamp(self.confidence)


@dataclass
class LocationProfile:
    city: str
    country: str
    state: Optional[str]
    is_remote: bool
    cost_of_living_index: float
    rent_index: float
    purchasing_power_index: float
    currency: str
    confidence: float
    resolved_by: str
    cost_of_living_source: str
    tax_source: str  # "static" | "rag" | "none"
    tax_profile: Optional[TaxProfile] = None
    warnings: list[str] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        if self.country == GLOBAL:
            return "Remote (Global)"
        parts = [self.city, self.state, self.country]
        return ", ".join(p for p in parts if p)

    @property
    def tax_brackets(self) -> list:
        return self.tax_profile.brackets if self.tax_profile else []

    @property
    def social_charges(self) -> list:
        return self.tax_profile.social_charges if self.tax_profile else []

    def to_dict(self) -> dict:
        tax = self.tax_profile
        return {
            "city": self.city,
            "country": self.country,
            "state": self.state,
            "isRemote": self.is_remote,
            "displayName": self.display_name,
            "costOfLivingIndex": self.cost_of_living_index,
            "rentIndex": self.rent_index,
            "purchasingPowerIndex": self.purchasing_power_index,
            "costOfLivingSource": self.cost_of_living_source,
            "currency": self.currency,
            "taxBrackets": [asdict(b) for b in self.tax_brackets],
            "socialCharges": [asdict(c) for c in self.social_charges],
            "localTaxes": [asdict(t) for t in tax.local_taxes] if tax else [],
            "personalAllowance": tax.personal_allowance if tax else None,
            "taxSource": self.tax_source,
            "confidence": round(self.confidence, 2),
            "resolvedBy": self.resolved_by,
            "warnings": list(self.warnings),
        }


def _clamp(confidence: float) -> float:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def _contains_keyword(text: str, keywords: list[str]) -> bool:
    return any(re.search(rf"(?<![a-z]){re.escape(k)}(?![a-z])", text) for k in keywords)


# ─── Resolver ─────────────────────────────────────────────────────────────────


class LocationResolver:
    """
    Resolves free-text locations.

    `tax_lookup`, when given, must provide
    get_tax_data(location, work_mode, employer_location) -> TaxProfile.
    """

    def __init__(self, tax_lookup=None):
        self.tax_lookup = tax_lookup

    def resolve(
        self,
        location: Optional[str],
        work_mode: Optional[str] = None,
        company: Optional[str] = None,
        user: Optional[UserLocation] = None,
    ) -> LocationResolution:
        text = (location or "").strip()
        lowered = text.lower()

        hybrid = work_mode == "hybrid" or _contains_keyword(lowered, HYBRID_KEYWORDS)
        if work_mode in REMOTE_WORK_MODES or (
            not hybrid and _contains_keyword(lowered, REMOTE_KEYWORDS)
        ):
            return self._resolve_remote(text, user)

        if hybrid:
            return self._resolve_hybrid(text, user)

        if lowered in VAGUE_KEYWORDS:
            return self._resolve_vague(text, user)

        structured = self._parse_structured(text)
        if structured:
            return structured

        city_hit = self._resolve_major_city(text)
        if city_hit:
            return city_hit

        if company:
            hq = COMPANY_HEADQUARTERS.get(company.lower().strip())
            if hq:
                city, country, state = hq
                return LocationResolution(
                    city=city, country=country, state=state, confidence=0.7,
                    resolved_by="company_headquarters", original_input=text,
                    warnings=["Location inferred from company headquarters"],
                )

        return self._fallback(text, user, [])

    # ─── Strategies ──────────────────────────────────────────────────────────

    def _resolve_remote(self, text: str, user: Optional[UserLocation]) -> LocationResolution:
        if user and user.is_complete:
            return LocationResolution(
                city=user.current_location, country=user.current_country,
                state=user.current_state, is_remote=True, confidence=0.9,
                resolved_by="user_profile", original_input=text,
                warnings=["Using your profile location for remote job cost calculations"],
            )

        hint = self._location_hint(text)
        if hint:
            return hint

        return LocationResolution(
            city=REMOTE_CITY, country=GLOBAL, is_remote=True, confidence=0.5,
            resolved_by="remote_default", original_input=text,
            warnings=["Add your location to profile for more accurate cost analysis"],
        )

    def _location_hint(self, text: str) -> Optional[LocationResolution]:
        """Country or timezone mentioned inside a remote posting."""
        lowered = text.lower()
        words = re.split(r"[\s,\-()/]+", lowered)
        for word in words:
            if word in TIMEZONE_LOCATIONS:
                city, country, confidence = TIMEZONE_LOCATIONS[word]
                return LocationResolution(
                    city=city, country=country, is_remote=True, confidence=confidence,
                    resolved_by="timezone_hint", original_input=text,
                    warnings=["Remote job with timezone preference detected"],
                )
        for alias, key in COUNTRY_ALIASES.items():
            if alias in words:
                info = COUNTRIES[key]
                return LocationResolution(
                    city=info.default_city, country=info.name, is_remote=True,
                    confidence=0.7, resolved_by="exact_match", original_input=text,
                    warnings=["Remote job with location preference detected"],
                )
        for key, info in COUNTRIES.items():
            if re.search(rf"\b{re.escape(key)}\b", lowered):
                return LocationResolution(
                    city=info.default_city, country=info.name, is_remote=True,
                    confidence=0.7, resolved_by="exact_match", original_input=text,
                    warnings=["Remote job with location preference detected"],
                )
        return None

    def _resolve_hybrid(self, text: str, user: Optional[UserLocation]) -> LocationResolution:
        office = re.sub(r"hybrid|flexible|remote option|part remote", "", text, flags=re.IGNORECASE)
        office = re.sub(r"[()\-]", " ", office).strip(" ,")
        if office:
            parsed = self._parse_structured(office) or self._resolve_major_city(office)
            if parsed:
                parsed.is_remote = False
                parsed.confidence = _clamp(max(parsed.confidence - 0.1, 0.5))
                parsed.original_input = text
                parsed.warnings = parsed.warnings + ["Hybrid role - calculations based on office location"]
                return parsed

        if user and user.current_location:
            return LocationResolution(
                city=user.current_location, country=user.current_country or "Unknown",
                state=user.current_state, confidence=0.6, resolved_by="user_profile",
                original_input=text,
                warnings=["Using your location - confirm actual office location"],
            )
        return self._fallback(text, user, ["Hybrid job location unclear"])

    def _resolve_vague(self, text: str, user: Optional[UserLocation]) -> LocationResolution:
        lowered = text.lower()
        info = find_region_default(lowered) or find_country(lowered)
        if info is None:
            return self._fallback(text, user, ["Location too vague to resolve"])

        if user and user.current_country and find_country(user.current_country) == info:
            return LocationResolution(
                city=user.current_location or info.default_city, country=info.name,
                state=user.current_state, confidence=0.8, resolved_by="region_mapping",
                original_input=text,
                warnings=["Using your location within the specified region"],
            )
        return LocationResolution(
            city=info.default_city, country=info.name, confidence=0.7 if find_country(lowered) else 0.5,
            resolved_by="region_mapping", original_input=text,
            warnings=[f"Defaulting to major city in {info.name}"],
        )

    def _parse_structured(self, text: str) -> Optional[LocationResolution]:
        parts = [p.strip() for p in text.split(",") if p.strip()]
        if not parts:
            return None

        if len(parts) == 1:
            info = find_country(parts[0])
            if info:
                return LocationResolution(
                    city=info.default_city, country=info.name, confidence=0.8,
                    resolved_by="exact_match", original_input=text,
                )
            return None

        city = parts[0]
        state = parts[1] if len(parts) >= 3 else None
        info = find_country(parts[-1])
        if info is None:
            # "Austin, TX" style: the tail is a state or region, not a country
            city_info = find_city(city)
            if city_info:
                return LocationResolution(
                    city=city, country=city_info.name, state=parts[-1], confidence=0.85,
                    resolved_by="major_city", original_input=text,
                )
            return LocationResolution(
                city=city, country=parts[-1], state=state, confidence=0.6,
                resolved_by="fallback", original_input=text,
                warnings=["Could not verify country - please confirm location accuracy"],
            )

        major = is_major_city(city, info)
        three_part = len(parts) >= 3
        if major:
            confidence = 0.95 if three_part else 0.9
        else:
            confidence = 0.8 if three_part else 0.75
        return LocationResolution(
            city=city, country=info.name, state=state, confidence=confidence,
            resolved_by="exact_match" if major else "country_match", original_input=text,
            warnings=[] if major else [f"{city} is not in the major-city table; using {info.name} averages"],
        )

    def _resolve_major_city(self, text: str) -> Optional[LocationResolution]:
        if not text:
            return None
        info = find_city(text)
        if info is None:
            return None
        return LocationResolution(
            city=text, country=info.name, confidence=0.85,
            resolved_by="major_city", original_input=text,
        )

    def _fallback(
        self, text: str, user: Optional[UserLocation], warnings: list[str]
    ) -> LocationResolution:
        if user and user.is_complete:
            return LocationResolution(
                city=user.current_location, country=user.current_country,
                state=user.current_state, is_remote=True, confidence=0.3,
                resolved_by="fallback", original_input=text,
                warnings=warnings + ["Using your profile location as fallback"],
            )
        return LocationResolution(
            city=REMOTE_CITY, country=GLOBAL, is_remote=True, confidence=0.2,
            resolved_by="fallback", original_input=text,
            warnings=warnings + ["Could not determine location - using global remote"],
        )

    # ─── Profile ─────────────────────────────────────────────────────────────

    def build_profile(
        self,
        resolution: LocationResolution,
        work_mode: Optional[str] = None,
        employer_location: Optional[str] = None,
    ) -> LocationProfile:
        """Attach cost-of-living and tax data to a resolution."""
        warnings = list(resolution.warnings)
        confidence = resolution.confidence

        country_info = find_country(resolution.country)
        country = country_info.name if country_info else resolution.country

        if country == GLOBAL:
            cost = get_cost_of_living(REMOTE_CITY)
        else:
            cost = get_cost_of_living(resolution.city, country)
            if cost.source == "default":
                confidence = _clamp(confidence - 0.2)
                warnings.append(f"No cost-of-living data for {country}; using global averages")

        tax_profile = None
        tax_source = "none"
        if country != GLOBAL:
            if self.tax_lookup is not None:
                place = ", ".join(p for p in (resolution.city, resolution.state, country) if p)
                tax_profile = self.tax_lookup.get_tax_data(place, work_mode, employer_location)
                tax_source = "rag"
            else:
                tax_profile = get_tax_profile(country)
                tax_source = "static" if tax_profile else "none"
        if tax_profile is None:
            warnings.append("No tax data available for this location")

        if tax_profile is not None:
            currency = tax_profile.currency
        elif country_info is not None:
            currency = country_info.currency
        else:
            currency = "USD"

        return LocationProfile(
            city=resolution.city,
            country=country,
            state=resolution.state,
            is_remote=resolution.is_remote,
            cost_of_living_index=cost.cost_index,
            rent_index=cost.rent_index,
            purchasing_power_index=cost.purchasing_power_index,
            currency=currency,
            confidence=confidence,
            resolved_by=resolution.resolved_by,
            cost_of_living_source=cost.source,
            tax_source=tax_source,
            tax_profile=tax_profile,
            warnings=warnings,
        )

    def resolve_profile(
        self,
        location: Optional[str],
        work_mode: Optional[str] = None,
        company: Optional[str] = None,
        user: Optional[UserLocation] = None,
        employer_location: Optional[str] = None,
    ) -> LocationProfile:
        resolution = self.resolve(location, work_mode=work_mode, company=company, user=user)
        logger.info(
            "Resolved %r -> %s, %s (%s, confidence %.2f)",
            location, resolution.city, resolution.country,
            resolution.resolved_by, resolution.confidence,
        )
        return self.build_profile(resolution, work_mode, employer_location)
