"""
Tests for location resolution.

Covers: countries, location_resolver (resolution strategies and profiles).
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from countries import extract_country, find_city, find_country, find_region_default, is_major_city
from location_resolver import LocationResolution, LocationResolver, UserLocation
from tax_data import TaxBracket, TaxProfile


@pytest.fixture
def resolver():
    return LocationResolver()


# ═══════════════════════════════════════════════════════════════════════════════
# COUNTRY LOOKUPS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCountries:
    def test_aliases(self):
        assert find_country("USA").name == "United States"
        assert find_country("U.S.").name == "United States"
        assert find_country("uk").name == "United Kingdom"

    def test_short_unknown_codes_do_not_match(self):
        assert find_country("TX") is None

    def test_no_false_substring_match(self):
        assert find_country("Indianapolis") is None, "Indianapolis is not India"

    def test_city_match_is_whole_word(self):
        assert find_city("sea") is None, "sea is not Seattle"
        assert find_city("Seattle").name == "United States"
        assert find_city("New London") is None
        assert is_major_city("Greater London", find_country("uk"))

    def test_extract_country(self):
        assert extract_country("Nancy, France") == "France"
        assert extract_country("Tokyo") == "Japan"
        assert extract_country("Remote") is None

    def test_region_default(self):
        assert find_region_default("APAC").name == "Singapore"
        assert find_region_default("mars") is None


# ═══════════════════════════════════════════════════════════════════════════════
# RESOLUTION STRATEGIES
# ═══════════════════════════════════════════════════════════════════════════════


class TestResolve:
    """Resolution order: remote, hybrid, vague, structured, major city, HQ, fallback."""

    def test_structured_major_city(self, resolver):
        r = resolver.resolve("San Francisco, CA, USA")
        assert (r.city, r.state, r.country) == ("San Francisco", "CA", "United States")
        assert r.confidence == 0.95
        assert r.resolved_by == "exact_match"

    def test_structured_non_major_city_keeps_city(self, resolver):
        r = resolver.resolve("Nancy, France")
        assert (r.city, r.country) == ("Nancy", "France")
        assert r.confidence == 0.75
        assert r.resolved_by == "country_match"
        assert r.warnings, "non-major city should carry a warning"

    def test_city_state(self, resolver):
        r = resolver.resolve("Austin, TX")
        assert (r.city, r.state, r.country) == ("Austin", "TX", "United States")
        assert r.confidence == 0.85

    def test_bare_major_city(self, resolver):
        r = resolver.resolve("Berlin")
        assert r.country == "Germany"
        assert r.resolved_by == "major_city"

    def test_country_only(self, resolver):
        r = resolver.resolve("Germany")
        assert r.country == "Germany"
        assert r.confidence == 0.8

    def test_remote_without_context(self, resolver):
        r = resolver.resolve("Remote")
        assert r.is_remote
        assert r.country == "Global"
        assert r.confidence == 0.5

    def test_remote_uses_user_profile(self, resolver):
        user = UserLocation(current_location="Lyon", current_country="France")
        r = resolver.resolve("Remote", user=user)
        assert (r.city, r.country) == ("Lyon", "France")
        assert r.confidence == 0.9
        assert r.resolved_by == "user_profile"

    def test_remote_work_mode_wins_over_text(self, resolver):
        r = resolver.resolve("London, UK", work_mode="remote_global")
        assert r.is_remote

    def test_remote_country_hint(self, resolver):
        r = resolver.resolve("Remote - US")
        assert r.country == "United States"
        assert r.confidence == 0.7

    def test_remote_timezone_hint(self, resolver):
        r = resolver.resolve("Remote (PST)")
        assert r.city == "San Francisco"
        assert r.resolved_by == "timezone_hint"

    def test_hybrid_uses_office(self, resolver):
        r = resolver.resolve("Hybrid - London, UK")
        assert (r.city, r.country) == ("London", "United Kingdom")
        assert not r.is_remote
        assert r.confidence == pytest.approx(0.8)

    def test_vague_region(self, resolver):
        r = resolver.resolve("EU")
        assert r.country == "Germany"
        assert r.confidence == 0.5
        assert r.resolved_by == "region_mapping"

    def test_company_headquarters(self, resolver):
        r = resolver.resolve("", company="Spotify")
        assert (r.city, r.country) == ("Stockholm", "Sweden")
        assert r.resolved_by == "company_headquarters"

    def test_unresolvable_falls_back_to_global(self, resolver):
        r = resolver.resolve("Atlantis")
        assert r.country == "Global"
        assert r.confidence == 0.2

    def test_confidence_clamped(self):
        high = LocationResolution(city="x", country="y", confidence=3.0, resolved_by="t")
        low = LocationResolution(city="x", country="y", confidence=-1.0, resolved_by="t")
        assert high.confidence == 1.0
        assert low.confidence == 0.1


# ═══════════════════════════════════════════════════════════════════════════════
# PROFILES
# ═══════════════════════════════════════════════════════════════════════════════


class TestProfile:
    """Cost-of-living and tax data attached to a resolution."""

    def test_nancy_profile(self, resolver):
        profile = resolver.resolve_profile("Nancy, France")
        assert profile.cost_of_living_source == "country"
        assert profile.cost_of_living_index == 70
        assert profile.tax_source == "static"
        assert profile.currency == "EUR"
        assert profile.tax_profile.country == "France"
        assert profile.confidence == 0.75

    def test_global_remote_has_no_tax(self, resolver):
        profile = resolver.resolve_profile("Remote")
        assert profile.tax_source == "none"
        assert profile.tax_profile is None
        assert profile.currency == "USD"
        assert profile.display_name == "Remote (Global)"

    def test_unknown_country_lowers_confidence(self, resolver):
        profile = resolver.resolve_profile("Springfield, Freedonia")
        assert profile.cost_of_living_source == "default"
        assert profile.confidence == pytest.approx(0.4)

    def test_tax_lookup_supersedes_static(self):
        class Lookup:
            def __init__(self):
                self.calls = []

            def get_tax_data(self, location, work_mode, employer_location):
                self.calls.append((location, work_mode, employer_location))
                return TaxProfile(
                    country="France", currency="EUR",
                    brackets=[TaxBracket(0, None, 20.0)], source="rag",
                )

        lookup = Lookup()
        profile = LocationResolver(tax_lookup=lookup).resolve_profile(
            "Nancy, France", work_mode="onsite", employer_location="Paris, France"
        )
        assert profile.tax_source == "rag"
        assert lookup.calls == [("Nancy, France", "onsite", "Paris, France")]

    def test_to_dict_is_camel_case(self, resolver):
        data = resolver.resolve_profile("Berlin, Germany").to_dict()
        assert data["displayName"] == "Berlin, Germany"
        assert data["taxBrackets"], "Germany has static brackets"
        assert {"costOfLivingIndex", "rentIndex", "taxSource", "resolvedBy"} <= set(data)
