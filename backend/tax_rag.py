"""
Tax Data Lookup
===============
Asks the completion model for current tax rules of a specific location and
turns the answer into a TaxProfile. Results are cached per
(location, work mode, employer location) for the life of the process.

A response that cannot be turned into a usable profile raises; there is no
silent fallback to the static tables here (location_resolver decides which
source to use).
"""

import math
import threading
from datetime import date
from typing import Optional

from config import get_logger
from errors import ValidationError
from tax_data import LocalTax, SocialCharge, TaxBracket, TaxProfile

logger = get_logger(__name__)

TAX_DATA_MAX_TOKENS = 2500
TAX_DATA_TEMPERATURE = 0.1

TAX_DATA_PROMPT = """You are a tax expert with access to current {year} tax laws worldwide. Provide EXACT tax data for this scenario:

LOCATION DETAILS:
- Employee Location: {location}
- Work Mode: {work_mode}
- Employer Location: {employer}

Use REAL, CURRENT rates for a single filer with employment income. Do NOT use generic estimates.

REQUIRED JSON RESPONSE:
{{
  "country": "string (country name)",
  "region": "string | null (state/region if applicable)",
  "currency": "string (ISO code like EUR, USD)",
  "taxSystem": {{
    "incomeTax": {{
      "brackets": [{{"min": number, "max": number | null, "rate": number (percent, e.g. 20.0)}}],
      "personalAllowance": number (tax-free allowance per year, 0 if none),
      "professionalDeductionRate": number (fraction of gross deducted before tax, 0 if none)
    }},
    "socialCharges": [{{"name": "string", "rate": number (percent), "cap": number | null, "description": "string", "category": "social_security | other"}}],
    "localTaxes": [{{"name": "string", "rate": number (percent of gross), "description": "string"}}]
  }},
  "confidence": number (0.0-1.0),
  "sources": ["string"],
  "specialRules": ["string"]
}}

Return ONLY the JSON object with NO additional text."""


def _number(value, field_name: str, allow_none: bool = False) -> Optional[float]:
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"Tax data field '{field_name}' must be a number", details=repr(value))
    return float(value)


def _rate(value, field_name: str) -> float:
    rate = _number(value, field_name)
    if not 0 <= rate <= 100:
        raise ValidationError(f"Tax data field '{field_name}' must be a percentage 0-100", details=value)
    return rate


def _object(value, field_name: str, location: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"Tax data field '{field_name}' for {location} must be an object")
    return value


def _list(value, field_name: str, location: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Tax data field '{field_name}' for {location} must be a list")
    return value


def parse_tax_profile(data: dict, location: str) -> TaxProfile:
    """Validate a tax-data response and build a TaxProfile from it."""
    country = data.get("country")
    currency = data.get("currency")
    if not country or not isinstance(country, str):
        raise ValidationError(f"Tax data for {location} is missing 'country'")
    if not currency or not isinstance(currency, str):
        raise ValidationError(f"Tax data for {location} is missing 'currency'")

    system = _object(data.get("taxSystem"), "taxSystem", location)
    income = _object(system.get("incomeTax"), "taxSystem.incomeTax", location)
    raw_brackets = income.get("brackets")
    if not isinstance(raw_brackets, list) or not raw_brackets:
        raise ValidationError(f"Tax data for {location} has no income tax brackets")

    brackets = []
    for i, b in enumerate(raw_brackets):
        if not isinstance(b, dict):
            raise ValidationError(f"Tax bracket {i} for {location} is not an object")
        brackets.append(TaxBracket(
            min=_number(b.get("min", 0), f"brackets[{i}].min"),
            max=_number(b.get("max"), f"brackets[{i}].max", allow_none=True),
            rate=_rate(b.get("rate"), f"brackets[{i}].rate"),
        ))
    brackets.sort(key=lambda b: b.min)

    charges = []
    for i, c in enumerate(_list(system.get("socialCharges"), "socialCharges", location)):
        if not isinstance(c, dict):
            raise ValidationError(f"Social charge {i} for {location} is not an object", details=c)
        category = c.get("category", "social_security")
        charges.append(SocialCharge(
            name=str(c.get("name") or f"Charge {i + 1}"),
            rate=_rate(c.get("rate"), f"socialCharges[{i}].rate"),
            cap=_number(c.get("cap"), f"socialCharges[{i}].cap", allow_none=True),
            description=str(c.get("description") or ""),
            category=category if category in ("social_security", "other") else "social_security",
        ))

    local_taxes = []
    for i, t in enumerate(_list(system.get("localTaxes"), "localTaxes", location)):
        if not isinstance(t, dict):
            raise ValidationError(f"Local tax {i} for {location} is not an object", details=t)
        local_taxes.append(LocalTax(
            name=str(t.get("name") or f"Local tax {i + 1}"),
            rate=_rate(t.get("rate"), f"localTaxes[{i}].rate"),
            description=str(t.get("description") or ""),
        ))

    confidence = data.get("confidence", 0.7)
    return TaxProfile(
        country=country,
        region=data.get("region"),
        currency=currency.upper(),
        brackets=brackets,
        personal_allowance=_number(income.get("personalAllowance") or 0, "personalAllowance"),
        professional_deduction_rate=_number(
            income.get("professionalDeductionRate") or 0, "professionalDeductionRate"
        ),
        social_charges=charges,
        local_taxes=local_taxes,
        special_rules=[str(r) for r in data.get("specialRules") or []],
        source="rag",
        confidence=float(confidence) if isinstance(confidence, (int, float)) else 0.7,
    )


class TaxDataLookup:
    """Tax data per location from the completion model, cached in memory."""

    def __init__(self, completion):
        self.completion = completion
        self._cache: dict[str, TaxProfile] = {}
        self._lock = threading.Lock()

    @staticmethod
    def cache_key(location: str, work_mode: Optional[str], employer_location: Optional[str]) -> str:
        return f"{location.lower()}:{work_mode or 'onsite'}:{(employer_location or 'same').lower()}"

    def get_tax_data(
        self,
        location: str,
        work_mode: Optional[str] = None,
        employer_location: Optional[str] = None,
    ) -> TaxProfile:
        key = self.cache_key(location, work_mode, employer_location)
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        logger.info("Fetching tax data for %s (%s)", location, work_mode or "onsite")
        prompt = TAX_DATA_PROMPT.format(
            year=date.today().year,
            location=location,
            work_mode=work_mode or "onsite",
            employer=employer_location or "Same as employee",
        )
        data = self.completion.complete_json(
            prompt, max_tokens=TAX_DATA_MAX_TOKENS, temperature=TAX_DATA_TEMPERATURE
        )
        profile = parse_tax_profile(data, location)

        with self._lock:
            self._cache[key] = profile
        return profile

    def clear_cache(self):
        with self._lock:
            self._cache.clear()
