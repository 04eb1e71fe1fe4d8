"""
Net Income Calculator
=====================
Gross-to-net calculation for a salary in a given location.

The calculation itself is produced by the completion model from a prompt that
embeds the resolved tax data for the tax residence. A deterministic bracket
estimate (tax_data.estimate_national_tax) bounds the answer: the model is told
the expected national effective-rate range, and a response outside it is
rejected. Responses are never corrected or retried; every invariant violation
raises ValidationError.

Invariants enforced on every accepted result (amounts in the request currency):
    breakdown.incomeTax + socialSecurity + medicare == federal.amount   (±1)
    federal.amount + state.amount + local.amount == totalTaxes          (±1)
    effectiveRate == totalTaxes / gross.annual * 100                    (±0.5)
    totalTaxes > 0  =>  federal.amount > 0
    federal.amount / gross.annual within the expected range, when known

Terminology: "federal" holds ALL national taxes (income tax plus social
charges) for non-US countries; "medicare" holds the minor national charges
(CRDS, Medicare levy, ...).
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from config import NET_INCOME_MAX_TOKENS, NET_INCOME_TEMPERATURE, get_logger
from countries import extract_country
from errors import ValidationError
from tax_data import TaxProfile, effective_rate_band, estimate_national_tax

logger = get_logger(__name__)

WORK_MODES = ("onsite", "hybrid", "remote_country", "remote_global")

AMOUNT_TOLERANCE = 1.0
RATE_TOLERANCE = 0.5

FEDERAL_ZERO_MESSAGE = "Federal tax amount cannot be 0 when total taxes > 0"

# Request field name -> attribute, for the optional numeric fields
_OPTIONAL_AMOUNTS = {
    "retirement401k": "retirement_401k",
    "healthInsurance": "health_insurance",
    "otherPreTaxDeductions": "other_pre_tax_deductions",
    "employerMatch401k": "employer_match_401k",
    "employerHealthContribution": "employer_health_contribution",
    "stockOptions": "stock_options",
    "signingBonus": "signing_bonus",
    "performanceBonus": "performance_bonus",
}

# Sections passed through from the model untouched
_PASSTHROUGH_SECTIONS = ("comparison", "remoteWorkConsiderations", "insights", "totalCompensation")


# ─── Request ──────────────────────────────────────────────────────────────────


@dataclass
class NetIncomeRequest:
    gross_salary: float
    location: str
    work_mode: str = "onsite"
    currency: str = "USD"
    user_id: Optional[int] = None
    residence_location: Optional[str] = None
    employer_location: Optional[str] = None
    retirement_401k: float = 0.0
    health_insurance: float = 0.0
    other_pre_tax_deductions: float = 0.0
    employer_match_401k: float = 0.0
    employer_health_contribution: float = 0.0
    stock_options: float = 0.0
    signing_bonus: float = 0.0
    performance_bonus: float = 0.0

    @property
    def pre_tax_deductions(self) -> float:
        return self.retirement_401k + self.health_insurance + self.other_pre_tax_deductions

    @classmethod
    def from_dict(cls, data: dict, user_id: Optional[int] = None) -> "NetIncomeRequest":
        """Build from a camelCase request body. Raises ValueError on bad input."""
        gross = data.get("grossSalary")
        if isinstance(gross, bool) or not isinstance(gross, (int, float)) or gross <= 0:
            raise ValueError("grossSalary must be a positive number")
        location = data.get("location")
        if not isinstance(location, str) or not location.strip():
            raise ValueError("location is required")
        work_mode = data.get("workMode") or "onsite"
        if work_mode not in WORK_MODES:
            raise ValueError(f"workMode must be one of: {', '.join(WORK_MODES)}")
        currency = data.get("currency") or "USD"
        if not isinstance(currency, str) or len(currency) != 3:
            raise ValueError("currency must be a 3-letter ISO code")

        amounts = {}
        for key, attr in _OPTIONAL_AMOUNTS.items():
            value = data.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"{key} must be a non-negative number")
            amounts[attr] = float(value)

        return cls(
            gross_salary=float(gross),
            location=location.strip(),
            work_mode=work_mode,
            currency=currency.upper(),
            user_id=user_id,
            residence_location=(data.get("residenceLocation") or None),
            employer_location=(data.get("employerLocation") or None),
            **amounts,
        )


# ─── Result ───────────────────────────────────────────────────────────────────


@dataclass
class FederalTax:
    amount: float
    rate: float
    income_tax: float
    social_security: float
    medicare: float

    @property
    def breakdown_sum(self) -> float:
        return self.income_tax + self.social_security + self.medicare


@dataclass
class NetIncomeResult:
    currency: str
    gross_annual: float
    gross_monthly: float
    gross_biweekly: float
    federal: FederalTax
    state_amount: float
    state_rate: float
    state_name: Optional[str]
    local_amount: float
    local_rate: float
    locality: Optional[str]
    total_taxes: float
    effective_rate: float
    deductions: dict
    net_annual: float
    net_monthly: float
    net_biweekly: float
    net_hourly: float
    net_daily: float
    confidence: dict
    extras: dict = field(default_factory=dict)
    context: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {
            "gross": {
                "annual": self.gross_annual,
                "monthly": self.gross_monthly,
                "biweekly": self.gross_biweekly,
                "currency": self.currency,
            },
            "taxes": {
                "federal": {
                    "amount": self.federal.amount,
                    "rate": self.federal.rate,
                    "breakdown": {
                        "incomeTax": self.federal.income_tax,
                        "socialSecurity": self.federal.social_security,
                        "medicare": self.federal.medicare,
                    },
                },
                "state": {
                    "amount": self.state_amount,
                    "rate": self.state_rate,
                    "stateName": self.state_name,
                },
                "local": {
                    "amount": self.local_amount,
                    "rate": self.local_rate,
                    "locality": self.locality,
                },
                "totalTaxes": self.total_taxes,
                "effectiveRate": self.effective_rate,
            },
            "deductions": dict(self.deductions),
            "netIncome": {
                "annual": self.net_annual,
                "monthly": self.net_monthly,
                "biweekly": self.net_biweekly,
                "hourly": self.net_hourly,
                "dailyTakeHome": self.net_daily,
            },
            "confidence": dict(self.confidence),
        }
        result.update(self.extras)
        if self.context:
            result["calculationContext"] = dict(self.context)
        return result


# ─── Validation ──────────────────────────────────────────────────────────────


def _section(data: dict, path: str) -> dict:
    node = data
    for key in path.split("."):
        node = node.get(key) if isinstance(node, dict) else None
        if not isinstance(node, dict):
            raise ValidationError(f"AI response missing required section '{path}'")
    return node


def _amount(section: dict, key: str, path: str, required: bool = True) -> Optional[float]:
    value = section.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"Invalid monetary value for {path}", details=repr(value))
    return float(value)


def parse_net_income_result(
    data: dict,
    currency: str,
    expected_gross: Optional[float] = None,
    rate_band: Optional[tuple[float, float]] = None,
) -> NetIncomeResult:
    """
    Validate a model response and build a NetIncomeResult.

    Raises ValidationError naming the first violated field or invariant.
    """
    gross = _section(data, "gross")
    taxes = _section(data, "taxes")
    net = _section(data, "netIncome")
    federal_node = _section(data, "taxes.federal")
    breakdown = _section(data, "taxes.federal.breakdown")
    state = taxes.get("state") if isinstance(taxes.get("state"), dict) else {}
    local = taxes.get("local") if isinstance(taxes.get("local"), dict) else {}

    gross_annual = _amount(gross, "annual", "gross.annual")
    gross_monthly = _amount(gross, "monthly", "gross.monthly")
    if gross_annual <= 0:
        raise ValidationError("gross.annual must be positive", details=gross_annual)

    federal = FederalTax(
        amount=_amount(federal_node, "amount", "taxes.federal.amount"),
        rate=_amount(federal_node, "rate", "taxes.federal.rate", required=False) or 0.0,
        income_tax=_amount(breakdown, "incomeTax", "taxes.federal.breakdown.incomeTax"),
        social_security=_amount(breakdown, "socialSecurity", "taxes.federal.breakdown.socialSecurity"),
        medicare=_amount(breakdown, "medicare", "taxes.federal.breakdown.medicare"),
    )
    state_amount = _amount(state, "amount", "taxes.state.amount", required=False) or 0.0
    local_amount = _amount(local, "amount", "taxes.local.amount", required=False) or 0.0
    total_taxes = _amount(taxes, "totalTaxes", "taxes.totalTaxes")
    effective_rate = _amount(taxes, "effectiveRate", "taxes.effectiveRate")
    net_annual = _amount(net, "annual", "netIncome.annual")
    net_monthly = _amount(net, "monthly", "netIncome.monthly")

    if total_taxes > 0 and federal.amount == 0:
        raise ValidationError(FEDERAL_ZERO_MESSAGE)

    if abs(federal.breakdown_sum - federal.amount) > AMOUNT_TOLERANCE:
        raise ValidationError(
            f"Federal breakdown sum {federal.breakdown_sum:.2f} does not equal "
            f"federal amount {federal.amount:.2f}"
        )

    combined = federal.amount + state_amount + local_amount
    if abs(combined - total_taxes) > AMOUNT_TOLERANCE:
        if state_amount == 0 and local_amount == 0:
            raise ValidationError(
                f"Federal amount {federal.amount:.2f} must equal total taxes "
                f"{total_taxes:.2f} when state and local taxes are zero"
            )
        raise ValidationError(
            f"Total taxes {total_taxes:.2f} do not equal federal + state + local ({combined:.2f})"
        )

    computed_rate = total_taxes / gross_annual * 100
    if abs(computed_rate - effective_rate) > RATE_TOLERANCE:
        raise ValidationError(
            f"Effective rate {effective_rate:.2f}% does not match "
            f"total taxes / gross ({computed_rate:.2f}%)"
        )

    if expected_gross is not None:
        if abs(gross_annual - expected_gross) > max(AMOUNT_TOLERANCE, expected_gross * 0.01):
            raise ValidationError(
                f"gross.annual {gross_annual:.2f} does not match requested salary {expected_gross:.2f}"
            )

    if net_annual > gross_annual + AMOUNT_TOLERANCE:
        raise ValidationError("netIncome.annual cannot exceed gross.annual")

    if rate_band is not None:
        national_rate = federal.amount / gross_annual * 100
        low, high = rate_band
        if not low <= national_rate <= high:
            raise ValidationError(
                f"National effective rate {national_rate:.2f}% is outside the expected "
                f"range {low:.0f}-{high:.0f}%",
                details={"expectedRange": [low, high], "actual": round(national_rate, 2)},
            )

    deductions_node = data.get("deductions") if isinstance(data.get("deductions"), dict) else {}
    deductions = {
        key: _amount(deductions_node, key, f"deductions.{key}", required=False) or 0.0
        for key in ("retirement401k", "healthInsurance", "other")
    }
    deductions["totalDeductions"] = (
        _amount(deductions_node, "totalDeductions", "deductions.totalDeductions", required=False)
        or sum(deductions.values())
    )

    confidence = data.get("confidence") if isinstance(data.get("confidence"), dict) else {}

    return NetIncomeResult(
        currency=currency,
        gross_annual=gross_annual,
        gross_monthly=gross_monthly,
        gross_biweekly=_amount(gross, "biweekly", "gross.biweekly", required=False)
        or round(gross_annual / 26, 2),
        federal=federal,
        state_amount=state_amount,
        state_rate=_amount(state, "rate", "taxes.state.rate", required=False) or 0.0,
        state_name=state.get("stateName"),
        local_amount=local_amount,
        local_rate=_amount(local, "rate", "taxes.local.rate", required=False) or 0.0,
        locality=local.get("locality"),
        total_taxes=total_taxes,
        effective_rate=effective_rate,
        deductions=deductions,
        net_annual=net_annual,
        net_monthly=net_monthly,
        net_biweekly=_amount(net, "biweekly", "netIncome.biweekly", required=False)
        or round(net_annual / 26, 2),
        net_hourly=_amount(net, "hourly", "netIncome.hourly", required=False)
        or round(net_annual / 2080, 2),
        net_daily=_amount(net, "dailyTakeHome", "netIncome.dailyTakeHome", required=False)
        or round(net_annual / 260, 2),
        confidence={
            "overall": confidence.get("overall", 0.0),
            "taxAccuracy": confidence.get("taxAccuracy", 0.0),
            "source": confidence.get("source", "general_calculation"),
        },
        extras={k: data[k] for k in _PASSTHROUGH_SECTIONS if k in data},
    )


# ─── Location helpers ────────────────────────────────────────────────────────


def determine_tax_location(request: NetIncomeRequest) -> str:
    """Residence location when it names a recognizable country, else the job location."""
    if request.residence_location and extract_country(request.residence_location):
        return request.residence_location
    return request.location


def is_international_remote(employer_location: Optional[str], residence_location: Optional[str]) -> bool:
    """
    True when employer and residence are in different countries.

    An unrecognized employer location counts as foreign unless it mentions the
    residence country.
    """
    if not employer_location or not residence_location:
        return False
    residence_country = extract_country(residence_location)
    if residence_country is None:
        return False
    employer_country = extract_country(employer_location)
    if employer_country is None:
        return residence_country.lower() not in employer_location.lower()
    return employer_country != residence_country


# ─── Calculator ──────────────────────────────────────────────────────────────


class NetIncomeCalculator:
    """
    Computes net income through the completion model.

    resolver   - LocationResolver, supplies the tax profile for the residence
    completion - CompletionClient (or anything with complete_json)
    converter  - CurrencyConverter, used only to bound the estimate when the
                 salary currency differs from the tax currency
    """

    def __init__(self, resolver, completion, converter=None):
        self.resolver = resolver
        self.completion = completion
        self.converter = converter

    def expected_rate_band(
        self, request: NetIncomeRequest, tax_profile: Optional[TaxProfile]
    ) -> Optional[tuple[float, float]]:
        """National effective-rate range from the deterministic estimate, or None."""
        if tax_profile is None:
            return None

        gross = request.gross_salary
        deductions = request.pre_tax_deductions
        if tax_profile.currency != request.currency:
            if self.converter is None:
                logger.warning("No converter; skipping rate guardrail for %s", tax_profile.country)
                return None
            rate = self.converter.get_rate(request.currency, tax_profile.currency)
            if rate is None:
                logger.warning(
                    "%s->%s rate unavailable; skipping rate guardrail",
                    request.currency, tax_profile.currency,
                )
                return None
            gross *= rate
            deductions *= rate

        estimate = estimate_national_tax(gross, tax_profile, pre_tax_deductions=deductions)
        return effective_rate_band(estimate)

    def calculate(self, request: NetIncomeRequest, user: Optional[dict] = None) -> NetIncomeResult:
        tax_location = determine_tax_location(request)
        employer = request.employer_location or request.location
        profile = self.resolver.resolve_profile(
            tax_location, work_mode=request.work_mode, employer_location=employer
        )
        tax_profile = profile.tax_profile
        band = self.expected_rate_band(request, tax_profile)
        international = is_international_remote(employer, request.residence_location or request.location)

        prompt = build_prompt(request, profile, tax_location, band, international, user)
        logger.info(
            "Calculating net income: %.0f %s in %s (tax source %s, band %s)",
            request.gross_salary, request.currency, tax_location, profile.tax_source, band,
        )
        data = self.completion.complete_json(
            prompt, max_tokens=NET_INCOME_MAX_TOKENS, temperature=NET_INCOME_TEMPERATURE
        )

        result = parse_net_income_result(
            data, request.currency, expected_gross=request.gross_salary, rate_band=band
        )
        result.context = {
            "taxLocation": tax_location,
            "taxCountry": profile.country,
            "taxSource": profile.tax_source,
            "internationalRemote": international,
            "expectedNationalRateRange": list(band) if band else None,
        }
        return result


# ─── Prompt ──────────────────────────────────────────────────────────────────


def _format_brackets(tax_profile: TaxProfile) -> str:
    lines = []
    for b in tax_profile.brackets:
        upper = f"{b.max:,.0f}" if b.max is not None else "and above"
        lines.append(f"- {b.rate}%: {b.min:,.0f} to {upper} {tax_profile.currency}")
    return "\n".join(lines)


def _format_tax_data(tax_profile: Optional[TaxProfile], location: str) -> str:
    if tax_profile is None:
        return (
            f"REAL TAX DATA FOR {location}:\n"
            "No verified tax tables are available for this location. Use the current "
            "national rules you know for it and lower confidence.taxAccuracy accordingly."
        )

    charges = "\n".join(
        f"- {c.name}: {c.rate}%"
        + (f" (cap {c.cap:,.0f})" if c.cap else "")
        + (f" above {c.threshold:,.0f}" if c.threshold else "")
        + f" -> {'socialSecurity' if c.category == 'social_security' else 'medicare'}"
        for c in tax_profile.social_charges
    ) or "- None"
    local = "\n".join(f"- {t.name}: {t.rate}% ({t.description})" for t in tax_profile.local_taxes) or "- None"
    rules = "\n".join(f"- {r}" for r in tax_profile.special_rules) or "- None"
    deduction = ""
    if tax_profile.professional_deduction_rate:
        deduction = (
            f"\nProfessional deduction: {tax_profile.professional_deduction_rate * 100:.0f}% of gross"
        )

    return f"""REAL TAX DATA FOR {location}:
Country: {tax_profile.country}
Currency: {tax_profile.currency}
Source: {tax_profile.source}

Income tax brackets:
{_format_brackets(tax_profile)}
Personal allowance: {tax_profile.personal_allowance:,.0f} {tax_profile.currency}{deduction}

Social charges (employee share):
{charges}

Local taxes:
{local}

Special rules:
{rules}"""


def _remote_context(request: NetIncomeRequest, international: bool) -> str:
    employer = request.employer_location or request.location
    residence = request.residence_location or request.location
    if international:
        rules = (
            "INTERNATIONAL REMOTE WORK RULES:\n"
            f"1. Tax residence determines primary taxation (employee location: {residence})\n"
            "2. Double taxation treaties may apply between countries\n"
            "3. Social security coordination (EU/bilateral agreements)\n"
            "4. 183-day rule for tax residence determination\n"
            f"CRITICAL: apply {residence} tax rates and system, NOT {employer} rates."
        )
    else:
        rules = (
            "DOMESTIC WORK RULES:\n"
            "1. Nexus rules - which state(s) have taxation rights\n"
            "2. Reciprocity agreements between states or regions\n"
            "3. Withholding requirements"
        )
    return f"""WORK ARRANGEMENT:
- Employee lives in: {residence}
- Employer based in: {employer}
- Work mode: {request.work_mode}
- International remote work: {'YES' if international else 'NO'}

{rules}"""


def _user_context(user: Optional[dict]) -> str:
    if not user:
        return ""
    return f"""
USER TAX CONTEXT:
Current Location: {user.get('current_location') or 'Not specified'}
Filing Status: {user.get('filing_status') or 'Single'}
"""


def build_prompt(
    request: NetIncomeRequest,
    profile,
    tax_location: str,
    band: Optional[tuple[float, float]],
    international: bool,
    user: Optional[dict] = None,
) -> str:
    """Assemble the net income prompt."""
    tax_profile = profile.tax_profile
    country = profile.country
    currency = request.currency

    guardrail = ""
    if band is not None:
        guardrail = (
            f"\nGUARDRAIL: national effective rate MUST be {band[0]:.0f}-{band[1]:.0f}% "
            f"(federal.amount / gross.annual). Results outside this range are rejected.\n"
        )

    extras = []
    for label, value in (
        ("Employer 401k match", request.employer_match_401k),
        ("Employer health contribution", request.employer_health_contribution),
        ("Stock options (annual value)", request.stock_options),
        ("Signing bonus", request.signing_bonus),
        ("Performance bonus", request.performance_bonus),
    ):
        if value:
            extras.append(f"- {label}: {value:,.0f} {currency}")
    compensation = "\n".join(extras) or "- None"

    return f"""You are an expert tax calculator. Calculate the precise net income for this scenario using the REAL TAX DATA provided.

LOCATION:
- Job location: {request.location}
- Tax residence: {tax_location} ({country})
- Cost of living index (New York = 100): {profile.cost_of_living_index}
{_user_context(user)}
{_remote_context(request, international)}

TAX YEAR: {date.today().year} (use the latest published rates)

{_format_tax_data(tax_profile, tax_location)}

SALARY DETAILS:
- Gross annual salary: {request.gross_salary:,.2f} {currency}
- Pre-tax retirement contributions: {request.retirement_401k:,.2f}
- Pre-tax health insurance: {request.health_insurance:,.2f}
- Other pre-tax deductions: {request.other_pre_tax_deductions:,.2f}

ADDITIONAL COMPENSATION:
{compensation}
{guardrail}
Express EVERY amount in {currency}. If the tax data uses another currency, convert at current rates.

REQUIRED JSON RESPONSE:
{{
  "gross": {{"annual": number, "monthly": number, "biweekly": number, "currency": "{currency}"}},
  "taxes": {{
    "federal": {{
      "amount": number,
      "rate": number (percent),
      "breakdown": {{"incomeTax": number, "socialSecurity": number, "medicare": number}}
    }},
    "state": {{"amount": number, "rate": number, "stateName": "string"}},
    "local": {{"amount": number, "rate": number, "locality": "string"}},
    "totalTaxes": number,
    "effectiveRate": number (percent)
  }},
  "deductions": {{"retirement401k": number, "healthInsurance": number, "other": number, "totalDeductions": number}},
  "netIncome": {{"annual": number, "monthly": number, "biweekly": number, "hourly": number, "dailyTakeHome": number}},
  "comparison": {{"vsMedianIncome": "string", "purchasingPower": number, "savingsPotential": number}},
  "remoteWorkConsiderations": {{"taxComplexity": "simple|moderate|complex", "multiStateTax": boolean, "notes": ["string"]}},
  "insights": {{"taxOptimizations": ["string"], "takeHomeSummary": "string", "warnings": ["string"]}},
  "totalCompensation": {{"baseSalary": number, "benefits": number, "bonuses": number, "equity": number, "total": number, "totalAfterTax": number}},
  "confidence": {{"overall": number (0-1), "taxAccuracy": number (0-1), "source": "current_tax_tables|recent_estimates|general_calculation"}}
}}

TAX FIELD MAPPING (the structure is US-style; adapt it for {country}):
- "federal" = ALL national taxes: income tax + social charges + contributions
- "federal.breakdown.incomeTax" = national income tax only
- "federal.breakdown.socialSecurity" = major social charges (social security, pension, CSG, ...)
- "federal.breakdown.medicare" = other national charges (Medicare, CRDS, levies, ...)
- "state" = regional taxes, "local" = city/municipal taxes (0 when none)

HARD REQUIREMENTS:
1. federal.amount MUST equal the sum of its breakdown components
2. totalTaxes MUST equal federal.amount + state.amount + local.amount
3. effectiveRate MUST equal totalTaxes / gross.annual * 100
4. NEVER report federal.amount as 0 when totalTaxes > 0
5. gross.annual MUST be {request.gross_salary:.2f}

Return ONLY the JSON object, no additional text."""
