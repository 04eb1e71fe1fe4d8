"""
Tax Data Module
===============
Progressive tax brackets and social contributions for a set of countries.
All data is 2024 rates, expressed in the country's own currency.

These static profiles are the fallback when no external tax lookup is
configured, and they always back the deterministic estimate used to bound
AI-produced net income figures.

Main entry points:
    get_tax_profile("France")                 -> TaxProfile | None
    estimate_national_tax(45000, profile)     -> TaxEstimate
    effective_rate_band(estimate)             -> (low, high) percent

Architecture:
    - TaxProfile holds brackets, allowance, deductions, social charges, local taxes
    - apply_brackets() does the marginal calculation for any bracket list
    - "National" tax is income tax + social charges; it maps onto the
      `federal` slot of a net income result. Local taxes map onto `local`.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional


# ─── Types ────────────────────────────────────────────────────────────────────


@dataclass
class TaxBracket:
    min: float
    max: Optional[float]  # None = no upper bound
    rate: float  # percent


@dataclass
class SocialCharge:
    name: str
    rate: float  # percent
    cap: Optional[float] = None
    threshold: float = 0.0
    description: str = ""
    category: str = "social_security"  # "social_security" | "other"


@dataclass
class LocalTax:
    name: str
    rate: float  # percent, flat on gross
    description: str = ""


@dataclass
class TaxProfile:
    country: str
    currency: str
    brackets: list[TaxBracket]
    personal_allowance: float = 0.0
    professional_deduction_rate: float = 0.0
    professional_deduction_cap: Optional[float] = None
    social_charges: list[SocialCharge] = field(default_factory=list)
    local_taxes: list[LocalTax] = field(default_factory=list)
    special_rules: list[str] = field(default_factory=list)
    region: Optional[str] = None
    tax_year: int = 2024
    source: str = "static"
    confidence: float = 0.85

    def to_dict(self) -> dict:
        """Camel-cased dict used in API responses and AI prompts."""
        return {
            "country": self.country,
            "region": self.region,
            "currency": self.currency,
            "taxYear": self.tax_year,
            "source": self.source,
            "confidence": self.confidence,
            "taxSystem": {
                "incomeTax": {
                    "brackets": [asdict(b) for b in self.brackets],
                    "personalAllowance": self.personal_allowance,
                    "professionalDeductionRate": self.professional_deduction_rate,
                },
                "socialCharges": [asdict(c) for c in self.social_charges],
                "localTaxes": [asdict(t) for t in self.local_taxes],
            },
            "specialRules": list(self.special_rules),
        }


@dataclass
class TaxEstimate:
    gross: float
    income_tax: float
    social_security: float
    other_charges: float
    local: float

    @property
    def national_total(self) -> float:
        return self.income_tax + self.social_security + self.other_charges

    @property
    def total(self) -> float:
        return self.national_total + self.local

    @property
    def national_rate(self) -> float:
        return self.national_total / self.gross * 100 if self.gross > 0 else 0.0

    @property
    def effective_rate(self) -> float:
        return self.total / self.gross * 100 if self.gross > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "gross": round(self.gross, 2),
            "incomeTax": round(self.income_tax, 2),
            "socialSecurity": round(self.social_security, 2),
            "otherCharges": round(self.other_charges, 2),
            "local": round(self.local, 2),
            "nationalTotal": round(self.national_total, 2),
            "total": round(self.total, 2),
            "nationalRate": round(self.national_rate, 2),
            "effectiveRate": round(self.effective_rate, 2),
        }


def _brackets(*rows) -> list[TaxBracket]:
    """Build a bracket list from (upper_bound, rate%) rows; first bracket starts at 0."""
    result = []
    lower = 0.0
    for upper, rate in rows:
        result.append(TaxBracket(min=lower, max=upper, rate=rate))
        lower = upper if upper is not None else lower
    return result


# ═══════════════════════════════════════════════════════════════════════════════
# STATIC 2024 PROFILES
# Single filer, no dependents, employee income only
# ═══════════════════════════════════════════════════════════════════════════════

TAX_PROFILES: dict[str, TaxProfile] = {
    "United States": TaxProfile(
        country="United States",
        currency="USD",
        brackets=_brackets(
            (11600, 10), (47150, 12), (100525, 22), (191950, 24),
            (243725, 32), (609350, 35), (None, 37),
        ),
        personal_allowance=14600,  # standard deduction
        social_charges=[
            SocialCharge("Social Security", 6.2, cap=168600, description="OASDI"),
            SocialCharge("Medicare", 1.45, category="other", description="Hospital insurance"),
        ],
        special_rules=["State and city income taxes are separate from federal tax"],
    ),
    "United Kingdom": TaxProfile(
        country="United Kingdom",
        currency="GBP",
        brackets=_brackets((12570, 0), (50270, 20), (125140, 40), (None, 45)),
        social_charges=[
            SocialCharge("National Insurance", 8, cap=50270, threshold=12570),
            SocialCharge("National Insurance (upper)", 2, threshold=50270),
        ],
        special_rules=["Personal allowance tapers by £1 per £2 above £100,000"],
    ),
    "Germany": TaxProfile(
        country="Germany",
        currency="EUR",
        brackets=_brackets((11604, 0), (17005, 18), (66760, 30), (277825, 42), (None, 45)),
        social_charges=[
            SocialCharge("Pension insurance", 9.3, cap=90600),
            SocialCharge("Unemployment insurance", 1.3, cap=90600),
            SocialCharge("Health insurance", 8.15, cap=62100, category="other"),
            SocialCharge("Long-term care insurance", 2.3, cap=62100, category="other"),
        ],
        special_rules=["Church tax (8-9% of income tax) applies only to registered members"],
    ),
    "France": TaxProfile(
        country="France",
        currency="EUR",
        brackets=_brackets((11294, 0), (28797, 11), (82341, 30), (177106, 41), (None, 45)),
        professional_deduction_rate=0.10,
        professional_deduction_cap=14171,
        social_charges=[
            SocialCharge("Cotisations sociales", 18.0, description="Pension, unemployment, health"),
            SocialCharge("CSG", 9.2, description="Contribution sociale généralisée"),
            SocialCharge(
                "CRDS", 0.5, category="other",
                description="Contribution au remboursement de la dette sociale",
            ),
        ],
        special_rules=[
            "10% professional expense deduction on taxable income",
            "Household quotient (quotient familial) not applied for single filers",
        ],
    ),
    "Netherlands": TaxProfile(
        country="Netherlands",
        currency="EUR",
        brackets=_brackets((75518, 36.97), (None, 49.5)),
        special_rules=["First bracket rate includes national insurance contributions"],
    ),
    "Spain": TaxProfile(
        country="Spain",
        currency="EUR",
        brackets=_brackets(
            (12450, 19), (20200, 24), (35200, 30), (60000, 37), (300000, 45), (None, 47),
        ),
        personal_allowance=5550,
        social_charges=[SocialCharge("Seguridad Social", 6.47, cap=56646)],
    ),
    "Ireland": TaxProfile(
        country="Ireland",
        currency="EUR",
        brackets=_brackets((42000, 20), (None, 40)),
        social_charges=[
            SocialCharge("PRSI", 4.0),
            SocialCharge("USC", 4.0, threshold=12012, category="other"),
        ],
        special_rules=["Personal and employee tax credits of €3,750 reduce income tax"],
    ),
    "Canada": TaxProfile(
        country="Canada",
        currency="CAD",
        brackets=_brackets((55867, 15), (111733, 20.5), (173205, 26), (246752, 29), (None, 33)),
        personal_allowance=15705,
        social_charges=[
            SocialCharge("CPP", 5.95, cap=68500, threshold=3500),
            SocialCharge("EI", 1.66, cap=63200),
        ],
        special_rules=["Provincial income tax applies on top of federal tax"],
    ),
    "Australia": TaxProfile(
        country="Australia",
        currency="AUD",
        brackets=_brackets((18200, 0), (45000, 16), (135000, 30), (190000, 37), (None, 45)),
        social_charges=[SocialCharge("Medicare levy", 2.0, category="other")],
    ),
    "Japan": TaxProfile(
        country="Japan",
        currency="JPY",
        brackets=_brackets(
            (1950000, 5), (3300000, 10), (6950000, 20), (9000000, 23),
            (18000000, 33), (40000000, 40), (None, 45),
        ),
        personal_allowance=480000,
        professional_deduction_rate=0.20,
        professional_deduction_cap=1950000,
        social_charges=[
            SocialCharge("Employees' pension", 9.15, cap=7800000),
            SocialCharge("Employment insurance", 0.6),
            SocialCharge("Health insurance", 5.0, cap=16680000, category="other"),
        ],
        local_taxes=[LocalTax("Resident tax", 10.0, "Prefectural and municipal inhabitant tax")],
    ),
    "Singapore": TaxProfile(
        country="Singapore",
        currency="SGD",
        brackets=_brackets(
            (20000, 0), (30000, 2), (40000, 3.5), (80000, 7), (120000, 11.5),
            (160000, 15), (200000, 18), (240000, 19), (280000, 19.5),
            (320000, 20), (500000, 22), (1000000, 23), (None, 24),
        ),
        social_charges=[SocialCharge("CPF", 20.0, cap=81600, description="Citizens and PRs only")],
        special_rules=["Foreign employees do not contribute to CPF"],
    ),
    "India": TaxProfile(
        country="India",
        currency="INR",
        brackets=_brackets(
            (300000, 0), (700000, 5), (1000000, 10), (1200000, 15), (1500000, 20), (None, 30),
        ),
        personal_allowance=75000,  # standard deduction, new regime
        social_charges=[SocialCharge("EPF", 12.0, cap=180000)],
        special_rules=["4% health and education cess on income tax"],
    ),
    "Switzerland": TaxProfile(
        country="Switzerland",
        currency="CHF",
        brackets=_brackets(
            (17800, 0), (31600, 1), (41400, 2), (55200, 3), (72500, 4),
            (78100, 5), (103600, 6), (134600, 8), (176000, 10), (None, 11.5),
        ),
        social_charges=[
            SocialCharge("AHV/IV/EO", 5.3),
            SocialCharge("ALV", 1.1, cap=148200),
        ],
        local_taxes=[LocalTax("Cantonal and municipal tax", 10.0, "Zurich average")],
    ),
    "United Arab Emirates": TaxProfile(
        country="United Arab Emirates",
        currency="AED",
        brackets=_brackets((None, 0)),
        special_rules=["No personal income tax; social security applies to nationals only"],
    ),
}


def get_tax_profile(country: Optional[str]) -> Optional[TaxProfile]:
    """Static tax profile for a canonical country name, or None."""
    if not country:
        return None
    return TAX_PROFILES.get(country)


# ═══════════════════════════════════════════════════════════════════════════════
# CALCULATION
# ═══════════════════════════════════════════════════════════════════════════════


def apply_brackets(taxable: float, brackets: list[TaxBracket]) -> float:
    """
    Apply progressive tax brackets.
    Each bracket taxes the slice of income between its min and max at its rate.
    Returns total tax in the brackets' currency.
    """
    tax = 0.0
    for bracket in brackets:
        if taxable <= bracket.min:
            break
        upper = taxable if bracket.max is None else min(taxable, bracket.max)
        slice_ = upper - bracket.min
        if slice_ > 0:
            tax += slice_ * bracket.rate / 100
    return tax


def _social_charge(gross: float, charge: SocialCharge) -> float:
    base = gross if charge.cap is None else min(gross, charge.cap)
    return max(0.0, base - charge.threshold) * charge.rate / 100


def estimate_national_tax(
    gross: float, profile: TaxProfile, pre_tax_deductions: float = 0.0
) -> TaxEstimate:
    """
    Deterministic tax estimate for `gross` (in the profile's currency).

    taxable = gross - pre-tax deductions - professional deduction - personal allowance
    income tax = brackets(taxable); social charges apply to capped gross.
    """
    gross = max(0.0, gross)

    deduction = gross * profile.professional_deduction_rate
    if profile.professional_deduction_cap is not None:
        deduction = min(deduction, profile.professional_deduction_cap)
    taxable = max(0.0, gross - pre_tax_deductions - deduction - profile.personal_allowance)
    income_tax = apply_brackets(taxable, profile.brackets)

    social_security = 0.0
    other = 0.0
    for charge in profile.social_charges:
        amount = _social_charge(gross, charge)
        if charge.category == "social_security":
            social_security += amount
        else:
            other += amount

    local = sum(gross * t.rate / 100 for t in profile.local_taxes)

    return TaxEstimate(
        gross=gross,
        income_tax=income_tax,
        social_security=social_security,
        other_charges=other,
        local=local,
    )


def effective_rate_band(estimate: TaxEstimate, width: float = 2.0) -> tuple[float, float]:
    """
    Acceptable national effective-rate range (percent) around the estimate.

    (round(rate) - width, round(rate) + width), clamped to [0, 100].
    """
    center = round(estimate.national_rate)
    return max(0.0, center - width), min(100.0, center + width)
