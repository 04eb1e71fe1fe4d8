"""
Salary Intelligence Module
==========================
Deterministic comfort scoring for a salary in a given location.

All thresholds are annual salaries in New York-equivalent USD: a salary is
first divided by the location's cost index (NYC = 100) and then placed on a
piecewise-linear 0-100 scale.

    adjusted  <  40k  ->  0-20   struggling
    adjusted  <  60k  -> 20-40   tight
    adjusted  < 100k  -> 40-60   comfortable
    adjusted  < 150k  -> 60-80   thriving
    adjusted  < 200k  -> 80-95   luxurious
    above 200k        -> 95 + 1 point per extra 50k, capped at 100

Main entry points:
    analyze_salary("$120k - $150k", "Austin, TX") -> dict | None
    score_comfort(net_income_usd, location_profile) -> ComfortScore
    budget_breakdown(net_monthly) -> dict
"""

from dataclasses import dataclass, asdict
from typing import Optional

from config import get_logger
from cost_of_living import lookup_location
from salary_parser import parse_salary_string

logger = get_logger(__name__)

# ─── Constants ───────────────────────────────────────────────────────────────

# (upper bound of adjusted salary, score at lower bound, score at upper bound)
COMFORT_BANDS = [
    (40_000, 0, 20),
    (60_000, 20, 40),
    (100_000, 40, 60),
    (150_000, 60, 80),
    (200_000, 80, 95),
]
TOP_BAND_STEP = 50_000

# Annual NYC-equivalent living costs
BASIC_COSTS = 35_000
COMFORTABLE_COSTS = 55_000
MAX_SAVINGS_RATE = 50.0

# Used when live rates are unavailable; USD per unit of currency
APPROXIMATE_USD_RATES = {
    "USD": 1.0,
    "EUR": 1.08,
    "GBP": 1.27,
    "CAD": 0.74,
    "AUD": 0.65,
    "NZD": 0.60,
    "JPY": 0.0067,
    "KRW": 0.00075,
    "CNY": 0.14,
    "INR": 0.012,
    "CHF": 1.11,
    "SGD": 0.74,
    "HKD": 0.13,
    "SEK": 0.095,
    "BRL": 0.20,
    "MXN": 0.059,
}

# Share of net monthly income, percent
DEFAULT_BUDGET_SPLIT = {
    "housing": 30,
    "food": 12,
    "transportation": 10,
    "healthcare": 8,
    "utilities": 6,
    "entertainment": 7,
    "savings": 20,
    "other": 7,
}

# Monthly New York costs for a single person; scaled by location indices
NYC_MONTHLY_COSTS = {
    "housing": 3500,
    "food": 600,
    "transportation": 400,
    "utilities": 200,
    "healthcare": 300,
    "entertainment": 300,
    "other": 200,
}


@dataclass
class ComfortScore:
    level: str
    score: float
    adjusted_salary_usd: float

    def to_dict(self) -> dict:
        return asdict(self)


# ─── Scoring ─────────────────────────────────────────────────────────────────


def adjust_for_cost_of_living(salary_usd: float, cost_index: float) -> float:
    """NYC-equivalent salary: salary / index * 100."""
    if cost_index <= 0:
        raise ValueError(f"cost index must be positive, got {cost_index}")
    return salary_usd / cost_index * 100


def calculate_comfort_score(salary_usd: float, cost_index: float = 100.0) -> float:
    """Comfort score 0-100 for an annual USD salary in a location with `cost_index`."""
    adjusted = adjust_for_cost_of_living(salary_usd, cost_index)

    lower = 0
    for upper, low_score, high_score in COMFORT_BANDS:
        if adjusted < upper:
            position = (adjusted - lower) / (upper - lower)
            return max(0.0, low_score + position * (high_score - low_score))
        lower = upper

    top = COMFORT_BANDS[-1]
    return min(100.0, top[2] + (adjusted - top[0]) / TOP_BAND_STEP)


def get_comfort_level(score: float) -> str:
    if score < 20:
        return "struggling"
    if score < 40:
        return "tight"
    if score < 60:
        return "comfortable"
    if score < 80:
        return "thriving"
    return "luxurious"


def calculate_savings_potential(salary_usd: float, cost_index: float = 100.0) -> float:
    """
    Percent of income that could plausibly be saved.

    Zero below basic costs, rising to 15% at comfortable costs, then growing
    with the surplus up to 50%.
    """
    adjusted = adjust_for_cost_of_living(salary_usd, cost_index)
    if adjusted <= BASIC_COSTS:
        return 0.0
    if adjusted <= COMFORTABLE_COSTS:
        return (adjusted - BASIC_COSTS) / adjusted * 100
    surplus = adjusted - COMFORTABLE_COSTS
    return min(MAX_SAVINGS_RATE, 15 + surplus / adjusted * 100)


def score_comfort(net_income_usd: float, location_profile) -> ComfortScore:
    """Comfort score and level for an annual USD amount in a resolved location."""
    cost_index = location_profile.cost_of_living_index
    score = calculate_comfort_score(net_income_usd, cost_index)
    return ComfortScore(
        level=get_comfort_level(score),
        score=round(score, 2),
        adjusted_salary_usd=round(adjust_for_cost_of_living(net_income_usd, cost_index), 2),
    )


# ─── Budget ──────────────────────────────────────────────────────────────────


def budget_breakdown(net_monthly: float, expense_profile: Optional[dict] = None) -> dict:
    """
    Split monthly net income into spending categories.

    `expense_profile` maps category -> explicit monthly amount; those replace
    the default percentage for that category. Unknown categories are added.
    """
    expense_profile = expense_profile or {}
    categories = {}
    for name, percent in DEFAULT_BUDGET_SPLIT.items():
        amount = expense_profile.get(name, net_monthly * percent / 100)
        categories[name] = amount
    for name, amount in expense_profile.items():
        categories.setdefault(name, amount)

    total = sum(categories.values())
    return {
        "netMonthly": round(net_monthly, 2),
        "categories": {
            name: {
                "amount": round(amount, 2),
                "percent": round(amount / net_monthly * 100, 1) if net_monthly > 0 else 0.0,
            }
            for name, amount in categories.items()
        },
        "total": round(total, 2),
        "remaining": round(net_monthly - total, 2),
        "overBudget": total > net_monthly + 0.01,
    }


def baseline_monthly_costs(location_profile) -> dict:
    """Typical single-person monthly costs (USD) in the profile's location."""
    housing_factor = location_profile.rent_index / 100
    general_factor = location_profile.cost_of_living_index / 100
    costs = {
        name: round(amount * (housing_factor if name == "housing" else general_factor), 2)
        for name, amount in NYC_MONTHLY_COSTS.items()
    }
    costs["total"] = round(sum(costs.values()), 2)
    return costs


# ─── Full Analysis ───────────────────────────────────────────────────────────


def to_usd(amount: float, currency: str, converter=None) -> tuple[float, str]:
    """
    Convert to USD, preferring live rates.

    Returns (usd_amount, source) where source is "live", "approximate" or "assumed".
    """
    currency = currency.upper()
    if converter is not None:
        rate = converter.get_rate(currency, "USD")
        if rate is not None:
            return amount * rate, "live"
    if currency in APPROXIMATE_USD_RATES:
        return amount * APPROXIMATE_USD_RATES[currency], "approximate"
    logger.warning("No USD rate for %s; treating amount as USD", currency)
    return amount, "assumed"


def analyze_salary(
    salary_str: Optional[str],
    location: Optional[str],
    converter=None,
) -> Optional[dict]:
    """
    Full comfort analysis of a posted salary.

    Returns None when the salary is missing or contains no amount.
    """
    if not salary_str:
        return None
    parsed = parse_salary_string(salary_str)
    if parsed is None:
        return None

    annual = parsed.annualized()
    cost = lookup_location(location)

    min_usd, rates_source = to_usd(annual.min, annual.currency, converter)
    max_usd, _ = to_usd(annual.max, annual.currency, converter)
    avg_usd = (min_usd + max_usd) / 2

    factor = 100 / cost.cost_index
    adjusted_avg = avg_usd * factor
    score = calculate_comfort_score(avg_usd, cost.cost_index)

    return {
        "originalSalary": parsed.to_dict(),
        "normalizedSalaryUSD": {"min": round(min_usd, 2), "max": round(max_usd, 2)},
        "costOfLivingAdjusted": {
            "min": round(min_usd * factor, 2),
            "max": round(max_usd * factor, 2),
        },
        "comfortScore": score,
        "comfortLevel": get_comfort_level(score),
        "purchasingPower": adjusted_avg / 100_000 * cost.purchasing_power_index,
        "savingsPotential": calculate_savings_potential(avg_usd, cost.cost_index),
        "betterThanPercent": min(95.0, max(5.0, score * 0.9)),
        "location": {
            "label": cost.label,
            "costIndex": cost.cost_index,
            "rentIndex": cost.rent_index,
            "source": cost.source,
        },
        "ratesSource": rates_source,
    }
