"""
Salary String Parser
====================
Turns the free-text salary found on job postings into a SalaryFigure.

Handles:
  - Currency symbols ($, £, €, ¥, ₹, ₩, C$, A$, ...) and ISO codes
  - Thousands separators ("120,000", "45.000") and decimals ("32.50")
  - "k" / "m" suffixes ("120k", "1.2M")
  - Hourly and monthly markers ("/hr", "per month")
  - Ranges: the first two amounts, ignoring percentages, 401(k) plans and
    small bare numbers ("5 days a week")

Examples:
    parse_salary_string("$120k - $150k")   -> SalaryFigure(120000, 150000, "USD", "annual")
    parse_salary_string("€3.500 / month")  -> SalaryFigure(3500, 3500, "EUR", "monthly")
    parse_salary_string("Competitive")     -> None
"""

import re
from dataclasses import dataclass, asdict
from typing import Optional

from currency import format_currency

HOURS_PER_YEAR = 2080
MONTHS_PER_YEAR = 12

# Longest symbols first so "HK$" wins over "$"
_SYMBOL_CURRENCIES = [
    ("HK$", "HKD"),
    ("NZ$", "NZD"),
    ("CA$", "CAD"),
    ("AU$", "AUD"),
    ("C$", "CAD"),
    ("A$", "AUD"),
    ("S$", "SGD"),
    ("R$", "BRL"),
    ("$", "USD"),
    ("£", "GBP"),
    ("€", "EUR"),
    ("¥", "JPY"),
    ("₹", "INR"),
    ("₩", "KRW"),
]

_ISO_CODES = (
    "USD", "EUR", "GBP", "JPY", "KRW", "CNY", "INR", "CAD", "AUD",
    "SGD", "HKD", "CHF", "SEK", "NZD", "MXN", "BRL", "NOK", "DKK", "PLN",
)
_ISO_RE = re.compile(r"\b(" + "|".join(_ISO_CODES) + r")\b", re.IGNORECASE)

_NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)*)(?:\s*([kKmM])(?![a-zA-Z]))?")
_PERCENT_RE = re.compile(r"\s*(%|percent\b)", re.IGNORECASE)
_RETIREMENT_PLANS = ("401", "403", "457")
_PLAN_SUFFIX_RE = re.compile(r"\s*\(?[kKbB]\)?(?![a-zA-Z])")
_ISO_BEFORE_RE = re.compile(r"\b(" + "|".join(_ISO_CODES) + r")\s*$", re.IGNORECASE)
_ISO_AFTER_RE = re.compile(r"\s*(" + "|".join(_ISO_CODES) + r")\b", re.IGNORECASE)

# Unmarked numbers below this share of the largest amount are not salaries
_BARE_NUMBER_RATIO = 0.1

_HOURLY_RE = re.compile(r"(/\s*h(?:ou)?r\b|/\s*h\b|per\s+hour|hourly|an\s+hour)", re.IGNORECASE)
_MONTHLY_RE = re.compile(r"(/\s*mo(?:nth)?\b|per\s+month|monthly|a\s+month)", re.IGNORECASE)


@dataclass
class SalaryFigure:
    min: float
    max: float
    currency: str
    frequency: str = "annual"  # "annual" | "monthly" | "hourly"

    @property
    def is_fixed(self) -> bool:
        return self.min == self.max

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    def annualized(self) -> "SalaryFigure":
        """Same figure expressed per year."""
        factor = {"hourly": HOURS_PER_YEAR, "monthly": MONTHS_PER_YEAR}.get(self.frequency, 1)
        return SalaryFigure(self.min * factor, self.max * factor, self.currency, "annual")

    def to_dict(self) -> dict:
        return asdict(self)


def detect_currency(text: str, default: str = "USD") -> str:
    """Currency code from an ISO code or symbol in `text`."""
    match = _ISO_RE.search(text)
    if match:
        return match.group(1).upper()
    for symbol, code in _SYMBOL_CURRENCIES:
        if symbol in text:
            return code
    return default


def detect_frequency(text: str) -> str:
    if _HOURLY_RE.search(text):
        return "hourly"
    if _MONTHLY_RE.search(text):
        return "monthly"
    return "annual"


def _to_number(token: str, has_suffix: bool) -> float:
    """
    Parse a numeric token with either ',' or '.' as thousands separator.

    "120,000" -> 120000, "45.000" -> 45000, "32.50" -> 32.5, "1.5" (with k) -> 1.5
    """
    if "," in token and "." in token:
        # Whichever separator comes last is the decimal point
        if token.rfind(",") > token.rfind("."):
            token = token.replace(".", "").replace(",", ".")
        else:
            token = token.replace(",", "")
        return float(token)

    for sep in (",", "."):
        if sep in token:
            groups = token.split(sep)
            thousands = all(len(g) == 3 for g in groups[1:])
            if thousands and not (has_suffix and len(groups) == 2):
                return float("".join(groups))
            if len(groups) == 2:
                return float(f"{groups[0]}.{groups[1]}")
            return float("".join(groups))
    return float(token)


def _is_currency_marked(text: str, match: re.Match) -> bool:
    if match.group(2):
        return True
    before = text[:match.start()].rstrip()
    if any(before.endswith(symbol) for symbol, _ in _SYMBOL_CURRENCIES):
        return True
    return bool(_ISO_BEFORE_RE.search(before) or _ISO_AFTER_RE.match(text, match.end()))


def _is_amount(text: str, match: re.Match) -> bool:
    if _PERCENT_RE.match(text, match.end()):
        return False
    # 401k, 401(k), 403b are plan names
    if match.group(1) in _RETIREMENT_PLANS and _PLAN_SUFFIX_RE.match(text, match.end(1)):
        return False
    return True


def extract_amounts(text: str) -> list[float]:
    """
    Monetary amounts in `text` in order of appearance, with k/m suffixes applied.

    Percentages and retirement plan names are skipped. Bare numbers far smaller
    than the largest currency-marked amount ("5 days a week") are dropped too.
    """
    found = []
    for match in _NUMBER_RE.finditer(text):
        if not _is_amount(text, match):
            continue
        token, suffix = match.groups()
        value = _to_number(token, bool(suffix))
        if suffix and suffix.lower() == "k":
            value *= 1_000
        elif suffix and suffix.lower() == "m":
            value *= 1_000_000
        found.append((value, _is_currency_marked(text, match)))

    if not found:
        return []
    marked = [value for value, is_marked in found if is_marked]
    reference = max(marked or [value for value, _ in found])
    return [
        value for value, is_marked in found
        if is_marked or value >= reference * _BARE_NUMBER_RATIO
    ]


def parse_salary_string(text: Optional[str]) -> Optional[SalaryFigure]:
    """
    Parse a salary string into a SalaryFigure, or None when no amount is present.

    The first two amounts form the range. The figure keeps the posting's
    frequency; call .annualized() for yearly values.
    """
    if not text or not text.strip():
        return None

    amounts = extract_amounts(text)[:2]
    if not amounts:
        return None

    return SalaryFigure(
        min=min(amounts),
        max=max(amounts),
        currency=detect_currency(text),
        frequency=detect_frequency(text),
    )


def format_salary_range(min_amount: float, max_amount: Optional[float], currency: str) -> str:
    """"€45,000 - €55,000", or a single amount when min and max are equal."""
    low = format_currency(min_amount, currency)
    if max_amount is None or round(max_amount) == round(min_amount):
        return low
    return f"{low} - {format_currency(max_amount, currency)}"
