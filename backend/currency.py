"""
Currency Conversion Module
==========================
Live exchange rates with a one-hour cache per base currency.

Rates come from a primary public provider; when that fails the secondary
provider is tried. If both fail the conversion is reported as unavailable
(None) so callers can decide how to degrade.

Main entry points:
    converter = CurrencyConverter()
    converter.convert(100000, "EUR", "USD") -> ConversionResult | None
    converter.convert_salary_range({"min": 50000, "max": 70000}, "EUR", "USD")
    format_currency(85000, "EUR") -> "€85,000"
"""

import threading
import time
from dataclasses import dataclass, asdict
from typing import Callable, Optional

import requests

from config import (
    FX_CACHE_TTL_SECONDS,
    FX_FALLBACK_URL,
    FX_PRIMARY_URL,
    HTTP_TIMEOUT_SECONDS,
    get_logger,
)

logger = get_logger(__name__)


# ─── Supported Currencies ────────────────────────────────────────────────────

SUPPORTED_CURRENCIES = [
    {"code": "USD", "symbol": "$", "name": "US Dollar"},
    {"code": "EUR", "symbol": "€", "name": "Euro"},
    {"code": "GBP", "symbol": "£", "name": "British Pound"},
    {"code": "JPY", "symbol": "¥", "name": "Japanese Yen"},
    {"code": "KRW", "symbol": "₩", "name": "South Korean Won"},
    {"code": "CNY", "symbol": "¥", "name": "Chinese Yuan"},
    {"code": "INR", "symbol": "₹", "name": "Indian Rupee"},
    {"code": "CAD", "symbol": "C$", "name": "Canadian Dollar"},
    {"code": "AUD", "symbol": "A$", "name": "Australian Dollar"},
    {"code": "SGD", "symbol": "S$", "name": "Singapore Dollar"},
    {"code": "HKD", "symbol": "HK$", "name": "Hong Kong Dollar"},
    {"code": "CHF", "symbol": "Fr", "name": "Swiss Franc"},
    {"code": "SEK", "symbol": "kr", "name": "Swedish Krona"},
    {"code": "NZD", "symbol": "NZ$", "name": "New Zealand Dollar"},
    {"code": "MXN", "symbol": "$", "name": "Mexican Peso"},
    {"code": "BRL", "symbol": "R$", "name": "Brazilian Real"},
]

_SYMBOLS = {c["code"]: c["symbol"] for c in SUPPORTED_CURRENCIES}

# Currencies displayed without minor units
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


@dataclass
class ConversionResult:
    from_currency: str
    to_currency: str
    amount: float
    converted: float
    rate: float
    timestamp: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["from"] = data.pop("from_currency")
        data["to"] = data.pop("to_currency")
        return data


@dataclass
class _CachedRates:
    rates: dict[str, float]
    fetched_at: float


class CurrencyConverter:
    """
    Converts amounts between currencies using cached live rates.

    The HTTP session, cache lifetime and clock are injectable so tests can run
    without the network and without sleeping.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        ttl_seconds: float = FX_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ):
        self.session = session or requests.Session()
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.timeout = timeout
        self._cache: dict[str, _CachedRates] = {}
        self._lock = threading.Lock()

    # ─── Rate Fetching ───────────────────────────────────────────────────────

    def _fetch_primary(self, base: str) -> dict[str, float]:
        response = self.session.get(FX_PRIMARY_URL.format(base=base), timeout=self.timeout)
        response.raise_for_status()
        rates = response.json().get("rates")
        if not rates:
            raise ValueError(f"primary provider returned no rates for {base}")
        return rates

    def _fetch_fallback(self, base: str) -> dict[str, float]:
        response = self.session.get(
            FX_FALLBACK_URL, params={"from": base}, timeout=self.timeout
        )
        response.raise_for_status()
        rates = response.json().get("rates")
        if not rates:
            raise ValueError(f"fallback provider returned no rates for {base}")
        # Frankfurter omits the base currency itself
        return {**rates, base: 1.0}

    def get_rates(self, base: str) -> Optional[dict[str, float]]:
        """
        Return the rate table for `base`, from cache when fresh.

        Returns None when neither provider can supply rates.
        """
        base = base.upper()
        now = self.clock()

        with self._lock:
            cached = self._cache.get(base)
            if cached and now - cached.fetched_at < self.ttl_seconds:
                return cached.rates

        rates = None
        try:
            rates = self._fetch_primary(base)
        except (requests.RequestException, ValueError) as e:
            logger.warning("Primary FX provider failed for %s: %s", base, e)
            try:
                rates = self._fetch_fallback(base)
            except (requests.RequestException, ValueError) as e2:
                logger.error("Fallback FX provider failed for %s: %s", base, e2)
                return None

        with self._lock:
            self._cache[base] = _CachedRates(rates=rates, fetched_at=now)
        return rates

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[float]:
        """Exchange rate from one currency to another, or None if unavailable."""
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return 1.0

        rates = self.get_rates(from_currency)
        if rates is None:
            return None
        rate = rates.get(to_currency)
        if rate is None:
            logger.warning("No rate from %s to %s", from_currency, to_currency)
            return None
        return float(rate)

    # ─── Conversion ──────────────────────────────────────────────────────────

    def convert(
        self, amount: float, from_currency: str, to_currency: str
    ) -> Optional[ConversionResult]:
        """Convert `amount`; same-currency conversion never touches the network."""
        rate = self.get_rate(from_currency, to_currency)
        if rate is None:
            return None
        return ConversionResult(
            from_currency=from_currency.upper(),
            to_currency=to_currency.upper(),
            amount=amount,
            converted=amount * rate,
            rate=rate,
            timestamp=self.clock(),
        )

    def convert_salary_range(
        self, salary: dict, from_currency: str, to_currency: str
    ) -> Optional[dict]:
        """
        Convert a {min, max, median?} range with a single rate lookup.

        Returns the converted range plus the currency and rate, or None.
        """
        rate = self.get_rate(from_currency, to_currency)
        if rate is None:
            return None

        converted = {
            "min": salary["min"] * rate,
            "max": salary["max"] * rate,
            "currency": to_currency.upper(),
            "rate": rate,
        }
        if salary.get("median") is not None:
            converted["median"] = salary["median"] * rate
        return converted

    def clear_cache(self):
        """Drop all cached rate tables."""
        with self._lock:
            self._cache.clear()


# ─── Formatting ──────────────────────────────────────────────────────────────


def get_currency_symbol(code: str) -> str:
    """Display symbol for a currency code; unknown codes return the code itself."""
    return _SYMBOLS.get(code.upper(), code.upper())


def _group_indian(integer_part: str) -> str:
    """Indian digit grouping: last three digits, then pairs (12,34,567)."""
    if len(integer_part) <= 3:
        return integer_part
    head, tail = integer_part[:-3], integer_part[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs) + "," + tail


def format_currency(amount: float, code: str, decimals: int = 0) -> str:
    """
    Format an amount for display.

    JPY and KRW never show minor units; INR uses lakh/crore grouping.
    Unknown currencies fall back to "CODE 1,234".
    """
    code = code.upper()
    if code in ZERO_DECIMAL_CURRENCIES:
        decimals = 0

    sign = "-" if amount < 0 else ""
    rounded = round(abs(amount), decimals)

    if code == "INR":
        whole = int(rounded)
        body = _group_indian(str(whole))
        if decimals:
            fraction = f"{rounded - whole:.{decimals}f}"[1:]
            body += fraction
    else:
        body = f"{rounded:,.{decimals}f}"

    if code not in _SYMBOLS:
        return f"{sign}{code} {body}"
    return f"{sign}{_SYMBOLS[code]}{body}"
