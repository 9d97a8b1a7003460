import threading
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

import requests

from clock import SystemClock
from constants import Currency
from exceptions import ConversionUnavailableError, RateSourceError
from logging_config import get_logger

logger = get_logger("currency")

SUPPORTED_CURRENCIES = tuple(c.value for c in Currency)
BASE_CURRENCY = Currency.INR.value

# Used when the rate provider is unreachable or omits a currency.
FALLBACK_RATES: dict[tuple[str, str], Decimal] = {
    ("INR", "USD"): Decimal("0.012"),
    ("INR", "EUR"): Decimal("0.011"),
    ("INR", "GBP"): Decimal("0.0094"),
    ("INR", "INR"): Decimal("1"),
    ("USD", "INR"): Decimal("83.16"),
    ("EUR", "INR"): Decimal("90.91"),
    ("GBP", "INR"): Decimal("106.38"),
}


class RateSource(Protocol):
    def fetch_daily_rates(self, base_currency: str) -> dict[str, Decimal]: ...


class ExchangeRateHostSource:
    """Fetches ``{code: rate}`` for a base currency from an exchangerate.host style API."""

    def __init__(self, url: str, timeout: float = 10, max_retries: int = 3):
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries

    def fetch_daily_rates(self, base_currency: str) -> dict[str, Decimal]:
        last_error: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                resp = requests.get(self.url, params={"base": base_currency}, timeout=self.timeout)
                resp.raise_for_status()
                return self._parse(resp.json())
            except (requests.exceptions.RequestException, ValueError) as e:
                last_error = e
                if attempt < self.max_retries - 1:
                    # Backoff: 1, 2, 4 seconds...
                    wait = 2 ** attempt
                    logger.warning(
                        "Rate fetch failed (attempt %d/%d): %s. Retrying in %ss",
                        attempt + 1, self.max_retries, e, wait,
                    )
                    time.sleep(wait)
        raise RateSourceError(f"Could not fetch rates for {base_currency}: {last_error}")

    @staticmethod
    def _parse(payload) -> dict[str, Decimal]:
        if not isinstance(payload, dict) or not isinstance(payload.get("rates"), dict):
            raise ValueError("Invalid response from exchange rate API")
        rates: dict[str, Decimal] = {}
        for code, value in payload["rates"].items():
            if code not in SUPPORTED_CURRENCIES or value in (None, 0):
                continue
            try:
                rates[code] = Decimal(str(value))
            except InvalidOperation:
                continue
        return rates


@dataclass(frozen=True)
class RateEntry:
    rate: Decimal
    generated_at: datetime


class RateCache:
    """Rates keyed by (day, from, to). ``put`` overwrites, so racing refreshes are harmless."""

    def __init__(self):
        self._entries: dict[tuple[date, str, str], RateEntry] = {}
        self._lock = threading.Lock()

    def get(self, day: date, from_currency: str, to_currency: str) -> Optional[Decimal]:
        entry = self._entries.get((day, from_currency, to_currency))
        return entry.rate if entry else None

    def put(self, day: date, from_currency: str, to_currency: str, rate: Decimal, generated_at: datetime) -> None:
        with self._lock:
            self._entries[(day, from_currency, to_currency)] = RateEntry(rate, generated_at)

    def has_rates_for(self, day: date) -> bool:
        return any(key[0] == day for key in list(self._entries))

    def rates_for(self, day: date) -> dict[str, dict[str, Decimal]]:
        table: dict[str, dict[str, Decimal]] = {}
        for (entry_day, from_currency, to_currency), entry in list(self._entries.items()):
            if entry_day == day:
                table.setdefault(from_currency, {})[to_currency] = entry.rate
        return table

    def purge_before(self, day: date) -> int:
        with self._lock:
            stale = [key for key in self._entries if key[0] < day]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)


class CurrencyConverter:
    """
    Converts between supported currencies using today's cached rates.

    Pairs not cached directly are bridged through the base currency. When no
    rate can be found at all, ``convert`` returns the amount unchanged.
    """

    def __init__(
        self,
        rate_source: Optional[RateSource],
        cache: Optional[RateCache] = None,
        clock=None,
        base_currency: str = BASE_CURRENCY,
        fallback_rates: Optional[dict[tuple[str, str], Decimal]] = FALLBACK_RATES,
    ):
        self.rate_source = rate_source
        self.cache = cache if cache is not None else RateCache()
        self.clock = clock or SystemClock()
        self.base_currency = base_currency
        self.fallback_rates = fallback_rates

    def convert(self, amount: Decimal, from_currency, to_currency) -> Decimal:
        """Convert ``amount``; returns it unchanged if no rate is available."""
        from_code, to_code = _code(from_currency), _code(to_currency)
        if from_code == to_code:
            return amount
        try:
            rate = self.rate(from_code, to_code)
        except ConversionUnavailableError as e:
            logger.warning("%s; using unconverted amount %s", e, amount)
            return amount
        return Decimal(str(amount)) * rate

    def rate(self, from_currency: str, to_currency: str) -> Decimal:
        today = self.clock.today()
        rate = self._lookup(today, from_currency, to_currency)
        if rate is None and not self.cache.has_rates_for(today):
            self.refresh()
            rate = self._lookup(today, from_currency, to_currency)
        if rate is None:
            raise ConversionUnavailableError(f"No exchange rate for {from_currency}->{to_currency} on {today}")
        return rate

    def rates_for_today(self) -> dict[str, dict[str, Decimal]]:
        today = self.clock.today()
        if not self.cache.has_rates_for(today):
            self.refresh()
        return self.cache.rates_for(today)

    def refresh(self) -> None:
        """Load today's rates from the rate source; the fallback table covers failures and gaps."""
        today = self.clock.today()
        now = self.clock.now()
        base = self.base_currency

        try:
            if self.rate_source is None:
                raise RateSourceError("No rate source configured")
            fetched = self.rate_source.fetch_daily_rates(base)
        except RateSourceError as e:
            if not self.fallback_rates:
                logger.warning("Rate refresh failed and no fallback table configured: %s", e)
                return
            logger.warning("Rate refresh failed, storing fallback rates: %s", e)
            for (from_code, to_code), rate in self.fallback_rates.items():
                self.cache.put(today, from_code, to_code, rate, now)
            return

        for code, rate in fetched.items():
            if code == base or rate <= 0:
                continue
            self.cache.put(today, base, code, rate, now)
            self.cache.put(today, code, base, Decimal(1) / rate, now)
        self.cache.put(today, base, base, Decimal(1), now)

        # Pairs the provider omitted come from the fallback table.
        backfilled = 0
        for (from_code, to_code), rate in (self.fallback_rates or {}).items():
            if self.cache.get(today, from_code, to_code) is None:
                self.cache.put(today, from_code, to_code, rate, now)
                backfilled += 1
        if backfilled:
            logger.warning("Rate provider omitted some currencies; backfilled %d fallback rates", backfilled)
        purged = self.cache.purge_before(today)
        logger.info("Stored %d exchange rates for %s (purged %d stale)", len(fetched), today, purged)

    def _lookup(self, day: date, from_currency: str, to_currency: str) -> Optional[Decimal]:
        direct = self.cache.get(day, from_currency, to_currency)
        if direct is not None:
            return direct

        base = self.base_currency
        to_base = Decimal(1) if from_currency == base else self.cache.get(day, from_currency, base)
        from_base = Decimal(1) if to_currency == base else self.cache.get(day, base, to_currency)
        if to_base is None or from_base is None:
            return None
        return to_base * from_base


def _code(currency) -> str:
    return getattr(currency, "value", currency)
