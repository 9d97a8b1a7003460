import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Protocol

from clock import SystemClock
from constants import INDUSTRY_BENCHMARKS, TYPICAL_MAX_AMOUNTS

SUSPICIOUS_KEYWORDS = ("gift", "personal", "cash", "advance", "reimbursement")

BENCHMARK_MULTIPLIER = Decimal("3")
TYPICAL_MAX_MULTIPLIER = Decimal("1.5")
MIN_RECEIPT_TEXT_LENGTH = 20
RANDOM_FLAG_RATE = 0.05
EXTRACTED_AMOUNT_CEILING = Decimal("50000")


class RandomSource(Protocol):
    def random(self) -> float: ...


@dataclass(frozen=True)
class FraudResult:
    reasons: list[str] = field(default_factory=list)

    @property
    def is_fraud(self) -> bool:
        return bool(self.reasons)


def combine(*results: FraudResult) -> FraudResult:
    """Union of reasons, first occurrence order kept."""
    reasons: list[str] = []
    for result in results:
        for reason in result.reasons:
            if reason not in reasons:
                reasons.append(reason)
    return FraudResult(reasons)


class GeneralHeuristic:
    """Checks that need nothing but the expense itself and today's date."""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()

    def evaluate(self, expense) -> FraudResult:
        reasons: list[str] = []

        benchmark = INDUSTRY_BENCHMARKS.get(_category_value(expense.category))
        if benchmark is not None and Decimal(str(expense.amount)) > benchmark * BENCHMARK_MULTIPLIER:
            reasons.append(f"Amount is more than 3x the average for {_category_value(expense.category)}")

        # Saturday == 5, Sunday == 6
        if expense.date.weekday() >= 5:
            reasons.append("Expense submitted on a weekend")

        if expense.date > self.clock.today():
            reasons.append("Expense dated in the future")

        if expense.description:
            lowered = expense.description.lower()
            for keyword in SUSPICIOUS_KEYWORDS:
                if keyword in lowered:
                    reasons.append(f'Description contains suspicious keyword: "{keyword}"')
                    break

        return FraudResult(reasons)


class ReceiptHeuristic:
    """Checks applied to receipt-scan submissions.

    A fixed fraction of receipts is flagged at random to mimic an imperfect
    detector; pass a seeded or scripted ``rng`` to make that deterministic.
    """

    def __init__(self, rng: Optional[RandomSource] = None, random_flag_rate: float = RANDOM_FLAG_RATE):
        self.rng = rng or random.Random()
        self.random_flag_rate = random_flag_rate

    def evaluate(self, receipt_text: Optional[str], amount: Optional[Decimal], category) -> FraudResult:
        if not receipt_text or len(receipt_text) < MIN_RECEIPT_TEXT_LENGTH:
            return FraudResult(["Receipt text is too short or missing"])

        reasons: list[str] = []
        category_name = _category_value(category)
        typical_max = TYPICAL_MAX_AMOUNTS.get(category_name)
        if amount and typical_max is not None and Decimal(str(amount)) > typical_max * TYPICAL_MAX_MULTIPLIER:
            reasons.append(f"Amount is unusually high for {category_name} category")

        if self.rng.random() < self.random_flag_rate:
            reasons.append("Suspicious pattern detected in receipt text")

        return FraudResult(reasons)


class ExtractionHeuristic:
    """Flags receipts whose text did not yield the fields a genuine receipt carries."""

    def evaluate(self, extraction) -> FraudResult:
        reasons: list[str] = []
        if not extraction.amount:
            reasons.append("Could not extract amount from receipt")
        if extraction.date is None:
            reasons.append("Could not extract date from receipt")
        if not extraction.vendor:
            reasons.append("Could not extract vendor information from receipt")
        if extraction.amount and extraction.amount > EXTRACTED_AMOUNT_CEILING:
            reasons.append("Unusually high amount detected")
        return FraudResult(reasons)


def _category_value(category) -> str:
    return getattr(category, "value", category)
