"""
Tests for the rule-based fraud heuristics.

All tests are pure, with no database. The clock is frozen on Wednesday 2024-05-15.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from fraud import ExtractionHeuristic, FraudResult, GeneralHeuristic, ReceiptHeuristic, combine
from receipts import ReceiptExtraction


def expense(**overrides):
    fields = {
        "user_id": "emp-1",
        "amount": Decimal("500.00"),
        "currency": "INR",
        "category": "Travelling",
        "date": date(2024, 5, 14),
        "description": "Train ticket to Pune",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


RECEIPT_TEXT = "TAX INVOICE\nOffice Solutions\nTOTAL AMOUNT: INR 1200"


# =============================================================================
# General heuristic
# =============================================================================


class TestGeneralHeuristic:

    @pytest.fixture
    def heuristic(self, clock):
        return GeneralHeuristic(clock)

    def test_clean_expense_passes(self, heuristic):
        result = heuristic.evaluate(expense())
        assert not result.is_fraud
        assert result.reasons == []

    def test_amount_over_three_times_benchmark(self, heuristic):
        # Office Supplies benchmark is 350 -> threshold 1050
        result = heuristic.evaluate(expense(category="Office Supplies", amount=Decimal("1050.01")))
        assert result.reasons == ["Amount is more than 3x the average for Office Supplies"]

    def test_amount_at_exactly_three_times_benchmark_passes(self, heuristic):
        result = heuristic.evaluate(expense(category="Office Supplies", amount=Decimal("1050")))
        assert not result.is_fraud

    @pytest.mark.parametrize("weekend_day", [date(2024, 5, 11), date(2024, 5, 12)])
    def test_weekend_dates(self, heuristic, weekend_day):
        result = heuristic.evaluate(expense(date=weekend_day))
        assert result.reasons == ["Expense submitted on a weekend"]

    def test_future_date(self, heuristic):
        # Next Tuesday relative to the frozen Wednesday
        result = heuristic.evaluate(expense(date=date(2024, 5, 21)))
        assert result.reasons == ["Expense dated in the future"]

    def test_today_is_not_future(self, heuristic):
        assert not heuristic.evaluate(expense(date=date(2024, 5, 15))).is_fraud

    def test_keyword_match_is_case_insensitive(self, heuristic):
        result = heuristic.evaluate(expense(description="CASH advance for site visit"))
        assert result.reasons == ['Description contains suspicious keyword: "cash"']

    def test_only_first_keyword_in_list_order_is_reported(self, heuristic):
        # "gift" precedes "personal" in the keyword list even though it appears later in the text
        result = heuristic.evaluate(expense(description="personal gift"))
        assert result.reasons == ['Description contains suspicious keyword: "gift"']

    def test_missing_description_is_fine(self, heuristic):
        assert not heuristic.evaluate(expense(description=None)).is_fraud

    def test_all_rules_are_collected(self, heuristic):
        result = heuristic.evaluate(expense(
            category="Subscriptions",
            amount=Decimal("5000"),
            date=date(2024, 5, 25),
            description="reimbursement",
        ))
        assert result.reasons == [
            "Amount is more than 3x the average for Subscriptions",
            "Expense submitted on a weekend",
            "Expense dated in the future",
            'Description contains suspicious keyword: "reimbursement"',
        ]

    def test_accepts_enum_category(self, heuristic):
        from constants import Category

        result = heuristic.evaluate(expense(category=Category.OFFICE_SUPPLIES, amount=Decimal("2000")))
        assert result.reasons == ["Amount is more than 3x the average for Office Supplies"]


# =============================================================================
# Receipt heuristic
# =============================================================================


class TestReceiptHeuristic:

    def test_short_text_stops_evaluation(self, make_rng):
        heuristic = ReceiptHeuristic(make_rng(0.0))
        result = heuristic.evaluate("Total 50", Decimal("99999"), "Travelling")
        assert result.reasons == ["Receipt text is too short or missing"]

    def test_missing_text(self, quiet_rng):
        result = ReceiptHeuristic(quiet_rng).evaluate(None, None, "Travelling")
        assert result.reasons == ["Receipt text is too short or missing"]

    def test_amount_over_one_and_a_half_typical_max(self, quiet_rng):
        # Food & Entertainment typical max 2000 -> threshold 3000
        result = ReceiptHeuristic(quiet_rng).evaluate(RECEIPT_TEXT, Decimal("3000.01"), "Food & Entertainment")
        assert result.reasons == ["Amount is unusually high for Food & Entertainment category"]

    def test_amount_within_typical_range(self, quiet_rng):
        result = ReceiptHeuristic(quiet_rng).evaluate(RECEIPT_TEXT, Decimal("3000"), "Food & Entertainment")
        assert not result.is_fraud

    def test_random_flag_fires_below_rate(self, make_rng):
        result = ReceiptHeuristic(make_rng(0.049)).evaluate(RECEIPT_TEXT, Decimal("100"), "Office Supplies")
        assert result.reasons == ["Suspicious pattern detected in receipt text"]

    def test_random_flag_does_not_fire_at_rate(self, make_rng):
        result = ReceiptHeuristic(make_rng(0.05)).evaluate(RECEIPT_TEXT, Decimal("100"), "Office Supplies")
        assert not result.is_fraud


class TestExtractionHeuristic:

    @staticmethod
    def extraction(**overrides):
        fields = {
            "amount": Decimal("1003.00"),
            "date": date(2024, 5, 15),
            "vendor": "Taj Restaurant",
            "raw_text": RECEIPT_TEXT,
        }
        fields.update(overrides)
        return ReceiptExtraction(**fields)

    def test_complete_receipt_passes(self):
        assert not ExtractionHeuristic().evaluate(self.extraction()).is_fraud

    def test_missing_fields_are_each_reported(self):
        result = ExtractionHeuristic().evaluate(self.extraction(amount=None, date=None, vendor=None))
        assert result.reasons == [
            "Could not extract amount from receipt",
            "Could not extract date from receipt",
            "Could not extract vendor information from receipt",
        ]

    def test_missing_date_only(self):
        result = ExtractionHeuristic().evaluate(self.extraction(date=None))
        assert result.reasons == ["Could not extract date from receipt"]

    def test_amount_over_ceiling(self):
        result = ExtractionHeuristic().evaluate(self.extraction(amount=Decimal("50000.01")))
        assert result.reasons == ["Unusually high amount detected"]

    def test_amount_at_ceiling_passes(self):
        assert not ExtractionHeuristic().evaluate(self.extraction(amount=Decimal("50000"))).is_fraud


class TestCombine:

    def test_union_keeps_order_and_drops_duplicates(self):
        merged = combine(FraudResult(["a", "b"]), FraudResult(["b", "c"]))
        assert merged.reasons == ["a", "b", "c"]
        assert merged.is_fraud

    def test_empty(self):
        assert not combine(FraudResult(), FraudResult()).is_fraud
