"""Prior-spend totals over a date window."""

from datetime import date
from decimal import Decimal

from aggregator import sum_prior_expenses

WEEK = (date(2024, 5, 12), date(2024, 5, 18))


def total(db, user_id="emp-1", category="Travelling", currency="INR", window=WEEK):
    return sum_prior_expenses(db, user_id, category, currency, *window)


class TestSumPriorExpenses:

    def test_empty_is_zero(self, db):
        result = total(db)
        assert result == Decimal("0")
        assert isinstance(result, Decimal)

    def test_sums_matching_expenses(self, db, add_expense):
        add_expense(amount=Decimal("100.50"))
        add_expense(amount=Decimal("200.25"), date=date(2024, 5, 13))
        assert total(db) == Decimal("300.75")

    def test_window_bounds_are_inclusive(self, db, add_expense):
        add_expense(amount=Decimal("10"), date=date(2024, 5, 12))
        add_expense(amount=Decimal("20"), date=date(2024, 5, 18))
        add_expense(amount=Decimal("40"), date=date(2024, 5, 11))
        add_expense(amount=Decimal("80"), date=date(2024, 5, 19))
        assert total(db) == Decimal("30")

    def test_every_status_counts(self, db, add_expense):
        for status in ("approved", "pending", "rejected", "flagged"):
            add_expense(amount=Decimal("100"), status=status)
        assert total(db) == Decimal("400")

    def test_other_users_are_excluded(self, db, add_expense):
        add_expense(amount=Decimal("100"))
        add_expense(amount=Decimal("900"), user_id="emp-2")
        assert total(db) == Decimal("100")

    def test_other_categories_are_excluded(self, db, add_expense):
        add_expense(amount=Decimal("100"))
        add_expense(amount=Decimal("900"), category="Accommodation")
        assert total(db) == Decimal("100")

    def test_other_currencies_are_excluded(self, db, add_expense):
        add_expense(amount=Decimal("100"))
        add_expense(amount=Decimal("50"), currency="USD")
        assert total(db) == Decimal("100")
        assert total(db, currency="USD") == Decimal("50")
