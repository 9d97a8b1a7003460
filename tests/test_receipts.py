"""Field extraction from recognised receipt text."""

from datetime import date
from decimal import Decimal

from receipts import extract_receipt_fields

RESTAURANT_RECEIPT = """TAX INVOICE
Taj Restaurant
Date: 15/05/2024
Subtotal: 850.00
GST: 153.00
Total: INR 1003.00
Thank you for dining with us"""


class TestExtractReceiptFields:

    def test_restaurant_receipt(self):
        result = extract_receipt_fields(RESTAURANT_RECEIPT)
        assert result.amount == Decimal("1003.00")
        assert result.date == date(2024, 5, 15)
        assert result.vendor == "Taj Restaurant"
        assert result.raw_text == RESTAURANT_RECEIPT

    def test_subtotal_is_not_mistaken_for_total(self):
        result = extract_receipt_fields("Subtotal: 850.00\nTotal: 1003.00")
        assert result.amount == Decimal("1003.00")

    def test_thousands_separator(self):
        result = extract_receipt_fields("Grand Hotel\nTotal: Rs. 1,250.50")
        assert result.amount == Decimal("1250.50")

    def test_falls_back_to_amount_label(self):
        result = extract_receipt_fields("City Cabs ride 01-02-24 amount Rs. 450")
        assert result.amount == Decimal("450")
        assert result.date == date(2024, 2, 1)

    def test_impossible_date_is_ignored(self):
        assert extract_receipt_fields("Stationery Mart 31/02/2024 INR 99").date is None

    def test_empty_text(self):
        result = extract_receipt_fields("")
        assert result.amount is None
        assert result.date is None
        assert result.vendor is None

    def test_none_text(self):
        assert extract_receipt_fields(None).raw_text == ""
