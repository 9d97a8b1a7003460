import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

AMOUNT_PATTERNS = [
    re.compile(r"\btotal:?\s*(?:INR|Rs\.?)?\s*([\d,]+\.?\d*)", re.IGNORECASE),
    re.compile(r"\btotal amount:?\s*(?:INR|Rs\.?)?\s*([\d,]+\.?\d*)", re.IGNORECASE),
    re.compile(r"\bamount:?\s*(?:INR|Rs\.?)?\s*([\d,]+\.?\d*)", re.IGNORECASE),
    re.compile(r"(?:INR|Rs\.?)\s*([\d,]+\.?\d*)", re.IGNORECASE),
]

DATE_PATTERNS = [
    re.compile(r"date:?\s*(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})", re.IGNORECASE),
    re.compile(r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})"),
]

VENDOR_PATTERNS = [
    re.compile(r"invoice.*?\n\s*(.*)", re.IGNORECASE),
    re.compile(r"receipt.*?\n\s*(.*)", re.IGNORECASE),
    re.compile(r"^([^\n\r]+)"),
    re.compile(r"([A-Z][A-Za-z\s]{2,})"),
]

_TITLE_WORDS = re.compile(r"invoice|receipt|bill", re.IGNORECASE)


@dataclass(frozen=True)
class ReceiptExtraction:
    amount: Optional[Decimal]
    date: Optional[date]
    vendor: Optional[str]
    raw_text: str


def extract_receipt_fields(text: str) -> ReceiptExtraction:
    text = text or ""
    return ReceiptExtraction(
        amount=_extract_amount(text),
        date=_extract_date(text),
        vendor=_extract_vendor(text),
        raw_text=text,
    )


def _extract_amount(text: str) -> Optional[Decimal]:
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1):
            try:
                amount = Decimal(match.group(1).replace(",", ""))
            except InvalidOperation:
                continue
            if amount > 0:
                return amount
    return None


def _extract_date(text: str) -> Optional[date]:
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            parsed = _parse_day_first(match.group(1))
            if parsed is not None:
                return parsed
    return None


def _parse_day_first(raw: str) -> Optional[date]:
    """Receipts print DD/MM/YYYY (or DD-MM-YY, DD.MM.YYYY)."""
    day, month, year = (int(part) for part in re.split(r"[/\-.]", raw.strip()))
    if year < 100:
        year += 2000
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _extract_vendor(text: str) -> Optional[str]:
    fallback = None
    for pattern in VENDOR_PATTERNS:
        match = pattern.search(text)
        if not match or not match.group(1).strip():
            continue
        candidate = match.group(1).strip()
        if not _TITLE_WORDS.search(candidate):
            return candidate
        fallback = fallback or candidate
    return fallback
