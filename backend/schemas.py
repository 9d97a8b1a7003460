from pydantic import BaseModel, Field, field_validator
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from datetime import date as date_type
from typing import Optional
import uuid

from constants import Category, Currency, ExpenseStatus


class ExpenseCreate(BaseModel):
    idempotency_key: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1, max_length=64)
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Must be a positive value")
    currency: Currency
    category: Category
    description: Optional[str] = Field(default=None, max_length=1000)
    date: date
    receipt_image: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("user_id")
    @classmethod
    def user_id_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("User id cannot be blank or whitespace")
        return v.strip()

    @field_validator("amount", mode="before")
    @classmethod
    def amount_must_be_positive(cls, v):
        try:
            val = Decimal(str(v))
        except InvalidOperation:
            raise ValueError("Amount must be a number")
        if not val.is_finite():
            raise ValueError("Amount must be a number")
        if val <= 0:
            raise ValueError("Amount must be greater than zero")
        return val


class ReceiptExpenseCreate(BaseModel):
    """Receipt-scan submission: amount and date fall back to what the receipt text yields."""
    idempotency_key: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = Field(..., min_length=1, max_length=64)
    currency: Currency = Currency.INR
    category: Category
    receipt_text: str = Field(default="", max_length=20000)
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    date: Optional[date_type] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    receipt_image: Optional[str] = None


class ExpenseResponse(BaseModel):
    id: str
    idempotency_key: str
    user_id: str
    amount: Decimal
    currency: str
    category: str
    description: Optional[str]
    date: date
    receipt_image: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ExpenseSubmissionResponse(BaseModel):
    expense: ExpenseResponse
    message: str


class ExpenseListResponse(BaseModel):
    expenses: list[ExpenseResponse]
    totals: dict[str, Decimal]
    count: int


class StatusUpdate(BaseModel):
    status: ExpenseStatus
    notes: Optional[str] = Field(default=None, max_length=1000)


class PolicyUpdate(BaseModel):
    max_amount: Optional[Decimal] = Field(default=None, gt=0)
    daily_limit: Optional[Decimal] = Field(default=None, gt=0)
    weekly_limit: Optional[Decimal] = Field(default=None, gt=0)
    monthly_limit: Optional[Decimal] = Field(default=None, gt=0)
    description: str = Field(default="", max_length=1000)
    currency: Currency = Currency.INR


class PolicyResponse(BaseModel):
    category: str
    max_amount: Optional[Decimal] = None
    daily_limit: Optional[Decimal] = None
    weekly_limit: Optional[Decimal] = None
    monthly_limit: Optional[Decimal] = None
    description: str
    currency: str

    model_config = {"from_attributes": True}


class ConversionRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    from_currency: Currency
    to_currency: Currency


class ConversionResponse(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    result: Decimal


class ExchangeRatesResponse(BaseModel):
    base: str
    date: date
    rates: dict[str, dict[str, Decimal]]


class SummaryRow(BaseModel):
    key: str
    total: Decimal
    count: int


class DashboardSummary(BaseModel):
    currency: str
    total: Decimal
    count: int
    by_category: list[SummaryRow]
    by_user: list[SummaryRow]
    by_currency: list[SummaryRow]
    status_counts: dict[str, int]
