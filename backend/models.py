from sqlalchemy import CHAR, Column, Date, DateTime, Numeric, String, Text
from database import Base
import uuid
from datetime import datetime, timezone

from constants import ExpenseStatus


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    idempotency_key = Column(CHAR(36), unique=True, nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)   # Never use float for money
    currency = Column(String(3), nullable=False)
    date = Column(Date, nullable=False, index=True)
    category = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    receipt_image = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default=ExpenseStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)


class ExpensePolicy(Base):
    __tablename__ = "policies"

    category = Column(String(100), primary_key=True)
    # Stored for display; the evaluator only enforces the weekly and monthly limits.
    max_amount = Column(Numeric(12, 2), nullable=True)
    daily_limit = Column(Numeric(12, 2), nullable=True)
    weekly_limit = Column(Numeric(12, 2), nullable=True)
    monthly_limit = Column(Numeric(12, 2), nullable=True)
    description = Column(Text, nullable=False, default="")
    currency = Column(String(3), nullable=False)
