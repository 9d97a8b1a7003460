from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

import crud
from aggregator import sum_prior_expenses
from constants import ExpenseStatus
from currency import CurrencyConverter
from exceptions import PersistenceError
from fraud import ExtractionHeuristic, FraudResult, GeneralHeuristic, ReceiptHeuristic, combine
from logging_config import get_logger
from receipts import ReceiptExtraction
from windows import month_window, week_window

logger = get_logger("policy")

FRAUD_NOTE_PREFIX = "Potential fraud detected: "
FAILED_CHECK_NOTE = "Automatic policy check failed; manual review required"


@dataclass(frozen=True)
class Decision:
    status: str
    notes: Optional[str] = None
    fraud: FraudResult = field(default_factory=FraudResult)

    @property
    def auto_approved(self) -> bool:
        return self.status == ExpenseStatus.APPROVED.value


class PolicyEvaluator:
    """
    Fraud screening runs first and wins outright. Otherwise an expense is
    approved only if the weekly and monthly totals for its category, including
    the new amount, stay within the category policy; anything else is pending.

    Two concurrent submissions can both see the same prior total and both be
    approved; nothing serialises the read and the later insert.
    """

    def __init__(
        self,
        db: Session,
        converter: CurrencyConverter,
        general: Optional[GeneralHeuristic] = None,
        receipt_heuristic: Optional[ReceiptHeuristic] = None,
        extraction_heuristic: Optional[ExtractionHeuristic] = None,
    ):
        self.db = db
        self.converter = converter
        self.general = general or GeneralHeuristic()
        self.receipt_heuristic = receipt_heuristic or ReceiptHeuristic()
        self.extraction_heuristic = extraction_heuristic or ExtractionHeuristic()

    def decide(self, expense, receipt: Optional[ReceiptExtraction] = None) -> Decision:
        """
        Compute the status and note for ``expense``. Nothing is written.

        ``expense`` needs ``user_id``, ``amount``, ``currency``, ``category``,
        ``date`` and ``description``. ``receipt`` is given on the receipt-scan path.
        """
        try:
            return self._decide(expense, receipt)
        except PersistenceError:
            raise
        except Exception:
            logger.exception("Policy evaluation failed for user %s; defaulting to manual review", expense.user_id)
            return Decision(ExpenseStatus.PENDING.value, FAILED_CHECK_NOTE)

    def _decide(self, expense, receipt: Optional[ReceiptExtraction]) -> Decision:
        fraud = self.screen(expense, receipt)
        if fraud.is_fraud:
            logger.info("Expense flagged for user %s: %s", expense.user_id, fraud.reasons)
            return Decision(
                ExpenseStatus.FLAGGED.value,
                FRAUD_NOTE_PREFIX + ", ".join(fraud.reasons),
                fraud,
            )

        category = _value(expense.category)
        currency = _value(expense.currency)
        policy = crud.get_policy(self.db, category)
        if policy is None:
            logger.info("No policy for category %s; sending to manual review", category)
            return Decision(ExpenseStatus.PENDING.value)

        amount = Decimal(str(expense.amount))
        week_start, week_end = week_window(expense.date)
        month_start, month_end = month_window(expense.date)

        weekly_total = sum_prior_expenses(
            self.db, expense.user_id, category, currency, week_start, week_end
        ) + amount
        monthly_total = sum_prior_expenses(
            self.db, expense.user_id, category, currency, month_start, month_end
        ) + amount

        if policy.currency != currency:
            weekly_total = self.converter.convert(weekly_total, currency, policy.currency)
            monthly_total = self.converter.convert(monthly_total, currency, policy.currency)

        within_weekly = policy.weekly_limit is None or weekly_total <= policy.weekly_limit
        within_monthly = policy.monthly_limit is None or monthly_total <= policy.monthly_limit

        if within_weekly and within_monthly:
            logger.info(
                "Expense within limits for user %s in %s (week %s, month %s); auto-approving",
                expense.user_id, category, weekly_total, monthly_total,
            )
            return Decision(ExpenseStatus.APPROVED.value, fraud=fraud)

        if not within_weekly:
            note = (
                f"Exceeds weekly limit of {format_limit(policy.weekly_limit)} {policy.currency} "
                f"(weekly total: {weekly_total:.2f})"
            )
        else:
            note = (
                f"Exceeds monthly limit of {format_limit(policy.monthly_limit)} {policy.currency} "
                f"(monthly total: {monthly_total:.2f})"
            )
        logger.info("Expense for user %s needs approval: %s", expense.user_id, note)
        return Decision(ExpenseStatus.PENDING.value, note, fraud)

    def screen(self, expense, receipt: Optional[ReceiptExtraction] = None) -> FraudResult:
        result = self.general.evaluate(expense)
        if receipt is None:
            return result
        return combine(
            result,
            self.receipt_heuristic.evaluate(receipt.raw_text, expense.amount, expense.category),
            self.extraction_heuristic.evaluate(receipt),
        )


def format_limit(limit: Decimal) -> str:
    """2500.00 -> '2500', 99.50 -> '99.50'."""
    limit = Decimal(str(limit))
    if limit == limit.to_integral_value():
        return f"{limit:.0f}"
    return f"{limit:.2f}"


def _value(v) -> str:
    return getattr(v, "value", v)
