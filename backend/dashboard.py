from collections import defaultdict
from decimal import Decimal

from sqlalchemy.orm import Session

import crud
import schemas
from currency import CurrencyConverter

CENT = Decimal("0.01")


def build_summary(
    db: Session,
    converter: CurrencyConverter,
    currency: str,
    expense_filter: crud.ExpenseFilter = None,
) -> schemas.DashboardSummary:
    """
    Spend totals by category, user and original currency, all expressed in
    ``currency``. Amounts whose rate is unavailable are added unconverted.
    """
    expenses = crud.get_expenses(db, expense_filter)

    by_category: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
    by_user: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
    by_currency: dict[str, list] = defaultdict(lambda: [Decimal("0"), 0])
    status_counts: dict[str, int] = defaultdict(int)
    total = Decimal("0")

    for expense in expenses:
        converted = converter.convert(Decimal(str(expense.amount)), expense.currency, currency)
        total += converted
        for bucket, key in (
            (by_category, expense.category),
            (by_user, expense.user_id),
            (by_currency, expense.currency),
        ):
            bucket[key][0] += converted
            bucket[key][1] += 1
        status_counts[expense.status] += 1

    return schemas.DashboardSummary(
        currency=currency,
        total=total.quantize(CENT),
        count=len(expenses),
        by_category=_rows(by_category),
        by_user=_rows(by_user),
        by_currency=_rows(by_currency),
        status_counts=dict(status_counts),
    )


def _rows(bucket: dict[str, list]) -> list[schemas.SummaryRow]:
    rows = [
        schemas.SummaryRow(key=key, total=amount.quantize(CENT), count=count)
        for key, (amount, count) in bucket.items()
    ]
    return sorted(rows, key=lambda r: -r.total)
