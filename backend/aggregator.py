from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

import crud


def sum_prior_expenses(
    db: Session,
    user_id: str,
    category: str,
    currency: str,
    window_start: date,
    window_end: date,
) -> Decimal:
    """
    Total of already-persisted expenses for one user, category and currency
    dated inside ``[window_start, window_end]``.

    Every status counts, rejected included. Amounts in other currencies are not
    converted or included; converting against a policy currency is the caller's job.
    """
    expenses = crud.get_expenses(
        db,
        crud.ExpenseFilter(
            user_id=user_id,
            category=category,
            currency=currency,
            date_from=window_start,
            date_to=window_end,
        ),
    )
    return crud.sum_amounts(expenses)
