from typing import Optional

from sqlalchemy.orm import Session

import crud
from constants import ActorRole, ExpenseStatus
from exceptions import AuthorizationError
from logging_config import get_logger
from models import Expense

logger = get_logger("transitions")

_P, _A, _R, _F = (
    ExpenseStatus.PENDING.value,
    ExpenseStatus.APPROVED.value,
    ExpenseStatus.REJECTED.value,
    ExpenseStatus.FLAGGED.value,
)

# What the UI offers; not enforced.
SUGGESTED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    _P: (_A, _R),
    _F: (_A, _R, _P),   # moving to pending clears the flag
    _A: (_A, _R),
    _R: (_A, _R),
}


def require_manager(actor_role, operation: str) -> None:
    role = getattr(actor_role, "value", actor_role)
    if role != ActorRole.MANAGER.value:
        raise AuthorizationError(operation, str(role))


def transition_status(
    db: Session,
    expense_id: str,
    new_status,
    actor_role,
    notes: Optional[str] = None,
) -> Expense:
    """
    Overwrite ``status`` (and ``notes`` when given) in one UPDATE. Any status may
    follow any other, last write wins and no history is kept.
    """
    require_manager(actor_role, "change expense status")
    status = ExpenseStatus(getattr(new_status, "value", new_status)).value

    fields = {"status": status}
    if notes is not None:
        fields["notes"] = notes
    expense = crud.put_expense(db, expense_id, **fields)
    logger.info("Expense %s set to %s by manager", expense_id, status)
    return expense


def suggested_next(status: str) -> tuple[str, ...]:
    return SUGGESTED_TRANSITIONS.get(status, ())
