from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional
import time
import uuid

from sqlalchemy.exc import DatabaseError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from constants import DEFAULT_POLICIES, DEFAULT_POLICY_CURRENCY
from exceptions import ExpenseNotFoundError, PersistenceError, PolicyNotFoundError
from logging_config import get_logger
from models import Expense, ExpensePolicy

logger = get_logger("crud")

MAX_DB_RETRIES = 3


@dataclass(frozen=True)
class ExpenseFilter:
    """Read filter over persisted expenses. ``None`` fields are not filtered on."""
    user_id: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


def save_expense_with_retry(db: Session, expense: Expense) -> Expense:
    """Retry saving expense for transient DB errors."""
    for attempt in range(MAX_DB_RETRIES):
        try:
            db.add(expense)
            db.commit()
            db.refresh(expense)
            return expense
        except IntegrityError:
            db.rollback()
            raise
        except (OperationalError, DatabaseError) as e:
            db.rollback()
            if attempt < MAX_DB_RETRIES - 1:
                # Exponential backoff: 1, 2 seconds
                logger.warning("Transient error saving expense %s (attempt %d): %s", expense.id, attempt + 1, e)
                time.sleep(2 ** attempt)
            else:
                raise PersistenceError(f"Could not save expense {expense.id}: {e}") from e
    raise PersistenceError(f"Could not save expense {expense.id}")


def get_expense_by_idempotency_key(db: Session, idempotency_key: str) -> Optional[Expense]:
    try:
        return (
            db.query(Expense)
            .filter(Expense.idempotency_key == idempotency_key)
            .first()
        )
    except SQLAlchemyError as e:
        raise PersistenceError(f"Could not look up idempotency key: {e}") from e


def create_expense(db: Session, fields: dict) -> tuple[Expense, bool]:
    """
    Persist a decided expense. If ``idempotency_key`` already exists, return the
    existing record without creating a duplicate. Returns (expense, was_created).
    """
    existing = get_expense_by_idempotency_key(db, fields["idempotency_key"])
    if existing:
        return existing, False

    new_expense = Expense(id=str(uuid.uuid4()), **fields)

    try:
        saved_expense = save_expense_with_retry(db, new_expense)
        return saved_expense, True
    except IntegrityError:
        # Lost a race with a concurrent submission carrying the same key.
        existing = get_expense_by_idempotency_key(db, fields["idempotency_key"])
        if existing is None:
            raise PersistenceError("Expense insert violated a constraint")
        return existing, False


def get_expense(db: Session, expense_id: str) -> Expense:
    try:
        expense = db.get(Expense, expense_id)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Could not load expense {expense_id}: {e}") from e
    if expense is None:
        raise ExpenseNotFoundError(expense_id)
    return expense


def get_expenses(
    db: Session,
    expense_filter: Optional[ExpenseFilter] = None,
    sort_desc: bool = True,
) -> list[Expense]:
    """
    Fetch expenses matching the filter, sorted by date.
    sort_desc=True means newest first. Date bounds are inclusive.
    """
    f = expense_filter or ExpenseFilter()
    query = db.query(Expense)

    if f.user_id is not None:
        query = query.filter(Expense.user_id == f.user_id)
    if f.category is not None:
        query = query.filter(Expense.category == f.category)
    if f.currency is not None:
        query = query.filter(Expense.currency == f.currency)
    if f.status is not None:
        query = query.filter(Expense.status == f.status)
    if f.date_from is not None:
        query = query.filter(Expense.date >= f.date_from)
    if f.date_to is not None:
        query = query.filter(Expense.date <= f.date_to)

    if sort_desc:
        query = query.order_by(Expense.date.desc(), Expense.created_at.desc())
    else:
        query = query.order_by(Expense.date.asc(), Expense.created_at.asc())

    try:
        return query.all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Could not read expenses: {e}") from e


def put_expense(db: Session, expense_id: str, **fields) -> Expense:
    """
    Overwrite fields of one expense with a single UPDATE keyed by id.
    Last write wins; there is no version check.
    """
    try:
        updated = (
            db.query(Expense)
            .filter(Expense.id == expense_id)
            .update(fields, synchronize_session=False)
        )
        if updated == 0:
            db.rollback()
            raise ExpenseNotFoundError(expense_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not update expense {expense_id}: {e}") from e

    expense = get_expense(db, expense_id)
    db.refresh(expense)
    return expense


def get_policy(db: Session, category: str) -> Optional[ExpensePolicy]:
    try:
        return db.get(ExpensePolicy, category)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Could not load policy for {category}: {e}") from e


def list_policies(db: Session) -> list[ExpensePolicy]:
    try:
        return db.query(ExpensePolicy).order_by(ExpensePolicy.category).all()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Could not read policies: {e}") from e


def update_policy(db: Session, category: str, fields: dict) -> ExpensePolicy:
    policy = get_policy(db, category)
    if policy is None:
        raise PolicyNotFoundError(category)
    for key, value in fields.items():
        setattr(policy, key, value)
    try:
        db.commit()
        db.refresh(policy)
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not update policy for {category}: {e}") from e
    logger.info("Policy for %s updated: %s", category, fields)
    return policy


def seed_default_policies(db: Session) -> int:
    """Insert any missing default category policies. Existing rows are left alone."""
    created = 0
    try:
        for defaults in DEFAULT_POLICIES:
            if db.get(ExpensePolicy, defaults["category"]) is not None:
                continue
            db.add(ExpensePolicy(currency=DEFAULT_POLICY_CURRENCY, **defaults))
            created += 1
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceError(f"Could not seed default policies: {e}") from e
    if created:
        logger.info("Seeded %d default expense policies", created)
    return created


def sum_amounts(expenses: list[Expense]) -> Decimal:
    return sum((Decimal(str(e.amount)) for e in expenses), Decimal("0"))
