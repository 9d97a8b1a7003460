from contextlib import asynccontextmanager
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

import crud
import models
import schemas
from clock import SystemClock
from config import get_settings
from constants import ActorRole, Category, Currency, ExpenseStatus
from currency import CurrencyConverter, ExchangeRateHostSource, RateCache
from dashboard import build_summary
from database import SessionLocal, engine, get_db
from exceptions import AuthorizationError, ExpenseNotFoundError, PersistenceError, PolicyNotFoundError
from fraud import GeneralHeuristic, ReceiptHeuristic
from logging_config import configure_logging, get_logger
from policy import Decision, PolicyEvaluator
from receipts import extract_receipt_fields
from transitions import require_manager, transition_status

settings = get_settings()
configure_logging(settings.log_level, settings.log_format)
logger = get_logger("api")

# Create all tables on startup if they don't exist
models.Base.metadata.create_all(bind=engine)

CENT = Decimal("0.01")
# Largest value an Expense.amount column (Numeric(12, 2)) holds.
MAX_AMOUNT = Decimal("10000000000")
MAX_DESCRIPTION_LENGTH = 1000


@lru_cache(maxsize=1)
def get_clock():
    return SystemClock()


@lru_cache(maxsize=1)
def get_converter() -> CurrencyConverter:
    """The process-wide converter; its rate cache lives as long as the app."""
    source = ExchangeRateHostSource(
        settings.exchange_rate_api_url,
        timeout=settings.rate_fetch_timeout,
        max_retries=settings.rate_fetch_retries,
    )
    return CurrencyConverter(source, RateCache(), get_clock(), base_currency=settings.rate_base_currency)


def get_receipt_heuristic() -> ReceiptHeuristic:
    return ReceiptHeuristic(random_flag_rate=settings.receipt_random_flag_rate)


def get_evaluator(
    db: Session = Depends(get_db),
    converter: CurrencyConverter = Depends(get_converter),
    clock=Depends(get_clock),
    receipt_heuristic: ReceiptHeuristic = Depends(get_receipt_heuristic),
) -> PolicyEvaluator:
    return PolicyEvaluator(db, converter, GeneralHeuristic(clock), receipt_heuristic)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        crud.seed_default_policies(db)
    finally:
        db.close()
    # Warm today's rates; falls back to the built-in table if the provider is down.
    get_converter().rates_for_today()
    yield


app = FastAPI(
    title="SpendWise Expense API",
    description="Expense submission with policy-limit auto-approval, fraud screening and manager review.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: allow the Streamlit frontend and local dev to reach this API
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],   # Tighten this in production if needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthorizationError)
def authorization_error_handler(request: Request, exc: AuthorizationError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": str(exc)})


@app.exception_handler(ExpenseNotFoundError)
@app.exception_handler(PolicyNotFoundError)
def not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "The expense store is temporarily unavailable. Please try again."},
    )


def actor_role(x_actor_role: ActorRole = Header(default=ActorRole.EMPLOYEE)) -> ActorRole:
    """Caller's role, asserted by the upstream authentication layer."""
    return x_actor_role


def actor_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id


def _visible_user_id(
    role: ActorRole,
    user_id: Optional[str],
    requested: Optional[str],
    operation: str = "view other users' expenses",
) -> Optional[str]:
    """Managers may act on anyone; employees only on themselves."""
    if role == ActorRole.MANAGER:
        return requested
    if not user_id or (requested and requested != user_id):
        raise AuthorizationError(operation, role.value)
    return user_id


def _usable_amount(amount) -> Optional[Decimal]:
    """Round to cents; ``None`` when nothing storable is left."""
    if amount is None:
        return None
    amount = Decimal(str(amount))
    if not amount.is_finite() or amount >= MAX_AMOUNT:
        return None
    amount = amount.quantize(CENT)
    return amount if amount > 0 else None


def _merge_notes(submitted: Optional[str], decided: Optional[str]) -> Optional[str]:
    if submitted and decided:
        return f"{submitted}. {decided}"
    return decided or submitted


def _submit(db: Session, expense_in: schemas.ExpenseCreate, decision: Decision):
    expense, was_created = crud.create_expense(db, {
        "idempotency_key": expense_in.idempotency_key,
        "user_id": expense_in.user_id,
        "amount": expense_in.amount,
        "currency": expense_in.currency.value,
        "category": expense_in.category.value,
        "description": expense_in.description,
        "date": expense_in.date,
        "receipt_image": expense_in.receipt_image,
        "status": decision.status,
        "notes": _merge_notes(expense_in.notes, decision.notes),
    })
    logger.info("Saved expense %s with status %s", expense.id, expense.status)
    return _submission_response(expense, was_created)


def _submission_response(expense: models.Expense, was_created: bool):
    message = (
        "Expense approved automatically (within policy limits)"
        if expense.status == ExpenseStatus.APPROVED.value
        else "Expense submitted for approval"
    )
    body = schemas.ExpenseSubmissionResponse(
        expense=schemas.ExpenseResponse.model_validate(expense),
        message=message,
    )
    if not was_created:
        # Return 200 (not 201) to signal idempotent replay
        return JSONResponse(status_code=status.HTTP_200_OK, content=jsonable_encoder(body))
    return body


@app.get("/", tags=["Health"])
def root():
    return {"status": "ok", "message": "SpendWise Expense API is running."}


@app.get("/health", tags=["Health"])
def health():
    return {"status": "healthy"}


@app.post(
    "/expenses",
    response_model=schemas.ExpenseSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Expenses"],
    summary="Submit an expense (idempotent)",
)
def create_expense(
    expense_in: schemas.ExpenseCreate,
    role: ActorRole = Depends(actor_role),
    caller_id: Optional[str] = Depends(actor_user_id),
    db: Session = Depends(get_db),
    evaluator: PolicyEvaluator = Depends(get_evaluator),
):
    """
    Submit a new expense and decide its initial status.

    - **Fraud screening** flags the expense outright when any rule trips.
    - **Policy limits**: approved automatically when the weekly and monthly
      totals for the category stay within the policy, otherwise pending.
    - **Idempotent**: resending the same `idempotency_key` returns the original
      record without re-evaluating it.
    """
    _visible_user_id(role, caller_id, expense_in.user_id, "submit expenses for other users")
    existing = crud.get_expense_by_idempotency_key(db, expense_in.idempotency_key)
    if existing:
        return _submission_response(existing, was_created=False)

    decision = evaluator.decide(expense_in)
    return _submit(db, expense_in, decision)


@app.post(
    "/expenses/receipt",
    response_model=schemas.ExpenseSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Expenses"],
    summary="Submit an expense from scanned receipt text",
)
def create_expense_from_receipt(
    receipt_in: schemas.ReceiptExpenseCreate,
    role: ActorRole = Depends(actor_role),
    caller_id: Optional[str] = Depends(actor_user_id),
    db: Session = Depends(get_db),
    evaluator: PolicyEvaluator = Depends(get_evaluator),
    clock=Depends(get_clock),
):
    """
    Amount and date default to what the receipt text yields. The general,
    receipt and extraction fraud checks all apply.
    """
    _visible_user_id(role, caller_id, receipt_in.user_id, "submit expenses for other users")
    existing = crud.get_expense_by_idempotency_key(db, receipt_in.idempotency_key)
    if existing:
        return _submission_response(existing, was_created=False)

    extraction = extract_receipt_fields(receipt_in.receipt_text)
    amount = _usable_amount(receipt_in.amount or extraction.amount)
    if amount is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Could not extract amount from receipt; please enter it manually",
        )

    if receipt_in.description:
        description = receipt_in.description
    elif extraction.vendor:
        description = f"Receipt from {extraction.vendor}"[:MAX_DESCRIPTION_LENGTH]
    else:
        description = "Scanned receipt"

    expense_in = schemas.ExpenseCreate(
        idempotency_key=receipt_in.idempotency_key,
        user_id=receipt_in.user_id,
        amount=amount,
        currency=receipt_in.currency,
        category=receipt_in.category,
        description=description,
        date=receipt_in.date or extraction.date or clock.today(),
        receipt_image=receipt_in.receipt_image,
    )
    decision = evaluator.decide(expense_in, receipt=extraction)
    return _submit(db, expense_in, decision)


@app.get(
    "/expenses",
    response_model=schemas.ExpenseListResponse,
    tags=["Expenses"],
    summary="List expenses with optional filters",
)
def list_expenses(
    user_id: Optional[str] = Query(default=None, description="Only this user's expenses"),
    category: Optional[Category] = Query(default=None),
    currency: Optional[Currency] = Query(default=None),
    expense_status: Optional[ExpenseStatus] = Query(default=None, alias="status"),
    sort_date_desc: bool = Query(default=True, description="Sort by date descending (newest first)"),
    role: ActorRole = Depends(actor_role),
    caller_id: Optional[str] = Depends(actor_user_id),
    db: Session = Depends(get_db),
):
    """
    Managers may list everyone's expenses; employees only their own.
    `totals` holds one sum per currency, amounts are never mixed.
    """
    expense_filter = crud.ExpenseFilter(
        user_id=_visible_user_id(role, caller_id, user_id),
        category=category.value if category else None,
        currency=currency.value if currency else None,
        status=expense_status.value if expense_status else None,
    )
    expenses = crud.get_expenses(db, expense_filter, sort_desc=sort_date_desc)
    expenses_pydantic = [schemas.ExpenseResponse.model_validate(e) for e in expenses]

    totals: dict[str, Decimal] = {}
    for e in expenses_pydantic:
        totals[e.currency] = totals.get(e.currency, Decimal("0.00")) + e.amount
    return schemas.ExpenseListResponse(expenses=expenses_pydantic, totals=totals, count=len(expenses_pydantic))


@app.get(
    "/expenses/categories",
    response_model=list[str],
    tags=["Expenses"],
    summary="Get all expense categories",
)
def list_categories():
    """Returns the fixed category list, for use in dropdowns."""
    return [c.value for c in Category]


@app.get("/expenses/{expense_id}", response_model=schemas.ExpenseResponse, tags=["Expenses"])
def get_expense(
    expense_id: str,
    role: ActorRole = Depends(actor_role),
    caller_id: Optional[str] = Depends(actor_user_id),
    db: Session = Depends(get_db),
):
    expense = crud.get_expense(db, expense_id)
    if role != ActorRole.MANAGER and expense.user_id != caller_id:
        raise AuthorizationError("view other users' expenses", role.value)
    return expense


@app.patch(
    "/expenses/{expense_id}/status",
    response_model=schemas.ExpenseResponse,
    tags=["Review"],
    summary="Approve, reject, flag or clear an expense (managers only)",
)
def update_expense_status(
    expense_id: str,
    update: schemas.StatusUpdate,
    role: ActorRole = Depends(actor_role),
    db: Session = Depends(get_db),
):
    return transition_status(db, expense_id, update.status, role, notes=update.notes)


@app.get("/policies", response_model=list[schemas.PolicyResponse], tags=["Policies"])
def list_policies(db: Session = Depends(get_db)):
    return crud.list_policies(db)


@app.get("/policies/{category}", response_model=schemas.PolicyResponse, tags=["Policies"])
def get_policy(category: str, db: Session = Depends(get_db)):
    policy = crud.get_policy(db, category)
    if policy is None:
        raise PolicyNotFoundError(category)
    return policy


@app.put("/policies/{category}", response_model=schemas.PolicyResponse, tags=["Policies"])
def update_policy(
    category: str,
    policy_in: schemas.PolicyUpdate,
    role: ActorRole = Depends(actor_role),
    db: Session = Depends(get_db),
):
    require_manager(role, "edit expense policies")
    fields = policy_in.model_dump()
    fields["currency"] = policy_in.currency.value
    return crud.update_policy(db, category, fields)


@app.get("/exchange-rates", response_model=schemas.ExchangeRatesResponse, tags=["Currency"])
def exchange_rates(
    converter: CurrencyConverter = Depends(get_converter),
    clock=Depends(get_clock),
):
    return schemas.ExchangeRatesResponse(
        base=converter.base_currency,
        date=clock.today(),
        rates=converter.rates_for_today(),
    )


@app.post("/convert-currency", response_model=schemas.ConversionResponse, tags=["Currency"])
def convert_currency(
    request_in: schemas.ConversionRequest,
    converter: CurrencyConverter = Depends(get_converter),
):
    result = converter.convert(request_in.amount, request_in.from_currency, request_in.to_currency)
    return schemas.ConversionResponse(
        amount=request_in.amount,
        from_currency=request_in.from_currency.value,
        to_currency=request_in.to_currency.value,
        result=Decimal(str(result)).quantize(CENT),
    )


@app.get("/dashboard/summary", response_model=schemas.DashboardSummary, tags=["Dashboard"])
def dashboard_summary(
    currency: Currency = Query(default=Currency.INR, description="Currency to report totals in"),
    user_id: Optional[str] = Query(default=None),
    role: ActorRole = Depends(actor_role),
    caller_id: Optional[str] = Depends(actor_user_id),
    db: Session = Depends(get_db),
    converter: CurrencyConverter = Depends(get_converter),
):
    expense_filter = crud.ExpenseFilter(user_id=_visible_user_id(role, caller_id, user_id))
    return build_summary(db, converter, currency.value, expense_filter)
