from decimal import Decimal
from enum import Enum


# Values are persisted and shown in the UI; never rename them.
class Category(str, Enum):
    OFFICE_SUPPLIES = "Office Supplies"
    FOOD_AND_ENTERTAINMENT = "Food & Entertainment"
    TRAVELLING = "Travelling"
    ACCOMMODATION = "Accommodation"
    CLIENT_AND_PROJECT = "Client & Project Expenses"
    SUBSCRIPTIONS = "Subscriptions"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    INR = "INR"


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class ActorRole(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"


# Average monthly spend per category, used by the general fraud heuristic.
INDUSTRY_BENCHMARKS: dict[str, Decimal] = {
    Category.OFFICE_SUPPLIES.value: Decimal("350"),
    Category.FOOD_AND_ENTERTAINMENT.value: Decimal("800"),
    Category.TRAVELLING.value: Decimal("1500"),
    Category.ACCOMMODATION.value: Decimal("2000"),
    Category.CLIENT_AND_PROJECT.value: Decimal("3000"),
    Category.SUBSCRIPTIONS.value: Decimal("700"),
}

# Typical largest single receipt per category, used by the receipt heuristic.
TYPICAL_MAX_AMOUNTS: dict[str, Decimal] = {
    Category.OFFICE_SUPPLIES.value: Decimal("5000"),
    Category.FOOD_AND_ENTERTAINMENT.value: Decimal("2000"),
    Category.TRAVELLING.value: Decimal("10000"),
    Category.ACCOMMODATION.value: Decimal("8000"),
    Category.CLIENT_AND_PROJECT.value: Decimal("20000"),
    Category.SUBSCRIPTIONS.value: Decimal("5000"),
}

DEFAULT_POLICIES: list[dict] = [
    {
        "category": Category.OFFICE_SUPPLIES.value,
        "weekly_limit": Decimal("2500"),
        "monthly_limit": Decimal("10000"),
        "description": "Items for office use including stationery, small equipment, etc.",
    },
    {
        "category": Category.FOOD_AND_ENTERTAINMENT.value,
        "weekly_limit": Decimal("1250"),
        "monthly_limit": Decimal("5000"),
        "description": "Meals, client entertainment, and team events.",
    },
    {
        "category": Category.TRAVELLING.value,
        "weekly_limit": Decimal("2500"),
        "monthly_limit": Decimal("10000"),
        "description": "Transportation costs including airfare, train, taxi, etc.",
    },
    {
        "category": Category.ACCOMMODATION.value,
        "weekly_limit": Decimal("1250"),
        "monthly_limit": Decimal("5000"),
        "description": "Hotel and lodging expenses while on business trips.",
    },
    {
        "category": Category.CLIENT_AND_PROJECT.value,
        "weekly_limit": Decimal("25000"),
        "monthly_limit": Decimal("100000"),
        "description": "Expenses directly related to client projects.",
    },
    {
        "category": Category.SUBSCRIPTIONS.value,
        "weekly_limit": Decimal("12500"),
        "monthly_limit": Decimal("50000"),
        "description": "Software, services, and publication subscriptions.",
    },
]

DEFAULT_POLICY_CURRENCY = Currency.INR.value
