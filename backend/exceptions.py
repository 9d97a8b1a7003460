"""Exception classes for the expense service."""


class ExpenseServiceError(Exception):
    """Base exception for the expense service."""
    pass


class ConfigurationError(ExpenseServiceError):
    """An environment setting is missing or malformed."""
    pass


class ConversionUnavailableError(ExpenseServiceError):
    """No direct or bridged exchange rate could be found."""
    pass


class RateSourceError(ExpenseServiceError):
    """The external exchange rate provider could not be reached or returned garbage."""
    pass


class AuthorizationError(ExpenseServiceError):
    """A non-manager attempted a manager-only operation."""

    def __init__(self, operation: str, actor_role: str):
        self.operation = operation
        self.actor_role = actor_role
        super().__init__(f"Only managers can {operation} (actor role: {actor_role})")


class ExpenseNotFoundError(ExpenseServiceError):
    """No expense exists with the given id."""

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class PolicyNotFoundError(ExpenseServiceError):
    """No policy exists for the given category."""

    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Policy not found: {category}")


class PersistenceError(ExpenseServiceError):
    """Underlying database read or write failed."""
    pass
