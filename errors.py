"""Domain error types and shared error messages."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for callers that only care that an operation was rejected.
    """


class ValidationError(DomainError):
    """Malformed or missing input, rejected before any store or cache access."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(DomainError):
    """Referenced entity does not exist for the current user."""


class BusinessRuleViolation(DomainError):
    """Operation blocked by a domain rule, such as dependent data."""


class StoreError(DomainError):
    """Persistence failure. The message is safe to show; the cause is not."""


class DataIntegrityError(StoreError):
    """Stored data could not be interpreted, e.g. an unparseable date."""


class CacheError(DomainError):
    """Cache backend failure. Never propagated past the cache layer."""


class AuthenticationError(DomainError):
    """Request credentials are missing or invalid."""


def category_not_found(category_id: int) -> str:
    return f"Category {category_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    return f"Transaction {transaction_id} not found"


def budget_not_found(budget_id: int) -> str:
    return f"Budget {budget_id} not found"


def goal_not_found(goal_id: int) -> str:
    return f"Goal {goal_id} not found"


def category_delete_blocked(category_id: int, dependents: dict[str, int]) -> str:
    """Return message when a category still has transactions, budgets or goals."""
    parts = [
        f"{count} {name}{'s' if count != 1 else ''}"
        for name, count in dependents.items()
        if count > 0
    ]
    return (
        f"Cannot delete category {category_id}: it has {', '.join(parts)}. "
        "Please reassign or delete them first."
    )
