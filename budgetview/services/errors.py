# budgetview/services/errors.py
#
# Error taxonomy shared by services and routes.
# Every failure a user can trigger is a BudgetError carrying a message that is
# safe to show as a notification.


class BudgetError(Exception):
    """Base class for failures surfaced to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(BudgetError):
    """Input was rejected before any write was attempted."""


class NotFound(BudgetError):
    """A referenced record is missing or belongs to another user."""


class StoreRejected(BudgetError):
    """The database refused the batch; nothing was applied."""


class AuthFailed(BudgetError):
    """Bad credentials, existing account, or unusable sign-up data."""
