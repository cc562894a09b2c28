# Overview: Domain error taxonomy raised by the ledger and reporting services.


class LedgerError(ValueError):
    """Base class for ledger business-rule failures."""


class NotFoundError(LedgerError):
    """A customer, catalog item, location or ledger entry does not exist."""


class InsufficientBalanceError(LedgerError):
    """A 'used' transaction exceeds the customer's available minutes."""

    def __init__(self, user_id: int, required: int):
        self.user_id = user_id
        self.required = required
        super().__init__("Insufficient balance")


class InvalidLocationError(LedgerError):
    """The location given for a stock decrement cannot be resolved."""


class ReportError(ValueError):
    """Raised when report parameters are unusable."""
