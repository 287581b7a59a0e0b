"""
Error taxonomy for the carbon ledger.

Every error carries the HTTP status the API layer answers with, so route
handlers never have to map exceptions one by one.
"""


class LedgerError(Exception):
    """Base class for all errors raised by the ledger and ranker"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(LedgerError):
    status_code = 400


class UnknownCategory(LedgerError):
    status_code = 400

    def __init__(self, category: str):
        super().__init__(f"Unknown category: {category}")
        self.category = category


class UserNotFound(LedgerError):
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__("User not found")
        self.user_id = user_id


class StoreFailure(LedgerError):
    """Any persistence-layer error. The cause is logged, never returned to clients."""

    status_code = 500
