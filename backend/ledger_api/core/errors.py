class LedgerError(Exception):
    """Base class for failures raised by the ledger services."""


class ValidationFailed(LedgerError):
    """Request parameters are missing, malformed or inconsistent.

    ``errors`` maps each offending field to every message collected for it,
    so callers see all violations at once.
    """

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("Validation failed")
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: [message]})


class NotFound(LedgerError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message)
        self.message = message


class StoreFailure(LedgerError):
    def __init__(self, message: str = "Storage error"):
        super().__init__(message)
        self.message = message
