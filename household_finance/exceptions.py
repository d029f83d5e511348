"""Exceptions raised by the household finance core."""


class FinanceError(Exception):
    """Base exception for the household finance core"""

    pass


class NotFoundError(FinanceError):
    """Requested record does not exist for the household"""

    pass


class ValidationError(FinanceError):
    """A required identifier or field is missing or malformed"""

    pass


class UpstreamServiceError(FinanceError):
    """Embedding or vector-search collaborator failed"""

    pass


class StoreError(FinanceError):
    """Ledger store query failed.

    The message names the store operation that triggered the failure.
    """

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: {cause}")
