"""Exception types raised by the reconciliation engine and its collaborators."""


class StockwiseError(Exception):
    """Base class for all stockwise errors."""


class UpdateValidationError(StockwiseError):
    """A raw update request failed validation.

    Attributes:
        field: Name of the offending field as it appears in the raw payload
    """

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message)
        self.field = field


class StoreError(StockwiseError):
    """Reading from or writing to the catalog store failed."""


class AuditError(StockwiseError):
    """Writing an audit log entry failed."""
