class CatalogError(Exception):
    """Base class for errors raised by the bookstore catalog."""


class ValidationError(CatalogError, ValueError):
    """Raised when a record is missing required fields or has the wrong types."""


class InvalidFieldError(CatalogError, KeyError):
    """Raised when an operation names a field that books do not have."""

    def __init__(self, field: str):
        super().__init__(field)
        self.field = field

    def __str__(self) -> str:
        return f"Unknown book field: {self.field!r}"


class UnknownReportError(CatalogError, KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown report: {self.name!r}"
