"""
Application error type shared by services and routers.

Every error carries an HTTP-style status code and the name of the operation
that raised it, so failures can be traced without leaking raw stack traces.
"""


class AppError(Exception):
    """Error raised by services; rendered by the global exception handler."""

    def __init__(self, status_code: int, message: str, operation: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.operation = operation

    def __repr__(self) -> str:
        return f"AppError({self.status_code}, {self.message!r}, {self.operation!r})"


class ExtractionError(AppError):
    """The model failed to produce usable output; fails the whole batch."""
