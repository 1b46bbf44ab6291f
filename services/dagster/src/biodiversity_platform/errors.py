from __future__ import annotations


class ApiError(Exception):
    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [])

    def __str__(self) -> str:
        return self.message


class ApiGeneralError(ApiError):
    """A precondition for the requested operation was not met."""


class ApiExecuteSQLError(ApiError):
    """A statement did not affect or return the expected number of rows."""
