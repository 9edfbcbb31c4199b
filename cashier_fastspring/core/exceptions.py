"""Errors raised while applying FastSpring events."""


class CashierFastspringError(Exception):
    """Base exception for this package."""

    pass


class UserNotFoundError(CashierFastspringError):
    """Raised when no local user is linked to a FastSpring account."""

    def __init__(self, fastspring_id: str):
        self.fastspring_id = fastspring_id
        super().__init__(f"No user linked to FastSpring account {fastspring_id!r}")


class MalformedPayloadError(CashierFastspringError):
    """Raised when an event payload does not have the expected shape."""

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)
