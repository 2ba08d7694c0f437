"""Error hierarchy for model requests made during a scan.

Only CAPACITY_EXCEEDED changes control flow: the scan runner splits the
offending chunk and retries it. Every other category is reported for that
chunk alone and the scan carries on.
"""

from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    """Categories of request failures."""

    CAPACITY_EXCEEDED = auto()  # Request rejected for its size (413 / context window)
    TRANSIENT = auto()  # Server-side or network failure
    RATE_LIMIT = auto()  # 429 after the collaborator's own retries
    AUTHENTICATION = auto()  # Missing or rejected credentials


class ScanException(Exception):
    """Base exception for scan request errors with categorization."""

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        status_code: int = 0,
        model: Optional[str] = None,
    ):
        if model:
            super().__init__(f"[{model}] [{category.name}] {message}")
        else:
            super().__init__(f"[{category.name}] {message}")
        self.category = category
        self.status_code = status_code
        self.model = model


class CapacityExceededError(ScanException):
    """The request was too large for the model's input limit."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(
            ErrorCategory.CAPACITY_EXCEEDED, message, status_code=413, model=model
        )


class TransientRequestError(ScanException):
    """Generic request failure; the chunk contributes no issues."""

    def __init__(
        self, message: str, status_code: int = 0, model: Optional[str] = None
    ):
        super().__init__(ErrorCategory.TRANSIENT, message, status_code, model=model)


class RateLimitException(ScanException):
    """Exception for rate limit errors."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        model: Optional[str] = None,
    ):
        super().__init__(
            ErrorCategory.RATE_LIMIT, message, status_code=429, model=model
        )
        self.retry_after = retry_after


class AuthenticationException(ScanException):
    """Exception for authentication/authorization failures."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(
            ErrorCategory.AUTHENTICATION, message, status_code=401, model=model
        )

