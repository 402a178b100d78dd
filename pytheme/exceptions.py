"""Exception types raised by pytheme."""

from typing import Any, Optional


class ThemeError(Exception):
    """Base class for all pytheme errors."""


class ThemeConfigError(ThemeError):
    """Raised when config.yml is missing or has no entry for the branch."""


class ThemeAPIError(ThemeError):
    """Base class for errors reported by the remote store."""


class ThemeAuthenticationError(ThemeAPIError):
    """Raised when the store rejects our credentials (HTTP 401)."""


class ThemeNetworkError(ThemeAPIError):
    """Raised when the store cannot be reached."""


class ThemeRateLimitError(ThemeAPIError):
    """Raised when the store keeps answering 429 after all retries."""


class ThemeTransferError(ThemeAPIError):
    """Raised when a single asset get, put or delete is not accepted.

    Carries the details the store reported so callers can show them next
    to the asset key.
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        status: Optional[int] = None,
        request_id: Optional[str] = None,
        errors: str = "",
    ):
        super().__init__(message)
        self.key = key
        self.status = status
        self.request_id = request_id
        self.errors = errors

    @property
    def details(self) -> dict[str, Any]:
        """Status, request id and error text, omitting empty errors."""
        details: dict[str, Any] = {
            "status": self.status,
            "request_id": self.request_id,
        }
        if self.errors:
            details["errors"] = self.errors
        return details


class InvalidAssetDataError(ThemeError):
    """Raised when a listing or asset payload lacks required fields."""


class PathNotWhitelistedError(ThemeError):
    """Raised when an asset key lies outside the theme directories."""

    def __init__(self, key: str):
        super().__init__(f"'{key}' is not in a valid file for theme uploads")
        self.key = key


class RemoteDriftConflictError(ThemeError):
    """Raised when the store changed since the last recorded snapshot."""

    def __init__(self, changes: Any):
        super().__init__("There are remote changes which have not been imported locally")
        self.changes = changes


class BranchChangedError(ThemeError):
    """Raised when the git branch changes while watching."""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            f"The repository branch has changed from {expected} to {actual}"
        )
        self.expected = expected
        self.actual = actual
