"""pytheme - keep a local theme directory in sync with a store's theme assets."""

from .api import ThemeClient
from .exceptions import (
    BranchChangedError,
    InvalidAssetDataError,
    PathNotWhitelistedError,
    RemoteDriftConflictError,
    ThemeAPIError,
    ThemeAuthenticationError,
    ThemeConfigError,
    ThemeError,
    ThemeNetworkError,
    ThemeRateLimitError,
    ThemeTransferError,
)
from .models import Asset, AssetChanges
from .utils import sha256_digest

__all__ = [
    "ThemeClient",
    "Asset",
    "AssetChanges",
    "BranchChangedError",
    "InvalidAssetDataError",
    "PathNotWhitelistedError",
    "RemoteDriftConflictError",
    "ThemeAPIError",
    "ThemeAuthenticationError",
    "ThemeConfigError",
    "ThemeError",
    "ThemeNetworkError",
    "ThemeRateLimitError",
    "ThemeTransferError",
    "sha256_digest",
]
