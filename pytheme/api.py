"""API client for a store's theme assets."""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any

import httpx

from .config import ThemeConfig
from .exceptions import (
    InvalidAssetDataError,
    ThemeAuthenticationError,
    ThemeNetworkError,
    ThemeRateLimitError,
    ThemeTransferError,
)
from .models import Asset, drop_shadowed_assets
from .utils import CALL_LIMIT_HEADER, DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY

if TYPE_CHECKING:
    from .sync.rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def error_text(response: httpx.Response) -> str:
    """Extract the store's error message from a response.

    The store reports ``{"errors": ...}`` where the value is either a string
    or a mapping of field names to messages.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and "errors" in body:
        errors = body["errors"]
        if errors is None:
            return ""
        if isinstance(errors, str):
            return errors.strip()
        if isinstance(errors, dict):
            parts = []
            for value in errors.values():
                if isinstance(value, list):
                    parts.append(", ".join(str(v) for v in value))
                else:
                    parts.append(str(value))
            return ", ".join(parts)
        return str(errors)

    try:
        return (response.text or "").strip()
    except (AttributeError, UnicodeDecodeError):
        return ""


class ThemeClient:
    """Client for the theme asset endpoint of a single store."""

    def __init__(
        self,
        theme_config: ThemeConfig,
        rate_limiter: RateLimiter | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        timeout: float = 30.0,
    ):
        """Initialize the client.

        Args:
            theme_config: Store credentials and theme id
            rate_limiter: Limiter that receives every call limit header
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            timeout: Request timeout in seconds (default: 30.0)
        """
        self.config = theme_config
        self.rate_limiter = rate_limiter
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def assets_path(self) -> str:
        return self.config.assets_path

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(
                base_url=self.config.base_url,
                auth=(self.config.api_key, self.config.password),
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> ThemeClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        base_delay = self.retry_delay * (2**attempt)
        # Add jitter: +/- 25% of base delay
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def _observe(self, response: httpx.Response) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.observe(response.headers.get(CALL_LIMIT_HEADER))

    def _send(self, method: str, **kwargs: Any) -> httpx.Response:
        """Send a request to the asset endpoint with retry logic.

        Network errors, 429 and 5xx responses are retried. Any other
        response is returned to the caller, except 401 which is fatal.

        Args:
            method: HTTP method
            **kwargs: Additional arguments passed to httpx

        Returns:
            The final response

        Raises:
            ThemeAuthenticationError: If the store answers 401
            ThemeNetworkError: If the store cannot be reached after all retries
            ThemeRateLimitError: If the store still answers 429 after all retries
        """
        client = self._get_client()

        for attempt in range(self.max_retries + 1):
            try:
                response = client.request(method, self.assets_path, **kwargs)
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    delay = self._calculate_retry_delay(attempt)
                    logger.debug(f"Network error ({e}), retrying in {delay:.1f}s")
                    time.sleep(delay)
                    continue
                raise ThemeNetworkError(f"Network error: {e}") from e

            self._observe(response)
            status_code = response.status_code

            if status_code == 401:
                raise ThemeAuthenticationError(
                    error_text(response) or "Invalid API key or unauthorized access"
                )

            if status_code == 429 or 500 <= status_code < 600:
                if attempt < self.max_retries:
                    retry_after = response.headers.get("Retry-After")
                    if retry_after and retry_after.isdigit():
                        delay = float(retry_after)
                    else:
                        delay = self._calculate_retry_delay(attempt)
                    logger.debug(
                        f"{method} answered {status_code}, retrying in {delay:.1f}s"
                    )
                    time.sleep(delay)
                    continue
                if status_code == 429:
                    raise ThemeRateLimitError(
                        "Rate limit exceeded - please try again later"
                    )

            return response

        # The loop either returns or raises on its final attempt
        raise ThemeNetworkError("Request failed after all retry attempts")

    @staticmethod
    def _is_success(response: httpx.Response) -> bool:
        return 200 <= response.status_code < 300

    def _transfer_error(
        self, response: httpx.Response, message: str, key: str | None
    ) -> ThemeTransferError:
        return ThemeTransferError(
            message,
            key=key,
            status=response.status_code,
            request_id=response.headers.get("x-request-id"),
            errors=error_text(response),
        )

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as e:
            raise InvalidAssetDataError("Invalid JSON response from server") from e
        if not isinstance(body, dict):
            raise InvalidAssetDataError(f"Unexpected response body: {body!r}")
        return body

    # =========================
    # Asset Operations
    # =========================

    def list_assets(self) -> list[Asset]:
        """Fetch the remote asset listing.

        Keys shadowed by a ``.liquid`` template are left out.

        Returns:
            Assets in the order the store returned them (metadata only)
        """
        response = self._send("GET")
        if not self._is_success(response):
            raise self._transfer_error(response, "Could not list assets", None)

        assets = self._json(response).get("assets")
        if not isinstance(assets, list):
            raise InvalidAssetDataError("Asset listing response has no assets")
        listing = drop_shadowed_assets([Asset.from_dict(a) for a in assets])
        logger.debug(f"Listed {len(listing)} remote asset(s)")
        return listing

    def get_asset(self, key: str) -> Asset:
        """Fetch a single asset including its content.

        Raises:
            ThemeTransferError: If the store does not return the asset
            InvalidAssetDataError: If the asset has no value or attachment
        """
        response = self._send("GET", params={"asset[key]": key})
        if not self._is_success(response):
            raise self._transfer_error(response, f"Could not download {key}", key)

        asset = Asset.from_dict(self._json(response).get("asset"))
        if not asset.has_payload:
            raise InvalidAssetDataError(f"Asset {key} has neither value nor attachment")
        return asset

    def put_asset(self, asset: Asset) -> dict[str, Any]:
        """Create or replace an asset.

        Returns:
            The asset metadata the store answered with

        Raises:
            ThemeTransferError: If the upload is rejected
        """
        response = self._send("PUT", json={"asset": asset.to_dict()})
        if not self._is_success(response):
            raise self._transfer_error(response, f"Could not upload {asset.key}", asset.key)
        try:
            return response.json().get("asset") or {}
        except (ValueError, AttributeError):
            return {}

    def delete_asset(self, key: str) -> None:
        """Delete an asset.

        Raises:
            ThemeTransferError: If the deletion is rejected
        """
        response = self._send("DELETE", params={"asset[key]": key})
        if not self._is_success(response):
            raise self._transfer_error(response, f"Could not remove {key}", key)

    def check_config(self) -> bool:
        """Check that the credentials and theme id are accepted."""
        try:
            response = self._send("GET")
        except ThemeAuthenticationError:
            return False
        return self._is_success(response)
