"""Core sync engine for moving theme assets between disk and store."""

import logging
import re
import time
from enum import Enum
from typing import Optional

from ..api import ThemeClient
from ..exceptions import PathNotWhitelistedError, RemoteDriftConflictError, ThemeTransferError
from ..models import Asset, AssetChanges
from ..output import OutputFormatter
from ..utils import is_binary_asset, sha256_digest, timestamp
from .diff import diff_assets
from .local import LocalAssetStore
from .manifest import ManifestCache
from .policy import DEFAULT_WHITELIST, AssetPolicy
from .rate_limit import RateLimiter
from .state import SnapshotStore

logger = logging.getLogger(__name__)

NAPTIME_MESSAGE = (
    "Approaching limit of API permits. "
    "Naptime until more permits become available!"
)


class TransferOutcome(str, Enum):
    """Result of a single asset transfer."""

    DOWNLOADED = "downloaded"
    UPLOADED = "uploaded"
    DELETED = "deleted"
    SKIPPED = "skipped"
    """Nothing to do (unchanged digest or ignored path)"""

    FAILED = "failed"
    """The store rejected the transfer"""

    INVALID = "invalid"
    """Key outside the theme directories"""


def asset_keys(listing: list[Asset]) -> list[str]:
    return [asset.key for asset in listing]


class ThemeSync:
    """Orchestrates downloads, uploads and deletions of theme assets.

    All remote calls happen one at a time on the calling thread. Before
    each asset call the rate limiter gets a chance to block.
    """

    def __init__(
        self,
        client: ThemeClient,
        local: LocalAssetStore,
        manifest: ManifestCache,
        snapshot: SnapshotStore,
        policy: Optional[AssetPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        output: Optional[OutputFormatter] = None,
    ):
        """Initialize sync engine.

        Args:
            client: Remote asset store
            local: Local theme directory
            manifest: Digest manifest used to skip unchanged uploads
            snapshot: Last observed remote listing
            policy: Whitelist and ignore rules (defaults only if omitted)
            rate_limiter: Limiter fed by ``client``; no throttling if omitted
            output: Output formatter for displaying status
        """
        self.client = client
        self.local = local
        self.manifest = manifest
        self.snapshot = snapshot
        self.policy = policy or AssetPolicy()
        self.rate_limiter = rate_limiter
        self.output = output or OutputFormatter()

    # =========================
    # Helpers
    # =========================

    def _create_empty_stats(self) -> dict[str, int]:
        return {outcome.value: 0 for outcome in TransferOutcome}

    def _usage(self) -> str:
        return self.rate_limiter.usage() if self.rate_limiter else ""

    def _status(self, verb: str, key: str) -> str:
        usage = self._usage()
        prefix = f"[{timestamp()}] {usage} " if usage else f"[{timestamp()}] "
        return f"{prefix}{verb}: {key}"

    def _throttle(self) -> None:
        if self.rate_limiter is not None and self.rate_limiter.needs_sleep():
            self.output.removed(NAPTIME_MESSAGE)
            self.rate_limiter.throttle()

    def _report_error(self, message: str, error: ThemeTransferError) -> None:
        self.output.error(f"[{timestamp()}] Error: {message}")
        self.output.warning(f"Error Details: {error.details}")

    def validate(self, key: str) -> bool:
        """Check that a key lies in one of the theme directories.

        Reports a warning and returns False otherwise.
        """
        if self.policy.in_theme_directory(key):
            return True
        self.output.warning(str(PathNotWhitelistedError(key)))
        self.output.warning(
            "Files need to be in one of the following subdirectories: "
            + " ".join(DEFAULT_WHITELIST)
        )
        return False

    def local_asset_keys(self) -> list[str]:
        """Local files that pass the whitelist and ignore rules."""
        return self.policy.filter(self.local.list_keys())

    @staticmethod
    def _exclude(keys: list[str], exclude: Optional[str]) -> list[str]:
        if not exclude:
            return keys
        pattern = re.compile(exclude)
        return [key for key in keys if not pattern.search(key)]

    # =========================
    # Remote state
    # =========================

    def changes(self, listing: Optional[list[Asset]] = None) -> AssetChanges:
        """Diff a remote listing (fetched if omitted) against the snapshot."""
        if listing is None:
            listing = self.client.list_assets()
        if not self.snapshot.exists():
            logger.debug("No snapshot yet, every remote asset counts as created")
        return diff_assets(self.snapshot.read(), listing)

    def ensure_no_drift(self, listing: Optional[list[Asset]] = None) -> None:
        """Refuse to continue when the store changed since the snapshot.

        Raises:
            RemoteDriftConflictError: With the pending changes
        """
        changes = self.changes(listing)
        if changes:
            raise RemoteDriftConflictError(changes)

    def refresh_snapshot(self) -> list[Asset]:
        """Fetch a fresh listing and store it as the snapshot."""
        listing = self.client.list_assets()
        self.snapshot.save(listing)
        return listing

    def display_changes(self, changes: AssetChanges) -> None:
        if changes.changed:
            self.output.print("\nChanged:\n")
            for _, current in changes.changed:
                self.output.print(f"  {current.key}", style="yellow")
        if changes.created:
            self.output.print("\nCreated:\n")
            for asset in changes.created:
                self.output.print(f"  {asset.key}", style="green")
        if changes.deleted:
            self.output.print("\nDeleted:\n")
            for asset in changes.deleted:
                self.output.print(f"  {asset.key}", style="red")
        if changes.is_empty:
            self.output.success("\nNo changes.")

    # =========================
    # Single asset transfers
    # =========================

    def download_asset(self, key: str) -> TransferOutcome:
        """Fetch an asset, record its digest and write the local copy."""
        if not self.validate(key):
            return TransferOutcome.INVALID

        self._throttle()
        try:
            asset = self.client.get_asset(key)
        except ThemeTransferError as e:
            self._report_error(f"Could not download {key}", e)
            return TransferOutcome.FAILED

        content = asset.content
        self.manifest.record(key, sha256_digest(content))
        self.local.write_bytes(key, content)
        self.output.success(self._status("Downloaded", key))
        return TransferOutcome.DOWNLOADED

    def init_asset(self, key: str) -> TransferOutcome:
        """Fetch an asset and only record its digest."""
        if not self.validate(key):
            return TransferOutcome.INVALID

        self.output.success(self._status("Initializing", key))
        self._throttle()
        try:
            asset = self.client.get_asset(key)
        except ThemeTransferError as e:
            self._report_error(f"Could not initialize {key}", e)
            return TransferOutcome.FAILED

        self.manifest.record(key, asset.digest)
        return TransferOutcome.DOWNLOADED

    def send_asset(
        self, key: str, force: bool = False, dry_run: bool = False
    ) -> TransferOutcome:
        """Upload a local file unless the manifest shows it unchanged.

        Args:
            key: Asset key
            force: Upload even if the digest matches the manifest
            dry_run: Report without uploading
        """
        if not self.validate(key):
            return TransferOutcome.INVALID
        if self.policy.is_ignored(key):
            self.output.warning(self._status("Skipped", key))
            return TransferOutcome.SKIPPED

        try:
            data = self.local.read_bytes(key)
        except OSError as e:
            self.output.error(f"[{timestamp()}] Error: Could not read {key}: {e}")
            return TransferOutcome.FAILED

        digest = sha256_digest(data)
        if not force and self.manifest.is_unchanged(key, digest):
            self.output.warning(self._status("Skipped", key))
            return TransferOutcome.SKIPPED

        if dry_run:
            self.output.success(self._status("Uploaded", key))
            return TransferOutcome.UPLOADED

        if is_binary_asset(key, data):
            asset = Asset(key=key, attachment=data)
        else:
            asset = Asset(key=key, value=data.decode("utf-8"))

        self._throttle()
        start = time.time()
        try:
            self.client.put_asset(asset)
        except ThemeTransferError as e:
            self._report_error(f"Could not upload {key}", e)
            return TransferOutcome.FAILED
        logger.debug(f"Upload of {key} took {time.time() - start:.2f}s")

        self.manifest.record(key, digest)
        self.output.success(self._status("Uploaded", key))
        return TransferOutcome.UPLOADED

    def delete_asset(self, key: str, dry_run: bool = False) -> TransferOutcome:
        """Delete a remote asset and forget its digest."""
        if not self.validate(key):
            return TransferOutcome.INVALID
        if self.policy.is_ignored(key):
            self.output.warning(self._status("Skipped", key))
            return TransferOutcome.SKIPPED

        if dry_run:
            self.output.removed(self._status("Removed", key))
            return TransferOutcome.DELETED

        self._throttle()
        try:
            self.client.delete_asset(key)
        except ThemeTransferError as e:
            self._report_error(f"Could not remove {key}", e)
            return TransferOutcome.FAILED

        self.manifest.forget(key)
        self.output.success(self._status("Removed", key))
        return TransferOutcome.DELETED

    # =========================
    # Operations
    # =========================

    def download(
        self, keys: Optional[list[str]] = None, exclude: Optional[str] = None
    ) -> dict[str, int]:
        """Download the given assets, or the whole theme.

        When downloading the whole theme, the listing fetched up front is
        saved as the new snapshot afterwards.
        """
        listing = None
        if keys:
            targets = list(keys)
        else:
            listing = self.client.list_assets()
            targets = asset_keys(listing)
        targets = self._exclude(targets, exclude)

        stats = self._create_empty_stats()
        for key in targets:
            stats[self.download_asset(key).value] += 1

        if listing is not None:
            self.snapshot.save(listing)

        self.output.success("Done.")
        return stats

    def import_changes(self) -> dict[str, int]:
        """Download what changed remotely and drop what was deleted."""
        listing = self.client.list_assets()
        changes = self.changes(listing)

        stats = self._create_empty_stats()
        for asset in [current for _, current in changes.changed] + changes.created:
            stats[self.download_asset(asset.key).value] += 1

        for asset in changes.deleted:
            self.manifest.forget(asset.key)
            if self.local.delete(asset.key):
                self.output.removed(f"[{timestamp()}] Deleted: {asset.key}")
                stats[TransferOutcome.DELETED.value] += 1

        self.snapshot.save(listing)
        self.output.success("Done.")
        return stats

    def init(self, exclude: Optional[str] = None) -> dict[str, int]:
        """Record digests for every remote asset and save the snapshot.

        Local files are neither written nor deleted.
        """
        listing = self.client.list_assets()
        targets = self._exclude(asset_keys(listing), exclude)

        stats = self._create_empty_stats()
        for key in targets:
            stats[self.init_asset(key).value] += 1

        self.snapshot.save(listing)
        self.output.success("Done.")
        return stats

    def export(self, dry_run: bool = False) -> dict[str, int]:
        """Push the local theme, deleting remote files missing locally.

        Raises:
            RemoteDriftConflictError: If the store has changes that were not
                imported; nothing is modified in that case
        """
        listing = self.client.list_assets()
        self.ensure_no_drift(listing)

        local_keys = self.local_asset_keys()
        local_set = set(local_keys)

        stats = self._create_empty_stats()
        for key in asset_keys(listing):
            if key not in local_set:
                stats[self.delete_asset(key, dry_run=dry_run).value] += 1

        for key in local_keys:
            stats[self.send_asset(key, dry_run=dry_run).value] += 1

        if not dry_run:
            self.refresh_snapshot()

        self.output.success("Done.")
        return stats

    def upload(
        self, keys: Optional[list[str]] = None, force: bool = False
    ) -> dict[str, int]:
        """Upload the given files, or every local theme file."""
        targets = list(keys) if keys else self.local_asset_keys()

        stats = self._create_empty_stats()
        for key in targets:
            stats[self.send_asset(key, force=force).value] += 1

        self.output.success("Done.")
        return stats

    def replace(self, keys: Optional[list[str]] = None) -> dict[str, int]:
        """Make the store match the local theme.

        Without keys, remote assets missing locally are deleted and every
        local file is uploaded. With keys, those assets are deleted and
        uploaded again.
        """
        if keys:
            remote_targets = list(keys)
            local_targets = list(keys)
        else:
            local_targets = self.local_asset_keys()
            local_set = set(local_targets)
            remote_targets = [
                key for key in asset_keys(self.client.list_assets()) if key not in local_set
            ]

        stats = self._create_empty_stats()
        for key in remote_targets:
            stats[self.delete_asset(key).value] += 1
        for key in local_targets:
            stats[self.send_asset(key, force=True).value] += 1

        self.output.success("Done.")
        return stats

    def remove(self, keys: list[str]) -> dict[str, int]:
        """Delete the given remote assets."""
        stats = self._create_empty_stats()
        for key in keys:
            stats[self.delete_asset(key).value] += 1

        self.output.success("Done.")
        return stats
