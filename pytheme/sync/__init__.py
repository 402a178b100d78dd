"""Sync engine for pytheme - diffing, manifest, throttling and watching."""

from .diff import diff_assets, unchanged_keys
from .engine import ThemeSync, TransferOutcome
from .local import DEFAULT_THEME_DIR, LocalAssetStore
from .manifest import MANIFEST_RECORD, ManifestCache
from .policy import DEFAULT_WHITELIST, AssetPolicy
from .rate_limit import LOWER_LIMIT, RESET_SECONDS, RateLimiter, RateState
from .state import SNAPSHOT_RECORD, SnapshotStore
from .store import JsonStore
from .watcher import (
    FileChangeHandler,
    WatchCoordinator,
    WatchEvent,
    WatchEventKind,
    WatchOutcome,
)

__all__ = [
    "ThemeSync",
    "TransferOutcome",
    "diff_assets",
    "unchanged_keys",
    "LocalAssetStore",
    "DEFAULT_THEME_DIR",
    "ManifestCache",
    "MANIFEST_RECORD",
    "AssetPolicy",
    "DEFAULT_WHITELIST",
    "RateLimiter",
    "RateState",
    "LOWER_LIMIT",
    "RESET_SECONDS",
    "SnapshotStore",
    "SNAPSHOT_RECORD",
    "JsonStore",
    "WatchCoordinator",
    "WatchEvent",
    "WatchEventKind",
    "WatchOutcome",
    "FileChangeHandler",
]
