"""Digest manifest used to skip uploads of unchanged files.

The manifest maps asset keys to the SHA-256 digest of the local copy the
engine last downloaded or uploaded. A matching digest only proves the local
file did not change since then; it says nothing about the remote copy.
"""

import logging
from typing import Optional

from .store import JsonStore

logger = logging.getLogger(__name__)

MANIFEST_RECORD = "manifest"


class ManifestCache:
    """Asset key to digest mapping persisted as ``manifest.json``."""

    def __init__(self, store: JsonStore):
        self.store = store
        self._entries: Optional[dict[str, str]] = None

    def _load(self) -> dict[str, str]:
        if self._entries is None:
            data = self.store.read(MANIFEST_RECORD, default={})
            if not isinstance(data, dict):
                logger.warning("Ignoring manifest that is not a JSON object")
                data = {}
            self._entries = {str(k): str(v) for k, v in data.items()}
        return self._entries

    def _save(self) -> None:
        self.store.write(MANIFEST_RECORD, self._load())

    def digest_of(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def is_unchanged(self, key: str, digest: str) -> bool:
        """Whether ``digest`` matches the recorded one for ``key``."""
        return self.digest_of(key) == digest

    def record(self, key: str, digest: str) -> None:
        self._load()[key] = digest
        self._save()

    def forget(self, key: str) -> None:
        entries = self._load()
        if key in entries:
            del entries[key]
            self._save()

    def as_dict(self) -> dict[str, str]:
        return dict(self._load())
