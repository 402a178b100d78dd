"""Snapshot of the last fully observed remote asset listing.

The snapshot (``sync.json``) is an unmodified copy of the remote listing.
Diffing a fresh listing against it tells what changed on the store since
the engine last looked.
"""

import logging

from ..exceptions import InvalidAssetDataError
from ..models import Asset
from .store import JsonStore

logger = logging.getLogger(__name__)

SNAPSHOT_RECORD = "sync"


class SnapshotStore:
    """Reads and replaces the ``sync.json`` record."""

    def __init__(self, store: JsonStore):
        self.store = store

    def exists(self) -> bool:
        return self.store.exists(SNAPSHOT_RECORD)

    def read(self) -> list[Asset]:
        """Load the snapshot; a missing record is an empty baseline.

        Raises:
            InvalidAssetDataError: If the record is not a list of assets
        """
        data = self.store.read(SNAPSHOT_RECORD, default=[])
        if not isinstance(data, list):
            raise InvalidAssetDataError("Snapshot is not a list of assets")
        return [Asset.from_dict(entry) for entry in data]

    def save(self, listing: list[Asset]) -> None:
        self.store.write(SNAPSHOT_RECORD, [asset.to_dict() for asset in listing])
        logger.debug(f"Saved snapshot with {len(listing)} asset(s)")
