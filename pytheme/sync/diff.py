"""Classification of a remote listing against the recorded snapshot."""

from ..exceptions import InvalidAssetDataError
from ..models import Asset, AssetChanges


def _index(assets: list[Asset]) -> dict[str, Asset]:
    index: dict[str, Asset] = {}
    for asset in assets:
        if not asset.key:
            raise InvalidAssetDataError(f"Asset without key: {asset!r}")
        index[asset.key] = asset
    return index


def diff_assets(previous: list[Asset], current: list[Asset]) -> AssetChanges:
    """Compare two listings.

    An asset present on both sides is changed when anything but its
    ``public_url`` differs. Results keep the order of the inputs.

    Args:
        previous: Snapshot listing
        current: Freshly fetched listing

    Returns:
        AssetChanges with changed (previous, current) pairs, created and
        deleted assets

    Raises:
        InvalidAssetDataError: If an asset has no key
    """
    previous_by_key = _index(previous)
    current_by_key = _index(current)

    changes = AssetChanges()
    for prev_asset in previous:
        new_asset = current_by_key.get(prev_asset.key)
        if new_asset is None:
            changes.deleted.append(prev_asset)
        elif prev_asset.comparable() != new_asset.comparable():
            changes.changed.append((prev_asset, new_asset))

    for new_asset in current:
        if new_asset.key not in previous_by_key:
            changes.created.append(new_asset)

    return changes


def unchanged_keys(previous: list[Asset], current: list[Asset]) -> list[str]:
    """Keys present on both sides with identical comparable content."""
    current_by_key = _index(current)
    return [
        asset.key
        for asset in previous
        if asset.key in current_by_key
        and asset.comparable() == current_by_key[asset.key].comparable()
    ]
