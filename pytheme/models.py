"""Data types shared by the API client and the sync engine."""

import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import InvalidAssetDataError
from .utils import normalize_text, sha256_digest

# Fields with a dedicated attribute on Asset
_PAYLOAD_FIELDS = ("key", "value", "attachment", "public_url")


@dataclass
class Asset:
    """A single theme file as the store describes it.

    Listing entries only carry metadata; assets fetched one by one also
    carry exactly one payload form, ``value`` for text or ``attachment``
    for binary content.
    """

    key: str
    """Slash separated path relative to the theme root"""

    value: Optional[str] = None
    """Text content"""

    attachment: Optional[bytes] = None
    """Binary content (already base64 decoded)"""

    public_url: Optional[str] = None
    """CDN url, changes on every upload and is ignored when comparing"""

    attributes: dict[str, Any] = field(default_factory=dict)
    """Every other field the store returned (content_type, size, ...)"""

    @classmethod
    def from_dict(cls, data: Any) -> "Asset":
        """Create an Asset from an API or snapshot dictionary.

        Raises:
            InvalidAssetDataError: If the entry is not a mapping with a key
        """
        if not isinstance(data, dict) or not data.get("key"):
            raise InvalidAssetDataError(f"Asset entry without key: {data!r}")

        attachment = None
        if data.get("attachment") is not None:
            try:
                attachment = base64.b64decode(data["attachment"])
            except (binascii.Error, TypeError, ValueError) as e:
                raise InvalidAssetDataError(
                    f"Invalid attachment for {data['key']}: {e}"
                ) from e

        return cls(
            key=data["key"],
            value=data.get("value"),
            attachment=attachment,
            public_url=data.get("public_url"),
            attributes={k: v for k, v in data.items() if k not in _PAYLOAD_FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert back to the dictionary form used on the wire."""
        data: dict[str, Any] = {"key": self.key}
        if self.public_url is not None:
            data["public_url"] = self.public_url
        data.update(self.attributes)
        if self.value is not None:
            data["value"] = self.value
        if self.attachment is not None:
            data["attachment"] = base64.b64encode(self.attachment).decode("ascii")
        return data

    def comparable(self) -> dict[str, Any]:
        """Dictionary form without volatile fields, used for diffing."""
        data = self.to_dict()
        data.pop("public_url", None)
        return data

    @property
    def has_payload(self) -> bool:
        return self.value is not None or self.attachment is not None

    @property
    def is_binary(self) -> bool:
        return self.attachment is not None

    @property
    def content(self) -> bytes:
        """Raw bytes a local copy of this asset contains.

        Text is stored without carriage returns.

        Raises:
            InvalidAssetDataError: If the asset carries no payload
        """
        if self.value is not None:
            return normalize_text(self.value).encode("utf-8")
        if self.attachment is not None:
            return self.attachment
        raise InvalidAssetDataError(f"Asset {self.key} has neither value nor attachment")

    @property
    def digest(self) -> str:
        """SHA-256 hex digest of ``content``."""
        return sha256_digest(self.content)


@dataclass
class AssetChanges:
    """Classification of a remote listing against the recorded snapshot."""

    changed: list[tuple[Asset, Asset]] = field(default_factory=list)
    """(previous, current) pairs whose metadata differs"""

    created: list[Asset] = field(default_factory=list)
    """Assets that did not exist in the snapshot"""

    deleted: list[Asset] = field(default_factory=list)
    """Snapshot assets that are gone remotely"""

    @property
    def is_empty(self) -> bool:
        return not (self.changed or self.created or self.deleted)

    def __bool__(self) -> bool:
        return not self.is_empty

    def to_dict(self) -> dict[str, list[str]]:
        """Keys per category, for JSON output."""
        return {
            "changed": [current.key for _, current in self.changed],
            "created": [asset.key for asset in self.created],
            "deleted": [asset.key for asset in self.deleted],
        }


def drop_shadowed_assets(assets: list[Asset]) -> list[Asset]:
    """Remove assets whose key also exists with a ``.liquid`` suffix.

    The store renders ``foo.css.liquid`` into ``foo.css``; only the template
    is a source file.
    """
    keys = {asset.key for asset in assets}
    return [asset for asset in assets if f"{asset.key}.liquid" not in keys]
