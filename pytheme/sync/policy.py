"""Which local paths count as theme assets."""

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_WHITELIST = (
    "layout/",
    "assets/",
    "config/",
    "snippets/",
    "templates/",
    "locales/",
)


class AssetPolicy:
    """Whitelist and ignore rules applied to every transferred path.

    Patterns are regular expressions searched anywhere in the key. The
    configured whitelist is added to the default theme directories; ignore
    patterns win over both.

    Examples:
        >>> policy = AssetPolicy(ignore_patterns=[r"settings_data\\.json$"])
        >>> policy.permits("assets/app.js")
        True
        >>> policy.permits("config/settings_data.json")
        False
        >>> policy.permits("README.md")
        False
    """

    def __init__(
        self,
        whitelist_patterns: Optional[list[str]] = None,
        ignore_patterns: Optional[list[str]] = None,
    ):
        patterns = list(DEFAULT_WHITELIST)
        for pattern in whitelist_patterns or []:
            if pattern not in patterns:
                patterns.append(pattern)
        self.whitelist = [re.compile(p) for p in patterns]
        self.ignore = [re.compile(p) for p in ignore_patterns or []]

    def is_ignored(self, key: str) -> bool:
        return any(regex.search(key) for regex in self.ignore)

    def is_whitelisted(self, key: str) -> bool:
        return any(regex.search(key) for regex in self.whitelist)

    def permits(self, key: str) -> bool:
        """Whether a local file takes part in uploads and watching."""
        return self.is_whitelisted(key) and not self.is_ignored(key)

    @staticmethod
    def in_theme_directory(key: str) -> bool:
        """Whether the first path segment is one of the theme directories."""
        directory, _, name = key.partition("/")
        return bool(name) and directory + "/" in DEFAULT_WHITELIST

    def filter(self, keys: list[str]) -> list[str]:
        return [key for key in keys if self.permits(key)]
