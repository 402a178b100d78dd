"""Configuration loading for pytheme.

The project directory holds a ``config.yml`` mapping git branch names to
store credentials, so a branch can be bound to its own theme::

    master:
      api_key: abc
      password: secret
      store: example.myshopify.com
      theme_id: 1234
      ignore_files:
        - config/settings_data.json
"""

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .exceptions import ThemeConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yml"
DEFAULT_BRANCH = "master"

# Set to any value to let watch proceed despite unimported remote changes
UNSAFE_ENV_VAR = "UNSAFE"


@dataclass
class ThemeConfig:
    """Store connection and file selection settings for one branch."""

    api_key: str
    password: str
    store: str
    theme_id: Optional[int] = None
    ignore_files: list[str] = field(default_factory=list)
    whitelist_files: list[str] = field(default_factory=list)

    @property
    def assets_path(self) -> str:
        """Asset endpoint for the configured theme (or the live theme)."""
        if self.theme_id:
            return f"/admin/themes/{self.theme_id}/assets.json"
        return "/admin/assets.json"

    @property
    def base_url(self) -> str:
        store = self.store.rstrip("/")
        if store.startswith(("http://", "https://")):
            return store
        return f"https://{store}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ThemeConfig":
        """Create config from a YAML mapping.

        Keys may carry a leading colon, as written by older tools.

        Raises:
            ThemeConfigError: If a required setting is missing
        """
        normalized = {str(k).lstrip(":"): v for k, v in data.items()}
        missing = [
            name
            for name in ("api_key", "password", "store")
            if not normalized.get(name)
        ]
        if missing:
            raise ThemeConfigError(
                f"Missing configuration value(s): {', '.join(missing)}"
            )

        theme_id = normalized.get("theme_id")
        try:
            theme_id = int(theme_id) if theme_id else None
        except (TypeError, ValueError) as e:
            raise ThemeConfigError(f"Invalid theme_id: {theme_id!r}") from e

        return cls(
            api_key=str(normalized["api_key"]),
            password=str(normalized["password"]),
            store=str(normalized["store"]),
            theme_id=theme_id,
            ignore_files=[p for p in normalized.get("ignore_files") or [] if p],
            whitelist_files=[p for p in normalized.get("whitelist_files") or [] if p],
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "api_key": self.api_key,
            "password": self.password,
            "store": self.store,
        }
        if self.theme_id:
            data["theme_id"] = self.theme_id
        if self.ignore_files:
            data["ignore_files"] = list(self.ignore_files)
        if self.whitelist_files:
            data["whitelist_files"] = list(self.whitelist_files)
        return data


def current_branch(directory: Optional[Path] = None) -> str:
    """Return the checked out git branch of ``directory``.

    Falls back to ``master`` when git is unavailable or the directory is not
    a repository.
    """
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--abbrev-ref", "HEAD"],
            cwd=directory,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Could not determine git branch: {e}")
        return DEFAULT_BRANCH
    branch = result.stdout.strip()
    return branch or DEFAULT_BRANCH


def get_config_path(directory: Path) -> Path:
    return directory / CONFIG_FILE_NAME


def load_config(directory: Path, branch: Optional[str] = None) -> ThemeConfig:
    """Load the configuration for a branch from ``config.yml``.

    Args:
        directory: Project directory containing config.yml
        branch: Branch name (defaults to the current git branch)

    Returns:
        ThemeConfig for the branch

    Raises:
        ThemeConfigError: If the file is missing, unreadable or has no entry
            for the branch
    """
    config_path = get_config_path(directory)
    if not config_path.exists():
        raise ThemeConfigError(f"{CONFIG_FILE_NAME} does not exist!")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ThemeConfigError(f"Could not read {config_path}: {e}") from e

    branch = branch or current_branch(directory)
    entry = data.get(branch) if isinstance(data, dict) else None
    if not isinstance(entry, dict):
        raise ThemeConfigError(
            f"There is no configuration for the current branch {branch} "
            f"in {CONFIG_FILE_NAME}"
        )
    logger.debug(f"Loaded configuration for branch {branch} from {config_path}")
    return ThemeConfig.from_dict(entry)


def save_config(directory: Path, theme_config: ThemeConfig, branch: str) -> Path:
    """Write (or replace) the entry for ``branch`` in config.yml.

    Entries for other branches are kept.

    Returns:
        Path of the written file
    """
    config_path = get_config_path(directory)
    data: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
            if isinstance(loaded, dict):
                data = loaded
        except (OSError, yaml.YAMLError) as e:
            raise ThemeConfigError(f"Could not read {config_path}: {e}") from e

    data[branch] = theme_config.to_dict()
    with open(config_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    return config_path


def unsafe_mode_enabled() -> bool:
    """Whether the drift safety check is disabled through the environment."""
    return bool(os.environ.get(UNSAFE_ENV_VAR))
