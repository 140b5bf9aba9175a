"""Persisted plugin settings."""

import logging
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from krems_publisher.core.models import ConfigurationError, Secret

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
MIN_PORT = 1024
MAX_PORT = 65535

DEFAULT_AUTHOR_NAME = "Krems Obsidian Plugin"
DEFAULT_AUTHOR_EMAIL = "krems-plugin@example.com"

INIT_MODES = ("direct", "template")

SSH_URL_PATTERN = re.compile(r'^git@github\.com:[a-zA-Z0-9_-]+/[a-zA-Z0-9._-]+(\.git)?$')
HTTPS_URL_PATTERN = re.compile(r'^https://github\.com/[a-zA-Z0-9_-]+/[a-zA-Z0-9._-]+(\.git)?/?$')


@dataclass
class Settings:
    """Plugin configuration.

    repository_url and local_path are required before cloning or publishing;
    everything else is optional. local_path and binary_path are relative to
    the storage root.
    """
    repository_url: str = ""
    local_path: str = ""
    token: Secret = field(default_factory=lambda: Secret(""))
    author_name: str = ""
    author_email: str = ""
    port: str = str(DEFAULT_PORT)
    binary_path: str = ""
    alternative_css_dir: str = ""
    alternative_js_dir: str = ""
    alternative_favicon: str = ""
    init_mode: str = "direct"

    @property
    def port_number(self) -> int:
        """Configured port, or the default when blank or out of range."""
        valid, _ = validate_port(self.port)
        if not self.port or not valid:
            return DEFAULT_PORT
        return int(self.port)

    def require_repository(self) -> None:
        """Check the settings needed by clone and publish.

        Raises:
            ConfigurationError: repository_url or local_path is not set
        """
        if not self.repository_url or not self.local_path:
            raise ConfigurationError(
                "Local Markdown Directory and GitHub Repo URL must be set in plugin settings."
            )

    def require_local_path(self) -> None:
        """Raises ConfigurationError unless local_path is set."""
        if not self.local_path:
            raise ConfigurationError("Local Markdown Directory must be set.")

    def to_dict(self) -> Dict[str, str]:
        """Flat mapping for storage, with the token unwrapped."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            data[f.name] = value.get_secret_value() if isinstance(value, Secret) else value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Merge stored values over the defaults, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key not in known or value is None:
                continue
            values[key] = str(value).strip() if key != "token" else str(value)
        if "token" in values:
            values["token"] = Secret(values["token"])
        return cls(**values)


def validate_repository_url(url: str) -> Tuple[bool, str]:
    """Check a GitHub repository URL.

    Args:
        url: Value entered in settings

    Returns:
        Tuple of (is_valid, message)
    """
    if not url:
        return False, "Repository URL is not set."
    if SSH_URL_PATTERN.match(url) or HTTPS_URL_PATTERN.match(url):
        return True, "URL format is valid."
    return False, "Invalid format. Use git@github.com:user/repo.git"


def validate_port(value: str) -> Tuple[bool, str]:
    """Check a preview port. Blank means the default."""
    if not value:
        return True, f"Using default port {DEFAULT_PORT}."
    try:
        port = int(value, 10)
    except ValueError:
        port = None
    if port is None or port < MIN_PORT or port > MAX_PORT:
        return False, f"Invalid port. Must be a number between {MIN_PORT}-{MAX_PORT}."
    return True, "Port is valid."


def validate_local_path(storage_root: Path, local_path: str) -> Tuple[bool, str]:
    """Check that the local site directory exists under the storage root."""
    if not local_path:
        return False, "Local Markdown Directory is not set."
    if (Path(storage_root) / local_path).is_dir():
        return True, "Directory exists."
    return False, "Directory not found in the vault."


class SettingsStore:
    """Loads and saves Settings as a YAML mapping."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.settings = Settings()

    def load(self) -> Settings:
        """Read stored values over the defaults.

        A missing file yields the defaults.
        """
        data: Optional[Dict[str, Any]] = None
        if self.path.exists():
            with open(self.path, 'r', encoding='utf-8') as f:
                try:
                    data = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigurationError(f"Failed to parse settings file {self.path}: {e}") from e
            if data is not None and not isinstance(data, dict):
                raise ConfigurationError(f"Settings file {self.path} must contain a mapping")

        self.settings = Settings.from_dict(data or {})
        return self.settings

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.settings.to_dict(), f, default_flow_style=False, sort_keys=True)
        logger.debug("Saved settings to %s", self.path)

    def update(self, **changes: Any) -> Settings:
        """Apply changes and persist them immediately.

        Raises:
            ConfigurationError: An unknown setting name was given
        """
        known = {f.name for f in fields(Settings)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        if "token" in changes and not isinstance(changes["token"], Secret):
            changes["token"] = Secret(changes["token"] or "")
        if "init_mode" in changes and changes["init_mode"] not in INIT_MODES:
            raise ConfigurationError(
                f"init_mode must be one of: {', '.join(INIT_MODES)}"
            )

        self.settings = replace(self.settings, **changes)
        self.save()
        return self.settings
