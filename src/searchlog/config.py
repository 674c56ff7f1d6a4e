"""Configuration management for Search Logger."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field

from .paths import log_file_name_from, user_pref_from

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11


SEARCH_LOG = "SearchLog"
DEFAULT_PORT = 27123
DEFAULT_HOST = "127.0.0.1"
MAX_RECENT = 3
MIN_PORT = 1024
MAX_PORT = 65535

CONFIG_DIR_NAME = ".searchlog"
CONFIG_FILE_NAME = "config.toml"


def validate_port(port: Any) -> Optional[str]:
    """Check a listener port.

    Args:
        port: Candidate port value

    Returns:
        Error message, or None if the port is an integer in MIN_PORT..MAX_PORT
    """
    # bool is an int subclass; True is not a port
    if isinstance(port, bool) or not isinstance(port, int):
        return "Port must be an integer."
    if port < MIN_PORT or port > MAX_PORT:
        return f"Port ({port}) must be between {MIN_PORT} and {MAX_PORT}."
    return None


def parse_port(raw: str) -> Optional[int]:
    """Parse port text typed into settings; None when it is not an integer."""
    try:
        return int(raw.strip(), 10)
    except ValueError:
        return None


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def config_file_path(vault_path: Path) -> Path:
    """Location of the persisted settings inside a vault."""
    return vault_path / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def _load_config_data(config_file: Path) -> Optional[dict]:
    """Load settings data from a TOML file if it exists."""
    if not config_file.exists():
        return None

    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        # If config file is malformed, ignore it
        return None


class SearchLogConfig(BaseModel):
    """Settings for the search logger.

    Treated as an immutable value: changes are made by building a new
    config (model_copy) and handing it to SearchLogService.apply_settings.
    """

    vault_path: Path = Field(
        default_factory=lambda: Path(os.environ.get("SEARCHLOG_VAULT", ".")),
        description="Root of the Obsidian vault holding the log note",
    )
    log_file_user_pref: str = Field(default=SEARCH_LOG, description="Note name stem as typed by the user")
    port: int = Field(default=DEFAULT_PORT, description="Localhost port for the ingestion endpoint")
    prepend_mode: bool = Field(default=True, description="Insert new lines at the top of the note")
    host: str = Field(default=DEFAULT_HOST, description="Interface the listener binds to")
    serialize_commits: bool = Field(default=False, description="Run note writes one at a time")

    model_config = {"frozen": True}

    @property
    def log_file_name(self) -> str:
        """Full note path (with .md). Computed, never persisted."""
        return log_file_name_from(self.log_file_user_pref)

    def with_log_file_name(self, name: str) -> "SearchLogConfig":
        """Return a copy whose stored stem comes from a full or partial note name."""
        return self.model_copy(update={"log_file_user_pref": user_pref_from(name)})

    @classmethod
    def from_sources(
        cls,
        cli_vault_path: Optional[str] = None,
        *,
        note: Optional[str] = None,
        port: Optional[int] = None,
        prepend_mode: Optional[bool] = None,
        host: Optional[str] = None,
    ) -> "SearchLogConfig":
        """Load configuration with the following precedence:

        1. CLI options (if provided)
        2. SEARCHLOG_* environment variables
        3. <vault>/.searchlog/config.toml
        4. Defaults

        Args:
            cli_vault_path: Vault path from CLI --vault option
            note: Note name from CLI --note option
            port: Port from CLI --port option
            prepend_mode: Mode from CLI --prepend/--append
            host: Interface from CLI --host option

        Raises:
            ValueError: If SEARCHLOG_PORT is not an integer
        """
        if cli_vault_path:
            vault_path = Path(cli_vault_path).expanduser().resolve()
        else:
            vault_path = Path(os.environ.get("SEARCHLOG_VAULT", ".")).expanduser().resolve()

        data = _load_config_data(config_file_path(vault_path)) or {}
        file_values: dict[str, Any] = {
            key: data[key]
            for key in ("log_file_user_pref", "port", "prepend_mode", "host", "serialize_commits")
            if key in data
        }
        defaults = cls(vault_path=vault_path, **file_values)

        env_port = os.environ.get("SEARCHLOG_PORT")
        if env_port is not None:
            parsed = parse_port(env_port)
            if parsed is None:
                raise ValueError(f"SEARCHLOG_PORT must be an integer, got {env_port!r}")
            env_port_value: Optional[int] = parsed
        else:
            env_port_value = None

        resolved = defaults.model_copy(
            update={
                "log_file_user_pref": os.environ.get("SEARCHLOG_NOTE", defaults.log_file_user_pref),
                "port": env_port_value if env_port_value is not None else defaults.port,
                "prepend_mode": _env_bool("SEARCHLOG_PREPEND", defaults.prepend_mode),
                "host": os.environ.get("SEARCHLOG_HOST", defaults.host),
                "serialize_commits": _env_bool("SEARCHLOG_SERIALIZE", defaults.serialize_commits),
            }
        )

        if note is not None:
            resolved = resolved.with_log_file_name(note)
        overrides: dict[str, Any] = {}
        if port is not None:
            overrides["port"] = port
        if prepend_mode is not None:
            overrides["prepend_mode"] = prepend_mode
        if host is not None:
            overrides["host"] = host
        return resolved.model_copy(update=overrides) if overrides else resolved

    def to_toml_str(self) -> str:
        """Generate TOML configuration string."""
        return f"""# Search Logger configuration

log_file_user_pref = {_toml_string(self.log_file_user_pref)}
port = {self.port}
prepend_mode = {str(self.prepend_mode).lower()}
host = {_toml_string(self.host)}
serialize_commits = {str(self.serialize_commits).lower()}
"""

    def save(self) -> Path:
        """Persist settings to <vault>/.searchlog/config.toml.

        Returns:
            Path of the written file
        """
        path = config_file_path(self.vault_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_toml_str(), encoding="utf-8")
        return path


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
