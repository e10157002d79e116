"""Configuration models and helpers for Slackspin."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_PLACEHOLDER = "SET_ME"

DEFAULT_SPOTIFY_SCOPES = [
    "user-read-currently-playing",
    "user-read-playback-state",
]

# Environment variables layered over the YAML file, mapped to (section, field).
ENVIRONMENT_OVERRIDES: Dict[str, tuple[str, str]] = {
    "SPOTIFY_CLIENT_ID": ("spotify", "client_id"),
    "SPOTIFY_CLIENT_SECRET": ("spotify", "client_secret"),
    "BASE_URL": ("spotify", "base_url"),
    "SLACK_APP_TOKEN": ("slack", "token"),
    "SLACK_TOKEN": ("slack", "token"),
    "UPDATES_PER_MINUTE": ("rotation", "updates_per_minute"),
    "POLL_INTERVAL": ("now_playing", "poll_interval"),
    "SLACKSPIN_MODE": ("runtime", "mode"),
    "SLACKSPIN_LOG_LEVEL": ("runtime", "log_level"),
}


@dataclass(frozen=True)
class BootstrapReport:
    """Summary of files/directories created during initialisation."""

    base_created: bool
    global_config_created: bool
    global_config_overwritten: bool


class ConfigError(RuntimeError):
    """Raised when configuration files cannot be parsed or are invalid."""


def parse_interval(expression: str) -> int:
    """Convert an interval expression such as ``"15s"`` or ``"1m30s"`` to seconds."""

    pattern = re.compile(r"(\d+)([smhd])", re.IGNORECASE)
    total = 0
    pos = 0
    stripped = expression.strip()
    for match in pattern.finditer(stripped):
        if match.start() != pos:
            raise ValueError(f"Invalid interval expression: {expression}")
        value = int(match.group(1))
        unit = match.group(2).lower()
        if unit == "s":
            total += value
        elif unit == "m":
            total += value * 60
        elif unit == "h":
            total += value * 3600
        elif unit == "d":
            total += value * 86400
        else:  # pragma: no cover - unreachable due to regex
            raise ValueError(f"Unsupported interval unit: {unit}")
        pos = match.end()

    if pos != len(stripped) or total <= 0:
        raise ValueError(f"Invalid interval expression: {expression}")
    return total


@dataclass(frozen=True)
class ConfigPaths:
    """Resolved filesystem locations used by the application."""

    base_dir: Path
    global_config: Path

    @classmethod
    def default(cls) -> "ConfigPaths":
        """Return default locations under the user's home directory."""

        base = Path.home() / ".slackspin"
        return cls.from_base_dir(base)

    @classmethod
    def from_base_dir(cls, base_dir: Path) -> "ConfigPaths":
        """Construct paths using ``base_dir`` as root."""

        base_dir = base_dir.expanduser()
        return cls(base_dir=base_dir, global_config=base_dir / "config.yml")


class SpotifySettings(BaseModel):
    """Spotify API credentials and endpoints."""

    client_id: str = Field(default="")
    client_secret: str = Field(default="")
    base_url: str = Field(default="http://localhost:8000")
    scopes: List[str] = Field(default_factory=lambda: list(DEFAULT_SPOTIFY_SCOPES))
    verifier_length: int = Field(default=64, ge=43, le=128)
    refresh_token_rotation: Literal["auto", "always", "never"] = Field(default="auto")
    authorize_endpoint: str = Field(default="https://accounts.spotify.com/authorize")
    token_endpoint: str = Field(default="https://accounts.spotify.com/api/token")
    now_playing_endpoint: str = Field(
        default="https://api.spotify.com/v1/me/player/currently-playing"
    )

    model_config = ConfigDict(extra="forbid")

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url.rstrip('/')}/callback"

    @property
    def configured(self) -> bool:
        return self.client_id not in {"", DEFAULT_PLACEHOLDER}


class SlackSettings(BaseModel):
    """Slack bearer token and Web API location."""

    token: str = Field(default="")
    api_base: str = Field(default="https://slack.com/api")

    model_config = ConfigDict(extra="forbid")

    @property
    def configured(self) -> bool:
        return self.token not in {"", DEFAULT_PLACEHOLDER}


class StatusEntry(BaseModel):
    """A single Slack status: text plus emoji code."""

    text: str
    emoji: str = Field(default="")

    model_config = ConfigDict(extra="forbid", frozen=True)


class NowPlayingSettings(BaseModel):
    """Options for mirroring the current Spotify track."""

    poll_interval: str = Field(default="15s")
    status_template: str = Field(default="Playing: {track} by {artist}")
    status_emoji: str = Field(default=":headphones:")

    model_config = ConfigDict(extra="forbid")

    @field_validator("poll_interval")
    @classmethod
    def check_interval(cls, value: str) -> str:
        parse_interval(value)
        return value

    @property
    def interval_seconds(self) -> int:
        return parse_interval(self.poll_interval)


class RotationSettings(BaseModel):
    """Fixed image and status lists cycled in rotation mode."""

    updates_per_minute: float = Field(default=10.0, gt=0)
    images: List[str] = Field(default_factory=list)
    statuses: List[StatusEntry] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def interval_seconds(self) -> float:
        return 60.0 / self.updates_per_minute


class RuntimeSettings(BaseModel):
    """Runtime-level defaults."""

    mode: Literal["now_playing", "rotation"] = Field(default="now_playing")
    log_level: str = Field(default="INFO")
    request_timeout: float = Field(default=10.0, gt=0)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    scheduler_enabled: bool = Field(default=True)
    hot_reload: bool = Field(default=False)

    model_config = ConfigDict(extra="forbid")

    @field_validator("log_level")
    @classmethod
    def normalise_level(cls, value: str) -> str:
        return value.strip().upper() or "INFO"


class GlobalConfig(BaseModel):
    """Top-level configuration file model."""

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    slack: SlackSettings = Field(default_factory=SlackSettings)
    now_playing: NowPlayingSettings = Field(default_factory=NowPlayingSettings)
    rotation: RotationSettings = Field(default_factory=RotationSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    model_config = ConfigDict(extra="forbid")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:  # pragma: no cover - depends on invalid input
        raise ConfigError(f"Failed to parse YAML file: {path}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Expected mapping at top level of {path}")
    return data


def apply_environment(payload: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Overlay known environment variables onto a raw config mapping."""

    merged = {key: dict(value) if isinstance(value, dict) else value for key, value in payload.items()}
    for variable, (section, field) in ENVIRONMENT_OVERRIDES.items():
        value = environ.get(variable)
        if value is None or value == "":
            continue
        target = merged.get(section)
        if not isinstance(target, dict):
            target = {}
            merged[section] = target
        target[field] = value
    return merged


def load_global_config(
    path: Path,
    environ: Optional[Mapping[str, str]] = None,
    *,
    required: bool = False,
) -> GlobalConfig:
    """Load the global configuration file and apply environment overrides.

    A missing file is treated as an empty mapping unless ``required`` is set,
    so environment-only deployments work without ``slackspin init``.
    """

    if path.exists() or required:
        payload = _read_yaml(path)
    else:
        payload = {}

    payload = apply_environment(payload, os.environ if environ is None else environ)
    try:
        return GlobalConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def _default_global_config() -> Dict[str, Any]:
    """Dictionary representing the starter global configuration."""

    return {
        "spotify": {
            "client_id": DEFAULT_PLACEHOLDER,
            "client_secret": DEFAULT_PLACEHOLDER,
            "base_url": "http://localhost:8000",
            "scopes": list(DEFAULT_SPOTIFY_SCOPES),
            "refresh_token_rotation": "auto",
        },
        "slack": {
            "token": DEFAULT_PLACEHOLDER,
        },
        "now_playing": {
            "poll_interval": "15s",
            "status_template": "Playing: {track} by {artist}",
            "status_emoji": ":headphones:",
        },
        "rotation": {
            "updates_per_minute": 10,
            "images": [],
            "statuses": [],
        },
        "runtime": {
            "mode": "now_playing",
            "log_level": "INFO",
            "request_timeout": 10,
            "host": "127.0.0.1",
            "port": 8000,
        },
    }


def _write_yaml(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)


def bootstrap(paths: ConfigPaths, overwrite: bool = False) -> BootstrapReport:
    """Ensure the configuration directory and starter file exist.

    Parameters
    ----------
    paths:
        Target filesystem layout.
    overwrite:
        When ``True`` the global config file is re-written even if it already exists.
    """

    base_created = False
    global_config_created = False
    global_config_overwritten = False

    if not paths.base_dir.exists():
        paths.base_dir.mkdir(parents=True, exist_ok=True)
        base_created = True

    existing_global = paths.global_config.exists()
    if not existing_global or overwrite:
        _write_yaml(paths.global_config, _default_global_config())
        global_config_created = True
        global_config_overwritten = existing_global and overwrite

    return BootstrapReport(
        base_created=base_created,
        global_config_created=global_config_created,
        global_config_overwritten=global_config_overwritten,
    )
