"""Configuration models and loading utilities."""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, field_validator


class BackendConfig(BaseModel):
    """Backend connection configuration."""

    base_url: str = "https://valet.up.railway.app/api"
    socket_url: str = "https://valet.up.railway.app"
    api_token: str = ""
    request_timeout_seconds: float = 8.0

    @field_validator("api_token", mode="before")
    @classmethod
    def resolve_env_var(cls, v: str) -> str:
        """Resolve environment variable references like ${VAR_NAME}."""
        if isinstance(v, str) and v.startswith("${") and v.endswith("}"):
            env_var = v[2:-1]
            return os.environ.get(env_var, "")
        return v

    @field_validator("base_url", "socket_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def socket_host(self) -> tuple[str, int]:
        """Host and port probed by the reachability check."""
        parsed = urlparse(self.socket_url)
        port = parsed.port or (443 if parsed.scheme in ("https", "wss") else 80)
        return parsed.hostname or "localhost", port


class CacheConfig(BaseModel):
    """Persisted layout cache configuration."""

    directory: str = "cache"
    ttl_hours: float = 24.0


class SyncConfig(BaseModel):
    """Occupancy channel configuration."""

    reconnect_interval_seconds: float = 5.0
    connect_timeout_seconds: float = 20.0
    reachability_timeout_seconds: float = 3.0
    sensors_per_floor: int = 40  # Legacy sensor id block size per floor
    event_names: list[str] = ["parking_space_updated", "parking_update", "spot_update"]


class NavigationConfig(BaseModel):
    """Path generation configuration."""

    destination_offset_x: float = 20.0
    destination_offset_y: float = 30.0


class APIConfig(BaseModel):
    """API server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class AppConfig(BaseModel):
    """Main application configuration."""

    default_location_id: str = "usjr_quadricentennial"
    default_floor: int = 1
    backend: BackendConfig = BackendConfig()
    cache: CacheConfig = CacheConfig()
    sync: SyncConfig = SyncConfig()
    navigation: NavigationConfig = NavigationConfig()
    api: APIConfig = APIConfig()


CONFIG_ENV_VAR = "PARKING_SYNC_CONFIG"

# Searched in order when no path is given; the last one is the Docker mount
CONFIG_CANDIDATES = (
    Path("config/config.yaml"),
    Path("/app/config/config.yaml"),
)


def load_config(path: str | Path) -> AppConfig:
    """
    Read and validate a YAML configuration file.

    An empty file yields the defaults.

    Raises:
        FileNotFoundError: If the file is missing
        pydantic.ValidationError: If a value has the wrong type
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    return AppConfig.model_validate(raw or {})


def get_config_path(override: Optional[str] = None) -> Path:
    """
    Pick the configuration file to load.

    An explicit override wins, then the PARKING_SYNC_CONFIG environment
    variable, then the first existing candidate location.
    """
    chosen = override or os.environ.get(CONFIG_ENV_VAR)
    if chosen:
        return Path(chosen)

    for candidate in CONFIG_CANDIDATES:
        if candidate.exists():
            return candidate
    return CONFIG_CANDIDATES[0]
