"""Stagebox application configuration.

Loads settings from two YAML files:
  * stagebox.settings.yaml: non-secret configuration
  * stagebox.secrets.yaml: secrets (never committed)

Environment variables are applied on top of the YAML values so that a
container deployment can be configured without any files at all (see
``ENV_OVERRIDES``).
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

from stagebox.media.sizes import parse_size

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("stagebox.settings.yaml")
SECRETS_FILE  = Path("stagebox.secrets.yaml")

DEFAULT_JWT_SECRET = "changeme"

# env var -> path inside the merged settings dict
ENV_OVERRIDES: Dict[str, Tuple[str, ...]] = {
    "STAGEBOX_ENV":             ("environment",),
    "FILESTORE_PATH":           ("storage", "root"),
    "METADATA_DB_PATH":         ("metadata", "db_path"),
    "MAX_UPLOAD_SIZE":          ("media", "max_upload_size"),
    "WAVEFORM_TOOL":            ("media", "waveform_tool"),
    "WAVEFORM_TIMEOUT_SECONDS": ("media", "waveform_timeout_seconds"),
    "MEDIA_SERVICE_URL":        ("media_service", "base_url"),
    "AUDIO_LINK_EXPIRY_DAYS":   ("links", "expiry_days"),
    "JWT_SECRET":               ("secrets", "jwt", "secret_key"),
    "ADMIN_API_KEY":            ("secrets", "admin", "api_key"),
}


class ConfigError(RuntimeError):
    """Raised when the loaded configuration is unsafe to run with."""


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _apply_env_overrides(data: Dict[str, Any], environ: Dict[str, str]) -> None:
    for env_name, keys in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == "":
            continue
        node = data
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value
        logger.debug("Config override from %s", env_name)


def _resolve_path(value: str, base_dir: Path) -> str:
    if value == ":memory:":
        return value
    path = Path(value).expanduser()
    if path.is_absolute():
        return str(path)
    return str((base_dir / path).resolve())


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = DEFAULT_JWT_SECRET


class AdminSecrets(BaseModel):
    api_key: Optional[str] = None


class Secrets(BaseModel):
    jwt:   JWTSecrets   = Field(default_factory=JWTSecrets)
    admin: AdminSecrets = Field(default_factory=AdminSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:       str = "0.0.0.0"
    port:       int = 3000
    media_port: int = 4001


class StorageSettings(BaseModel):
    """Where the media service keeps original uploads and waveform files."""
    root: str = "./filestore"


class MetadataSettings(BaseModel):
    db_path: str = "./stagebox.duckdb"


class MediaSettings(BaseModel):
    """Ingestion limits and the external waveform tool."""
    max_upload_size:          str   = "1GB"
    waveform_tool:            str   = "audiowaveform"
    pixels_per_second:        int   = 1024
    waveform_timeout_seconds: float = 300.0

    @field_validator("max_upload_size")
    @classmethod
    def _check_size(cls, value: str) -> str:
        parse_size(value)
        return value

    @property
    def max_upload_bytes(self) -> int:
        return parse_size(self.max_upload_size)


class MediaServiceSettings(BaseModel):
    """How the primary app reaches the media service."""
    base_url:        str   = "http://localhost:4001"
    timeout_seconds: float = 30.0


class AuthSettings(BaseModel):
    session_days: int  = 365
    cookie_name:  str  = "session"


class RateLimitSettings(BaseModel):
    max_attempts:   int   = 5
    window_seconds: float = 60.0


class LinkSettings(BaseModel):
    """Lifetime of the capability links handed out for media files."""
    expiry_days: int = 100


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    environment:   str                  = "development"
    server:        ServerSettings       = Field(default_factory=ServerSettings)
    storage:       StorageSettings      = Field(default_factory=StorageSettings)
    metadata:      MetadataSettings     = Field(default_factory=MetadataSettings)
    media:         MediaSettings        = Field(default_factory=MediaSettings)
    media_service: MediaServiceSettings = Field(default_factory=MediaServiceSettings)
    auth:          AuthSettings         = Field(default_factory=AuthSettings)
    rate_limit:    RateLimitSettings    = Field(default_factory=RateLimitSettings)
    links:         LinkSettings         = Field(default_factory=LinkSettings)
    logging:       LoggingSettings      = Field(default_factory=LoggingSettings)
    secrets:       Secrets              = Field(default_factory=Secrets)

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")


def _check_secrets(settings: AppSettings) -> None:
    secret = settings.secrets.jwt.secret_key
    if secret and secret != DEFAULT_JWT_SECRET:
        return
    if settings.is_production:
        raise ConfigError(
            "JWT secret is not configured; set JWT_SECRET or "
            "secrets.jwt.secret_key before running in production"
        )
    if not secret:
        raise ConfigError("JWT secret must not be empty")
    logger.warning("Using the development JWT secret; do not deploy this configuration.")


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
    environ: Optional[Dict[str, str]] = None,
) -> AppSettings:
    """Load and merge settings + secrets + env overrides into *AppSettings*.

    Relative storage and database paths resolve against the directory of
    the settings file, so a checkout can be started from any cwd.

    Raises:
        ConfigError: If the signing secret is unsafe for the environment.
    """
    environ = dict(os.environ if environ is None else environ)
    if settings_path is None:
        settings_path = Path(environ.get("STAGEBOX_SETTINGS", SETTINGS_FILE))
    if secrets_path is None:
        secrets_path = Path(environ.get("STAGEBOX_SECRETS", SECRETS_FILE))

    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(secrets_path)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data
    _apply_env_overrides(settings_data, environ)

    app_settings = AppSettings(**settings_data)

    base_dir = settings_path.resolve().parent
    app_settings.storage.root = _resolve_path(app_settings.storage.root, base_dir)
    app_settings.metadata.db_path = _resolve_path(app_settings.metadata.db_path, base_dir)

    _check_secrets(app_settings)

    logger.info(
        "Settings loaded (env=%s, storage.root=%s, max_upload_size=%s, media_service=%s)",
        app_settings.environment,
        app_settings.storage.root,
        app_settings.media.max_upload_size,
        app_settings.media_service.base_url,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace the process-wide settings (used by tests and embedders)."""
    global _config
    _config = config


def reset_config() -> None:
    set_config(None)
