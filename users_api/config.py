"""Configuration management for the users service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

PROJECT_ROOT = Path(__file__).resolve().parent.parent

BACKEND_LOCAL = "local"
BACKEND_D1 = "d1"
_BACKENDS = {BACKEND_LOCAL, BACKEND_D1}

DEFAULT_D1_BASE_URL = "https://api.cloudflare.com/client/v4"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _yaml_flag(value: object, default: bool) -> bool:
    if isinstance(value, str):
        return _env_flag(value, default)
    if value is None:
        return default
    return bool(value)


def resolve_database_path(value: Optional[str]) -> Path:
    """Resolve the on-disk path for the local SQLite database."""

    if value:
        return Path(value).expanduser().resolve(strict=False)
    return (PROJECT_ROOT / "data" / "users.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the path to the YAML configuration file, if one is in use."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    candidate = (PROJECT_ROOT / "config" / "users_api.yaml").resolve(strict=False)
    return candidate if candidate.exists() else None


@dataclass(frozen=True)
class D1Settings:
    """Credentials for an edge-hosted D1 database reached over HTTP."""

    account_id: str
    database_id: str
    api_token: str
    base_url: str = DEFAULT_D1_BASE_URL
    timeout: float = 10.0

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "D1Settings":
        required_fields = {"account_id", "database_id", "api_token"}
        missing = sorted(key for key in required_fields if not data.get(key))
        if missing:
            raise ValueError(f"Missing required D1 configuration fields: {', '.join(missing)}")
        return D1Settings(
            account_id=str(data["account_id"]).strip(),
            database_id=str(data["database_id"]).strip(),
            api_token=str(data["api_token"]).strip(),
            base_url=str(data.get("base_url") or DEFAULT_D1_BASE_URL).rstrip("/"),
            timeout=float(data.get("timeout", 10.0)),
        )


@dataclass(frozen=True)
class StorageSettings:
    backend: str = BACKEND_LOCAL
    database_path: Path = field(default_factory=lambda: resolve_database_path(None))
    create_if_missing: bool = True
    d1: Optional[D1Settings] = None

    def __post_init__(self) -> None:
        if self.backend not in _BACKENDS:
            raise ValueError(
                f"Unknown storage backend '{self.backend}'; expected one of: {', '.join(sorted(_BACKENDS))}"
            )
        if self.backend == BACKEND_D1 and self.d1 is None:
            raise ValueError("The 'd1' storage backend requires D1 credentials")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API, the web page and the CLI."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    cors_origins: Tuple[str, ...] = ("*",)
    web_enabled: bool = True
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw (YAML) dictionary data."""
        storage_raw = dict(data.get("storage") or {})
        raw_path = storage_raw.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        d1_raw = storage_raw.get("d1")
        storage = StorageSettings(
            backend=str(storage_raw.get("backend", BACKEND_LOCAL)).strip().lower(),
            database_path=database_path,
            create_if_missing=_yaml_flag(storage_raw.get("create_if_missing"), True),
            d1=D1Settings.from_dict(d1_raw) if d1_raw else None,
        )

        cors_raw = dict(data.get("cors") or {})
        origins = cors_raw.get("origins") or ["*"]
        if isinstance(origins, str):
            origins = [origins]

        web_raw = dict(data.get("web") or {})
        logging_raw = dict(data.get("logging") or {})

        return Settings(
            storage=storage,
            cors_origins=tuple(str(origin) for origin in origins),
            web_enabled=_yaml_flag(web_raw.get("enabled"), True),
            log_level=str(logging_raw.get("level", "INFO")).upper(),
        )


def _apply_environment(settings: Settings, environ: Mapping[str, str]) -> Settings:
    storage = settings.storage

    d1_values: Dict[str, object] = {}
    if storage.d1 is not None:
        d1_values = {
            "account_id": storage.d1.account_id,
            "database_id": storage.d1.database_id,
            "api_token": storage.d1.api_token,
            "base_url": storage.d1.base_url,
            "timeout": storage.d1.timeout,
        }
    for key in ("account_id", "database_id", "api_token", "base_url"):
        value = environ.get(f"USERS_API_D1_{key.upper()}")
        if value:
            d1_values[key] = value

    backend = environ.get("USERS_API_STORAGE_BACKEND", storage.backend).strip().lower()
    db_path = environ.get("USERS_API_DB_PATH")
    create_flag = environ.get("USERS_API_CREATE_DB")

    storage = StorageSettings(
        backend=backend,
        database_path=resolve_database_path(db_path) if db_path else storage.database_path,
        create_if_missing=_env_flag(create_flag, storage.create_if_missing),
        d1=D1Settings.from_dict(d1_values) if backend == BACKEND_D1 or storage.d1 else None,
    )

    cors_origins = settings.cors_origins
    raw_origins = environ.get("USERS_API_CORS_ORIGINS")
    if raw_origins:
        parsed = tuple(origin.strip() for origin in raw_origins.split(",") if origin.strip())
        cors_origins = parsed or cors_origins

    log_level = environ.get("USERS_API_LOG_LEVEL", settings.log_level).strip().upper()

    return replace(settings, storage=storage, cors_origins=cors_origins, log_level=log_level)


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file and apply environment overrides."""
    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERS_API_CONFIG"))

    if path is not None:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        settings = Settings.from_dict(raw, base_path=path.parent)
    else:
        settings = Settings()

    return _apply_environment(settings, env)


__all__ = [
    "BACKEND_D1",
    "BACKEND_LOCAL",
    "D1Settings",
    "Settings",
    "StorageSettings",
    "load_settings",
    "resolve_config_path",
    "resolve_database_path",
]
