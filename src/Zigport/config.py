"""Settings for Zigport.

Values come from (highest first) explicit overrides, ``.env``, ``ZIGPORT_*``
environment variables, ``config.toml`` and secret files.
"""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# (toml table, toml key) -> Settings field
_TOML_FIELDS: dict[tuple[str, str], str] = {
    ("app", "env"): "env",
    ("app", "database_url"): "database_url",
    ("import", "feature_level"): "feature_level",
    ("import", "max_concurrency"): "import_max_concurrency",
    ("import", "user_data_dir"): "user_data_dir",
    ("cache", "enabled"): "atomic_cache_enabled",
    ("logging", "enabled"): "logging_enabled",
    ("logging", "level"): "logging_level",
    ("logging", "file_path"): "logging_file_path",
    ("logging", "max_bytes"): "logging_max_bytes",
    ("logging", "backup_count"): "logging_backup_count",
}


def _handler_level(value: Any, overall: str) -> str:
    # Per-handler levels: INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE, or booleans
    if isinstance(value, bool):
        return overall if value else "NONE"
    if isinstance(value, str):
        return value.upper()
    return overall


def _toml_settings_source(path: Path | None = None) -> dict[str, Any]:
    """Flatten config.toml into Settings fields.

    Only keys present in the file are returned, so field defaults still apply.
    """
    cfg_path = path or Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)

    out: dict[str, Any] = {}
    for (table, key), field_name in _TOML_FIELDS.items():
        section = t.get(table) or {}
        if key in section:
            out[field_name] = section[key]

    log_cfg = t.get("logging") or {}
    overall = str(out.get("logging_level", "INFO")).upper()
    if "console" in log_cfg:
        out["logging_console"] = _handler_level(log_cfg["console"], overall)
    if "to_file" in log_cfg:
        out["logging_file"] = _handler_level(log_cfg["to_file"], overall)
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./zigport.sqlite3")

    # --- Import ---
    # Highest document feature level this build understands
    feature_level: int = Field(default=45, ge=0)
    import_max_concurrency: int = Field(default=16, ge=1)
    user_data_dir: str = Field(default_factory=lambda: str(Path.home() / ".zigport"))

    # --- Cache ---
    atomic_cache_enabled: bool = True

    # --- Logging ---
    logging_enabled: bool = True
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "NONE"
    logging_file_path: str = "logs/zigport.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="ZIGPORT_",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (config.toml) project defaults
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings(**overrides: Any) -> Settings:
    return Settings(**overrides)
