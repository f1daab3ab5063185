"""Settings loader for Recipeweaver."""

from pathlib import Path
from typing import Any

import tomllib
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)

    app_cfg = t.get("app", {}) or {}
    platform_cfg = t.get("platform", {}) or {}
    installer_cfg = t.get("installer", {}) or {}
    github_cfg = t.get("github", {}) or {}
    log_cfg = t.get("logging", {}) or {}

    out: dict[str, Any] = {
        "env": app_cfg.get("env", "dev"),
        "database_url": app_cfg.get("database_url", "sqlite+aiosqlite:///./recipeweaver.sqlite3"),
        "temp_dir": app_cfg.get("temp_dir", "tmp/recipeweaver"),
        # Public root of the target platform, used when rewriting course links
        "base_url": platform_cfg.get("base_url", "http://localhost"),
        "platform_root": platform_cfg.get("root", "."),
        "installer_actor_id": installer_cfg.get("actor_id", "installer"),
        "course_category_root": installer_cfg.get("course_category_root", "Recipe installs"),
        "question_course_id": int(installer_cfg.get("question_course_id", 1)),
        "github_api_url": github_cfg.get("api_url", "https://api.github.com"),
        "http_timeout_seconds": float(github_cfg.get("timeout_seconds", 30)),
        "download_timeout_seconds": float(github_cfg.get("download_timeout_seconds", 300)),
        # Logging config
        "logging_enabled": log_cfg.get("enabled", True),
        "logging_level": log_cfg.get("level", "INFO"),
        "logging_file_path": log_cfg.get("file_path", "logs/recipeweaver.jsonl"),
        "logging_max_bytes": log_cfg.get("max_bytes", 5_000_000),
        "logging_backup_count": log_cfg.get("backup_count", 5),
    }

    # Optional tables/values are only forwarded when present so field defaults apply
    if github_cfg.get("token"):
        out["github_api_token"] = github_cfg["token"]
    if platform_cfg.get("plugin_type_roots"):
        out["plugin_type_roots"] = dict(platform_cfg["plugin_type_roots"])
    if installer_cfg.get("upgrade_command"):
        out["upgrade_command"] = list(installer_cfg["upgrade_command"])
    if installer_cfg.get("backup_command"):
        out["backup_command"] = list(installer_cfg["backup_command"])
    if installer_cfg.get("export_dir"):
        out["export_dir"] = installer_cfg["export_dir"]
    if installer_cfg.get("git_executable"):
        out["git_executable"] = installer_cfg["git_executable"]
    if installer_cfg.get("activity_namespaces"):
        out["activity_namespaces"] = dict(installer_cfg["activity_namespaces"])
    if installer_cfg.get("itemparams_importers"):
        out["itemparams_importers"] = dict(installer_cfg["itemparams_importers"])

    overall = str(out["logging_level"]).upper()

    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(log_cfg.get("console"), overall)
    out["logging_file"] = _norm_level(log_cfg.get("to_file"), overall)
    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")
    database_url: str = Field(default="sqlite+aiosqlite:///./recipeweaver.sqlite3")
    temp_dir: str = "tmp/recipeweaver"

    # --- Target platform ---
    base_url: str = "http://localhost"
    platform_root: str = "."
    # Plugin type -> directory relative to platform_root
    plugin_type_roots: dict[str, str] = Field(
        default_factory=lambda: {
            "mod": "mod",
            "local": "local",
            "block": "blocks",
            "qtype": "question/type",
            "tool": "admin/tool",
            "theme": "theme",
            "auth": "auth",
            "enrol": "enrol",
            "filter": "filter",
            "format": "course/format",
            "report": "report",
        }
    )

    # --- Installer behavior ---
    installer_actor_id: str = "installer"
    course_category_root: str = "Recipe installs"
    question_course_id: int = 1
    activity_namespaces: dict[str, str] = Field(
        default_factory=lambda: {"adaptivequiz": "components", "quiz": "quizid"}
    )
    # Strategy name -> "package.module:callable"
    itemparams_importers: dict[str, str] = Field(default_factory=dict)
    upgrade_command: list[str] | None = None
    # Writes one course backup; called with --courseid=N --destination=FILE
    backup_command: list[str] | None = None
    export_dir: str = "tmp/recipeweaver/export"
    git_executable: str = "git"

    # --- GitHub package source ---
    github_api_url: str = "https://api.github.com"
    github_api_token: SecretStr | None = None
    http_timeout_seconds: float = 30.0
    download_timeout_seconds: float = 300.0

    # --- Logging ---
    logging_enabled: bool = True
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "INFO"
    logging_file_path: str = "logs/recipeweaver.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
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


def load_settings() -> Settings:
    return Settings()
