# src/taskflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every value can be overridden with a TASKFLOW_* variable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "TASKFLOW"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path
    notifications_db_path: Path

    # ---- Time ----
    # IANA zone name (e.g. "Europe/Berlin"); None means the host's local zone.
    timezone: Optional[str]

    # ---- Console ----
    console_enabled: bool
    default_user_id: str

    # ---- Notification rules / sweeper ----
    sweeper_enabled: bool
    sweep_interval_seconds: float
    due_soon_hours: int
    upcoming_window_days: int
    notification_retention_days: int
    guard_repeat_completion: bool

    # ---- LLM (OpenAI-compatible) ----
    openai_api_key: Optional[str]
    openai_base_url: str
    llm_models: List[str]
    ai_task_analysis: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskflow") or "taskflow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskflow"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")
        notifications_db_path = _env_path(
            _k("NOTIFICATIONS_DB_PATH"), data_dir / "notifications.sqlite3"
        )

        timezone = (_env(_k("TIMEZONE"), "") or "").strip() or None

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        default_user_id = (_env(_k("DEFAULT_USER_ID"), "local") or "local").strip()

        sweeper_enabled = _env_bool(_k("SWEEPER_ENABLED"), True)
        sweep_interval_seconds = _env_float(_k("SWEEP_INTERVAL_SECONDS"), 3600.0)
        due_soon_hours = _env_int(_k("DUE_SOON_HOURS"), 24)
        upcoming_window_days = _env_int(_k("UPCOMING_WINDOW_DAYS"), 7)
        notification_retention_days = _env_int(_k("NOTIFICATION_RETENTION_DAYS"), 30)
        guard_repeat_completion = _env_bool(_k("GUARD_REPEAT_COMPLETION"), True)

        openai_api_key = _first_env(_k("OPENAI_API_KEY"), "OPENAI_API_KEY", default=None)
        openai_base_url = _env(_k("OPENAI_BASE_URL"), "https://api.openai.com/v1")
        llm_models = _env_list(_k("LLM_MODELS"), ["gpt-4o-mini", "gpt-4o"])
        ai_task_analysis = _env_bool(_k("AI_TASK_ANALYSIS"), False)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            notifications_db_path=notifications_db_path,
            timezone=timezone,
            console_enabled=console_enabled,
            default_user_id=default_user_id,
            sweeper_enabled=sweeper_enabled,
            sweep_interval_seconds=sweep_interval_seconds,
            due_soon_hours=due_soon_hours,
            upcoming_window_days=upcoming_window_days,
            notification_retention_days=notification_retention_days,
            guard_repeat_completion=guard_repeat_completion,
            openai_api_key=openai_api_key,
            openai_base_url=openai_base_url,
            llm_models=llm_models,
            ai_task_analysis=ai_task_analysis,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
