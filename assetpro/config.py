from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]

_TRUTHY = {"1", "true", "yes", "on"}
DEFAULT_SQL_ENDPOINT = "http://localhost:3000/api"


def env_flag(name: str, default: str = "0") -> bool:
    v = os.getenv(name, default).strip().lower()
    return v in _TRUTHY


def _safe_int_env(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = str(os.getenv(name) or "").strip()
    try:
        value = int(raw) if raw else int(default)
    except ValueError:
        value = int(default)
    return max(minimum, min(maximum, value))


def _safe_float_env(name: str, default: float, minimum: float, maximum: float) -> float:
    raw = str(os.getenv(name) or "").strip()
    try:
        value = float(raw) if raw else float(default)
    except ValueError:
        value = float(default)
    return max(minimum, min(maximum, value))


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    db_path: Path
    sqlite_timeout_sec: float
    storage_mode: str
    sql_endpoint: str
    remote_timeout_sec: float
    strict_references: bool
    reconcile_on_load: bool
    seed_demo: bool
    health_monitor_enabled: bool
    health_interval_sec: int
    admin_password: str
    session_max_age: int


def load_settings() -> Settings:
    """Read settings from the environment. Called once per app instance."""
    data_dir = Path(os.getenv("ASSETPRO_DATA_DIR", str(PROJECT_ROOT / "data"))).resolve()
    db_path = Path(os.getenv("ASSETPRO_DB_PATH", str(data_dir / "assetpro.db"))).resolve()
    mode = str(os.getenv("ASSETPRO_STORAGE_MODE") or "").strip().lower()
    return Settings(
        data_dir=data_dir,
        db_path=db_path,
        sqlite_timeout_sec=_safe_float_env("ASSETPRO_SQLITE_TIMEOUT_SEC", 30.0, 1.0, 60.0),
        storage_mode=mode,
        sql_endpoint=(os.getenv("ASSETPRO_SQL_ENDPOINT") or DEFAULT_SQL_ENDPOINT).strip(),
        remote_timeout_sec=_safe_float_env("ASSETPRO_REMOTE_TIMEOUT_SEC", 10.0, 1.0, 120.0),
        strict_references=env_flag("ASSETPRO_STRICT_REFERENCES", "0"),
        reconcile_on_load=env_flag("ASSETPRO_RECONCILE_ON_LOAD", "0"),
        seed_demo=env_flag("ASSETPRO_SEED_DEMO", "1"),
        health_monitor_enabled=env_flag("ASSETPRO_HEALTH_MONITOR_ENABLED", "1"),
        health_interval_sec=_safe_int_env("ASSETPRO_HEALTH_INTERVAL_SEC", 10, 1, 3600),
        admin_password=(os.getenv("ASSETPRO_ADMIN_PASSWORD") or "admin123"),
        session_max_age=_safe_int_env("ASSETPRO_SESSION_MAX_AGE", 43200, 60, 30 * 86400),
    )
