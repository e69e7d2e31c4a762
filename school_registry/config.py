from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class RuntimeSettings:
    env: str
    debug: bool
    secret_key: str
    allowed_hosts: tuple[str, ...]
    db_path: str
    log_level: str
    import_max_upload_mb: int
    score_batch_size: int


TRUE_VALUES = {"1", "true", "yes", "y", "on"}
DEFAULT_SECRET_KEY = "dev-not-secure-change-me"
LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _env(name: str, default: str = "") -> str:
    return str(os.getenv(name, default)).strip()


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name, "1" if default else "0").lower()
    return raw in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def get_runtime_settings() -> RuntimeSettings:
    env = _env("REGISTRY_ENV", "dev")

    hosts = tuple(
        host.strip()
        for host in _env("REGISTRY_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
        if host.strip()
    )

    log_level = _env("REGISTRY_LOG_LEVEL", "INFO").upper()
    if log_level not in LOG_LEVELS:
        log_level = "INFO"

    return RuntimeSettings(
        env=env,
        debug=_env_bool("REGISTRY_DEBUG", env != "prod"),
        secret_key=_env("REGISTRY_SECRET_KEY", DEFAULT_SECRET_KEY),
        allowed_hosts=hosts,
        db_path=_env("REGISTRY_DB_PATH", "db.sqlite3"),
        log_level=log_level,
        import_max_upload_mb=_env_int("REGISTRY_IMPORT_MAX_UPLOAD_MB", 5),
        score_batch_size=_env_int("REGISTRY_SCORE_BATCH_SIZE", 50),
    )


def validate_runtime_settings(settings: RuntimeSettings) -> list[str]:
    issues: list[str] = []
    if settings.env == "prod" and (
        not settings.secret_key or settings.secret_key == DEFAULT_SECRET_KEY
    ):
        issues.append("REGISTRY_SECRET_KEY must be set to a non-default value in prod")
    if settings.env == "prod" and settings.debug:
        issues.append("REGISTRY_DEBUG must be off in prod")
    if settings.import_max_upload_mb <= 0:
        issues.append("REGISTRY_IMPORT_MAX_UPLOAD_MB must be positive")
    if settings.score_batch_size <= 0:
        issues.append("REGISTRY_SCORE_BATCH_SIZE must be positive")
    return issues
