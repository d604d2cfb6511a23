from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Configuration authority (upstream lookup)
    config_base_url: str = os.getenv("GRAY_CONFIG_BASE_URL", "http://127.0.0.1:9180/apisix/admin")
    config_api_key: str | None = os.getenv("GRAY_CONFIG_API_KEY")
    config_timeout_s: float = _env_float("GRAY_CONFIG_TIMEOUT_S", 2.0)

    # Service registry
    registry_addr: str = os.getenv("GRAY_REGISTRY_ADDR", "127.0.0.1:8848")
    registry_namespace: str = os.getenv("GRAY_REGISTRY_NAMESPACE", "public")
    registry_group: str = os.getenv("GRAY_REGISTRY_GROUP", "DEFAULT_GROUP")
    registry_timeout_s: float = _env_float("GRAY_REGISTRY_TIMEOUT_S", 2.0)
    registry_retries: int = _env_int("GRAY_REGISTRY_RETRIES", 0)

    # Static node probe
    node_timeout_s: float = _env_float("GRAY_NODE_TIMEOUT_S", 2.0)

    # Overall budget for one decision; 0 disables the deadline.
    decision_budget_s: float = _env_float("GRAY_DECISION_BUDGET_S", 5.0)

    # JSON object: path prefix -> filter config, e.g. {"/api": {"upstream_id": "1"}}
    routes: str = os.getenv("GRAY_ROUTES", "{}")

    # Largest request body handed to filters; bigger bodies stream through unread.
    max_body_bytes: int = _env_int("GRAY_MAX_BODY_BYTES", 1024 * 1024)

    # Logging
    log_level: str = os.getenv("GRAY_LOG_LEVEL", "INFO")
    log_json: bool = _env_bool("GRAY_LOG_JSON", False)


settings = Settings()
