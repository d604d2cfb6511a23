from __future__ import annotations

import json

import httpx

from .config_resolver import ConfigResolver
from .engine import GrayDecisionEngine
from .events import log_event
from .gray_filter import GrayFilter
from .health import NodeProbe
from .registry import RegistryClient, RegistryProbe
from .settings import Settings, settings


def parse_routes(raw: str) -> dict[str, str]:
    """Parse GRAY_ROUTES into {path_prefix: filter_config_json}."""
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        raise ValueError(f"GRAY_ROUTES is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("GRAY_ROUTES must be a JSON object")
    routes: dict[str, str] = {}
    for prefix, conf in data.items():
        if not str(prefix).startswith("/"):
            raise ValueError(f"Route prefix {prefix!r} must start with '/'")
        routes[str(prefix)] = conf if isinstance(conf, str) else json.dumps(conf)
    return routes


class SteeringRuntime:
    """Process-wide clients and the filter built on top of them.

    The HTTP clients are long-lived and shared by every in-flight decision;
    nothing request-scoped is stored here.
    """

    def __init__(self, cfg: Settings = settings, transport: httpx.BaseTransport | None = None) -> None:
        self.settings = cfg
        if not cfg.config_api_key:
            log_event("WARN", "GRAY_CONFIG_API_KEY not set; upstream lookups are unauthenticated")

        self._config_http = httpx.Client(timeout=cfg.config_timeout_s, transport=transport)
        self._node_http = httpx.Client(timeout=cfg.node_timeout_s, follow_redirects=False, transport=transport)
        self.registry = RegistryClient(
            cfg.registry_addr,
            cfg.registry_namespace,
            timeout_s=cfg.registry_timeout_s,
            transport=transport,
        )

        self.engine = GrayDecisionEngine(
            resolver=ConfigResolver(
                self._config_http,
                cfg.config_base_url,
                api_key=cfg.config_api_key,
                timeout_s=cfg.config_timeout_s,
            ),
            registry_probe=RegistryProbe(self.registry, group=cfg.registry_group, retries=cfg.registry_retries),
            node_probe=NodeProbe(self._node_http, timeout_s=cfg.node_timeout_s),
        )
        self.filter = GrayFilter(self.engine, budget_s=cfg.decision_budget_s)
        self.routes = parse_routes(cfg.routes)

    def close(self) -> None:
        self._config_http.close()
        self._node_http.close()
        self.registry.close()

    def __enter__(self) -> "SteeringRuntime":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
