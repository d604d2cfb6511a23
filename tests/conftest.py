import json
import os as _os
import sys

import httpx
import pytest

# Ensure project root is importable (so `import main` works reliably across environments)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from graysteer.runtime import SteeringRuntime  # noqa: E402
from graysteer.settings import Settings  # noqa: E402


CONFIG_HOST = "config.test"
REGISTRY_HOST = "registry.test"
API_KEY = "test-key"


class FakeBackends:
    """In-memory configuration authority, registry and upstream nodes.

    ``upstreams``: upstream id -> JSON-able payload, raw str body, int status, or exception.
    ``services``: service name -> list of registry hosts, or exception.
    ``nodes``: "host:port" -> int status, or exception.
    """

    def __init__(self):
        self.upstreams = {}
        self.services = {}
        self.nodes = {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == CONFIG_HOST:
            return self._config(request)
        if host == REGISTRY_HOST:
            return self._registry(request)
        return self._node(request)

    def _raise_or(self, entry, request):
        if isinstance(entry, type) and issubclass(entry, Exception):
            raise entry("injected", request=request)
        if isinstance(entry, Exception):
            raise entry
        return entry

    def _config(self, request):
        if request.headers.get("x-api-key") != API_KEY:
            return httpx.Response(401, json={"error_msg": "unauthorized"})
        upstream_id = request.url.path.rsplit("/", 1)[-1]
        entry = self._raise_or(self.upstreams.get(upstream_id, 404), request)
        if isinstance(entry, int):
            return httpx.Response(entry, json={"error_msg": "not found"})
        if isinstance(entry, str):
            return httpx.Response(200, content=entry.encode())
        return httpx.Response(200, json=entry)

    def _registry(self, request):
        service = request.url.params.get("serviceName")
        entry = self._raise_or(self.services.get(service, []), request)
        if isinstance(entry, int):
            return httpx.Response(entry, text="registry error")
        return httpx.Response(200, json={"name": f"DEFAULT_GROUP@@{service}", "hosts": entry})

    def _node(self, request):
        entry = self._raise_or(self.nodes.get(f"{request.url.host}:{request.url.port}", 200), request)
        return httpx.Response(entry, text="ok" if entry == 200 else "unavailable")

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_settings(**overrides) -> Settings:
    values = dict(
        config_base_url=f"http://{CONFIG_HOST}/apisix/admin",
        config_api_key=API_KEY,
        config_timeout_s=1.0,
        registry_addr=f"{REGISTRY_HOST}:8848",
        registry_namespace="test",
        registry_group="DEFAULT_GROUP",
        registry_timeout_s=1.0,
        registry_retries=0,
        node_timeout_s=2.0,
        decision_budget_s=0,
        routes=json.dumps({"/api": {"upstream_id": "orders"}}),
    )
    values.update(overrides)
    return Settings(**values)


def host(healthy=True, gray=None, ip="10.0.0.1", port=8080):
    h = {"ip": ip, "port": port, "healthy": healthy, "metadata": {}}
    if gray is not None:
        h["metadata"]["gray-name"] = gray
    return h


@pytest.fixture
def backends():
    return FakeBackends()


@pytest.fixture
def runtime(backends):
    rt = SteeringRuntime(make_settings(), transport=httpx.MockTransport(backends))
    yield rt
    rt.close()
