from __future__ import annotations

import time
from typing import Callable

import httpx
from pydantic import ValidationError

from .api_models import RegistryInstanceList
from .errors import DeadlineExceeded, RegistryError
from .events import log_event
from .models import GRAY_HEADER, ServiceInstance


INSTANCE_LIST_PATH = "/nacos/v1/ns/instance/list"


def _base_url(server_addr: str) -> str:
    addr = server_addr.strip().rstrip("/")
    if "://" not in addr:
        addr = f"http://{addr}"
    return addr


class RegistryClient:
    """Process-wide client for the service registry's open API.

    Holds one pooled ``httpx.Client``; safe to share between in-flight decisions.
    Call ``close()`` on shutdown.
    """

    def __init__(
        self,
        server_addr: str,
        namespace: str,
        timeout_s: float = 2.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.namespace = namespace
        self.timeout_s = timeout_s
        try:
            self._http = httpx.Client(base_url=_base_url(server_addr), timeout=timeout_s, transport=transport)
        except (ValueError, httpx.InvalidURL) as e:
            raise RegistryError(f"Cannot build registry client for {server_addr!r}: {e}") from e

    def list_instances(self, service_name: str, group: str, timeout: float | None = None) -> list[ServiceInstance]:
        params = {
            "serviceName": service_name,
            "groupName": group,
            "namespaceId": self.namespace,
            "healthyOnly": "false",
        }
        try:
            resp = self._http.get(INSTANCE_LIST_PATH, params=params, timeout=timeout or self.timeout_s)
        except httpx.TransportError:
            raise  # retried by RegistryProbe
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry query failed: {type(e).__name__}: {e}") from e
        if not resp.is_success:
            raise RegistryError(f"Registry returned HTTP {resp.status_code} for {group}@@{service_name}")
        try:
            listing = RegistryInstanceList.model_validate_json(resp.content)
        except ValidationError as e:
            raise RegistryError(f"Invalid registry payload: {e.error_count()} error(s)") from e
        return [
            ServiceInstance(healthy=h.healthy, metadata=dict(h.metadata or {}), ip=h.ip, port=h.port)
            for h in listing.hosts
        ]

    def close(self) -> None:
        self._http.close()


class RegistryProbe:
    """Answers whether a service has a healthy instance tagged with a gray name."""

    def __init__(
        self,
        client: RegistryClient,
        group: str = "DEFAULT_GROUP",
        retries: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.group = group
        self.retries = max(0, int(retries))
        self.clock = clock

    def has_gray_instance(
        self,
        service_name: str,
        gray_name: str,
        timeout: float | None = None,
        deadline: float | None = None,
    ) -> bool:
        """Return True if a healthy instance carries a matching gray-name.

        ``deadline`` is an absolute ``clock()`` value. Each attempt, retries
        included, is clamped to the time left before it.
        """
        instances = self._query(service_name, timeout or self.client.timeout_s, deadline)
        return any(i.healthy and i.metadata.get(GRAY_HEADER) == gray_name for i in instances)

    def _query(self, service_name: str, timeout: float, deadline: float | None) -> list[ServiceInstance]:
        attempt = 0
        while True:
            budget = timeout
            if deadline is not None:
                left = deadline - self.clock()
                if left <= 0:
                    raise DeadlineExceeded(f"Decision budget exhausted after {attempt} registry attempt(s)")
                budget = min(timeout, left)
            try:
                return self.client.list_instances(service_name, self.group, timeout=budget)
            except httpx.TransportError as e:
                if attempt >= self.retries:
                    raise RegistryError(f"Registry unreachable: {type(e).__name__}: {e}") from e
                attempt += 1
                log_event("WARN", "Retrying registry query", service_name=service_name, attempt=attempt, error=str(e))
