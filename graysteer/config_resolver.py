from __future__ import annotations

from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .api_models import UpstreamEnvelope
from .errors import ConfigFetchError, ConfigParseError
from .models import NodeBacked, ServiceBacked, UpstreamDescriptor


def parse_upstream(body: bytes | str) -> UpstreamDescriptor:
    """Turn a configuration authority payload into an UpstreamDescriptor.

    Expected JSON: {"value": {"service_name": ...}} or {"value": {"nodes": ...}}.
    ``service_name`` wins when both are present. Only the first node is used.
    """
    try:
        envelope = UpstreamEnvelope.model_validate_json(body)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid upstream payload: {e.error_count()} error(s)") from e

    value = envelope.value
    if value.service_name:
        return ServiceBacked(service_name=value.service_name)

    if isinstance(value.nodes, list) and value.nodes:
        first = value.nodes[0]
        return NodeBacked(host=first.host, port=str(first.port))

    if isinstance(value.nodes, dict) and value.nodes:
        addr = next(iter(value.nodes))
        host, sep, port = addr.rpartition(":")
        if not sep or not host or not port:
            raise ConfigParseError(f"Invalid node address {addr!r}")
        return NodeBacked(host=host, port=port)

    raise ConfigParseError("Upstream has neither service_name nor nodes")


class ConfigResolver:
    """Looks up upstream definitions on the gateway's configuration authority."""

    def __init__(self, client: httpx.Client, base_url: str, api_key: str | None = None, timeout_s: float = 2.0):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def resolve(self, upstream_id: str, timeout: float | None = None) -> UpstreamDescriptor:
        url = f"{self.base_url}/upstreams/{quote(upstream_id, safe='')}"
        headers = {"x-api-key": self.api_key} if self.api_key else {}
        try:
            resp = self.client.get(url, headers=headers, timeout=timeout or self.timeout_s)
        except httpx.HTTPError as e:
            raise ConfigFetchError(f"Upstream lookup failed: {type(e).__name__}: {e}") from e
        if not resp.is_success:
            raise ConfigFetchError(f"Upstream lookup returned HTTP {resp.status_code}")
        return parse_upstream(resp.content)
