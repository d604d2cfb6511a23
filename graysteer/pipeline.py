from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


@dataclass
class GatewayRequest:
    """Read/write view of one in-flight request handed to plugin filters.

    Header names are case-insensitive. ``configs`` maps a filter name to the
    raw (JSON) configuration block the route attached for that filter.
    """

    method: str = "GET"
    path: str = "/"
    headers: dict[str, str] = field(default_factory=dict)
    vars: dict[str, str] = field(default_factory=dict)
    configs: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def set_header(self, name: str, value: str) -> None:
        self.headers[name.lower()] = value

    def get_vars(self, name: str) -> str | None:
        return self.vars.get(name)

    def set_vars(self, values: Mapping[str, str]) -> None:
        self.vars.update(values)

    def get_config(self, filter_name: str) -> str | None:
        return self.configs.get(filter_name)


@dataclass
class GatewayResponse:
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)


class PluginFilter:
    """One stage of the host's filter chain."""

    def name(self) -> str:
        return type(self).__name__

    def accepts(self, headers: Mapping[str, str]) -> bool:
        """Cheap pre-check on lowercased request headers; False lets the host skip the chain."""
        return True

    def filter(self, request: GatewayRequest, response: GatewayResponse, chain: "FilterChain") -> None:
        chain.filter(request, response)

    def required_vars(self) -> list[str]:
        """Host variables (remote_addr, server_port, ...) this filter reads."""
        return []

    def required_body(self) -> bool:
        return False


class FilterChain:
    """Runs filters in order; each filter hands control on via ``chain.filter``."""

    def __init__(self, filters: list[PluginFilter]):
        self.filters = list(filters)
        self._pos = 0

    def filter(self, request: GatewayRequest, response: GatewayResponse) -> None:
        if self._pos >= len(self.filters):
            return
        current = self.filters[self._pos]
        self._pos += 1
        current.filter(request, response, self)

    def required_vars(self) -> list[str]:
        seen: list[str] = []
        for f in self.filters:
            for v in f.required_vars():
                if v not in seen:
                    seen.append(v)
        return seen

    def required_body(self) -> bool:
        return any(f.required_body() for f in self.filters)
