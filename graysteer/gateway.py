from __future__ import annotations

from typing import Mapping

from starlette.concurrency import run_in_threadpool
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .pipeline import FilterChain, GatewayRequest, GatewayResponse, PluginFilter


def match_route(routes: Mapping[str, str], path: str) -> str | None:
    """Return the filter config of the longest route prefix matching ``path``."""
    best: str | None = None
    for prefix in routes:
        base = prefix.rstrip("/")
        if path == prefix or path == base or path.startswith(base + "/"):
            if best is None or len(prefix) > len(best):
                best = prefix
    return routes[best] if best is not None else None


def _decode_headers(scope: Scope) -> dict[str, str]:
    out: dict[str, str] = {}
    for k, v in scope.get("headers", []):
        name = k.decode("latin-1").lower()
        value = v.decode("latin-1")
        out[name] = f"{out[name]}, {value}" if name in out else value
    return out


def _host_vars(scope: Scope, wanted: list[str]) -> dict[str, str]:
    client = scope.get("client") or ("", 0)
    server = scope.get("server") or ("", 0)
    known = {
        "remote_addr": str(client[0]),
        "remote_port": str(client[1]),
        "server_addr": str(server[0]),
        "server_port": str(server[1]),
        "request_method": scope.get("method", ""),
        "uri": scope.get("path", ""),
        "query_string": scope.get("query_string", b"").decode("latin-1"),
    }
    return {name: known[name] for name in wanted if name in known}


async def _buffer_body(receive: Receive, max_bytes: int) -> tuple[bytes | None, Receive]:
    """Read the request body and return a receive() that replays it.

    Buffering stops once more than ``max_bytes`` arrived; the body is then
    reported as None and the rest streams straight from the client.
    """
    pending: list[Message] = []
    size = 0
    complete = False
    while True:
        message = await receive()
        pending.append(message)
        if message["type"] != "http.request":
            break
        size += len(message.get("body", b""))
        if size > max_bytes:
            break
        if not message.get("more_body", False):
            complete = True
            break
    body = b"".join(m.get("body", b"") for m in pending if m["type"] == "http.request") if complete else None

    async def replay() -> Message:
        if pending:
            return pending.pop(0)
        return await receive()

    return body, replay


class GrayRoutingMiddleware:
    """ASGI host for plugin filters.

    For every HTTP request under a configured route prefix that at least one
    filter accepts, the filters run in the threadpool; header changes are
    written back into the scope and routing variables are exposed as
    ``request.state.route_vars``.
    """

    def __init__(
        self,
        app: ASGIApp,
        filters: list[PluginFilter],
        routes: Mapping[str, str],
        max_body_bytes: int = 1024 * 1024,
    ) -> None:
        self.app = app
        self.filters = list(filters)
        self.routes = dict(routes)
        self.max_body_bytes = max(0, int(max_body_bytes))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        conf = match_route(self.routes, scope.get("path", "/"))
        if conf is None:
            await self.app(scope, receive, send)
            return

        original = _decode_headers(scope)
        if not any(f.accepts(original) for f in self.filters):
            await self.app(scope, receive, send)
            return

        chain = FilterChain(self.filters)
        body = None
        if chain.required_body():
            body, receive = await _buffer_body(receive, self.max_body_bytes)

        request = GatewayRequest(
            method=scope.get("method", "GET"),
            path=scope.get("path", "/"),
            headers=dict(original),
            vars=_host_vars(scope, chain.required_vars()),
            configs={f.name(): conf for f in self.filters},
            body=body,
        )
        await run_in_threadpool(chain.filter, request, GatewayResponse())

        scope = dict(scope)
        changed = {k: v for k, v in request.headers.items() if original.get(k) != v}
        if changed:
            raw = [(k, v) for k, v in scope.get("headers", []) if k.decode("latin-1").lower() not in changed]
            raw.extend((k.encode("latin-1"), v.encode("latin-1")) for k, v in changed.items())
            scope["headers"] = raw
        scope["state"] = {**scope.get("state", {}), "route_vars": dict(request.vars)}
        await self.app(scope, receive, send)
