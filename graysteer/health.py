from __future__ import annotations

import httpx

from .errors import ProbeError


def node_url(host: str, port: str) -> str:
    host = host.strip().rstrip("/")
    if "://" not in host:
        host = f"http://{host}"
    return f"{host}:{port}" if port else host


class NodeProbe:
    """Direct reachability check for statically configured upstream nodes."""

    def __init__(self, client: httpx.Client, timeout_s: float = 2.0):
        self.client = client
        self.timeout_s = timeout_s

    def is_healthy(self, host: str, port: str, timeout: float | None = None) -> bool:
        """GET http://host:port and report whether it answered 200.

        Timeouts and refused connections count as unhealthy; any other
        transport failure raises ProbeError.
        """
        url = node_url(host, port)
        try:
            resp = self.client.get(url, timeout=timeout or self.timeout_s, follow_redirects=False)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeError(f"Probe of {url} failed: {type(e).__name__}: {e}") from e
        return resp.status_code == 200
