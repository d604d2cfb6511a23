from __future__ import annotations

import time
from typing import Mapping

from .engine import FILTER_NAME, GrayDecisionEngine
from .events import log_event
from .models import GRAY_HEADER
from .mutator import RequestMutator
from .pipeline import FilterChain, GatewayRequest, GatewayResponse, PluginFilter


class GrayFilter(PluginFilter):
    """Tags requests for gray routing when a matching gray instance is up.

    Route configuration (JSON): {"upstream_id": "<id>"}. The request is only
    inspected when it carries a non-blank ``gray-name`` header.
    """

    def __init__(self, engine: GrayDecisionEngine, mutator: RequestMutator | None = None, budget_s: float = 0):
        self.engine = engine
        self.mutator = mutator or RequestMutator()
        self.budget_s = budget_s

    def name(self) -> str:
        return FILTER_NAME

    def filter(self, request: GatewayRequest, response: GatewayResponse, chain: FilterChain) -> None:
        try:
            decision = self.engine.decide(request, deadline=self.deadline())
            self.mutator.apply(request, decision)
        except Exception as e:
            # Anything that escapes the engine must still let the chain continue.
            log_event("ERROR", "Gray filter failed", path=request.path, error=f"{type(e).__name__}: {e}")
        chain.filter(request, response)

    def accepts(self, headers: Mapping[str, str]) -> bool:
        return bool((headers.get(GRAY_HEADER) or "").strip())

    def deadline(self) -> float | None:
        if self.budget_s and self.budget_s > 0:
            return time.monotonic() + self.budget_s
        return None

    def required_vars(self) -> list[str]:
        return ["remote_addr", "server_port"]

    def required_body(self) -> bool:
        return True
