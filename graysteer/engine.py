from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from pydantic import ValidationError

from .api_models import FilterConfig
from .config_resolver import ConfigResolver
from .errors import ConfigParseError, DeadlineExceeded, SteeringError
from .events import log_event
from .health import NodeProbe
from .models import (
    GRAY_HEADER,
    DecisionState,
    NodeBacked,
    ServiceBacked,
    SteeringDecision,
    UpstreamDescriptor,
)
from .pipeline import GatewayRequest
from .registry import RegistryProbe


FILTER_NAME = "GrayFilter"

# Reason recorded when a state fails; the decision always falls back to "no gray".
FAILURE_REASONS = {
    DecisionState.IDLE: "filter-config-invalid",
    DecisionState.RESOLVING_CONFIG: "upstream-unavailable",
    DecisionState.PROBING: "probe-failed",
}


@dataclass
class _Run:
    """Scratch state for one decision; never outlives the request."""

    request: GatewayRequest
    gray_name: str
    deadline: float | None
    upstream_id: str | None = None
    descriptor: UpstreamDescriptor | None = None
    decision: SteeringDecision | None = None


class GrayDecisionEngine:
    """Decides whether a request should be forced onto the gray variant.

    The decision runs as a small state machine:

        IDLE -> RESOLVING_CONFIG -> PROBING -> DECIDED

    Each state may fail with a SteeringError; the failure is reported and the
    run ends with force_gray=False. Nothing is cached between calls.
    """

    def __init__(
        self,
        resolver: ConfigResolver,
        registry_probe: RegistryProbe,
        node_probe: NodeProbe,
        filter_name: str = FILTER_NAME,
        report: Callable[..., None] = log_event,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.registry_probe = registry_probe
        self.node_probe = node_probe
        self.filter_name = filter_name
        self.report = report
        self.clock = clock
        self._steps = {
            DecisionState.IDLE: self._read_filter_config,
            DecisionState.RESOLVING_CONFIG: self._resolve_upstream,
            DecisionState.PROBING: self._probe,
        }

    def decide(self, request: GatewayRequest, deadline: float | None = None) -> SteeringDecision:
        gray_name = request.get_header(GRAY_HEADER) or ""
        if not gray_name.strip():
            return SteeringDecision.no_gray("no-selector")

        run = _Run(request=request, gray_name=gray_name, deadline=deadline)
        state = DecisionState.IDLE
        while run.decision is None:
            try:
                state = self._steps[state](run)
            except SteeringError as e:
                reason = FAILURE_REASONS[state]
                self.report(
                    "WARN",
                    "Gray decision degraded to no-gray",
                    state=state.value,
                    reason=reason,
                    upstream_id=run.upstream_id,
                    gray_name=gray_name,
                    error=f"{type(e).__name__}: {e}",
                )
                return SteeringDecision.no_gray(reason)

        decision = run.decision
        self.report(
            "INFO",
            "Gray decision",
            upstream_id=run.upstream_id,
            gray_name=gray_name,
            force_gray=decision.force_gray,
            reason=decision.reason,
        )
        return decision

    def _remaining(self, run: _Run) -> float | None:
        if run.deadline is None:
            return None
        left = run.deadline - self.clock()
        if left <= 0:
            raise DeadlineExceeded("Decision budget exhausted")
        return left

    def _timeout(self, run: _Run, default: float) -> float:
        left = self._remaining(run)
        return default if left is None else min(default, left)

    def _read_filter_config(self, run: _Run) -> DecisionState:
        raw = run.request.get_config(self.filter_name)
        if not raw:
            raise ConfigParseError(f"No configuration attached for {self.filter_name}")
        try:
            conf = FilterConfig.model_validate_json(raw)
        except ValidationError as e:
            raise ConfigParseError(f"Invalid {self.filter_name} configuration: {e.error_count()} error(s)") from e
        run.upstream_id = conf.upstream_id
        return DecisionState.RESOLVING_CONFIG

    def _resolve_upstream(self, run: _Run) -> DecisionState:
        timeout = self._timeout(run, self.resolver.timeout_s)
        run.descriptor = self.resolver.resolve(run.upstream_id, timeout=timeout)
        return DecisionState.PROBING

    def _probe(self, run: _Run) -> DecisionState:
        d = run.descriptor
        if isinstance(d, ServiceBacked):
            timeout = self._timeout(run, self.registry_probe.client.timeout_s)
            ok = self.registry_probe.has_gray_instance(
                d.service_name, run.gray_name, timeout=timeout, deadline=run.deadline
            )
            reason = "gray-instance-found" if ok else "no-gray-instance"
        elif isinstance(d, NodeBacked):
            timeout = self._timeout(run, self.node_probe.timeout_s)
            ok = self.node_probe.is_healthy(d.host, d.port, timeout=timeout)
            reason = "node-healthy" if ok else "node-unhealthy"
        else:
            raise ConfigParseError(f"Unknown upstream descriptor {d!r}")
        run.decision = SteeringDecision(force_gray=ok, reason=reason)
        return DecisionState.DECIDED
