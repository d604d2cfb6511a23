import json
import time

import httpx
import pytest
from structlog.testing import capture_logs

from conftest import REGISTRY_HOST, host, make_settings
from graysteer.engine import FILTER_NAME
from graysteer.models import SteeringDecision
from graysteer.pipeline import GatewayRequest
from graysteer.runtime import SteeringRuntime


def _request(gray_name=None, upstream_id="orders", conf=None):
    headers = {} if gray_name is None else {"Gray-Name": gray_name}
    raw = conf if conf is not None else json.dumps({"upstream_id": upstream_id})
    return GatewayRequest(path="/api/orders", headers=headers, configs={FILTER_NAME: raw})


@pytest.fixture
def events(runtime):
    seen = []
    runtime.engine.report = lambda level, message, **fields: seen.append((level, message, fields))
    return seen


@pytest.mark.parametrize("gray_name", [None, "", "   "])
def test_blank_selector_short_circuits(runtime, backends, gray_name):
    decision = runtime.engine.decide(_request(gray_name))
    assert decision == SteeringDecision(False, "no-selector")
    assert backends.calls == 0


def test_scenario_a_healthy_gray_instance(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = [host(healthy=True, gray="canary")]
    decision = runtime.engine.decide(_request("canary"))
    assert decision.force_gray is True
    assert decision.reason == "gray-instance-found"


def test_scenario_b_unhealthy_gray_instance(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = [host(healthy=False, gray="canary")]
    assert runtime.engine.decide(_request("canary")).force_gray is False


def test_scenario_c_node_returns_503(runtime, backends):
    backends.upstreams["orders"] = {"value": {"nodes": [{"host": "10.0.0.5", "port": "8080"}]}}
    backends.nodes["10.0.0.5:8080"] = 503
    decision = runtime.engine.decide(_request("canary"))
    assert decision == SteeringDecision(False, "node-unhealthy")


def test_healthy_node_forces_gray(runtime, backends):
    backends.upstreams["orders"] = {"value": {"nodes": [{"host": "10.0.0.5", "port": "8080"}]}}
    decision = runtime.engine.decide(_request("canary"))
    assert decision == SteeringDecision(True, "node-healthy")
    assert [r.url.host for r in backends.requests] == ["config.test", "10.0.0.5"]


def _assert_degraded(runtime, events, reason):
    decision = runtime.engine.decide(_request("canary"))
    assert decision == SteeringDecision(False, reason)
    level, _, fields = events[-1]
    assert level == "WARN"
    assert fields["reason"] == reason
    assert fields["upstream_id"] == "orders"
    assert fields["error"]


def test_unknown_upstream_degrades(runtime, backends, events):
    _assert_degraded(runtime, events, "upstream-unavailable")


def test_unreachable_config_authority_degrades(runtime, backends, events):
    backends.upstreams["orders"] = httpx.ConnectError
    _assert_degraded(runtime, events, "upstream-unavailable")


def test_malformed_upstream_payload_degrades(runtime, backends, events):
    backends.upstreams["orders"] = "{broken"
    _assert_degraded(runtime, events, "upstream-unavailable")


def test_registry_failure_degrades(runtime, backends, events):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = httpx.ConnectError
    _assert_degraded(runtime, events, "probe-failed")


def test_node_protocol_error_degrades(runtime, backends, events):
    backends.upstreams["orders"] = {"value": {"nodes": [{"host": "10.0.0.5", "port": "8080"}]}}
    backends.nodes["10.0.0.5:8080"] = httpx.RemoteProtocolError
    _assert_degraded(runtime, events, "probe-failed")



@pytest.mark.parametrize("conf", ["", "{not json", '{"other": 1}', '{"upstream_id": ""}'])
def test_bad_filter_config(runtime, backends, events, conf):
    decision = runtime.engine.decide(_request("canary", conf=conf))
    assert decision == SteeringDecision(False, "filter-config-invalid")
    assert backends.calls == 0
    assert events[-1][2]["state"] == "idle"


def test_decision_is_idempotent(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = [host(healthy=True, gray="canary"), host(healthy=True, gray="other")]
    req = _request("canary")
    first = runtime.engine.decide(req)
    second = runtime.engine.decide(req)
    assert first == second
    assert req.headers == {"gray-name": "canary"}
    assert req.vars == {}


def test_exhausted_deadline_skips_calls(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    decision = runtime.engine.decide(_request("canary"), deadline=runtime.engine.clock() - 1)
    assert decision == SteeringDecision(False, "upstream-unavailable")
    assert backends.calls == 0


def test_deadline_between_steps(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = [host(healthy=True, gray="canary")]
    ticks = iter([0.0, 10.0])
    runtime.engine.clock = lambda: next(ticks)
    decision = runtime.engine.decide(_request("canary"), deadline=5.0)
    assert decision == SteeringDecision(False, "probe-failed")
    assert [r.url.host for r in backends.requests] == ["config.test"]


def test_failure_cause_is_logged(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = 500
    with capture_logs() as logs:
        decision = runtime.engine.decide(_request("canary"))

    assert decision == SteeringDecision(False, "probe-failed")
    warnings = [e for e in logs if e["log_level"] == "warning"]
    assert warnings[-1]["event"] == "Gray decision degraded to no-gray"
    assert warnings[-1]["reason"] == "probe-failed"
    assert warnings[-1]["upstream_id"] == "orders"
    assert warnings[-1]["error"].startswith("RegistryError")


def test_decision_is_logged(runtime, backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}
    backends.services["orders"] = [host(healthy=True, gray="canary")]
    with capture_logs() as logs:
        runtime.engine.decide(_request("canary"))

    info = [e for e in logs if e["event"] == "Gray decision"]
    assert info[-1]["log_level"] == "info"
    assert info[-1]["force_gray"] is True
    assert info[-1]["reason"] == "gray-instance-found"


def test_registry_retries_respect_decision_budget(backends):
    backends.upstreams["orders"] = {"value": {"service_name": "orders"}}

    def slow_registry(request):
        if request.url.host == REGISTRY_HOST:
            backends.requests.append(request)
            time.sleep(0.2)
            raise httpx.ConnectTimeout("slow", request=request)
        return backends(request)

    rt = SteeringRuntime(
        make_settings(registry_retries=3, decision_budget_s=0.3),
        transport=httpx.MockTransport(slow_registry),
    )
    try:
        start = time.monotonic()
        decision = rt.engine.decide(_request("canary"), deadline=rt.filter.deadline())
        elapsed = time.monotonic() - start
    finally:
        rt.close()

    assert decision == SteeringDecision(False, "probe-failed")
    assert elapsed < 0.7
    assert len([r for r in backends.requests if r.url.host == REGISTRY_HOST]) <= 2
