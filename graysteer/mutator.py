from __future__ import annotations

from .models import FORCE_GRAY, SteeringDecision
from .pipeline import GatewayRequest


class RequestMutator:
    """Folds a steering decision into the outgoing request.

    Absence of the force-gray header is the "not gray" signal downstream, so a
    negative decision leaves the request untouched.
    """

    def apply(self, request: GatewayRequest, decision: SteeringDecision) -> None:
        if not decision.force_gray:
            return
        request.set_header(FORCE_GRAY, "true")
        request.set_vars({FORCE_GRAY: "true"})
