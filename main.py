from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.concurrency import run_in_threadpool

from graysteer.api_models import DecideRequest, DecideResponse
from graysteer.engine import FILTER_NAME
from graysteer.events import configure_logging, log_event
from graysteer.gateway import GrayRoutingMiddleware
from graysteer.models import FORCE_GRAY, GRAY_HEADER
from graysteer.pipeline import GatewayRequest
from graysteer.runtime import SteeringRuntime
from graysteer.settings import settings


def create_app(runtime: SteeringRuntime | None = None) -> FastAPI:
    runtime = runtime or SteeringRuntime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log_event("INFO", "Gray steering started", routes=sorted(runtime.routes))
        yield
        runtime.close()
        log_event("INFO", "Gray steering stopped")

    app = FastAPI(title="Gray Steering Gateway", lifespan=lifespan)
    app.state.runtime = runtime
    app.add_middleware(
        GrayRoutingMiddleware,
        filters=[runtime.filter],
        routes=runtime.routes,
        max_body_bytes=runtime.settings.max_body_bytes,
    )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.post("/gray/decide", response_model=DecideResponse)
    async def decide(req: DecideRequest) -> DecideResponse:
        """Evaluate a decision for an upstream without routing any traffic."""
        gw_req = GatewayRequest(
            method="POST",
            path="/gray/decide",
            headers={GRAY_HEADER: req.gray_name},
            configs={FILTER_NAME: req.model_dump_json(include={"upstream_id"})},
        )
        decision = await run_in_threadpool(runtime.engine.decide, gw_req, runtime.filter.deadline())
        return DecideResponse(force_gray=decision.force_gray, reason=decision.reason)

    @app.api_route("/gray/inspect/{path:path}", methods=["GET", "POST"])
    async def inspect(path: str, request: Request) -> dict:
        """Echo what the routing middleware did to this request."""
        body = await request.body()
        return {
            "path": path,
            "body_size": len(body),
            "force_gray": request.headers.get(FORCE_GRAY),
            "route_vars": getattr(request.state, "route_vars", {}),
        }

    return app


configure_logging(settings.log_level, settings.log_json)
app = create_app()
