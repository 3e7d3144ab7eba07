"""FastAPI application serving CSP headers and collecting violation reports."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, Response

from cspolicy import helpers
from cspolicy.api.report_routes import router as report_router
from cspolicy.config.loader import CspSettings, load_settings
from cspolicy.config.policies import build_registry, build_route_table, load_policy_file
from cspolicy.health import router as health_router
from cspolicy.logging_config import setup_logging
from cspolicy.middleware.active_policies import ActivePoliciesProvider
from cspolicy.middleware.csp_headers import CspHeaders
from cspolicy.middleware.pipeline import MiddlewarePipeline, RequestContext
from cspolicy.policy.errors import CspMisconfigurationError
from cspolicy.policy.header import CspHeaderBuilder
from cspolicy.policy.registry import PolicyRegistry
from cspolicy.providers.hashes import HashProvider
from cspolicy.providers.nonce import NonceProvider
from cspolicy.providers.policy_provider import PolicyProvider

logger = structlog.get_logger()

_pipeline: MiddlewarePipeline | None = None


def _build_pipeline(settings: CspSettings) -> tuple[MiddlewarePipeline, PolicyRegistry]:
    """Load policies, compile the route table and wire the CSP middleware.

    Raises CspMisconfigurationError (or InvalidArgumentError for a bad
    policy file) so a broken configuration stops the app at startup.
    """
    config = load_policy_file(settings.policies_file) if settings.policies_file else {}
    registry = build_registry(config, default_policy=settings.default_policy)
    route_table = build_route_table(config)
    route_table.compile(registry)

    nonce_provider = NonceProvider(settings.nonce_bit_length)
    hash_provider = HashProvider(settings.web_root, settings.path_base)
    policy_provider = PolicyProvider(registry)
    active_policies = ActivePoliciesProvider(policy_provider)
    helpers.init_helpers(nonce_provider, hash_provider, active_policies)

    pipeline = MiddlewarePipeline()
    pipeline.add(
        CspHeaders(
            route_table,
            active_policies,
            policy_provider,
            CspHeaderBuilder(nonce_provider),
            skip_paths=settings.skip_paths,
        )
    )
    return pipeline, registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    global _pipeline

    settings = load_settings()
    setup_logging(log_level=settings.log_level, json_format=settings.log_json)

    _pipeline, registry = _build_pipeline(settings)
    app.state.csp_registry = registry

    logger.info(
        "csp_service_started",
        policies=registry.names(),
        default_policy=registry.default_policy_name,
    )

    yield

    _pipeline = None
    app.state.csp_registry = None
    helpers.reset_helpers()
    logger.info("csp_service_stopped")


app = FastAPI(title="CSP Policy Service", lifespan=lifespan)

app.include_router(health_router)
app.include_router(report_router)


@app.middleware("http")
async def csp_middleware(request: Request, call_next):
    """Run every request through the CSP pipeline."""
    context = RequestContext()
    request.state.csp = context
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=context.request_id)

    if _pipeline is None:
        return await call_next(request)

    try:
        short_circuit = await _pipeline.process_request(request, context)
        if short_circuit is not None:
            return await _pipeline.process_response(short_circuit, context)

        response = await call_next(request)
        return await _pipeline.process_response(response, context)
    except CspMisconfigurationError as exc:
        # A response never leaves without the CSP its route requires.
        logger.error("csp_misconfigured", error=str(exc), path=request.url.path)
        return Response(content="Internal server error", status_code=500)


@app.get("/", response_class=HTMLResponse)
async def index(request: Request) -> str:
    """Sample page whose inline script is allowed by the request nonce."""
    context: RequestContext = request.state.csp
    nonce = helpers.add_nonce(context)
    nonce_attr = f' nonce="{nonce}"' if nonce else ""
    return (
        "<!doctype html><html><head><title>CSP</title></head><body>"
        f"<script{nonce_attr}>document.body.dataset.csp = 'ok';</script>"
        "</body></html>"
    )
