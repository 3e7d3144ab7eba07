"""Ordered middleware chain and the per-request context it carries."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.requests import Request
from starlette.responses import Response

from cspolicy.policy.errors import CspMisconfigurationError

if TYPE_CHECKING:
    from cspolicy.policy.policy import ContentSecurityPolicy

logger = structlog.get_logger()


@dataclass
class RequestContext:
    """Mutable, request-scoped state passed through the middleware pipeline.

    ``active_policies`` holds this request's own clones of registry
    policies, keyed by policy name; ``None`` means CSP was never enabled for
    the request. ``nonce`` is generated at most once per request.
    """

    request_id: str = ""
    path: str = "/"
    nonce: str | None = None
    active_policies: dict[str, ContentSecurityPolicy] | None = None
    csp_disabled: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = uuid4().hex[:8]


class Middleware(abc.ABC):
    """Base class for middleware in the pipeline."""

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abc.abstractmethod
    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        """Process an incoming request.

        Return None to continue the pipeline, or a Response to short-circuit.
        """
        ...

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Process an outgoing response. Override if needed."""
        return response


class MiddlewarePipeline:
    """Ordered list of middleware. Executes request handlers forward, response handlers in reverse."""

    def __init__(self) -> None:
        self._middleware: list[Middleware] = []
        self._enabled: dict[str, bool] = {}

    def add(self, middleware: Middleware, enabled: bool = True) -> None:
        """Add a middleware to the end of the pipeline."""
        self._middleware.append(middleware)
        self.set_enabled(middleware.name, enabled)
        logger.info("middleware_registered", name=middleware.name, enabled=enabled)

    def set_enabled(self, name: str, enabled: bool) -> None:
        """Enable or disable a middleware by name."""
        self._enabled[name] = enabled

    async def process_request(self, request: Request, context: RequestContext) -> Response | None:
        """Run request through all enabled middleware in order.

        Returns a Response if any middleware short-circuits, otherwise None.
        A broken middleware yields a 500 instead of crashing the pipeline,
        except for CSP misconfiguration, which is always raised.
        """
        for mw in self._middleware:
            if not self._enabled.get(mw.name, True):
                continue
            try:
                result = await mw.process_request(request, context)
            except CspMisconfigurationError:
                raise
            except Exception:
                logger.exception("middleware_request_error", middleware=mw.name)
                return Response(content="Internal server error", status_code=500)
            if isinstance(result, Response):
                logger.info("middleware_short_circuit", middleware=mw.name)
                return result
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Run response through all enabled middleware in reverse order.

        CSP misconfiguration propagates. Any other middleware error replaces
        the response with a 500 and stops the chain.
        """
        for mw in reversed(self._middleware):
            if not self._enabled.get(mw.name, True):
                continue
            try:
                response = await mw.process_response(response, context)
            except CspMisconfigurationError:
                raise
            except Exception:
                logger.exception("middleware_response_error", middleware=mw.name)
                return Response(content="Internal server error", status_code=500)
        return response
