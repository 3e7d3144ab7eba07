"""Content-Security-Policy header middleware."""

from __future__ import annotations

from typing import Iterable

import structlog
from starlette.requests import Request
from starlette.responses import Response

from cspolicy.middleware.active_policies import ActivePoliciesProvider
from cspolicy.middleware.pipeline import Middleware, RequestContext
from cspolicy.middleware.route_policies import CspOperation, OperationKind, RoutePolicyTable
from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError
from cspolicy.policy.header import CspHeaderBuilder
from cspolicy.policy.policy import ContentSecurityPolicy
from cspolicy.providers.policy_provider import PolicyProvider

logger = structlog.get_logger()

# Interactive API docs load their UI from a CDN with inline bootstrapping.
DEFAULT_SKIP_PATHS = frozenset({
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
})

_RULE_KEY = "csp_rule"


class CspHeaders(Middleware):
    """Attach one CSP header per active policy to every response.

    - ``process_request`` resolves the route's rule and clones the enabled
      policies into the request context (or marks CSP disabled)
    - handlers and helpers may add nonces or hashes to those clones
    - ``process_response`` applies the rule's append/override modifiers and
      renders the headers
    """

    def __init__(
        self,
        route_table: RoutePolicyTable,
        active_policies: ActivePoliciesProvider,
        policy_provider: PolicyProvider,
        header_builder: CspHeaderBuilder,
        skip_paths: Iterable[str] | None = None,
    ) -> None:
        if route_table is None:
            raise InvalidArgumentError("route_table must not be None")
        if active_policies is None:
            raise InvalidArgumentError("active_policies must not be None")
        if policy_provider is None:
            raise InvalidArgumentError("policy_provider must not be None")
        if header_builder is None:
            raise InvalidArgumentError("header_builder must not be None")
        self._route_table = route_table
        self._active_policies = active_policies
        self._policy_provider = policy_provider
        self._header_builder = header_builder
        self._skip_paths = frozenset(skip_paths) if skip_paths is not None else DEFAULT_SKIP_PATHS

    async def process_request(self, request: Request, context: RequestContext) -> Request | Response | None:
        path = request.url.path
        context.path = path
        if path in self._skip_paths:
            context.csp_disabled = True
            return None

        rule = self._route_table.resolve(path)
        if rule.disabled:
            context.csp_disabled = True
            logger.debug("csp_disabled_for_route", path=path)
            return None

        context.extra[_RULE_KEY] = rule
        self._active_policies.set_active_policies(context, rule.policy_names)
        return None

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        if context.csp_disabled or context.active_policies is None:
            return response

        rule = context.extra.get(_RULE_KEY)
        if rule is not None:
            self._apply_modifiers(context, rule.modifiers)

        for name, policy in context.active_policies.items():
            header = self._header_builder.get_header(context, policy)
            response.headers.append(header.name, header.value)
            logger.debug("csp_header_applied", policy=name, header=header.name, path=context.path)
        return response

    def _apply_modifiers(self, context: RequestContext, modifiers: Iterable[CspOperation]) -> None:
        for op in modifiers:
            policy_name = op.policies[0]
            modifier = self._policy_provider.get_policy(context, policy_name)
            if modifier is None:
                logger.error("csp_policy_missing", policy=policy_name, path=context.path)
                raise CspMisconfigurationError(f"CSP modifier references unknown policy {policy_name!r}")

            override = op.kind is OperationKind.OVERRIDE
            for target in _target_policies(context.active_policies, op.targets):
                target.copy(modifier, override_directives=override)


def _target_policies(
    active: dict[str, ContentSecurityPolicy], targets: tuple[str, ...]
) -> list[ContentSecurityPolicy]:
    if not targets:
        return list(active.values())[:1]
    return [policy for name, policy in active.items() if name in targets]
