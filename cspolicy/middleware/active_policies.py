"""Request-scoped working copies of registry policies."""

from __future__ import annotations

from typing import Iterable

import structlog

from cspolicy.middleware.pipeline import RequestContext
from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError
from cspolicy.policy.policy import ContentSecurityPolicy
from cspolicy.providers.policy_provider import PolicyProvider

logger = structlog.get_logger()


class ActivePoliciesProvider:
    """Clone registry policies into a request and hand them back.

    The clones belong to the request: tag rendering code may add hashes
    or nonces to them without affecting any other request.
    """

    def __init__(self, policy_provider: PolicyProvider) -> None:
        if policy_provider is None:
            raise InvalidArgumentError("policy_provider must not be None")
        self._policy_provider = policy_provider

    def set_active_policies(self, context: RequestContext, policy_names: Iterable[str] | None = None) -> None:
        """Activate *policy_names* (the default policy when None) for this request."""
        if context is None:
            raise InvalidArgumentError("context must not be None")

        active: dict[str, ContentSecurityPolicy] = {}
        names = list(policy_names) if policy_names is not None else [None]
        if not names:
            names = [None]
        for name in names:
            policy = self._policy_provider.get_policy(context, name)
            if policy is None:
                if name is None:
                    message = "CSP was enabled but no default content security policy has been configured."
                else:
                    message = f"CSP was enabled but the policy {name!r} has not been configured."
                logger.error("csp_policy_missing", policy=name or "<default>", path=context.path)
                raise CspMisconfigurationError(message)
            active[name or self._policy_provider.registry.default_policy_name] = policy.clone()

        context.active_policies = active
        logger.debug("csp_policies_activated", policies=list(active), path=context.path)

    def get_active_policies(self, context: RequestContext) -> list[ContentSecurityPolicy]:
        if context is None:
            raise InvalidArgumentError("context must not be None")
        if not context.active_policies:
            return []
        return list(context.active_policies.values())

    def get_active_main_policy(self, context: RequestContext) -> ContentSecurityPolicy | None:
        """The first active policy, which hash and nonce helpers write into."""
        policies = self.get_active_policies(context)
        return policies[0] if policies else None
