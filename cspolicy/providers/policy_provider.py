"""Look up registry policies on behalf of a request."""

from __future__ import annotations

from cspolicy.middleware.pipeline import RequestContext
from cspolicy.policy.errors import InvalidArgumentError
from cspolicy.policy.policy import ContentSecurityPolicy
from cspolicy.policy.registry import PolicyRegistry


class PolicyProvider:
    """Resolve a policy by name, falling back to the registry's default name."""

    def __init__(self, registry: PolicyRegistry) -> None:
        if registry is None:
            raise InvalidArgumentError("registry must not be None")
        self._registry = registry

    @property
    def registry(self) -> PolicyRegistry:
        return self._registry

    def get_policy(self, context: RequestContext, name: str | None = None) -> ContentSecurityPolicy | None:
        """Return the canonical (shared) policy, or None when it is unknown.

        Callers that mutate the result must clone it first.
        """
        if context is None:
            raise InvalidArgumentError("context must not be None")
        return self._registry.get_policy(name or self._registry.default_policy_name)
