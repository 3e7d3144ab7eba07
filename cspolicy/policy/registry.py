"""Named policy store with a configurable default policy."""

from __future__ import annotations

from typing import Callable, Iterator

import structlog

from cspolicy.policy.directive import DirectiveSchemas
from cspolicy.policy.errors import InvalidArgumentError, require_name
from cspolicy.policy.policy import ContentSecurityPolicy
from cspolicy.policy.policy_builder import PolicyBuilder

logger = structlog.get_logger()

DEFAULT_POLICY_NAME = "__DefaultContentSecurityPolicy"


def build_builtin_default_policy() -> ContentSecurityPolicy:
    """The secure default used when nothing else is configured.

    default-src 'self' https:; font-src 'self' https: data:;
    image-src 'self' https: data:; object-src 'none';
    script-src 'self' https:; style-src 'self' https: 'unsafe-inline'
    """
    return (
        PolicyBuilder()
        .add_default_src(lambda src: src.allow_self().allow_schema(DirectiveSchemas.HTTPS))
        .add_font_src(
            lambda src: src.allow_self().allow_schema(DirectiveSchemas.HTTPS).allow_schema(DirectiveSchemas.DATA)
        )
        .add_image_src(
            lambda src: src.allow_self().allow_schema(DirectiveSchemas.HTTPS).allow_schema(DirectiveSchemas.DATA)
        )
        .add_object_src(lambda src: src.allow_none())
        .add_script_src(lambda src: src.allow_self().allow_schema(DirectiveSchemas.HTTPS))
        .add_style_src(
            lambda src: src.allow_self().allow_schema(DirectiveSchemas.HTTPS).allow_unsafe_inline()
        )
        .build()
    )


class PolicyRegistry:
    """Policies by name, populated at startup and read-only while serving.

    Nothing here is locked: callers must finish registering before the
    first request is handled.
    """

    def __init__(self) -> None:
        self._policies: dict[str, ContentSecurityPolicy] = {
            DEFAULT_POLICY_NAME: build_builtin_default_policy(),
        }
        self._default_policy_name = DEFAULT_POLICY_NAME

    @property
    def default_policy_name(self) -> str:
        return self._default_policy_name

    @default_policy_name.setter
    def default_policy_name(self, value: str) -> None:
        self._default_policy_name = require_name(value, "default policy name")

    def add_policy(
        self,
        name: str,
        policy: ContentSecurityPolicy | Callable[[PolicyBuilder], object],
    ) -> ContentSecurityPolicy:
        """Register *policy* under *name*, replacing any existing entry."""
        require_name(name, "policy name")
        if policy is None:
            raise InvalidArgumentError("policy must not be None")
        if not isinstance(policy, ContentSecurityPolicy):
            builder = PolicyBuilder()
            policy(builder)
            policy = builder.build()
        self._policies[name] = policy
        logger.info("csp_policy_registered", policy=name, directives=len(policy.directives))
        return policy

    def add_default_policy(
        self, policy: ContentSecurityPolicy | Callable[[PolicyBuilder], object]
    ) -> ContentSecurityPolicy:
        """Register *policy* under the current default name."""
        return self.add_policy(self._default_policy_name, policy)

    def get_policy(self, name: str) -> ContentSecurityPolicy | None:
        """Return the policy called *name*, or None when it is not registered."""
        require_name(name, "policy name")
        return self._policies.get(name)

    def get_default_policy(self) -> ContentSecurityPolicy | None:
        return self._policies.get(self._default_policy_name)

    def names(self) -> list[str]:
        return list(self._policies)

    def __contains__(self, name: object) -> bool:
        return name in self._policies

    def __iter__(self) -> Iterator[str]:
        return iter(self._policies)

    def __len__(self) -> int:
        return len(self._policies)
