"""CSP policy model: directives, builders, merge and header rendering."""

from cspolicy.policy.directive import (
    Directive,
    DirectiveCategory,
    DirectiveNames,
    DirectiveSchemas,
)
from cspolicy.policy.directive_builder import DirectiveBuilder, ScriptDirectiveBuilder
from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError
from cspolicy.policy.header import CspHeader, CspHeaderBuilder, render_meta_tag
from cspolicy.policy.policy import ContentSecurityPolicy, HashAlgorithms
from cspolicy.policy.policy_builder import PolicyBuilder, SandboxPermission, Subresource
from cspolicy.policy.registry import DEFAULT_POLICY_NAME, PolicyRegistry

__all__ = [
    "ContentSecurityPolicy",
    "CspHeader",
    "CspHeaderBuilder",
    "CspMisconfigurationError",
    "DEFAULT_POLICY_NAME",
    "Directive",
    "DirectiveBuilder",
    "DirectiveCategory",
    "DirectiveNames",
    "DirectiveSchemas",
    "HashAlgorithms",
    "InvalidArgumentError",
    "PolicyBuilder",
    "PolicyRegistry",
    "SandboxPermission",
    "ScriptDirectiveBuilder",
    "Subresource",
    "render_meta_tag",
]
