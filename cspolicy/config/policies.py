"""Build the policy registry and route table from a YAML policy file.

The file is a declarative stand-in for builder code::

    default_policy: main
    policies:
      main:
        report_only: false
        hash_algorithms: [sha256, sha384]
        directives:
          default-src: {self: true, schemes: ["https:"]}
          script-src: {self: true, nonce: true, hosts: [cdn.example.org]}
          object-src: {none: true}
          sandbox: {permissions: [allow-forms]}
          upgrade-insecure-requests: true
          report-uri: [/csp-report]
    routes:
      - path: /admin/*
        operations:
          - {op: enable, policies: [main]}
          - {op: append, policy: admin-extra}
      - path: /raw/*
        operations: [{op: disable}]

Options inside a directive mapping are applied in the order they are
written, so the rendered source order follows the file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import structlog
import yaml

from cspolicy.middleware.route_policies import CspOperation, OperationKind, RoutePolicyTable
from cspolicy.policy.directive import DIRECTIVE_SPECS, DirectiveNames
from cspolicy.policy.directive_builder import DirectiveBuilder, ScriptDirectiveBuilder
from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError
from cspolicy.policy.policy import ContentSecurityPolicy, HashAlgorithms
from cspolicy.policy.policy_builder import PolicyBuilder, SandboxPermission, Subresource
from cspolicy.policy.registry import PolicyRegistry

logger = structlog.get_logger()

_TOP_LEVEL_KEYS = frozenset({"default_policy", "policies", "routes", "default_operations"})
_POLICY_KEYS = frozenset({"report_only", "hash_algorithms", "directives"})


def _flag(method: str) -> Callable[[DirectiveBuilder, Any], None]:
    def apply(builder: DirectiveBuilder, enabled: Any) -> None:
        if enabled:
            getattr(builder, method)()

    return apply


def _each(method: str) -> Callable[[DirectiveBuilder, Any], None]:
    def apply(builder: DirectiveBuilder, values: Any) -> None:
        for value in _as_list(values):
            getattr(builder, method)(value)

    return apply


def _report_sample(builder: DirectiveBuilder, enabled: Any) -> None:
    if not enabled:
        return
    if not isinstance(builder, ScriptDirectiveBuilder):
        raise InvalidArgumentError("report_sample is only valid for script-src")
    builder.require_sample_in_report()


def _raw_values(builder: DirectiveBuilder, values: Any) -> None:
    builder.build().append(*_as_list(values))


_SOURCE_OPTIONS: dict[str, Callable[[DirectiveBuilder, Any], None]] = {
    "self": _flag("allow_self"),
    "none": _flag("allow_none"),
    "unsafe_inline": _flag("allow_unsafe_inline"),
    "unsafe_eval": _flag("allow_eval"),
    "strict_dynamic": _flag("use_strict_dynamic"),
    "nonce": _flag("add_nonce"),
    "report_sample": _report_sample,
    "schemes": _each("allow_schema"),
    "hosts": _each("allow_host"),
    "hashes": _each("allow_hash"),
    "values": _raw_values,
}


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value]
    raise InvalidArgumentError(f"expected a string or a list of strings, got {value!r}")


def _as_mapping(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidArgumentError(f"{what} must be a mapping")
    return value


def _check_keys(mapping: dict, allowed: frozenset[str], what: str) -> None:
    unknown = sorted(str(k) for k in mapping if k not in allowed)
    if unknown:
        raise InvalidArgumentError(f"unknown {what} key(s): {', '.join(unknown)}")


def load_policy_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML policy file; a missing file is a misconfiguration."""
    path = Path(path)
    if not path.exists():
        logger.error("csp_policy_file_not_found", path=str(path))
        raise CspMisconfigurationError(f"CSP policy file not found: {path}")
    with open(path) as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise InvalidArgumentError(f"CSP policy file {path} must contain a mapping")
    logger.info("csp_policy_file_loaded", path=str(path))
    return config


def _configure_sources(name: str, options: dict) -> Callable[[DirectiveBuilder], None]:
    for key in options:
        if key not in _SOURCE_OPTIONS:
            raise InvalidArgumentError(f"unknown option {key!r} for directive {name!r}")

    def configure(builder: DirectiveBuilder) -> None:
        for key, value in options.items():
            _SOURCE_OPTIONS[key](builder, value)

    return configure


def _sandbox_permissions(value: Any) -> list[SandboxPermission]:
    if isinstance(value, dict):
        _check_keys(value, frozenset({"permissions"}), "sandbox")
        value = value.get("permissions")
    elif value is True:
        value = None
    permissions = []
    for token in _as_list(value):
        try:
            permissions.append(SandboxPermission(token))
        except ValueError:
            raise InvalidArgumentError(f"unknown sandbox permission: {token!r}") from None
    return permissions


def _subresources(value: Any) -> list[Subresource]:
    if value is True:
        return []
    kinds = []
    for token in _as_list(value):
        try:
            kinds.append(Subresource(token))
        except ValueError:
            raise InvalidArgumentError(f"unknown subresource kind: {token!r}") from None
    return kinds


def _add_directive(builder: PolicyBuilder, name: str, value: Any) -> None:
    if name not in DIRECTIVE_SPECS:
        raise InvalidArgumentError(f"unknown CSP directive: {name!r}")
    if value is False:
        return

    if name == DirectiveNames.SANDBOX:
        builder.add_sandbox(*_sandbox_permissions(value))
    elif name == DirectiveNames.REQUIRE_SRI_FOR:
        builder.require_subresource_integrity(*_subresources(value))
    elif isinstance(value, dict):
        builder_class = ScriptDirectiveBuilder if name == DirectiveNames.SCRIPT_SRC else DirectiveBuilder
        builder.add_directive(name, _configure_sources(name, value), builder_class=builder_class)
    elif value is True or value is None:
        # Valueless directives such as upgrade-insecure-requests
        builder.add_values(name)
    else:
        builder.add_values(name, _as_list(value))


def build_policy(name: str, definition: Any) -> ContentSecurityPolicy:
    """Build one policy from its mapping in the ``policies`` section."""
    definition = _as_mapping(definition, f"policy {name!r}")
    _check_keys(definition, _POLICY_KEYS, f"policy {name!r}")

    builder = PolicyBuilder()
    if definition.get("hash_algorithms") is not None:
        builder.hash_algorithms(HashAlgorithms.parse(definition["hash_algorithms"]))
    for directive_name, value in _as_mapping(definition.get("directives"), f"directives of {name!r}").items():
        _add_directive(builder, str(directive_name), value)

    policy = builder.build()
    # "report_only: false" is an explicit setting, distinct from leaving it out.
    if "report_only" in definition:
        if not isinstance(definition["report_only"], bool):
            raise InvalidArgumentError(f"report_only of policy {name!r} must be true or false")
        policy.report_only = definition["report_only"]
    return policy


def build_registry(config: dict[str, Any], default_policy: str = "") -> PolicyRegistry:
    """Register every policy in *config*.

    *default_policy* overrides the file's ``default_policy``. Without
    either, the built-in default policy stays the default.
    """
    config = _as_mapping(config, "CSP policy config")
    _check_keys(config, _TOP_LEVEL_KEYS, "CSP policy config")

    registry = PolicyRegistry()
    for name, definition in _as_mapping(config.get("policies"), "policies").items():
        registry.add_policy(str(name), build_policy(str(name), definition))

    default_name = default_policy or config.get("default_policy")
    if default_name:
        if default_name not in registry:
            logger.error("csp_default_policy_missing", policy=default_name, policies=registry.names())
            raise CspMisconfigurationError(
                f"default CSP policy {default_name!r} is not defined in the policy config"
            )
        registry.default_policy_name = default_name
    return registry


_OPERATION_KEYS = {
    OperationKind.ENABLE: frozenset({"op", "policies"}),
    OperationKind.DISABLE: frozenset({"op"}),
    OperationKind.APPEND: frozenset({"op", "policy", "targets"}),
    OperationKind.OVERRIDE: frozenset({"op", "policy", "targets"}),
}


def build_operation(definition: Any) -> CspOperation:
    definition = _as_mapping(definition, "route operation")
    try:
        kind = OperationKind(definition.get("op"))
    except ValueError:
        raise InvalidArgumentError(f"unknown route operation: {definition.get('op')!r}") from None
    _check_keys(definition, _OPERATION_KEYS[kind], f"{kind.value} operation")

    if kind is OperationKind.ENABLE:
        return CspOperation.enable(*_as_list(definition.get("policies")))
    if kind is OperationKind.DISABLE:
        return CspOperation.disable()
    if kind is OperationKind.APPEND:
        return CspOperation.append(definition.get("policy"), definition.get("targets"))
    return CspOperation.override(definition.get("policy"), definition.get("targets"))


def build_route_table(config: dict[str, Any]) -> RoutePolicyTable:
    """Build (but do not compile) the route table described by *config*."""
    config = _as_mapping(config, "CSP policy config")
    default_ops = config.get("default_operations")
    if default_ops is None:
        table = RoutePolicyTable()
    else:
        table = RoutePolicyTable(default_operations=[build_operation(op) for op in default_ops])

    for route in config.get("routes") or []:
        route = _as_mapping(route, "route")
        _check_keys(route, frozenset({"path", "operations"}), "route")
        operations = [build_operation(op) for op in route.get("operations") or []]
        table.add_route(route.get("path"), *operations)
    return table
