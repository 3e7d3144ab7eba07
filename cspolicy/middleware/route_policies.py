"""Declarative table mapping routes to CSP policy operations.

Each route pattern carries an ordered list of operations:

- ``enable(*names)``: activate named policies (the default policy when no
  names are given) for matching requests;
- ``disable()``: send no CSP header at all;
- ``append(name, targets)`` / ``override(name, targets)``: merge a registered
  policy into the active policies just before the header is rendered.

Rules are compiled once at startup, so unknown policy names fail there
instead of on some later request.
"""

from __future__ import annotations

import enum
import fnmatch
from dataclasses import dataclass, field

import structlog

from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError, require_name
from cspolicy.policy.registry import PolicyRegistry

logger = structlog.get_logger()


class OperationKind(enum.Enum):
    ENABLE = "enable"
    DISABLE = "disable"
    APPEND = "append"
    OVERRIDE = "override"


@dataclass(frozen=True)
class CspOperation:
    kind: OperationKind
    policies: tuple[str, ...] = ()
    # Active policy names a modifier applies to; empty means the first one.
    targets: tuple[str, ...] = ()

    @classmethod
    def enable(cls, *policy_names: str) -> CspOperation:
        return cls(OperationKind.ENABLE, tuple(require_name(n, "policy name") for n in policy_names))

    @classmethod
    def disable(cls) -> CspOperation:
        return cls(OperationKind.DISABLE)

    @classmethod
    def append(cls, policy_name: str, targets: str | list[str] | None = None) -> CspOperation:
        return cls(OperationKind.APPEND, (require_name(policy_name, "policy name"),), _parse_targets(targets))

    @classmethod
    def override(cls, policy_name: str, targets: str | list[str] | None = None) -> CspOperation:
        return cls(OperationKind.OVERRIDE, (require_name(policy_name, "policy name"),), _parse_targets(targets))

    @property
    def is_modifier(self) -> bool:
        return self.kind in (OperationKind.APPEND, OperationKind.OVERRIDE)


def _parse_targets(targets: str | list[str] | None) -> tuple[str, ...]:
    if not targets:
        return ()
    if isinstance(targets, str):
        targets = targets.split(",")
    return tuple(t.strip() for t in targets if t and t.strip())


@dataclass(frozen=True)
class CspRule:
    """The resolved CSP behaviour for one route."""

    disabled: bool = False
    # None activates the registry's default policy.
    policy_names: tuple[str, ...] | None = None
    modifiers: tuple[CspOperation, ...] = ()

    @classmethod
    def from_operations(cls, operations: list[CspOperation] | tuple[CspOperation, ...]) -> CspRule:
        disabled = False
        policy_names: tuple[str, ...] | None = None
        modifiers: list[CspOperation] = []
        for op in operations:
            if op.kind is OperationKind.DISABLE:
                disabled = True
            elif op.kind is OperationKind.ENABLE:
                # The operation closest to the handler wins.
                policy_names = op.policies or None
            else:
                modifiers.append(op)
        return cls(disabled=disabled, policy_names=policy_names, modifiers=tuple(modifiers))


@dataclass
class RoutePolicyTable:
    """Route patterns (``fnmatch`` syntax) and their operations; first match wins."""

    default_operations: list[CspOperation] = field(default_factory=lambda: [CspOperation.enable()])
    _routes: list[tuple[str, list[CspOperation]]] = field(default_factory=list, init=False, repr=False)
    _compiled: list[tuple[str, CspRule]] | None = field(default=None, init=False, repr=False)
    _default_rule: CspRule | None = field(default=None, init=False, repr=False)

    def add_route(self, pattern: str, *operations: CspOperation) -> RoutePolicyTable:
        require_name(pattern, "route pattern")
        if not operations:
            raise InvalidArgumentError(f"route {pattern!r} needs at least one operation")
        self._routes.append((pattern, list(operations)))
        self._compiled = None
        return self

    def compile(self, registry: PolicyRegistry) -> None:
        """Resolve every route to a rule and check all policy names exist."""
        compiled = []
        for pattern, operations in self._routes:
            rule = CspRule.from_operations(operations)
            self._check_rule(pattern, rule, registry)
            compiled.append((pattern, rule))

        default_rule = CspRule.from_operations(self.default_operations)
        self._check_rule("<default>", default_rule, registry)

        self._compiled = compiled
        self._default_rule = default_rule
        logger.info("csp_route_table_compiled", routes=len(compiled), default_disabled=default_rule.disabled)

    def resolve(self, path: str) -> CspRule:
        if self._compiled is None or self._default_rule is None:
            raise CspMisconfigurationError("route policy table used before compile()")
        for pattern, rule in self._compiled:
            if fnmatch.fnmatchcase(path, pattern):
                return rule
        return self._default_rule

    @staticmethod
    def _check_rule(pattern: str, rule: CspRule, registry: PolicyRegistry) -> None:
        if rule.disabled:
            return
        names = list(rule.policy_names or [registry.default_policy_name])
        names.extend(name for op in rule.modifiers for name in op.policies)
        for name in names:
            if name not in registry:
                raise CspMisconfigurationError(f"route {pattern!r} references unknown CSP policy {name!r}")
