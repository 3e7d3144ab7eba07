"""Content security policy model and its append/override merge algorithm."""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable, Union

from cspolicy.policy.directive import Directive, DirectiveCategory, DirectiveNames, check_directive_name
from cspolicy.policy.directive_builder import DirectiveBuilder
from cspolicy.policy.errors import InvalidArgumentError, require_name

if TYPE_CHECKING:
    from cspolicy.policy.policy_builder import PolicyBuilder


class HashAlgorithms(enum.Flag):
    """Hash algorithms usable for CSP hash sources and SRI."""

    SHA256 = 1
    SHA384 = 2
    SHA512 = 4

    @property
    def prefix(self) -> str:
        """Source prefix of a single algorithm, e.g. ``sha384-``."""
        return f"{_single(self).name.lower()}-"

    def members(self) -> list[HashAlgorithms]:
        """The single algorithms contained in this flag set, weakest first."""
        return [alg for alg in _ORDERED_ALGORITHMS if alg in self]

    @classmethod
    def parse(cls, names: str | list[str]) -> HashAlgorithms:
        """Build a flag set from names like ``"sha256"`` or ``["sha384", "sha512"]``."""
        if isinstance(names, str):
            names = [names]
        if not names:
            raise InvalidArgumentError("at least one hash algorithm is required")
        result: HashAlgorithms | None = None
        for name in names:
            try:
                alg = cls[str(name).upper().replace("-", "")]
            except KeyError:
                raise InvalidArgumentError(f"unknown hash algorithm: {name!r}") from None
            result = alg if result is None else result | alg
        return result


_ORDERED_ALGORITHMS = (HashAlgorithms.SHA256, HashAlgorithms.SHA384, HashAlgorithms.SHA512)
DEFAULT_HASH_ALGORITHMS = HashAlgorithms.SHA384


def _single(flags: HashAlgorithms) -> HashAlgorithms:
    members = flags.members()
    if len(members) != 1:
        raise InvalidArgumentError(f"expected a single hash algorithm, got {flags!r}")
    return members[0]


DirectiveConfig = Callable[[DirectiveBuilder], object]
PolicySource = Union["ContentSecurityPolicy", Callable[["PolicyBuilder"], object]]


class ContentSecurityPolicy:
    """An ordered set of named directives rendered into one CSP header.

    ``report_only`` and ``default_hash_algorithms`` remember whether they were
    set explicitly so that merging a policy which never touched them leaves
    the target's values alone.
    """

    def __init__(self, policy: ContentSecurityPolicy | None = None) -> None:
        self.directives: dict[str, Directive] = {}
        self._report_only: bool | None = None
        self._default_hash_algorithms: HashAlgorithms | None = None
        if policy is not None:
            self._copy_from(policy)

    @property
    def report_only(self) -> bool:
        return bool(self._report_only)

    @report_only.setter
    def report_only(self, value: bool) -> None:
        self._report_only = bool(value)

    @property
    def report_only_configured(self) -> bool:
        return self._report_only is not None

    @property
    def default_hash_algorithms(self) -> HashAlgorithms:
        if self._default_hash_algorithms is None:
            return DEFAULT_HASH_ALGORITHMS
        return self._default_hash_algorithms

    @default_hash_algorithms.setter
    def default_hash_algorithms(self, value: HashAlgorithms) -> None:
        if not isinstance(value, HashAlgorithms) or not value.members():
            raise InvalidArgumentError("default_hash_algorithms must be a non-empty HashAlgorithms flag")
        self._default_hash_algorithms = value

    def add_directive(self, name: str, directive: Directive | DirectiveConfig) -> Directive:
        """Add or replace the directive *name*.

        *directive* is either a built :class:`Directive` or a callable that
        configures a :class:`DirectiveBuilder`.
        """
        check_directive_name(name)
        if directive is None:
            raise InvalidArgumentError("directive must not be None")
        if not isinstance(directive, Directive):
            builder = DirectiveBuilder(Directive.for_name(name))
            directive(builder)
            directive = builder.build()
        self.directives[name] = directive
        return directive

    def get_directive(self, name: str) -> Directive | None:
        require_name(name, "directive name")
        return self.directives.get(name)

    def get_or_add_directive(self, name: str) -> Directive:
        """Return the directive *name*, inserting an empty one if it is missing."""
        directive = self.get_directive(name)
        if directive is not None:
            return directive
        return self.add_directive(name, Directive.for_name(name))

    def append(self, source: PolicySource) -> None:
        """Append the sources of *source* to this policy's directives.

        Example: ``script-src 'self'`` appended with ``script-src example.org``
        becomes ``script-src 'self' example.org``.
        """
        self.copy(_resolve(source))

    def override(self, source: PolicySource) -> None:
        """Replace this policy's directives with those of *source*.

        Example: ``script-src 'self'`` overridden with ``script-src example.org``
        becomes ``script-src example.org``.
        """
        self.copy(_resolve(source), override_directives=True)

    def copy(self, policy: ContentSecurityPolicy, override_directives: bool = False) -> None:
        """Merge *policy* into this one in place."""
        if policy is None:
            raise InvalidArgumentError("policy must not be None")

        if policy._report_only is not None:
            self._report_only = policy._report_only
        if policy._default_hash_algorithms is not None:
            self._default_hash_algorithms = policy._default_hash_algorithms

        for name, directive in policy.directives.items():
            if override_directives:
                replacement = directive.copy()
                previous = self.directives.get(name)
                # An unset nonce flag keeps whatever the target already asked for.
                if replacement.add_nonce is None and previous is not None:
                    replacement.add_nonce = previous.add_nonce
                self.directives[name] = replacement
                continue

            target = self.directives.get(name)
            if target is None:
                # A directive the target never declared takes the source's
                # metadata and sources as they are.
                target = self.add_directive(name, directive.empty_like())
            else:
                default_src = self.directives.get(DirectiveNames.DEFAULT_SRC)
                if default_src is not None:
                    self._inherit_default_src(name, target, default_src)
            target.merge(directive)

    def clone(self) -> ContentSecurityPolicy:
        """Deep copy; mutating the clone never touches this policy."""
        return ContentSecurityPolicy(self)

    def _copy_from(self, policy: ContentSecurityPolicy) -> None:
        self._report_only = policy._report_only
        self._default_hash_algorithms = policy._default_hash_algorithms
        self.directives = {name: d.copy() for name, d in policy.directives.items()}

    @staticmethod
    def _inherit_default_src(name: str, target: Directive, default_src: Directive) -> None:
        # Browsers fall back to default-src only for fetch directives.
        if name == DirectiveNames.DEFAULT_SRC:
            return
        if target.category is not DirectiveCategory.FETCH:
            return
        if default_src.sources:
            target.append(*default_src.sources)

    def __str__(self) -> str:
        directives = ",".join(f"{name}: {{{d}}}" for name, d in self.directives.items())
        return (
            f"Directives: {{{directives}}}, ReportOnly: {self.report_only}, "
            f"DefaultHashAlgorithms: {self.default_hash_algorithms!r}"
        )


def _resolve(source: PolicySource) -> ContentSecurityPolicy:
    if source is None:
        raise InvalidArgumentError("policy must not be None")
    if isinstance(source, ContentSecurityPolicy):
        return source
    from cspolicy.policy.policy_builder import PolicyBuilder

    builder = PolicyBuilder()
    source(builder)
    return builder.build()
