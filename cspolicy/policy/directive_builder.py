"""Fluent builders for CSP directive source lists."""

from __future__ import annotations

from cspolicy.policy.directive import Directive
from cspolicy.policy.errors import InvalidArgumentError


class DirectiveBuilder:
    """Build a :class:`Directive` from chained ``allow_*`` calls.

    Every call appends in order; nothing is de-duplicated. ``build()``
    returns the same directive instance each time.
    """

    def __init__(self, directive: Directive | None = None) -> None:
        self._directive = directive if directive is not None else Directive()

    def allow_host(self, host: str) -> DirectiveBuilder:
        """Allow *host* (e.g. ``https://cdn.example.org`` or ``*.example.com``)."""
        return self._allow_source(host)

    def allow_schema(self, schema: str) -> DirectiveBuilder:
        """Allow a URI scheme such as ``https:`` or ``data:``."""
        return self._allow_source(schema)

    def allow_self(self) -> DirectiveBuilder:
        return self._allow_source("'self'")

    def allow_unsafe_inline(self) -> DirectiveBuilder:
        return self._allow_source("'unsafe-inline'")

    def allow_eval(self) -> DirectiveBuilder:
        return self._allow_source("'unsafe-eval'")

    def allow_none(self) -> DirectiveBuilder:
        return self._allow_source("'none'")

    def allow_hash(self, hash_value: str) -> DirectiveBuilder:
        """Allow content with *hash_value*, which starts with sha256-, sha384- or sha512-."""
        if not hash_value:
            raise InvalidArgumentError("hash must be a non-empty string")
        return self._allow_source(f"'{hash_value}'")

    def use_strict_dynamic(self) -> DirectiveBuilder:
        """Trust scripts loaded by a script that is itself trusted by nonce or hash."""
        return self._allow_source("'strict-dynamic'")

    def add_nonce(self) -> DirectiveBuilder:
        """Request a per-request nonce; the token is added when the header is rendered."""
        self._directive.add_nonce = True
        return self

    def build(self) -> Directive:
        return self._directive

    def _allow_source(self, source: str) -> DirectiveBuilder:
        if not source:
            raise InvalidArgumentError("source must be a non-empty string")
        self._directive.append(source)
        return self


class ScriptDirectiveBuilder(DirectiveBuilder):
    """Directive builder with the script-src only keywords."""

    def require_sample_in_report(self) -> ScriptDirectiveBuilder:
        """Include a sample of the violating code in violation reports."""
        self._allow_source("'report-sample'")
        return self
