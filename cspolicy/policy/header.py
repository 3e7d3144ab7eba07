"""Serialize a policy into a Content-Security-Policy header."""

from __future__ import annotations

import html
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from cspolicy.policy.errors import InvalidArgumentError
from cspolicy.policy.policy import ContentSecurityPolicy

if TYPE_CHECKING:
    from cspolicy.middleware.pipeline import RequestContext
    from cspolicy.providers.nonce import NonceProvider

logger = structlog.get_logger()

CONTENT_SECURITY_POLICY = "Content-Security-Policy"
CONTENT_SECURITY_POLICY_REPORT_ONLY = "Content-Security-Policy-Report-Only"


@dataclass(frozen=True)
class CspHeader:
    """A rendered header: ``name`` is the (report-only) CSP header name."""

    name: str
    value: str


class CspHeaderBuilder:
    """Render policies for one request, pulling nonces from *nonce_provider*."""

    def __init__(self, nonce_provider: NonceProvider) -> None:
        if nonce_provider is None:
            raise InvalidArgumentError("nonce_provider must not be None")
        self._nonce_provider = nonce_provider

    def get_header(
        self,
        context: RequestContext,
        policy: ContentSecurityPolicy,
        for_meta_tag: bool = False,
    ) -> CspHeader:
        """Render *policy*.

        Directives that are illegal in a ``<meta>`` tag are dropped when
        *for_meta_tag* is set, and directives illegal on the report-only
        header are dropped for report-only policies.
        """
        if policy is None:
            raise InvalidArgumentError("policy must not be None")
        name = CONTENT_SECURITY_POLICY_REPORT_ONLY if policy.report_only else CONTENT_SECURITY_POLICY
        value = self._header_value(context, policy, for_meta_tag)
        logger.debug("csp_header_built", header=name, directives=len(policy.directives), meta_tag=for_meta_tag)
        return CspHeader(name, value)

    def _header_value(self, context: RequestContext, policy: ContentSecurityPolicy, for_meta_tag: bool) -> str:
        segments: list[str] = []
        for name, directive in policy.directives.items():
            if for_meta_tag and not directive.supports_meta_tag:
                continue
            if policy.report_only and not directive.supports_report_header:
                continue

            # e.g. "script-src 'self' https: 'nonce-abc=='"
            parts = [name]
            if directive.value:
                parts.append(directive.value)
            if directive.add_nonce is True:
                parts.append(f"'nonce-{self._nonce_provider.get_nonce(context)}'")
            segments.append(" ".join(parts))
        return "; ".join(segments)


def render_meta_tag(header: CspHeader) -> str:
    """Render *header* as an HTML ``<meta http-equiv>`` element.

    Build *header* with ``for_meta_tag=True`` so directives that browsers
    ignore in meta tags are left out.
    """
    return (
        f'<meta http-equiv="{html.escape(header.name, quote=True)}" '
        f'content="{html.escape(header.value, quote=True)}">'
    )
