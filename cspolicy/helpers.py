"""Runtime additions to the current request's CSP.

Handlers and templates call these while rendering a response; the
``CspHeaders`` middleware picks the changes up when it writes the header.
All of them act on the request's main (first) active policy and do
nothing when CSP is not active for the request.
"""

from __future__ import annotations

import structlog

from cspolicy.middleware.active_policies import ActivePoliciesProvider
from cspolicy.middleware.pipeline import RequestContext
from cspolicy.policy.directive import DirectiveNames
from cspolicy.policy.errors import InvalidArgumentError, require_name
from cspolicy.policy.policy import ContentSecurityPolicy, HashAlgorithms
from cspolicy.policy.registry import PolicyRegistry
from cspolicy.providers.hashes import HashProvider
from cspolicy.providers.nonce import NonceProvider
from cspolicy.providers.policy_provider import PolicyProvider

logger = structlog.get_logger()

_nonce_provider: NonceProvider | None = None
_hash_provider: HashProvider | None = None
_active_policies: ActivePoliciesProvider | None = None


def init_helpers(
    nonce_provider: NonceProvider,
    hash_provider: HashProvider,
    active_policies: ActivePoliciesProvider | None = None,
) -> None:
    """Install the providers shared with the header middleware."""
    global _nonce_provider, _hash_provider, _active_policies
    if nonce_provider is None or hash_provider is None:
        raise InvalidArgumentError("nonce_provider and hash_provider must not be None")
    _nonce_provider = nonce_provider
    _hash_provider = hash_provider
    _active_policies = active_policies


def reset_helpers() -> None:
    """Forget installed providers (for testing)."""
    global _nonce_provider, _hash_provider, _active_policies
    _nonce_provider = None
    _hash_provider = None
    _active_policies = None


def get_nonce_provider() -> NonceProvider:
    global _nonce_provider
    if _nonce_provider is None:
        _nonce_provider = NonceProvider()
    return _nonce_provider


def get_hash_provider() -> HashProvider:
    global _hash_provider
    if _hash_provider is None:
        _hash_provider = HashProvider()
    return _hash_provider


def get_active_policies_provider() -> ActivePoliciesProvider:
    global _active_policies
    if _active_policies is None:
        _active_policies = ActivePoliciesProvider(PolicyProvider(PolicyRegistry()))
    return _active_policies


def _main_policy(context: RequestContext) -> ContentSecurityPolicy | None:
    return get_active_policies_provider().get_active_main_policy(context)


def get_nonce(context: RequestContext) -> str:
    """The request's nonce, for the ``nonce`` attribute of an inline tag."""
    return get_nonce_provider().get_nonce(context)


def add_nonce(context: RequestContext, directive_name: str = DirectiveNames.SCRIPT_SRC) -> str | None:
    """Allow the request's nonce on *directive_name* and return it.

    Returns None when no policy is active, so callers should omit the
    ``nonce`` attribute in that case.
    """
    require_name(directive_name, "directive name")
    policy = _main_policy(context)
    if policy is None:
        logger.debug("csp_helper_no_active_policy", helper="add_nonce", path=context.path)
        return None
    policy.get_or_add_directive(directive_name).add_nonce = True
    return get_nonce(context)


def allow_inline_content(
    context: RequestContext,
    directive_name: str,
    content: str,
    algorithms: HashAlgorithms | None = None,
) -> list[str]:
    """Allow an inline script or style block by its hash."""
    require_name(directive_name, "directive name")
    if content is None:
        raise InvalidArgumentError("content must not be None")
    policy = _main_policy(context)
    if policy is None:
        logger.debug("csp_helper_no_active_policy", helper="allow_inline_content", path=context.path)
        return []

    hashes = get_hash_provider().get_content_hashes(
        content, content, algorithms or policy.default_hash_algorithms
    )
    policy.get_or_add_directive(directive_name).append_quoted(*hashes)
    return hashes


def allow_file(
    context: RequestContext,
    directive_name: str,
    path: str,
    algorithms: HashAlgorithms | None = None,
) -> list[str]:
    """Allow a static file (e.g. ``/js/site.js``) by its hash."""
    require_name(directive_name, "directive name")
    require_name(path, "path")
    policy = _main_policy(context)
    if policy is None:
        logger.debug("csp_helper_no_active_policy", helper="allow_file", path=context.path)
        return []

    hashes = get_hash_provider().get_file_hashes(path, algorithms or policy.default_hash_algorithms)
    if not hashes:
        logger.warning("csp_file_not_allowed", file=path, directive=directive_name)
        return []
    policy.get_or_add_directive(directive_name).append_quoted(*hashes)
    return hashes


def add_plugin_type(context: RequestContext, mime_type: str) -> None:
    """Allow an embedded plugin MIME type such as ``application/pdf``."""
    require_name(mime_type, "mime type")
    policy = _main_policy(context)
    if policy is None:
        logger.debug("csp_helper_no_active_policy", helper="add_plugin_type", path=context.path)
        return
    policy.get_or_add_directive(DirectiveNames.PLUGIN_TYPES).append(mime_type)
