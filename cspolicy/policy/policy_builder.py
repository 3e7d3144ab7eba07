"""Fluent construction of :class:`ContentSecurityPolicy` objects."""

from __future__ import annotations

import enum
from typing import Callable, Iterable

from cspolicy.policy.directive import Directive, DirectiveNames
from cspolicy.policy.directive_builder import DirectiveBuilder, ScriptDirectiveBuilder
from cspolicy.policy.errors import InvalidArgumentError, require_name
from cspolicy.policy.policy import ContentSecurityPolicy, HashAlgorithms


class SandboxPermission(enum.Enum):
    """Restrictions lifted for a sandboxed page; values are the wire tokens."""

    ALLOW_FORMS = "allow-forms"
    ALLOW_MODALS = "allow-modals"
    ALLOW_ORIENTATION_LOCK = "allow-orientation-lock"
    ALLOW_POINTER_LOCK = "allow-pointer-lock"
    ALLOW_POPUPS = "allow-popups"
    ALLOW_POPUPS_TO_ESCAPE_SANDBOX = "allow-popups-to-escape-sandbox"
    ALLOW_PRESENTATION = "allow-presentation"
    ALLOW_SAME_ORIGIN = "allow-same-origin"
    ALLOW_SCRIPTS = "allow-scripts"
    ALLOW_TOP_NAVIGATION = "allow-top-navigation"


class Subresource(enum.Enum):
    """Subresource kinds for require-sri-for."""

    SCRIPT = "script"
    STYLE = "style"


class PolicyBuilder:
    """Build a policy one directive at a time.

    Each ``add_*`` method takes an optional callable that configures the
    directive builder::

        policy = (
            PolicyBuilder()
            .add_default_src(lambda src: src.allow_self())
            .add_script_src(lambda src: src.allow_self().add_nonce())
            .report_uri("/csp-report")
            .build()
        )

    ``build()`` returns the same policy object every time, so a builder
    cannot be reused for independent policies.
    """

    def __init__(self) -> None:
        self._policy = ContentSecurityPolicy()

    # Fetch directives

    def add_default_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.DEFAULT_SRC, configure)

    def add_connect_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.CONNECT_SRC, configure)

    def add_font_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.FONT_SRC, configure)

    def add_frame_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.FRAME_SRC, configure)

    def add_image_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.IMAGE_SRC, configure)

    def add_manifest_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.MANIFEST_SRC, configure)

    def add_media_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.MEDIA_SRC, configure)

    def add_object_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.OBJECT_SRC, configure)

    def add_script_src(self, configure: Callable[[ScriptDirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.SCRIPT_SRC, configure, builder_class=ScriptDirectiveBuilder)

    def add_style_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.STYLE_SRC, configure)

    def add_worker_src(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.WORKER_SRC, configure)

    # Document directives

    def add_base_uri(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.BASE_URI, configure)

    def add_plugin_types(self, *mime_types: str) -> PolicyBuilder:
        return self.add_values(DirectiveNames.PLUGIN_TYPES, mime_types)

    def add_sandbox(self, *permissions: SandboxPermission) -> PolicyBuilder:
        """Add ``sandbox``; with no permissions every restriction applies."""
        if len(permissions) == 1 and permissions[0] is None:
            raise InvalidArgumentError("sandbox permissions must not be None")
        values = []
        for permission in permissions:
            if not isinstance(permission, SandboxPermission):
                raise InvalidArgumentError(f"not a sandbox permission: {permission!r}")
            values.append(permission.value)
        return self.add_values(DirectiveNames.SANDBOX, values)

    # Navigation directives

    def add_form_action(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.FORM_ACTION, configure)

    def add_frame_ancestors(self, configure: Callable[[DirectiveBuilder], object] | None = None) -> PolicyBuilder:
        return self.add_directive(DirectiveNames.FRAME_ANCESTORS, configure)

    # Reporting directives

    def report_uri(self, uri: str) -> PolicyBuilder:
        """Send violation reports to *uri*."""
        return self.add_values(DirectiveNames.REPORT_URI, [require_name(uri, "report uri")])

    def report_to(self, group: str) -> PolicyBuilder:
        """Send violation reports to the Reporting API *group*."""
        return self.add_values(DirectiveNames.REPORT_TO, [require_name(group, "report group")])

    # Other directives

    def block_all_mixed_content(self) -> PolicyBuilder:
        return self.add_values(DirectiveNames.BLOCK_ALL_MIXED_CONTENT)

    def upgrade_insecure_requests(self) -> PolicyBuilder:
        return self.add_values(DirectiveNames.UPGRADE_INSECURE_REQUESTS)

    def require_subresource_integrity(self, *subresources: Subresource) -> PolicyBuilder:
        """Require SRI for the given kinds; scripts and styles when none are given."""
        if not subresources:
            subresources = (Subresource.SCRIPT, Subresource.STYLE)
        values = []
        for subresource in subresources:
            if not isinstance(subresource, Subresource):
                raise InvalidArgumentError(f"not a subresource kind: {subresource!r}")
            values.append(subresource.value)
        return self.add_values(DirectiveNames.REQUIRE_SRI_FOR, values)

    # Policy level settings

    def report_only(self) -> PolicyBuilder:
        """Report violations without enforcing the policy."""
        self._policy.report_only = True
        return self

    def hash_algorithms(self, algorithms: HashAlgorithms) -> PolicyBuilder:
        """Set the algorithms used when a hash is requested without one."""
        self._policy.default_hash_algorithms = algorithms
        return self

    def add_directive(
        self,
        name: str,
        configure: Callable[[DirectiveBuilder], object] | None = None,
        builder_class: type[DirectiveBuilder] = DirectiveBuilder,
    ) -> PolicyBuilder:
        """Add directive *name* with the category and applicability of its spec."""
        require_name(name, "directive name")
        builder = builder_class(Directive.for_name(name))
        if configure is not None:
            configure(builder)
        self._policy.add_directive(name, builder.build())
        return self

    def add_values(self, name: str, values: Iterable[str] | None = None) -> PolicyBuilder:
        """Add directive *name* with literal source values."""
        require_name(name, "directive name")
        directive = Directive.for_name(name)
        if values is not None:
            directive.append(*values)
        self._policy.add_directive(name, directive)
        return self

    def build(self) -> ContentSecurityPolicy:
        return self._policy
