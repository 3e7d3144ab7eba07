"""A single CSP directive and the constants describing well-known directives."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from cspolicy.policy.errors import InvalidArgumentError, require_name

NONE_SOURCE = "'none'"

# Characters that would terminate a directive or a policy on the wire.
_FORBIDDEN_CHARS = (";", ",")


class DirectiveCategory(enum.Enum):
    """CSP directive families. Only FETCH directives fall back to default-src."""

    FETCH = "fetch"
    DOCUMENT = "document"
    NAVIGATION = "navigation"
    REPORTING = "reporting"
    OTHER = "other"


class DirectiveNames:
    # Fetch
    CONNECT_SRC = "connect-src"
    DEFAULT_SRC = "default-src"
    FONT_SRC = "font-src"
    FRAME_SRC = "frame-src"
    IMAGE_SRC = "image-src"
    MANIFEST_SRC = "manifest-src"
    MEDIA_SRC = "media-src"
    OBJECT_SRC = "object-src"
    SCRIPT_SRC = "script-src"
    STYLE_SRC = "style-src"
    WORKER_SRC = "worker-src"

    # Document
    BASE_URI = "base-uri"
    PLUGIN_TYPES = "plugin-types"
    SANDBOX = "sandbox"

    # Navigation
    FORM_ACTION = "form-action"
    FRAME_ANCESTORS = "frame-ancestors"

    # Reporting
    REPORT_URI = "report-uri"
    REPORT_TO = "report-to"

    # Other
    BLOCK_ALL_MIXED_CONTENT = "block-all-mixed-content"
    REQUIRE_SRI_FOR = "require-sri-for"
    UPGRADE_INSECURE_REQUESTS = "upgrade-insecure-requests"


class DirectiveSchemas:
    """URI schemes usable as content sources."""

    HTTP = "http:"
    HTTPS = "https:"
    # Insecure: an attacker can inject arbitrary data: URIs. Never use for scripts.
    DATA = "data:"
    MEDIA_STREAM = "mediastream:"
    BLOB = "blob:"
    FILE_SYSTEM = "filesystem:"


@dataclass(frozen=True)
class DirectiveSpec:
    """Category and header-context applicability of a well-known directive."""

    category: DirectiveCategory
    supports_meta_tag: bool = True
    supports_report_header: bool = True


_FETCH = DirectiveSpec(DirectiveCategory.FETCH)

DIRECTIVE_SPECS: dict[str, DirectiveSpec] = {
    DirectiveNames.DEFAULT_SRC: _FETCH,
    DirectiveNames.CONNECT_SRC: _FETCH,
    DirectiveNames.FONT_SRC: _FETCH,
    DirectiveNames.FRAME_SRC: _FETCH,
    DirectiveNames.IMAGE_SRC: _FETCH,
    DirectiveNames.MANIFEST_SRC: _FETCH,
    DirectiveNames.MEDIA_SRC: _FETCH,
    DirectiveNames.OBJECT_SRC: _FETCH,
    DirectiveNames.SCRIPT_SRC: _FETCH,
    DirectiveNames.STYLE_SRC: _FETCH,
    DirectiveNames.WORKER_SRC: _FETCH,
    DirectiveNames.BASE_URI: DirectiveSpec(DirectiveCategory.DOCUMENT),
    DirectiveNames.PLUGIN_TYPES: DirectiveSpec(DirectiveCategory.DOCUMENT),
    DirectiveNames.SANDBOX: DirectiveSpec(
        DirectiveCategory.DOCUMENT, supports_meta_tag=False, supports_report_header=False
    ),
    DirectiveNames.FORM_ACTION: DirectiveSpec(DirectiveCategory.NAVIGATION),
    DirectiveNames.FRAME_ANCESTORS: DirectiveSpec(DirectiveCategory.NAVIGATION, supports_meta_tag=False),
    DirectiveNames.REPORT_URI: DirectiveSpec(DirectiveCategory.REPORTING, supports_meta_tag=False),
    DirectiveNames.REPORT_TO: DirectiveSpec(DirectiveCategory.REPORTING, supports_meta_tag=False),
    DirectiveNames.BLOCK_ALL_MIXED_CONTENT: DirectiveSpec(DirectiveCategory.OTHER),
    DirectiveNames.UPGRADE_INSECURE_REQUESTS: DirectiveSpec(DirectiveCategory.OTHER),
    DirectiveNames.REQUIRE_SRI_FOR: DirectiveSpec(DirectiveCategory.OTHER),
}


def spec_for(name: str) -> DirectiveSpec:
    """Return the known spec for *name*, or a plain FETCH spec for custom directives."""
    return DIRECTIVE_SPECS.get(name, _FETCH)


def check_directive_name(name: str) -> str:
    """Return *name* if it can stand alone as a directive name in a header."""
    require_name(name, "directive name")
    if any(ch in name for ch in _FORBIDDEN_CHARS) or any(ch.isspace() for ch in name):
        raise InvalidArgumentError(f"directive name must not contain ';', ',' or whitespace: {name!r}")
    return name


def _check_token(token: str) -> str:
    if token is None or not isinstance(token, str) or not token:
        raise InvalidArgumentError("directive source must be a non-empty string")
    if any(ch in token for ch in _FORBIDDEN_CHARS):
        raise InvalidArgumentError(f"directive source must not contain ';' or ',': {token!r}")
    return token


@dataclass
class Directive:
    """Accumulated source list of one CSP directive plus its metadata.

    ``add_nonce`` is tri-state: ``None`` means "not configured" and never
    overwrites a configured value during a merge.
    """

    category: DirectiveCategory = DirectiveCategory.FETCH
    supports_meta_tag: bool = True
    supports_report_header: bool = True
    add_nonce: bool | None = None
    _sources: list[str] = field(default_factory=list, repr=False)

    @classmethod
    def for_name(cls, name: str) -> Directive:
        """Create an empty directive carrying the metadata of a well-known name."""
        spec = spec_for(name)
        return cls(
            category=spec.category,
            supports_meta_tag=spec.supports_meta_tag,
            supports_report_header=spec.supports_report_header,
        )

    @property
    def value(self) -> str:
        return " ".join(self._sources)

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(self._sources)

    def append(self, *values: str) -> None:
        """Append source tokens in order.

        A directive whose whole value is ``'none'`` is cleared first, since
        ``'none'`` cannot coexist with any other source.
        """
        if not values:
            return
        tokens: list[str] = []
        for value in values:
            # A value may itself be a space-joined source list (e.g. another
            # directive's value); keep it as individual tokens.
            tokens.extend(_check_token(part) for part in _check_token(value).split())
        if not tokens:
            return
        if self._sources == [NONE_SOURCE]:
            self._sources.clear()
        self._sources.extend(tokens)

    def append_quoted(self, *values: str) -> None:
        """Append each value enclosed in single quotes, e.g. ``'sha512-...'``."""
        for value in values:
            self.append(f"'{_check_token(value)}'")

    def merge(self, other: Directive) -> None:
        """Append *other*'s sources; copy its nonce flag only when configured."""
        if other._sources:
            self.append(*other._sources)
        if other.add_nonce is not None:
            self.add_nonce = other.add_nonce

    def empty_like(self) -> Directive:
        """An empty directive with this directive's category and applicability."""
        return Directive(
            category=self.category,
            supports_meta_tag=self.supports_meta_tag,
            supports_report_header=self.supports_report_header,
        )

    def copy(self) -> Directive:
        return Directive(
            category=self.category,
            supports_meta_tag=self.supports_meta_tag,
            supports_report_header=self.supports_report_header,
            add_nonce=self.add_nonce,
            _sources=list(self._sources),
        )

    def __str__(self) -> str:
        return (
            f"Value: {self.value}, Category: {self.category.value}, "
            f"SupportsMetaTag: {self.supports_meta_tag}, "
            f"SupportsReportHeader: {self.supports_report_header}, AddNonce: {self.add_nonce}"
        )
