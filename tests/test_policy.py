"""Tests for the policy model and its append/override merge."""

from __future__ import annotations

import pytest

from cspolicy.policy.directive import Directive, DirectiveCategory, DirectiveNames
from cspolicy.policy.errors import InvalidArgumentError
from cspolicy.policy.policy import DEFAULT_HASH_ALGORITHMS, ContentSecurityPolicy, HashAlgorithms
from cspolicy.policy.policy_builder import PolicyBuilder


def _base_policy() -> ContentSecurityPolicy:
    """default-src 'self'; script-src 'none'"""
    return (
        PolicyBuilder()
        .add_default_src(lambda src: src.allow_self())
        .add_script_src(lambda src: src.allow_none())
        .build()
    )


def _value(policy: ContentSecurityPolicy, name: str) -> str:
    return policy.get_directive(name).value


# ── Append ───────────────────────────────────────────────────────────────


class TestAppend:
    def test_append_scenario(self):
        policy = _base_policy()
        policy.append(
            lambda p: p.add_script_src(lambda src: src.allow_host("example.org")).add_object_src(
                lambda src: src.allow_host("dot.net")
            )
        )
        assert len(policy.directives) == 3
        assert _value(policy, "default-src") == "'self'"
        assert _value(policy, "script-src") == "'self' example.org"
        assert _value(policy, "object-src") == "dot.net"

    def test_empty_fetch_directive_inherits_default_src_once(self):
        policy = (
            PolicyBuilder()
            .add_default_src(lambda src: src.allow_self())
            .add_script_src()
            .build()
        )
        policy.append(lambda p: p.add_script_src(lambda src: src.allow_host("example.org")))
        assert _value(policy, "script-src") == "'self' example.org"

    def test_reporting_directive_never_inherits(self):
        policy = PolicyBuilder().add_default_src(lambda src: src.allow_self()).report_uri("/a").build()
        policy.append(lambda p: p.report_uri("/b"))
        assert _value(policy, "report-uri") == "/a /b"

    def test_document_directive_never_inherits(self):
        policy = (
            PolicyBuilder()
            .add_default_src(lambda src: src.allow_self())
            .add_base_uri(lambda src: src.allow_host("a.example"))
            .build()
        )
        policy.append(lambda p: p.add_base_uri(lambda src: src.allow_host("b.example")))
        assert _value(policy, "base-uri") == "a.example b.example"

    def test_navigation_directive_never_inherits(self):
        policy = (
            PolicyBuilder()
            .add_default_src(lambda src: src.allow_self())
            .add_form_action(lambda src: src.allow_host("a.example"))
            .build()
        )
        policy.append(lambda p: p.add_form_action(lambda src: src.allow_host("b.example")))
        assert _value(policy, "form-action") == "a.example b.example"

    def test_default_src_does_not_inherit_itself(self):
        policy = _base_policy()
        policy.append(lambda p: p.add_default_src(lambda src: src.allow_host("example.org")))
        assert _value(policy, "default-src") == "'self' example.org"

    def test_no_inheritance_without_default_src(self):
        policy = PolicyBuilder().add_script_src(lambda src: src.allow_self()).build()
        policy.append(lambda p: p.add_script_src(lambda src: src.allow_host("example.org")))
        assert _value(policy, "script-src") == "'self' example.org"

    def test_new_directive_keeps_source_metadata(self):
        policy = _base_policy()
        policy.append(lambda p: p.add_sandbox())
        sandbox = policy.get_directive("sandbox")
        assert sandbox.category is DirectiveCategory.DOCUMENT
        assert sandbox.supports_report_header is False

    def test_append_does_not_mutate_source(self):
        policy = _base_policy()
        source = PolicyBuilder().add_object_src(lambda src: src.allow_host("dot.net")).build()
        policy.append(source)
        policy.get_directive("object-src").append("x.example")
        assert _value(source, "object-src") == "dot.net"

    def test_append_nonce_flag(self):
        policy = _base_policy()
        policy.append(lambda p: p.add_script_src(lambda src: src.add_nonce()))
        assert policy.get_directive("script-src").add_nonce is True

    def test_append_none_rejected(self):
        with pytest.raises(InvalidArgumentError):
            _base_policy().append(None)


# ── Override ─────────────────────────────────────────────────────────────


class TestOverride:
    def test_override_scenario(self):
        policy = _base_policy()
        policy.override(
            lambda p: p.add_script_src(lambda src: src.allow_host("example.org")).add_object_src(
                lambda src: src.allow_self()
            )
        )
        assert _value(policy, "script-src") == "example.org"
        assert _value(policy, "object-src") == "'self'"
        assert _value(policy, "default-src") == "'self'"

    def test_override_replaces_value_and_metadata(self):
        policy = PolicyBuilder().add_script_src(lambda src: src.allow_self().add_nonce()).build()
        replacement = Directive(category=DirectiveCategory.OTHER, supports_meta_tag=False)
        replacement.append("example.org")
        source = ContentSecurityPolicy()
        source.add_directive("script-src", replacement)

        policy.override(source)

        script = policy.get_directive("script-src")
        assert script.value == "example.org"
        assert script.category is DirectiveCategory.OTHER
        assert script.supports_meta_tag is False
        assert script.add_nonce is True

    def test_override_with_explicit_nonce_flag_replaces_it(self):
        policy = PolicyBuilder().add_script_src(lambda src: src.allow_self().add_nonce()).build()
        replacement = Directive.for_name("script-src")
        replacement.append("example.org")
        replacement.add_nonce = False
        source = ContentSecurityPolicy()
        source.add_directive("script-src", replacement)

        policy.override(source)

        assert policy.get_directive("script-src").add_nonce is False

    def test_override_copies_directive(self):
        policy = _base_policy()
        source = PolicyBuilder().add_script_src(lambda src: src.allow_host("example.org")).build()
        policy.override(source)
        policy.get_directive("script-src").append("other.example")
        assert _value(source, "script-src") == "example.org"


# ── Tri-state scalars ────────────────────────────────────────────────────


class TestTriState:
    @pytest.mark.parametrize("override", [False, True])
    def test_unset_report_only_leaves_target(self, override):
        policy = PolicyBuilder().report_only().build()
        policy.copy(PolicyBuilder().add_script_src().build(), override_directives=override)
        assert policy.report_only is True

    @pytest.mark.parametrize("override", [False, True])
    def test_explicit_false_report_only_is_copied(self, override):
        policy = PolicyBuilder().report_only().build()
        source = ContentSecurityPolicy()
        source.report_only = False
        policy.copy(source, override_directives=override)
        assert policy.report_only is False
        assert policy.report_only_configured is True

    def test_report_only_defaults_to_unset(self):
        policy = ContentSecurityPolicy()
        assert policy.report_only is False
        assert policy.report_only_configured is False

    def test_hash_algorithms_default_and_merge(self):
        policy = ContentSecurityPolicy()
        assert policy.default_hash_algorithms is DEFAULT_HASH_ALGORITHMS
        policy.copy(PolicyBuilder().hash_algorithms(HashAlgorithms.SHA512).build())
        assert policy.default_hash_algorithms is HashAlgorithms.SHA512
        policy.copy(ContentSecurityPolicy())
        assert policy.default_hash_algorithms is HashAlgorithms.SHA512


# ── Clone and directive access ───────────────────────────────────────────


class TestPolicyBasics:
    def test_clone_is_deep(self):
        policy = _base_policy()
        policy.report_only = True
        clone = policy.clone()
        clone.get_directive("default-src").append("example.org")
        clone.add_directive("img-src", Directive())
        clone.report_only = False

        assert _value(policy, "default-src") == "'self'"
        assert "img-src" not in policy.directives
        assert policy.report_only is True

    def test_clone_keeps_none_values(self):
        clone = _base_policy().clone()
        assert _value(clone, "script-src") == "'none'"

    def test_add_directive_replaces(self):
        policy = _base_policy()
        policy.add_directive("script-src", lambda src: src.allow_host("example.org"))
        assert _value(policy, "script-src") == "example.org"
        assert list(policy.directives) == ["default-src", "script-src"]

    def test_get_or_add_directive_inserts_empty(self):
        policy = ContentSecurityPolicy()
        directive = policy.get_or_add_directive("style-src")
        assert directive.value == ""
        assert policy.get_or_add_directive("style-src") is directive

    @pytest.mark.parametrize("name", [None, "", "  ", "x; script-src *", "a,b", "script-src extra", "img-src\t"])
    def test_invalid_directive_name(self, name):
        with pytest.raises(InvalidArgumentError):
            ContentSecurityPolicy().add_directive(name, Directive())

    def test_empty_policy_is_truthy(self):
        assert ContentSecurityPolicy()

    def test_str_lists_directives(self):
        text = str(_base_policy())
        assert "default-src" in text
        assert "ReportOnly: False" in text


class TestHashAlgorithms:
    def test_prefix(self):
        assert HashAlgorithms.SHA256.prefix == "sha256-"

    def test_prefix_requires_single(self):
        with pytest.raises(InvalidArgumentError):
            (HashAlgorithms.SHA256 | HashAlgorithms.SHA512).prefix

    def test_members_ordered(self):
        flags = HashAlgorithms.SHA512 | HashAlgorithms.SHA256
        assert flags.members() == [HashAlgorithms.SHA256, HashAlgorithms.SHA512]

    def test_parse(self):
        assert HashAlgorithms.parse(["sha-256", "SHA384"]) == HashAlgorithms.SHA256 | HashAlgorithms.SHA384

    def test_parse_unknown(self):
        with pytest.raises(InvalidArgumentError):
            HashAlgorithms.parse("md5")

    def test_invalid_default_rejected(self):
        policy = ContentSecurityPolicy()
        with pytest.raises(InvalidArgumentError):
            policy.default_hash_algorithms = "sha256"
