"""Tests for the CSP header middleware."""

from __future__ import annotations

import pytest
from starlette.requests import Request
from starlette.responses import Response

from cspolicy import helpers
from cspolicy.middleware.active_policies import ActivePoliciesProvider
from cspolicy.middleware.csp_headers import CspHeaders
from cspolicy.middleware.pipeline import MiddlewarePipeline, RequestContext
from cspolicy.middleware.route_policies import CspOperation, RoutePolicyTable
from cspolicy.policy.errors import CspMisconfigurationError, InvalidArgumentError
from cspolicy.policy.header import CspHeaderBuilder
from cspolicy.policy.registry import PolicyRegistry
from cspolicy.providers.nonce import NonceProvider
from cspolicy.providers.policy_provider import PolicyProvider


def _make_request(path: str = "/") -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "query_string": b"",
        "headers": [],
        "root_path": "",
        "server": ("localhost", 8080),
        "client": ("127.0.0.1", 12345),
    }
    return Request(scope)


@pytest.fixture
def registry():
    registry = PolicyRegistry()
    registry.add_policy("main", lambda p: p.add_default_src(lambda src: src.allow_self()).add_script_src())
    registry.add_policy(
        "report",
        lambda p: p.add_default_src(lambda src: src.allow_none()).report_uri("/csp-report").report_only(),
    )
    registry.add_policy("cdn", lambda p: p.add_script_src(lambda src: src.allow_host("cdn.example.org")))
    registry.add_policy("lockdown", lambda p: p.add_script_src(lambda src: src.allow_none()))
    registry.default_policy_name = "main"
    return registry


def _middleware(registry: PolicyRegistry, table: RoutePolicyTable, **kwargs) -> CspHeaders:
    table.compile(registry)
    policy_provider = PolicyProvider(registry)
    return CspHeaders(
        table,
        ActivePoliciesProvider(policy_provider),
        policy_provider,
        CspHeaderBuilder(NonceProvider()),
        **kwargs,
    )


async def _run(mw: CspHeaders, path: str = "/") -> tuple[Response, RequestContext]:
    context = RequestContext()
    result = await mw.process_request(_make_request(path), context)
    assert result is None
    response = await mw.process_response(Response(content="ok"), context)
    return response, context


# ── Header application ───────────────────────────────────────────────────


class TestCspHeadersApply:
    @pytest.mark.asyncio
    async def test_default_policy_header(self, registry):
        response, _ = await _run(_middleware(registry, RoutePolicyTable()))
        assert response.headers["content-security-policy"] == "default-src 'self'; script-src"

    @pytest.mark.asyncio
    async def test_one_header_per_active_policy(self, registry):
        table = RoutePolicyTable()
        table.add_route("/app/*", CspOperation.enable("main", "report"))
        response, _ = await _run(_middleware(registry, table), "/app/home")

        assert response.headers.getlist("content-security-policy") == ["default-src 'self'; script-src"]
        assert response.headers.getlist("content-security-policy-report-only") == [
            "default-src 'none'; report-uri /csp-report"
        ]

    @pytest.mark.asyncio
    async def test_two_enforced_policies_give_two_headers(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.enable("main", "lockdown"))
        response, _ = await _run(_middleware(registry, table))
        assert response.headers.getlist("content-security-policy") == [
            "default-src 'self'; script-src",
            "script-src 'none'",
        ]

    @pytest.mark.asyncio
    async def test_disabled_route_has_no_header(self, registry):
        table = RoutePolicyTable()
        table.add_route("/raw/*", CspOperation.disable())
        response, context = await _run(_middleware(registry, table), "/raw/file")
        assert "content-security-policy" not in response.headers
        assert context.csp_disabled is True
        assert context.active_policies is None

    @pytest.mark.asyncio
    async def test_docs_paths_skipped(self, registry):
        response, _ = await _run(_middleware(registry, RoutePolicyTable()), "/docs")
        assert "content-security-policy" not in response.headers

    @pytest.mark.asyncio
    async def test_custom_skip_paths(self, registry):
        mw = _middleware(registry, RoutePolicyTable(), skip_paths=["/metrics"])
        response, _ = await _run(mw, "/docs")
        assert "content-security-policy" in response.headers
        response, _ = await _run(mw, "/metrics")
        assert "content-security-policy" not in response.headers

    @pytest.mark.asyncio
    async def test_runtime_changes_reach_header(self, registry):
        mw = _middleware(registry, RoutePolicyTable())
        context = RequestContext()
        await mw.process_request(_make_request(), context)
        context.active_policies["main"].get_directive("script-src").add_nonce = True

        response = await mw.process_response(Response(content="ok"), context)
        assert response.headers["content-security-policy"] == (
            f"default-src 'self'; script-src 'nonce-{context.nonce}'"
        )
        assert registry.get_policy("main").get_directive("script-src").add_nonce is None

    def test_dependencies_required(self, registry):
        with pytest.raises(InvalidArgumentError):
            CspHeaders(None, None, None, None)


# ── Modifiers ────────────────────────────────────────────────────────────


class TestCspHeadersModifiers:
    @pytest.mark.asyncio
    async def test_append_targets_first_policy(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.enable("main", "lockdown"), CspOperation.append("cdn"))
        response, _ = await _run(_middleware(registry, table))
        assert response.headers.getlist("content-security-policy") == [
            "default-src 'self'; script-src 'self' cdn.example.org",
            "script-src 'none'",
        ]

    @pytest.mark.asyncio
    async def test_append_named_targets(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.enable("main", "lockdown"), CspOperation.append("cdn", "lockdown"))
        response, _ = await _run(_middleware(registry, table))
        assert response.headers.getlist("content-security-policy") == [
            "default-src 'self'; script-src",
            "script-src cdn.example.org",
        ]

    @pytest.mark.asyncio
    async def test_override(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.override("lockdown"))
        response, _ = await _run(_middleware(registry, table))
        assert response.headers["content-security-policy"] == "default-src 'self'; script-src 'none'"

    @pytest.mark.asyncio
    async def test_override_keeps_nonce_added_by_handler(self, registry):
        table = RoutePolicyTable()
        table.add_route("/page", CspOperation.enable("main"), CspOperation.override("cdn"))
        mw = _middleware(registry, table)
        context = RequestContext()
        await mw.process_request(_make_request("/page"), context)
        nonce = helpers.add_nonce(context)

        response = await mw.process_response(Response(content="ok"), context)
        assert response.headers["content-security-policy"] == (
            f"default-src 'self'; script-src cdn.example.org 'nonce-{nonce}'"
        )

    @pytest.mark.asyncio
    async def test_modifiers_do_not_touch_registry(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.append("cdn"))
        await _run(_middleware(registry, table))
        assert registry.get_policy("main").get_directive("script-src").value == ""

    @pytest.mark.asyncio
    async def test_modifier_policy_removed_after_compile(self, registry):
        table = RoutePolicyTable()
        table.add_route("/*", CspOperation.append("cdn"))
        mw = _middleware(registry, table)
        registry._policies.pop("cdn")

        context = RequestContext()
        await mw.process_request(_make_request(), context)
        with pytest.raises(CspMisconfigurationError):
            await mw.process_response(Response(content="ok"), context)


class TestCspHeadersMisconfiguration:
    @pytest.mark.asyncio
    async def test_missing_default_policy_raises(self):
        registry = PolicyRegistry()
        table = RoutePolicyTable()
        mw = _middleware(registry, table)
        registry.default_policy_name = "gone"

        with pytest.raises(CspMisconfigurationError):
            await mw.process_request(_make_request(), RequestContext())


class _BrokenHeaderBuilder(CspHeaderBuilder):
    def get_header(self, context, policy):
        raise RuntimeError("renderer failed")


class TestCspHeadersFailure:
    @pytest.mark.asyncio
    async def test_render_error_never_returns_original_response(self, registry):
        table = RoutePolicyTable()
        table.compile(registry)
        policy_provider = PolicyProvider(registry)
        pipeline = MiddlewarePipeline()
        pipeline.add(
            CspHeaders(
                table,
                ActivePoliciesProvider(policy_provider),
                policy_provider,
                _BrokenHeaderBuilder(NonceProvider()),
            )
        )

        context = RequestContext()
        assert await pipeline.process_request(_make_request(), context) is None
        response = await pipeline.process_response(Response(content="ok"), context)

        assert response.status_code == 500
        assert response.body != b"ok"
