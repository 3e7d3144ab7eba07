"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Report whether CSP is configured and which policy is the default."""
    registry = getattr(request.app.state, "csp_registry", None)
    if registry is None:
        return {"status": "starting", "policies": 0, "default_policy": None}
    return {
        "status": "healthy" if registry.get_default_policy() is not None else "degraded",
        "policies": len(registry),
        "default_policy": registry.default_policy_name,
    }
