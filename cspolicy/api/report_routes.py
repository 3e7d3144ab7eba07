"""Endpoint receiving CSP violation reports from browsers."""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import ValidationError

from cspolicy.models.report import CspReportRequest

logger = structlog.get_logger()

# Browsers post "application/csp-report", which FastAPI will not parse as
# JSON, so the body is decoded by hand.
_MAX_REPORT_BYTES = 64 * 1024

router = APIRouter(tags=["csp"])


@router.post("/csp-report", status_code=204)
async def receive_report(request: Request) -> Response:
    """Log a violation report and acknowledge it with 204."""
    body = await request.body()
    if len(body) > _MAX_REPORT_BYTES:
        raise HTTPException(status_code=413, detail="Report too large")

    try:
        payload = json.loads(body)
        report = CspReportRequest.model_validate(payload).csp_report
    except (ValueError, ValidationError) as exc:
        logger.warning("csp_report_invalid", error=type(exc).__name__)
        raise HTTPException(status_code=400, detail="Malformed CSP report")

    logger.warning(
        "csp_report_received",
        document_uri=report.document_uri,
        violated_directive=report.violated_directive,
        effective_directive=report.effective_directive,
        blocked_uri=report.blocked_uri,
        disposition=report.disposition,
        source_file=report.source_file,
        line_number=report.line_number,
    )
    return Response(status_code=204)
