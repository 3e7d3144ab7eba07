"""Pydantic models for browser CSP violation reports."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class CspReport(BaseModel):
    """One violation as sent by the browser (``report-uri`` format).

    Browsers differ in which fields they send, so every field is optional.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    document_uri: str | None = Field(default=None, alias="document-uri")
    referrer: str | None = None
    violated_directive: str | None = Field(default=None, alias="violated-directive")
    effective_directive: str | None = Field(default=None, alias="effective-directive")
    original_policy: str | None = Field(default=None, alias="original-policy")
    disposition: str | None = None
    blocked_uri: str | None = Field(default=None, alias="blocked-uri")
    line_number: int | None = Field(default=None, alias="line-number")
    column_number: int | None = Field(default=None, alias="column-number")
    source_file: str | None = Field(default=None, alias="source-file")
    status_code: int | None = Field(default=None, alias="status-code")
    script_sample: str | None = Field(default=None, alias="script-sample")


class CspReportRequest(BaseModel):
    """Request body for POST /csp-report."""

    model_config = ConfigDict(populate_by_name=True)

    csp_report: CspReport = Field(alias="csp-report")
