"""
API Schemas
===========

Pydantic models for API request/response validation.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from query_verifier.models import SourceQuery, VerificationResult


class SourceQueryRequest(BaseModel):
    """One query to verify."""

    model_config = ConfigDict(populate_by_name=True)

    query_id: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Unique identifier of the source query",
        examples=["orders_by_region"],
    )
    sql: str = Field(
        ...,
        min_length=1,
        description="Single SELECT, WITH or VALUES statement",
        examples=["SELECT region, sum(amount) FROM orders GROUP BY region"],
    )
    catalog: str | None = Field(None, description="Catalog the output table is created in")
    schema_name: str | None = Field(
        None,
        alias="schema",
        description="Schema the output table is created in",
    )
    suite: str | None = Field(None, description="Suite the query belongs to")
    name: str | None = Field(None, description="Human-readable query name")

    def to_source_query(self) -> SourceQuery:
        return SourceQuery(
            query_id=self.query_id,
            sql=self.sql,
            catalog=self.catalog,
            schema=self.schema_name,
            suite=self.suite,
            name=self.name,
        )


class VerificationRequest(BaseModel):
    """Request body for a verification run."""

    queries: list[SourceQueryRequest] = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Source queries to verify",
    )
    include_context: bool = Field(
        default=False,
        description="Include the full verification context in each result",
    )


class VerificationOutcomeEnum(str, Enum):
    """Verification outcome."""

    MATCH = "match"
    REGRESSION = "regression"
    KNOWN_ISSUE = "known_issue"
    INCONCLUSIVE = "inconclusive"


class VerificationResultResponse(BaseModel):
    """Result of verifying one source query."""

    query_id: str = Field(..., description="Source query identifier")
    outcome: VerificationOutcomeEnum = Field(..., description="Verification outcome")
    match_result: dict[str, Any] | None = Field(None, description="Checksum comparison detail")
    failure: dict[str, Any] | None = Field(None, description="Terminal failure, if any")
    determinism: dict[str, Any] | None = Field(None, description="Determinism analysis, if run")
    context: dict[str, Any] | None = Field(
        None,
        description="Full verification context (if requested)",
    )

    @classmethod
    def from_result(
        cls, result: VerificationResult, include_context: bool
    ) -> "VerificationResultResponse":
        data = result.to_dict()
        if not include_context:
            data["context"] = None
        return cls(**data)


class VerificationResponse(BaseModel):
    """Response body for a verification run."""

    results: list[VerificationResultResponse] = Field(..., description="Per-query results")
    summary: dict[str, int] = Field(..., description="Number of results per outcome")
    request_id: str = Field(..., description="Unique request identifier")
    processing_time_ms: float = Field(..., description="Processing time in milliseconds")


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Health check response."""

    status: HealthStatus = Field(..., description="Overall health status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    checks: dict[str, bool] = Field(
        default_factory=dict,
        description="Individual component health checks",
    )


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool = Field(..., description="Whether the service is ready to handle requests")
    checks: dict[str, bool] = Field(
        default_factory=dict,
        description="Individual readiness checks",
    )


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    request_id: str | None = Field(None, description="Request ID if available")
    details: dict[str, Any] | None = Field(None, description="Additional error details")
