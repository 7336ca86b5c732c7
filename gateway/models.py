"""
HTTP request and response models for the Gateway API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutePolicyRequest(BaseModel):
    """HTTP request model for policy and rule execution endpoints."""

    correlation_id: Optional[str] = Field(
        None, description="Caller correlation id. Generated when not provided."
    )
    timeout_ms: Optional[int] = Field(
        None, gt=0, description="Cancellation deadline passed to every rule predicate"
    )
    request: Dict[str, Any] = Field(
        ..., description="Payload validated against the policy's request model"
    )


class RuleSummary(BaseModel):
    """A rule as listed by the policies endpoint."""

    id: str
    name: str
    description: Optional[str] = None


class PolicySummary(BaseModel):
    """A registered policy as listed by the policies endpoint."""

    id: str
    name: str
    description: Optional[str] = None
    rules: List[RuleSummary] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code (e.g., 'POLICY_NOT_FOUND', 'RULE_NOT_FOUND')")
    details: Optional[Dict[str, Any]] = Field(
        None, description="Additional error details"
    )

