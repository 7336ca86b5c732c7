"""Pydantic models for stored policy execution results."""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class StoredPolicyExecution(BaseModel):
    """
    A policy execution result as stored/returned from the database.
    """

    id: int = Field(..., description="Database primary key")
    rule_context_id: uuid.UUID = Field(..., description="Execution context id")
    correlation_id: str = Field(..., description="Caller correlation id")
    policy_id: str = Field(..., description="Executed policy id")
    policy_name: str = Field(..., description="Executed policy name")
    version: str = Field(..., description="Engine version that produced the result")
    passed: bool = Field(..., description="Aggregate outcome")
    request: Optional[Any] = Field(None, description="Request the policy ran against (JSONB)")
    rule_results: List[Dict[str, Any]] = Field(..., description="Per-rule results (JSONB)")
    created_at: datetime = Field(..., description="Insert timestamp")
