"""
Core data models for rule and policy execution.

Defines Rule and Policy (the immutable descriptors a caller assembles) and
RuleExecutionResult / PolicyExecutionResult (the records the engine returns).
"""

import uuid
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from rules_engine.cancellation import CancellationToken

RulePredicate = Callable[[Any, CancellationToken], Awaitable[bool]]
FailureMessageFactory = Callable[[Any], str]


class RuleOutcome(str, Enum):
    """
    Terminal states of a single rule evaluation.

    PASSED - predicate returned True
    FAILED - predicate returned False
    FAULTED - predicate raised
    """

    PASSED = "PASSED"
    FAILED = "FAILED"
    FAULTED = "FAULTED"


class Rule(BaseModel):
    """
    A single named predicate evaluated as part of a policy.

    The source coroutine receives the request and the execution's
    CancellationToken. failure_message is only called when the source
    returns False.
    """

    id: str = Field(..., min_length=1, description="Rule identifier, unique within its policy")
    name: str = Field(..., description="Human-readable rule name")
    description: Optional[str] = Field(None, description="What the rule checks")
    failure_message: Optional[FailureMessageFactory] = Field(
        None,
        description="Builds a failure message from the request when the rule fails",
    )
    source: RulePredicate = Field(..., description="Async predicate over the request")

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class Policy(BaseModel):
    """
    A named, ordered collection of rules.

    Rule order is evaluation order and result order.
    """

    id: str = Field(..., min_length=1, description="Policy identifier")
    name: str = Field(..., description="Human-readable policy name")
    description: Optional[str] = Field(None, description="What the policy decides")
    rules: Tuple[Rule, ...] = Field(default_factory=tuple, description="Rules in evaluation order")

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_unique_rule_ids(self) -> "Policy":
        seen = set()
        for rule in self.rules:
            if rule.id in seen:
                raise ValueError(f"Duplicate rule id '{rule.id}' in policy '{self.id}'")
            seen.add(rule.id)
        return self

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        """Return the rule with the given id, or None."""
        return next((rule for rule in self.rules if rule.id == rule_id), None)


class RuleExecutionResult(BaseModel):
    """
    Outcome of evaluating one rule against one request.

    Built by RuleExecutionResultBuilder; never constructed by the engine
    directly.
    """

    id: str = Field(..., description="Rule id")
    name: str = Field(..., description="Rule name")
    description: Optional[str] = Field(None, description="Rule description at execution time")
    passed: bool = Field(..., description="Whether the rule passed")
    elapsed: timedelta = Field(..., description="Time taken to evaluate the rule")
    message: Optional[str] = Field(None, description="Failure message or exception text")
    exception: Optional[BaseException] = Field(
        None,
        exclude=True,
        description="Exception raised by the predicate, if any",
    )

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @computed_field
    @property
    def exception_type(self) -> Optional[str]:
        return type(self.exception).__name__ if self.exception is not None else None

    @property
    def outcome(self) -> RuleOutcome:
        if self.exception is not None:
            return RuleOutcome.FAULTED
        return RuleOutcome.PASSED if self.passed else RuleOutcome.FAILED


class PolicyExecutionResult(BaseModel):
    """
    Aggregate result of executing every rule of a policy against one request.
    """

    rule_context_id: uuid.UUID = Field(..., description="Execution context id supplied by the caller")
    correlation_id: str = Field(..., description="Caller correlation id for cross-system tracing")
    policy_id: str = Field(..., description="Id of the executed policy")
    policy_name: str = Field(..., description="Name of the executed policy")
    version: str = Field(..., description="Engine version (major.minor.build.revision)")
    rule_execution_results: Tuple[RuleExecutionResult, ...] = Field(
        default_factory=tuple,
        description="Per-rule results in policy order",
    )
    passed: bool = Field(..., description="True when every rule passed (vacuously true for no rules)")

    model_config = ConfigDict(frozen=True)

    @property
    def failed_rules(self) -> Tuple[RuleExecutionResult, ...]:
        return tuple(result for result in self.rule_execution_results if not result.passed)
