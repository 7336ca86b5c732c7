"""
Incremental construction of RuleExecutionResult.
"""

from datetime import timedelta
from typing import Optional

from rules_engine.exceptions import ResultBuilderError
from rules_engine.models import RuleExecutionResult, RuleOutcome


class RuleExecutionResultBuilder:
    """
    Accumulates the outcome of one rule evaluation before freezing it.

    Exactly one of with_success / with_failure / with_exception may be
    called, and with_time must be called before to_rule_execution_result.
    The builder can be finalized only once.
    """

    def __init__(self, rule_id: str, name: str, description: Optional[str] = None):
        self._id = rule_id
        self._name = name
        self._description = description
        self._outcome: Optional[RuleOutcome] = None
        self._message: Optional[str] = None
        self._exception: Optional[BaseException] = None
        self._elapsed: Optional[timedelta] = None
        self._finalized = False

    def _set_outcome(self, outcome: RuleOutcome) -> None:
        if self._outcome is not None:
            raise ResultBuilderError(
                f"Rule '{self._id}' already has outcome {self._outcome.value}, cannot set {outcome.value}"
            )
        self._outcome = outcome

    def with_success(self) -> "RuleExecutionResultBuilder":
        self._set_outcome(RuleOutcome.PASSED)
        return self

    def with_failure(self, message: Optional[str] = None) -> "RuleExecutionResultBuilder":
        self._set_outcome(RuleOutcome.FAILED)
        self._message = message
        return self

    def with_exception(self, exception: BaseException) -> "RuleExecutionResultBuilder":
        """Record a predicate fault; the message becomes the exception text."""
        self._set_outcome(RuleOutcome.FAULTED)
        self._exception = exception
        self._message = str(exception)
        return self

    def with_time(self, elapsed: timedelta) -> "RuleExecutionResultBuilder":
        self._elapsed = elapsed
        return self

    def to_rule_execution_result(self) -> RuleExecutionResult:
        """
        Freeze the accumulated state.

        Raises:
            ResultBuilderError: If no outcome or elapsed time was recorded,
                                or the builder was already finalized
        """
        if self._finalized:
            raise ResultBuilderError(f"Result for rule '{self._id}' was already built")
        if self._outcome is None:
            raise ResultBuilderError(f"No outcome recorded for rule '{self._id}'")
        if self._elapsed is None:
            raise ResultBuilderError(f"No elapsed time recorded for rule '{self._id}'")

        self._finalized = True
        return RuleExecutionResult(
            id=self._id,
            name=self._name,
            description=self._description,
            passed=self._outcome == RuleOutcome.PASSED,
            elapsed=self._elapsed,
            message=self._message,
            exception=self._exception,
        )
