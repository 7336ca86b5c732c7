"""
Policy Manager - executes a policy's rules against a request.

Rules are awaited one after another in policy order. A rule whose predicate
raises is recorded as failed and never affects its siblings. Finished policy
results are handed to a results repository on a best-effort basis.
"""

import time
import uuid
from datetime import timedelta
from typing import Any, List, NamedTuple, Optional

from common.logging import get_logger
from rules_engine.cancellation import CancellationToken
from rules_engine.exceptions import RuleNotFoundError
from rules_engine.interfaces import PolicyResultsRepository, RulesTelemetry
from rules_engine.models import (
    Policy,
    PolicyExecutionResult,
    Rule,
    RuleExecutionResult,
    RuleOutcome,
)
from rules_engine.result_builder import RuleExecutionResultBuilder
from rules_engine.version import get_engine_version


class PredicateOutcome(NamedTuple):
    """Classified result of evaluating one rule, failure message included."""

    outcome: RuleOutcome
    message: Optional[str] = None
    fault: Optional[Exception] = None


class PolicyManager:
    """
    Execution engine for a single policy.

    The policy is read-only, so one manager may serve concurrent executions
    provided the repository and telemetry collaborators are safe for
    concurrent use.
    """

    def __init__(
        self,
        policy: Policy,
        results_repository: PolicyResultsRepository,
        logger=None,
        telemetry: Optional[RulesTelemetry] = None,
    ):
        """
        Initialize the policy manager.

        Args:
            policy: Policy whose rules are executed
            results_repository: Sink for finished policy results
            logger: structlog logger (default: module logger)
            telemetry: Sink for execution timings (optional)
        """
        self._policy = policy
        self._results_repository = results_repository
        self._logger = logger if logger is not None else get_logger(__name__)
        self._telemetry = telemetry
        self._version = get_engine_version()

    @property
    def policy(self) -> Policy:
        return self._policy

    async def execute_policy(
        self,
        correlation_id: str,
        execution_context_id: uuid.UUID,
        request: Any,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> PolicyExecutionResult:
        """
        Execute every rule of the policy against request.

        All rules run regardless of earlier failures, faults or cancellation.
        Persistence faults are logged and do not affect the returned result.

        Args:
            correlation_id: Caller correlation id
            execution_context_id: Unique id for this execution
            request: Value the rules are evaluated against
            cancellation_token: Passed to every predicate (default: never cancelled)

        Returns:
            PolicyExecutionResult with one RuleExecutionResult per rule
        """
        token = cancellation_token if cancellation_token is not None else CancellationToken.none()

        self._logger.info(
            "policy_execution_started",
            policy_id=self._policy.id,
            policy_name=self._policy.name,
            execution_context_id=str(execution_context_id),
            correlation_id=correlation_id,
        )

        start_time = time.perf_counter()

        rule_results: List[RuleExecutionResult] = []
        for rule in self._policy.rules:
            rule_results.append(
                await self._execute_rule(rule, execution_context_id, request, token)
            )

        policy_result = PolicyExecutionResult(
            rule_context_id=execution_context_id,
            correlation_id=correlation_id,
            policy_id=self._policy.id,
            policy_name=self._policy.name,
            version=self._version,
            rule_execution_results=tuple(rule_results),
            passed=all(result.passed for result in rule_results),
        )

        elapsed_ms = (time.perf_counter() - start_time) * 1000

        await self._try_persist_results(request, policy_result)

        if self._telemetry is not None and self._telemetry.enabled:
            self._telemetry.record_policy_execution(self._policy.id, elapsed_ms)

        self._logger.info(
            "policy_execution_complete",
            policy_id=self._policy.id,
            execution_context_id=str(execution_context_id),
            passed=policy_result.passed,
            failed_rules=[result.id for result in policy_result.failed_rules],
            execution_time_ms=elapsed_ms,
        )

        return policy_result

    async def execute_rule(
        self,
        rule_id: str,
        correlation_id: str,
        execution_context_id: uuid.UUID,
        request: Any,
        cancellation_token: Optional[CancellationToken] = None,
    ) -> RuleExecutionResult:
        """
        Execute a single rule of the policy against request.

        No aggregation, persistence or policy-level telemetry takes place.

        Raises:
            RuleNotFoundError: If the policy has no rule with rule_id
        """
        self._logger.info(
            "single_rule_execution_requested",
            policy_id=self._policy.id,
            rule_id=rule_id,
            execution_context_id=str(execution_context_id),
            correlation_id=correlation_id,
        )

        rule = self._policy.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id, self._policy.id)

        token = cancellation_token if cancellation_token is not None else CancellationToken.none()
        return await self._execute_rule(rule, execution_context_id, request, token)

    async def _try_persist_results(self, request: Any, policy_result: PolicyExecutionResult) -> bool:
        """
        Hand the result to the repository.

        Returns:
            True if the repository accepted the result, False if it raised
        """
        try:
            await self._results_repository.persist_results(request, policy_result)
        except Exception as e:
            self._logger.error(
                "policy_results_persist_failed",
                repository=type(self._results_repository).__name__,
                rule_context_id=str(policy_result.rule_context_id),
                policy_id=policy_result.policy_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        return True

    async def _evaluate_predicate(
        self, rule: Rule, request: Any, token: CancellationToken
    ) -> PredicateOutcome:
        """
        Await the rule's predicate and classify how it completed.

        The failure message is built inside the same guard, so a raising
        message generator faults the rule instead of the execution.
        """
        try:
            if await rule.source(request, token):
                return PredicateOutcome(RuleOutcome.PASSED)
            message = rule.failure_message(request) if rule.failure_message is not None else None
        except Exception as e:
            return PredicateOutcome(RuleOutcome.FAULTED, fault=e)
        return PredicateOutcome(RuleOutcome.FAILED, message)

    async def _execute_rule(
        self,
        rule: Rule,
        execution_context_id: uuid.UUID,
        request: Any,
        token: CancellationToken,
    ) -> RuleExecutionResult:
        self._logger.info(
            "rule_execution_started",
            policy_id=self._policy.id,
            rule_id=rule.id,
            rule_name=rule.name,
            execution_context_id=str(execution_context_id),
        )

        builder = RuleExecutionResultBuilder(rule.id, rule.name, rule.description)

        start_time = time.perf_counter()
        predicate = await self._evaluate_predicate(rule, request, token)
        elapsed = time.perf_counter() - start_time

        if predicate.outcome == RuleOutcome.PASSED:
            builder.with_success()
        elif predicate.outcome == RuleOutcome.FAILED:
            builder.with_failure(predicate.message)
        else:
            builder.with_exception(predicate.fault)
            self._logger.error(
                "rule_execution_failed",
                policy_id=self._policy.id,
                rule_id=rule.id,
                rule_name=rule.name,
                execution_context_id=str(execution_context_id),
                error=str(predicate.fault),
                error_type=type(predicate.fault).__name__,
            )

        builder.with_time(timedelta(seconds=elapsed))

        if self._telemetry is not None and self._telemetry.enabled:
            self._telemetry.record_rule_execution(self._policy.id, rule.id, elapsed * 1000)

        return builder.to_rule_execution_result()
