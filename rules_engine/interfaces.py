"""
Collaborator contracts consumed by the policy manager.

PolicyResultsRepository receives finished policy results; RulesTelemetry
receives execution timings. Implementations shared between concurrent
executions must be safe for concurrent use.
"""

from abc import ABC, abstractmethod
from typing import Any

from rules_engine.models import PolicyExecutionResult


class PolicyResultsRepository(ABC):
    """
    Abstract sink for policy execution results.

    The engine treats any exception raised by persist_results as
    non-fatal: it is logged and the result is still returned to the caller.
    """

    @abstractmethod
    async def persist_results(self, request: Any, result: PolicyExecutionResult) -> None:
        """
        Persist the result of one policy execution.

        Args:
            request: The request the policy was executed against
            result: The aggregate execution result
        """
        pass


class DefaultPolicyResultsRepository(PolicyResultsRepository):
    """Repository that discards results."""

    async def persist_results(self, request: Any, result: PolicyExecutionResult) -> None:
        return None


class RulesTelemetry(ABC):
    """
    Abstract sink for execution timings.

    Timings are meant for periodic aggregation (count, sum, mean) by a
    metrics collector rather than per-event inspection.
    """

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    def record_policy_execution(self, policy_id: str, duration_ms: float) -> None:
        pass

    @abstractmethod
    def record_rule_execution(self, policy_id: str, rule_id: str, duration_ms: float) -> None:
        pass
