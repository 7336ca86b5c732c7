"""
Prometheus telemetry for policy and rule execution timings.

Each timing is observed into a Summary, so the collector exposes a count
and a sum per policy and per policy/rule pair from which the mean
execution time is derived.
"""

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Summary

from rules_engine.interfaces import RulesTelemetry


class PrometheusTelemetry(RulesTelemetry):
    """RulesTelemetry backed by prometheus_client summaries."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        enabled: bool = True,
        namespace: str = "flowrules",
    ):
        """
        Args:
            registry: Registry to register metrics with (default: global REGISTRY)
            enabled: When False, record_* calls are ignored
            namespace: Metric name prefix
        """
        self.registry = registry if registry is not None else REGISTRY
        self._enabled = enabled

        self.policy_execution = Summary(
            "policy_execution_duration_milliseconds",
            "Policy execution time in milliseconds",
            ["policy_id"],
            namespace=namespace,
            registry=self.registry,
        )
        self.rule_execution = Summary(
            "rule_execution_duration_milliseconds",
            "Rule execution time in milliseconds",
            ["policy_id", "rule_id"],
            namespace=namespace,
            registry=self.registry,
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_policy_execution(self, policy_id: str, duration_ms: float) -> None:
        if not self._enabled:
            return
        self.policy_execution.labels(policy_id=policy_id).observe(duration_ms)

    def record_rule_execution(self, policy_id: str, rule_id: str, duration_ms: float) -> None:
        if not self._enabled:
            return
        self.rule_execution.labels(policy_id=policy_id, rule_id=rule_id).observe(duration_ms)
