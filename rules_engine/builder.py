"""
Fluent construction of Policy objects.
"""

from typing import List, Optional

from rules_engine.models import FailureMessageFactory, Policy, Rule, RulePredicate


class PolicyBuilder:
    """
    Assembles a Policy one rule at a time.

    Usage:
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("LoanPolicy")
            .with_rule("R001", "MinAge", min_age_check)
            .build()
        )
    """

    def __init__(self):
        self._id: Optional[str] = None
        self._name: Optional[str] = None
        self._description: Optional[str] = None
        self._rules: List[Rule] = []

    def with_id(self, policy_id: str) -> "PolicyBuilder":
        self._id = policy_id
        return self

    def with_name(self, name: str) -> "PolicyBuilder":
        self._name = name
        return self

    def with_description(self, description: Optional[str]) -> "PolicyBuilder":
        self._description = description
        return self

    def with_rule(
        self,
        rule_id: str,
        name: str,
        source: RulePredicate,
        description: Optional[str] = None,
        failure_message: Optional[FailureMessageFactory] = None,
    ) -> "PolicyBuilder":
        """Append a rule; rules are evaluated in the order they are added."""
        self._rules.append(
            Rule(
                id=rule_id,
                name=name,
                description=description,
                failure_message=failure_message,
                source=source,
            )
        )
        return self

    def build(self) -> Policy:
        """
        Create the Policy.

        Raises:
            ValueError: If the id or name is missing, or rule ids are not unique
        """
        if not self._id or not self._id.strip():
            raise ValueError("Policy id cannot be empty")
        if not self._name or not self._name.strip():
            raise ValueError("Policy name cannot be empty")

        return Policy(
            id=self._id,
            name=self._name,
            description=self._description,
            rules=tuple(self._rules),
        )
