"""
Custom exceptions for the rules engine.
"""


class RulesEngineError(Exception):
    """Base exception for all rules engine errors."""
    pass


class RuleNotFoundError(RulesEngineError):
    """Requested rule id does not exist in the policy."""

    def __init__(self, rule_id: str, policy_id: str):
        super().__init__(f"No rule with id [{rule_id}] was found in policy [{policy_id}].")
        self.rule_id = rule_id
        self.policy_id = policy_id


class PolicyNotFoundError(RulesEngineError):
    """Requested policy id is not registered."""

    def __init__(self, policy_id: str):
        super().__init__(f"Policy '{policy_id}' is not registered")
        self.policy_id = policy_id


class ResultBuilderError(RulesEngineError):
    """A rule execution result was assembled incorrectly."""
    pass


class OperationCancelledError(RulesEngineError):
    """A cancellation token was observed inside a rule predicate."""
    pass


class LookupCoercionError(ValueError):
    """A stored lookup value cannot be converted to the requested kind."""
    pass
