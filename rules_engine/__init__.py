"""
Rules Engine module - Rule/policy execution and nested lookup tables
"""

from rules_engine.builder import PolicyBuilder
from rules_engine.cancellation import CancellationToken
from rules_engine.config_loader import (
    EngineSettings,
    LookupEntry,
    build_lookup,
    load_engine_settings,
    load_lookup_config,
    load_lookup_entries,
)
from rules_engine.exceptions import (
    LookupCoercionError,
    OperationCancelledError,
    PolicyNotFoundError,
    ResultBuilderError,
    RuleNotFoundError,
    RulesEngineError,
)
from rules_engine.interfaces import (
    DefaultPolicyResultsRepository,
    PolicyResultsRepository,
    RulesTelemetry,
)
from rules_engine.lookup import LookupValue, LookupValueKind, NestedLookup
from rules_engine.manager import PolicyManager
from rules_engine.models import (
    Policy,
    PolicyExecutionResult,
    Rule,
    RuleExecutionResult,
    RuleOutcome,
)
from rules_engine.registry import PolicyRegistry
from rules_engine.result_builder import RuleExecutionResultBuilder

__all__ = [
    "Rule",
    "Policy",
    "RuleOutcome",
    "RuleExecutionResult",
    "PolicyExecutionResult",
    "RuleExecutionResultBuilder",
    "PolicyBuilder",
    "PolicyRegistry",
    "PolicyManager",
    "PolicyResultsRepository",
    "DefaultPolicyResultsRepository",
    "RulesTelemetry",
    "CancellationToken",
    "NestedLookup",
    "LookupValue",
    "LookupValueKind",
    "LookupEntry",
    "EngineSettings",
    "build_lookup",
    "load_lookup_config",
    "load_lookup_entries",
    "load_engine_settings",
    "RulesEngineError",
    "RuleNotFoundError",
    "PolicyNotFoundError",
    "ResultBuilderError",
    "OperationCancelledError",
    "LookupCoercionError",
]
