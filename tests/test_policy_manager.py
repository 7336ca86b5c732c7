"""
Tests for PolicyManager.
"""

import asyncio
import re
import time
import uuid
from datetime import date, timedelta
from typing import List, Tuple
from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel
from structlog.testing import capture_logs

from rules_engine.builder import PolicyBuilder
from rules_engine.cancellation import CancellationToken
from rules_engine.exceptions import OperationCancelledError, RuleNotFoundError
from rules_engine.interfaces import (
    DefaultPolicyResultsRepository,
    PolicyResultsRepository,
    RulesTelemetry,
)
from rules_engine.manager import PolicyManager
from rules_engine.models import Policy, PolicyExecutionResult, RuleOutcome


class PersonDataModel(BaseModel):
    name: str
    date_of_birth: date


class RecordingRepository(PolicyResultsRepository):
    """Keeps every persisted result in memory."""

    def __init__(self):
        self.persisted: List[Tuple[object, PolicyExecutionResult]] = []

    async def persist_results(self, request, result):
        self.persisted.append((request, result))


class RecordingTelemetry(RulesTelemetry):
    """Keeps every recorded timing in memory."""

    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self.policy_calls = []
        self.rule_calls = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    def record_policy_execution(self, policy_id, duration_ms):
        self.policy_calls.append((policy_id, duration_ms))

    def record_rule_execution(self, policy_id, rule_id, duration_ms):
        self.rule_calls.append((policy_id, rule_id, duration_ms))


PERSON = PersonDataModel(name="Test User", date_of_birth=date(2000, 1, 1))


async def always_true(model, token):
    return True


async def always_false(model, token):
    return False


async def execute(policy: Policy, request=PERSON, token=None, repository=None, telemetry=None):
    manager = PolicyManager(
        policy,
        repository if repository is not None else DefaultPolicyResultsRepository(),
        telemetry=telemetry,
    )
    return await manager.execute_policy(str(uuid.uuid4()), uuid.uuid4(), request, token)


class TestExecutePolicy:
    """Test whole-policy execution."""

    @pytest.mark.asyncio
    async def test_single_passing_rule(self):
        """Test the result of a policy with one passing rule."""
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test policy")
            .with_description("policy description")
            .with_rule("R001", "test rule", always_true, description="test description")
            .build()
        )

        correlation_id = str(uuid.uuid4())
        context_id = uuid.uuid4()
        manager = PolicyManager(policy, DefaultPolicyResultsRepository())
        response = await manager.execute_policy(correlation_id, context_id, PERSON)

        assert response.passed is True
        assert response.correlation_id == correlation_id
        assert response.rule_context_id == context_id
        assert response.policy_id == "P001"
        assert response.policy_name == "test policy"
        assert re.fullmatch(r"\d+\.\d+\.\d+\.\d+", response.version)

        assert len(response.rule_execution_results) == 1
        result = response.rule_execution_results[0]
        assert result.passed is True
        assert result.id == "R001"
        assert result.name == "test rule"
        assert result.description == "test description"
        assert result.exception is None
        assert result.message is None
        assert result.elapsed >= timedelta(0)

    @pytest.mark.asyncio
    async def test_empty_policy_passes(self):
        """Test that a policy without rules passes vacuously."""
        policy = PolicyBuilder().with_id("P001").with_name("empty").build()

        response = await execute(policy)

        assert response.passed is True
        assert response.rule_execution_results == ()

    @pytest.mark.asyncio
    async def test_results_follow_declaration_order(self):
        """Test that results mirror rule order and passed is the AND of all rules."""
        builder = PolicyBuilder().with_id("P001").with_name("ordered")
        outcomes = [True, True, False, True, False]
        for i, outcome in enumerate(outcomes):
            builder.with_rule(f"R{i:03d}", f"rule{i}", always_true if outcome else always_false)
        policy = builder.build()

        response = await execute(policy)

        assert [r.id for r in response.rule_execution_results] == [f"R{i:03d}" for i in range(5)]
        assert [r.passed for r in response.rule_execution_results] == outcomes
        assert response.passed is False
        assert [r.id for r in response.failed_rules] == ["R002", "R004"]

    @pytest.mark.asyncio
    async def test_calls_all_rules(self):
        """Test that every rule is evaluated."""
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test policy")
            .with_rule("R001", "rule1", always_true)
            .with_rule("R002", "rule2", always_true)
            .build()
        )

        response = await execute(policy, token=CancellationToken.with_timeout(0.1))

        assert len(response.rule_execution_results) == 2
        assert response.passed is True

    @pytest.mark.asyncio
    async def test_rules_run_sequentially(self):
        """Test that a rule starts only after the previous one completed."""
        events = []

        def make_rule(name, delay):
            async def rule(model, token):
                events.append(f"{name}:start")
                await asyncio.sleep(delay)
                events.append(f"{name}:end")
                return True
            return rule

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("sequential")
            .with_rule("R001", "slow", make_rule("R001", 0.02))
            .with_rule("R002", "fast", make_rule("R002", 0))
            .build()
        )

        await execute(policy)

        assert events == ["R001:start", "R001:end", "R002:start", "R002:end"]

    @pytest.mark.asyncio
    async def test_failure_message_is_formatted(self):
        """Test that a failing rule uses its failure message generator."""
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "test", always_false, failure_message=lambda m: f"Failed for {m.name}")
            .build()
        )

        response = await execute(policy)

        result = response.rule_execution_results[0]
        assert result.passed is False
        assert result.message == "Failed for Test User"
        assert result.exception is None

    @pytest.mark.asyncio
    async def test_failure_without_message_generator(self):
        """Test that a failing rule without a generator has no message."""
        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "test", always_false).build()

        response = await execute(policy)

        assert response.rule_execution_results[0].message is None

    @pytest.mark.asyncio
    async def test_failure_message_not_called_on_success(self):
        """Test that the failure message generator is only called on failure."""
        calls = []

        def message(model):
            calls.append(model)
            return "unused"

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "test", always_true, failure_message=message)
            .build()
        )

        response = await execute(policy)

        assert response.rule_execution_results[0].message is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_pass_and_fail_scenario(self):
        """Test a policy with one passing and one failing rule."""
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "passes", always_true)
            .with_rule("R002", "fails", always_false, failure_message=lambda m: f"Failed for {m.name}")
            .build()
        )

        response = await execute(policy)

        assert response.passed is False
        assert len(response.rule_execution_results) == 2
        assert response.rule_execution_results[0].passed is True
        assert response.rule_execution_results[1].message == "Failed for Test User"


class TestRuleFaultIsolation:
    """Test that faulting predicates are contained."""

    @pytest.mark.asyncio
    async def test_exception_in_rule(self):
        """Test that a raising predicate becomes a failed result."""
        async def broken(model, token):
            raise RuntimeError("predicate exploded")

        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "test", broken).build()

        response = await execute(policy)

        assert len(response.rule_execution_results) == 1
        result = response.rule_execution_results[0]
        assert result.passed is False
        assert isinstance(result.exception, RuntimeError)
        assert result.message == "predicate exploded"
        assert result.outcome == RuleOutcome.FAULTED

    @pytest.mark.asyncio
    async def test_exception_does_not_stop_later_rules(self):
        """Test that rules after a faulting rule still run."""
        async def broken(model, token):
            raise KeyError("missing")

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "broken", broken)
            .with_rule("R002", "fine", always_true)
            .build()
        )

        response = await execute(policy)

        assert [r.passed for r in response.rule_execution_results] == [False, True]
        assert response.passed is False

    @pytest.mark.asyncio
    async def test_exception_takes_precedence_over_failure_message(self):
        """Test that the exception text replaces the custom failure message."""
        async def broken(model, token):
            raise ValueError("bad input")

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "broken", broken, failure_message=lambda m: "custom")
            .build()
        )

        response = await execute(policy)

        assert response.rule_execution_results[0].message == "bad input"

    @pytest.mark.asyncio
    async def test_exception_is_logged(self):
        """Test that predicate faults are logged at error level."""
        async def broken(model, token):
            raise RuntimeError("boom")

        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "test", broken).build()

        with capture_logs() as logs:
            await execute(policy)

        errors = [log for log in logs if log["log_level"] == "error"]
        assert len(errors) == 1
        assert errors[0]["event"] == "rule_execution_failed"
        assert errors[0]["rule_id"] == "R001"
        assert errors[0]["error_type"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_raising_failure_message_faults_rule(self):
        """Test that a failing message generator faults only its own rule."""
        ran = []

        def broken_message(model):
            raise KeyError("missing")

        async def recording(model, token):
            ran.append(True)
            return True

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "failing", always_false, failure_message=broken_message)
            .with_rule("R002", "recording", recording)
            .build()
        )
        repository = RecordingRepository()

        response = await execute(policy, repository=repository)

        assert response.passed is False
        first, second = response.rule_execution_results
        assert first.passed is False
        assert first.outcome == RuleOutcome.FAULTED
        assert isinstance(first.exception, KeyError)
        assert first.message == "'missing'"
        assert second.passed is True
        assert ran == [True]
        assert len(repository.persisted) == 1

    @pytest.mark.asyncio
    async def test_raising_failure_message_in_single_rule(self):
        """Test that execute_rule contains a failing message generator."""
        def broken_message(model):
            raise ValueError("cannot format")

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "failing", always_false, failure_message=broken_message)
            .build()
        )
        manager = PolicyManager(policy, DefaultPolicyResultsRepository())

        result = await manager.execute_rule("R001", "corr", uuid.uuid4(), PERSON)

        assert result.passed is False
        assert result.exception_type == "ValueError"
        assert result.message == "cannot format"

    @pytest.mark.asyncio
    async def test_elapsed_includes_failure_message(self):
        """Test that rule timing covers building the failure message."""
        def slow_message(model):
            time.sleep(0.05)
            return "slow"

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "failing", always_false, failure_message=slow_message)
            .build()
        )

        response = await execute(policy)

        result = response.rule_execution_results[0]
        assert result.message == "slow"
        assert result.elapsed >= timedelta(milliseconds=40)


class TestCancellation:
    """Test cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_cancellation_faults_only_observing_rule(self):
        """Test that an expired token faults the rule that observes it and later rules still run."""
        async def slow(model, token):
            await token.sleep(0.5)
            return True

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test policy")
            .with_rule("R001", "slow", slow)
            .with_rule("R002", "unconditional", always_true)
            .build()
        )

        response = await execute(policy, token=CancellationToken.with_timeout(0.05))

        assert len(response.rule_execution_results) == 2
        slow_result, unconditional = response.rule_execution_results
        assert slow_result.passed is False
        assert isinstance(slow_result.exception, OperationCancelledError)
        assert unconditional.passed is True
        assert response.passed is False

    @pytest.mark.asyncio
    async def test_already_cancelled_token_does_not_skip_rules(self):
        """Test that the engine itself never checks the token."""
        token = CancellationToken()
        token.cancel()

        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "a", always_true)
            .with_rule("R002", "b", always_true)
            .build()
        )

        response = await execute(policy, token=token)

        assert response.passed is True
        assert len(response.rule_execution_results) == 2

    @pytest.mark.asyncio
    async def test_same_token_passed_to_every_rule(self):
        """Test that every predicate receives the caller's token."""
        seen = []

        async def record(model, token):
            seen.append(token)
            return True

        token = CancellationToken()
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "a", record)
            .with_rule("R002", "b", record)
            .build()
        )

        await execute(policy, token=token)

        assert seen == [token, token]


class TestPersistence:
    """Test best-effort persistence of results."""

    @pytest.mark.asyncio
    async def test_results_are_persisted(self):
        """Test that the finished result is handed to the repository."""
        repository = RecordingRepository()
        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "a", always_true).build()

        response = await execute(policy, repository=repository)

        assert len(repository.persisted) == 1
        request, persisted = repository.persisted[0]
        assert request is PERSON
        assert persisted is response

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_raise(self):
        """Test that repository faults never reach the caller."""
        repository = AsyncMock(spec=PolicyResultsRepository)
        repository.persist_results.side_effect = RuntimeError("database unavailable")
        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "a", always_true).build()

        with capture_logs() as logs:
            response = await execute(policy, repository=repository)

        repository.persist_results.assert_awaited_once()
        assert len(response.rule_execution_results) == 1
        assert response.rule_execution_results[0].passed is True
        assert response.passed is True
        assert any(log["event"] == "policy_results_persist_failed" for log in logs)

    @pytest.mark.asyncio
    async def test_try_persist_reports_outcome(self):
        """Test that the persistence step reports success and failure."""
        policy = PolicyBuilder().with_id("P001").with_name("test").build()
        failing = AsyncMock(spec=PolicyResultsRepository)
        failing.persist_results.side_effect = ConnectionError("gone")

        ok_manager = PolicyManager(policy, RecordingRepository())
        failing_manager = PolicyManager(policy, failing)
        result = await ok_manager.execute_policy("corr", uuid.uuid4(), PERSON)

        assert await ok_manager._try_persist_results(PERSON, result) is True
        assert await failing_manager._try_persist_results(PERSON, result) is False


class TestTelemetry:
    """Test timing telemetry."""

    @pytest.mark.asyncio
    async def test_policy_and_rule_timings_recorded(self):
        """Test that one policy timing and one timing per rule are recorded."""
        telemetry = RecordingTelemetry()
        policy = (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test")
            .with_rule("R001", "a", always_true)
            .with_rule("R002", "b", always_false)
            .build()
        )

        await execute(policy, telemetry=telemetry)

        assert [call[0] for call in telemetry.policy_calls] == ["P001"]
        assert [(call[0], call[1]) for call in telemetry.rule_calls] == [("P001", "R001"), ("P001", "R002")]
        assert all(call[2] >= 0 for call in telemetry.rule_calls)

    @pytest.mark.asyncio
    async def test_disabled_telemetry_is_skipped(self):
        """Test that disabled telemetry receives no calls."""
        telemetry = RecordingTelemetry(enabled=False)
        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "a", always_true).build()

        await execute(policy, telemetry=telemetry)

        assert telemetry.policy_calls == []
        assert telemetry.rule_calls == []


class TestExecuteRule:
    """Test single-rule execution."""

    def make_policy(self) -> Policy:
        return (
            PolicyBuilder()
            .with_id("P001")
            .with_name("test policy")
            .with_description("policy description")
            .with_rule("R001", "test rule", always_true)
            .with_rule("R002", "second rule", always_false, failure_message=lambda m: f"Failed for {m.name}")
            .build()
        )

    @pytest.mark.asyncio
    async def test_execute_single_rule(self):
        """Test executing individual rules by id."""
        manager = PolicyManager(self.make_policy(), DefaultPolicyResultsRepository())

        first = await manager.execute_rule("R001", str(uuid.uuid4()), uuid.uuid4(), PERSON)
        assert first.id == "R001"
        assert first.passed is True

        second = await manager.execute_rule("R002", str(uuid.uuid4()), uuid.uuid4(), PERSON)
        assert second.id == "R002"
        assert second.passed is False
        assert second.message == "Failed for Test User"

    @pytest.mark.asyncio
    async def test_missing_rule_raises_error(self):
        """Test that an unknown rule id is a configuration error."""
        repository = RecordingRepository()
        telemetry = RecordingTelemetry()
        manager = PolicyManager(self.make_policy(), repository, telemetry=telemetry)

        with pytest.raises(RuleNotFoundError, match="XXXX"):
            await manager.execute_rule("XXXX", str(uuid.uuid4()), uuid.uuid4(), PERSON)

        assert repository.persisted == []
        assert telemetry.policy_calls == []
        assert telemetry.rule_calls == []

    @pytest.mark.asyncio
    async def test_single_rule_skips_persistence_and_policy_telemetry(self):
        """Test that single-rule execution only records rule telemetry."""
        repository = RecordingRepository()
        telemetry = RecordingTelemetry()
        manager = PolicyManager(self.make_policy(), repository, telemetry=telemetry)

        await manager.execute_rule("R002", "corr", uuid.uuid4(), PERSON)

        assert repository.persisted == []
        assert telemetry.policy_calls == []
        assert [(call[0], call[1]) for call in telemetry.rule_calls] == [("P001", "R002")]

    @pytest.mark.asyncio
    async def test_single_rule_fault_is_contained(self):
        """Test that a faulting rule executed alone still returns a result."""
        async def broken(model, token):
            raise RuntimeError("nope")

        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "broken", broken).build()
        manager = PolicyManager(policy, DefaultPolicyResultsRepository())

        result = await manager.execute_rule("R001", "corr", uuid.uuid4(), PERSON)

        assert result.passed is False
        assert result.message == "nope"


class TestConcurrentExecutions:
    """Test sharing one manager across concurrent executions."""

    @pytest.mark.asyncio
    async def test_concurrent_executions_are_independent(self):
        """Test that concurrent executions against one manager do not interfere."""
        async def is_adult(model, token):
            await asyncio.sleep(0.01)
            return model.date_of_birth <= date(2005, 1, 1)

        policy = PolicyBuilder().with_id("P001").with_name("test").with_rule("R001", "adult", is_adult).build()
        manager = PolicyManager(policy, DefaultPolicyResultsRepository())

        adult = PersonDataModel(name="Adult", date_of_birth=date(1990, 1, 1))
        child = PersonDataModel(name="Child", date_of_birth=date(2015, 1, 1))

        results = await asyncio.gather(
            manager.execute_policy("a", uuid.uuid4(), adult),
            manager.execute_policy("b", uuid.uuid4(), child),
        )

        assert [r.correlation_id for r in results] == ["a", "b"]
        assert [r.passed for r in results] == [True, False]
