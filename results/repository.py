"""Repository for policy execution results - raw SQL data access layer."""

import asyncio
import json
from typing import Any, List

from pydantic import BaseModel

from common.logging import get_logger
from results.db import ResultsDB
from results.models import StoredPolicyExecution
from rules_engine.interfaces import PolicyResultsRepository
from rules_engine.models import PolicyExecutionResult

logger = get_logger(__name__)

_SELECT_COLUMNS = """
    SELECT
        id,
        rule_context_id,
        correlation_id,
        policy_id,
        policy_name,
        version,
        passed,
        request,
        rule_results,
        created_at
    FROM policy_execution_results
"""


def serialize_request(request: Any) -> Any:
    """Convert a request into a JSON-compatible value."""
    if isinstance(request, BaseModel):
        return request.model_dump(mode="json")
    return request


class PostgresPolicyResultsRepository(PolicyResultsRepository):
    """Stores one row per policy execution in PostgreSQL."""

    def __init__(self, db: ResultsDB):
        """
        Initialize results repository.

        Args:
            db: ResultsDB instance for database connections
        """
        self._db = db

    async def persist_results(self, request: Any, result: PolicyExecutionResult) -> None:
        """Insert the result from a worker thread so the event loop is not blocked."""
        await asyncio.to_thread(self.insert_result, request, result)

    def insert_result(self, request: Any, result: PolicyExecutionResult) -> None:
        """
        Insert a policy execution result into the database.

        Raises:
            Exception: Any database error, after logging it
        """
        payload = result.model_dump(mode="json")
        try:
            with self._db.cursor() as cursor:
                cursor.execute(
                    """
                    INSERT INTO policy_execution_results
                        (rule_context_id, correlation_id, policy_id, policy_name,
                         version, passed, request, rule_results, created_at)
                    VALUES
                        (%s, %s, %s, %s, %s, %s, %s::jsonb, %s::jsonb, NOW())
                    """,
                    (
                        str(result.rule_context_id),
                        result.correlation_id,
                        result.policy_id,
                        result.policy_name,
                        result.version,
                        result.passed,
                        json.dumps(serialize_request(request), default=str),
                        json.dumps(payload["rule_execution_results"]),
                    ),
                )
        except Exception as e:
            logger.error(
                "policy_result_insert_failed",
                rule_context_id=str(result.rule_context_id),
                policy_id=result.policy_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    def get_results_by_context_id(self, rule_context_id: str) -> List[StoredPolicyExecution]:
        """
        Get all stored results for an execution context id.

        Args:
            rule_context_id: Execution context identifier

        Returns:
            List of StoredPolicyExecution models
        """
        try:
            with self._db.cursor(dict_rows=True) as cursor:
                cursor.execute(
                    _SELECT_COLUMNS + " WHERE rule_context_id = %s ORDER BY created_at ASC",
                    (str(rule_context_id),),
                )
                rows = cursor.fetchall()
                return [StoredPolicyExecution(**row) for row in rows]
        except Exception as e:
            logger.error(
                "policy_results_query_failed",
                rule_context_id=str(rule_context_id),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

    def get_results_by_correlation_id(self, correlation_id: str) -> List[StoredPolicyExecution]:
        """
        Get all stored results for a correlation id.

        Args:
            correlation_id: Caller correlation identifier

        Returns:
            List of StoredPolicyExecution models
        """
        try:
            with self._db.cursor(dict_rows=True) as cursor:
                cursor.execute(
                    _SELECT_COLUMNS + " WHERE correlation_id = %s ORDER BY created_at ASC",
                    (correlation_id,),
                )
                rows = cursor.fetchall()
                return [StoredPolicyExecution(**row) for row in rows]
        except Exception as e:
            logger.error(
                "policy_results_query_failed",
                correlation_id=correlation_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
