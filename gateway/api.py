"""
FastAPI routes for the Gateway API.
"""

import uuid
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app
from pydantic import ValidationError

from common.logging import bind_request_context, clear_request_context, get_logger
from gateway.models import ErrorResponse, ExecutePolicyRequest, PolicySummary, RuleSummary
from rules_engine.cancellation import CancellationToken
from rules_engine.exceptions import PolicyNotFoundError, RuleNotFoundError
from rules_engine.interfaces import PolicyResultsRepository, RulesTelemetry
from rules_engine.manager import PolicyManager
from rules_engine.registry import PolicyRegistry
from rules_engine.telemetry import PrometheusTelemetry

logger = get_logger(__name__)


def _error(status_code: int, error: str, error_code: str, **details) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail=ErrorResponse(
            error=error,
            error_code=error_code,
            details=details or None,
        ).model_dump(),
    )


def create_app(
    registry: PolicyRegistry,
    results_repository: PolicyResultsRepository,
    telemetry: Optional[RulesTelemetry] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        registry: PolicyRegistry with the policies to serve
        results_repository: Repository every PolicyManager persists to
        telemetry: Sink for execution timings (optional)
        enable_cors: Whether to enable CORS middleware

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="FlowRules Gateway",
        description="HTTP host for rule/policy execution",
        version="0.1.0",
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if isinstance(telemetry, PrometheusTelemetry) and telemetry.enabled:
        app.mount("/metrics", make_asgi_app(registry=telemetry.registry))

    managers: Dict[str, PolicyManager] = {}

    def get_manager(policy_id: str) -> PolicyManager:
        if policy_id not in managers:
            policy = registry.require_policy(policy_id)
            managers[policy_id] = PolicyManager(
                policy,
                results_repository,
                logger=get_logger("rules_engine.manager"),
                telemetry=telemetry,
            )
        return managers[policy_id]

    def parse_request(policy_id: str, body: ExecutePolicyRequest) -> Any:
        request_model = registry.get_request_model(policy_id)
        if request_model is None:
            return body.request
        try:
            return request_model.model_validate(body.request)
        except ValidationError as e:
            logger.warning(
                "api_request_validation_error",
                policy_id=policy_id,
                error_count=e.error_count(),
            )
            raise _error(
                422,
                f"Request does not match {request_model.__name__}",
                "INVALID_REQUEST",
                errors=e.errors(include_url=False, include_context=False, include_input=False),
            )

    def token_for(body: ExecutePolicyRequest) -> CancellationToken:
        if body.timeout_ms is None:
            return CancellationToken.none()
        return CancellationToken.with_timeout(body.timeout_ms / 1000)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/api/policies", response_model=list[PolicySummary])
    async def list_policies():
        """List registered policies and their rules."""
        return [
            PolicySummary(
                id=policy.id,
                name=policy.name,
                description=policy.description,
                rules=[
                    RuleSummary(id=rule.id, name=rule.name, description=rule.description)
                    for rule in policy.rules
                ],
            )
            for policy in registry.get_all_policies().values()
        ]

    @app.post("/api/policies/{policy_id}/execute")
    async def execute_policy(policy_id: str, body: ExecutePolicyRequest):
        """Execute every rule of a policy against the request payload."""
        correlation_id = body.correlation_id or str(uuid.uuid4())
        execution_context_id = uuid.uuid4()

        bind_request_context(correlation_id, policy_id=policy_id)

        try:
            try:
                manager = get_manager(policy_id)
            except PolicyNotFoundError as e:
                raise _error(404, str(e), "POLICY_NOT_FOUND", policy_id=policy_id)

            request = parse_request(policy_id, body)
            result = await manager.execute_policy(
                correlation_id,
                execution_context_id,
                request,
                token_for(body),
            )
            return result.model_dump(mode="json")
        finally:
            clear_request_context()

    @app.post("/api/policies/{policy_id}/rules/{rule_id}/execute")
    async def execute_rule(policy_id: str, rule_id: str, body: ExecutePolicyRequest):
        """Execute a single rule of a policy against the request payload."""
        correlation_id = body.correlation_id or str(uuid.uuid4())
        execution_context_id = uuid.uuid4()

        bind_request_context(correlation_id, policy_id=policy_id)

        try:
            try:
                manager = get_manager(policy_id)
            except PolicyNotFoundError as e:
                raise _error(404, str(e), "POLICY_NOT_FOUND", policy_id=policy_id)

            request = parse_request(policy_id, body)
            try:
                result = await manager.execute_rule(
                    rule_id,
                    correlation_id,
                    execution_context_id,
                    request,
                    token_for(body),
                )
            except RuleNotFoundError as e:
                logger.warning("api_rule_not_found", policy_id=policy_id, rule_id=rule_id)
                raise _error(404, str(e), "RULE_NOT_FOUND", policy_id=policy_id, rule_id=rule_id)

            return {
                "rule_context_id": str(execution_context_id),
                "correlation_id": correlation_id,
                "policy_id": policy_id,
                "result": result.model_dump(mode="json"),
            }
        finally:
            clear_request_context()

    return app
