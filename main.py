"""
Main entry point for the FlowRules Gateway.

Initializes the policy registry, results repository and telemetry, then
starts the FastAPI server.
"""

import os

from dotenv import load_dotenv

load_dotenv()

from common.logging import configure_logging, get_logger
from gateway import create_app
from policies.mortgage import MortgageApplication, get_lookup, get_policy
from results import PostgresPolicyResultsRepository, ResultsDB
from rules_engine import (
    DefaultPolicyResultsRepository,
    EngineSettings,
    PolicyRegistry,
    load_engine_settings,
    load_lookup_config,
)
from rules_engine.telemetry import PrometheusTelemetry

configure_logging(
    log_level=os.getenv("LOG_LEVEL", "INFO"),
    json_output=os.getenv("LOG_FORMAT", "json").lower() == "json",
)
logger = get_logger(__name__)


def create_results_repository():
    """
    Create the Postgres results repository, or the no-op default when
    DATABASE_URL is not configured or the database is unreachable.
    """
    if not os.getenv("DATABASE_URL"):
        logger.warning("results_database_not_configured", hint="Set DATABASE_URL to persist results")
        return DefaultPolicyResultsRepository(), None

    try:
        results_db = ResultsDB.from_env()
        results_db.initialize()
    except Exception as e:
        logger.error(
            "results_database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
            hint="Results will not be persisted. Check DATABASE_URL in .env file.",
        )
        return DefaultPolicyResultsRepository(), None

    logger.info("results_database_connected")
    return PostgresPolicyResultsRepository(results_db), results_db


def create_gateway_app(config_path: str = None):
    """
    Create and configure the Gateway application.

    Args:
        config_path: Path to configuration YAML file
                     (default: FLOWRULES_CONFIG or config/default.yaml)

    Returns:
        Configured FastAPI app
    """
    config_path = config_path or os.getenv("FLOWRULES_CONFIG", "config/default.yaml")

    if os.path.exists(config_path):
        settings = load_engine_settings(config_path)
        lookup = load_lookup_config(config_path)
        logger.info("lookup_config_loaded", config_path=config_path)
    else:
        logger.warning("config_file_missing", config_path=config_path, hint="Using built-in lookups")
        settings = EngineSettings()
        lookup = get_lookup()

    registry = PolicyRegistry()
    registry.register(get_policy(lookup), request_model=MortgageApplication)

    results_repository, results_db = create_results_repository()
    telemetry = PrometheusTelemetry(enabled=settings.telemetry_enabled)

    app = create_app(registry, results_repository, telemetry=telemetry)
    app.state.results_db = results_db

    logger.info(
        "gateway_initialized",
        policies=registry.get_policy_ids(),
        results_repository=type(results_repository).__name__,
        telemetry_enabled=telemetry.enabled,
    )

    return app


app = create_gateway_app()


if __name__ == "__main__":
    import atexit
    import uvicorn

    def shutdown_handler():
        """Close database connections on shutdown."""
        if getattr(app.state, "results_db", None):
            logger.info("closing_results_database_connections")
            app.state.results_db.close()

    atexit.register(shutdown_handler)

    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))

    logger.info("starting_gateway_server", host=host, port=port)

    uvicorn.run(app, host=host, port=port)
