#!/usr/bin/env python3
"""
Example: copy accounts and their contacts between two orgs

This script validates a selection of accounts against the
account-with-contacts template and, if no errors are found, runs it.

Usage:
    export SOURCE_INSTANCE_URL=https://source.my.salesforce.com
    export SOURCE_ACCESS_TOKEN=...
    export TARGET_INSTANCE_URL=https://target.my.salesforce.com
    export TARGET_ACCESS_TOKEN=...

    # Validate only
    python run_account_migration.py --validate-only 001xx000003DIoXAAW

    # Validate then migrate
    python run_account_migration.py 001xx000003DIoXAAW 001xx000003DIoYAAW
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from org_migrator.config import EngineConfig
from org_migrator.connections.salesforce import SalesforceConnection
from org_migrator.engine import MigrationEngine, MigrationRequest
from org_migrator.models.execution import StepResult
from org_migrator.run_store import JsonFileRunStore
from org_migrator.services.template_store import TemplateStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('migration.log')
    ]
)
logger = logging.getLogger(__name__)

TEMPLATE_ID = "account-with-contacts"


def create_engine(config: EngineConfig) -> MigrationEngine:
    """Build an engine over the example templates and the two orgs from the environment."""
    connections = {
        "source": SalesforceConnection(
            instance_url=os.environ["SOURCE_INSTANCE_URL"],
            session_id=os.environ["SOURCE_ACCESS_TOKEN"],
            org_id="source",
            api_version=config.api_version,
            timeout=config.call_timeout_seconds,
        ),
        "target": SalesforceConnection(
            instance_url=os.environ["TARGET_INSTANCE_URL"],
            session_id=os.environ["TARGET_ACCESS_TOKEN"],
            org_id="target",
            api_version=config.api_version,
            timeout=config.call_timeout_seconds,
        ),
    }

    return MigrationEngine(
        template_store=TemplateStore(str(Path(__file__).parent / "templates")),
        connection_provider=connections.__getitem__,
        config=config,
        run_store=JsonFileRunStore(config.output_dir),
    )


async def log_step(result: StepResult):
    logger.info(
        f"{result.step_name}: {result.status.value} "
        f"({result.successful_records} succeeded, {result.failed_records} failed)"
    )


async def validate_and_run(engine: MigrationEngine, request: MigrationRequest, validate_only: bool) -> bool:
    """Validate the selection, then run it when validation passes."""
    validation = await engine.validate(request)
    for issue in validation.issues:
        logger.info(f"[{issue.severity.value}] {issue.title}: {issue.message}")

    if not validation.is_valid:
        logger.error(f"Validation found {validation.summary['errors']} error(s); not migrating")
        return False
    if validate_only:
        return True

    logger.info("=" * 60)
    logger.info("STARTING MIGRATION")
    logger.info("=" * 60)

    result = await engine.run(request, on_step=log_step)

    logger.info("=" * 60)
    logger.info("MIGRATION COMPLETE")
    logger.info("=" * 60)
    logger.info(f"Status: {result.status.value}")
    logger.info(f"Succeeded: {result.successful_records}")
    logger.info(f"Failed: {result.failed_records}")

    if result.duration_seconds:
        logger.info(f"Duration: {result.duration_seconds:.2f} seconds")

    for step in result.step_results:
        for sample in step.error_sample(10):
            logger.warning(f"  - {step.step_name}: {sample}")

    return result.failed_records == 0 and not result.errors


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Copy accounts and their contacts between orgs"
    )
    parser.add_argument("record_ids", nargs="+", help="Source account ids")
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate the selection without migrating"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Check for required environment variables
    required_env = ["SOURCE_INSTANCE_URL", "SOURCE_ACCESS_TOKEN", "TARGET_INSTANCE_URL", "TARGET_ACCESS_TOKEN"]
    missing = [var for var in required_env if not os.environ.get(var)]
    if missing:
        logger.error(f"Missing required environment variables: {', '.join(missing)}")
        sys.exit(1)

    config = EngineConfig.from_env()
    config.output_dir = str(Path(__file__).parent / "data")

    request = MigrationRequest(
        template_id=TEMPLATE_ID,
        source_org_id="source",
        target_org_id="target",
        selected_record_ids=args.record_ids,
    )

    ok = asyncio.run(validate_and_run(create_engine(config), request, args.validate_only))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
