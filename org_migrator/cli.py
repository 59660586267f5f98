"""Command line interface for validating and running migrations."""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Dict, List

from .config import EngineConfig
from .connections.base import OrgConnection
from .connections.salesforce import SalesforceConnection
from .engine import MigrationEngine, MigrationRequest
from .exceptions import ConcurrencyError, ConfigurationError, MigrationError
from .models.execution import RunStatus, StepResult
from .run_store import JsonFileRunStore
from .services.template_store import TemplateStore

logger = logging.getLogger(__name__)

SOURCE = "source"
TARGET = "target"


def build_connection_provider(args, config: EngineConfig):
    """Create connections for the source and target orgs from CLI arguments."""
    settings = {
        SOURCE: (args.source_url, args.source_token),
        TARGET: (args.target_url, args.target_token),
    }
    connections: Dict[str, OrgConnection] = {}

    def provider(org_id: str) -> OrgConnection:
        if org_id not in connections:
            instance_url, token = settings[org_id]
            if not instance_url or not token:
                raise ConfigurationError(f"Missing instance URL or access token for the {org_id} org")
            connections[org_id] = SalesforceConnection(
                instance_url=instance_url,
                session_id=token,
                org_id=org_id,
                api_version=config.api_version,
                timeout=config.call_timeout_seconds,
            )
        return connections[org_id]

    return provider


def parse_record_ids(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def print_step(result: StepResult) -> None:
    print(
        f"  [{result.status.value.upper()}] {result.step_name}: "
        f"{result.successful_records}/{result.total_records} succeeded, "
        f"{result.failed_records} failed"
    )


def run_validation(engine: MigrationEngine, request: MigrationRequest, as_json: bool = False) -> int:
    """Validate a selection and print the issues found."""
    result = asyncio.run(engine.validate(request))

    print("\n" + "=" * 60)
    print("VALIDATION RESULTS")
    print("=" * 60)
    summary = result.summary
    print(f"Errors: {summary['errors']}  Warnings: {summary['warnings']}  Info: {summary['info']}")
    for issue in result.issues:
        location = f" ({issue.record_id})" if issue.record_id else ""
        print(f"  [{issue.severity.value.upper()}] {issue.title}{location}: {issue.message}")
        if issue.suggested_action:
            print(f"      -> {issue.suggested_action}")

    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))

    return 0 if result.is_valid else 1


def run_migration(engine: MigrationEngine, request: MigrationRequest, as_json: bool = False) -> int:
    """Run a migration and print a per-step summary."""
    print(f"\nRunning {request.template_id} for {len(request.selected_record_ids)} record(s)")
    result = asyncio.run(engine.run(request, on_step=print_step))

    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    print(f"Run: {result.run_id}")
    print(f"Status: {result.status.value}")
    print(f"Records Processed: {result.total_records}")
    print(f"Succeeded: {result.successful_records}")
    print(f"Failed: {result.failed_records}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")
    for error in result.errors:
        print(f"Error: {error}")
    for step in result.step_results:
        for sample in step.error_sample(engine.config.max_error_samples):
            print(f"  {step.step_name}: {sample}")

    if as_json:
        print(json.dumps(result.to_dict(engine.config.max_error_samples), indent=2, default=str))

    return 0 if result.status == RunStatus.COMPLETED else 1


def main(argv=None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Org Migrator - Copy selected records between Salesforce orgs"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    for name, help_text in (("validate", "Validate a record selection"), ("run", "Run a migration")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--template-dir", required=True, help="Directory containing template files")
        sub.add_argument("--template", required=True, help="Template id")
        sub.add_argument("--records", required=True, help="Comma separated source record ids")
        sub.add_argument("--source-url", default=os.environ.get("ORG_MIGRATOR_SOURCE_URL"))
        sub.add_argument("--source-token", default=os.environ.get("ORG_MIGRATOR_SOURCE_TOKEN"))
        sub.add_argument("--target-url", default=os.environ.get("ORG_MIGRATOR_TARGET_URL"))
        sub.add_argument("--target-token", default=os.environ.get("ORG_MIGRATOR_TARGET_TOKEN"))
        sub.add_argument("--output-dir", help="Where run reports are written")
        sub.add_argument("--json", action="store_true", help="Also print the result as JSON")
        sub.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    # Set up logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = EngineConfig.from_env()
    if args.output_dir:
        config.output_dir = args.output_dir

    try:
        engine = MigrationEngine(
            template_store=TemplateStore(args.template_dir),
            connection_provider=build_connection_provider(args, config),
            config=config,
            run_store=JsonFileRunStore(config.output_dir),
        )
        request = MigrationRequest(
            template_id=args.template,
            source_org_id=SOURCE,
            target_org_id=TARGET,
            selected_record_ids=parse_record_ids(args.records),
        )

        if args.command == "validate":
            return run_validation(engine, request, args.json)
        else:
            return run_migration(engine, request, args.json)

    except (ConfigurationError, ConcurrencyError) as e:
        logger.error(str(e))
        return 2
    except MigrationError as e:
        logger.error(f"Migration failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
