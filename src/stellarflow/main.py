"""Command line entry point.

    stellarflow issuance [--dry-run | --live] [--json]
    stellarflow vault [--dry-run | --live] [--json]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from stellarflow.config import Settings, get_settings
from stellarflow.factory import build_issuance_workflow, build_vault_workflow, create_gateways
from stellarflow.workflows import WorkflowResult

logger = logging.getLogger(__name__)

WORKFLOWS = ("issuance", "vault")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stellarflow",
        description="Run Stellar testnet asset issuance and DeFindex vault workflows",
    )
    parser.add_argument("workflow", choices=WORKFLOWS, help="Workflow to run")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_const",
        const=True,
        help="Use the in-memory ledger (default unless DRY_RUN=false)",
    )
    mode.add_argument(
        "--live",
        dest="dry_run",
        action="store_const",
        const=False,
        help="Use testnet Horizon, Friendbot and the DeFindex API",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    return parser


def configure_logging(settings: Settings) -> None:
    log_level = logging.DEBUG if settings.debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def run_workflow(
    workflow: str, settings: Settings, dry_run: Optional[bool] = None
) -> WorkflowResult:
    """Run one workflow with a fresh gateway set and close it afterwards."""
    gateways = create_gateways(settings, dry_run=dry_run)
    try:
        if workflow == "issuance":
            runner = build_issuance_workflow(gateways, settings)
        else:
            runner = build_vault_workflow(gateways, settings)
        return await runner.run()
    finally:
        await gateways.aclose()


def print_result(result: WorkflowResult, as_json: bool = False) -> None:
    if as_json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    status = "SUCCESS" if result.success else "FAILED"
    print("=" * 60)
    print(f"  {result.workflow}: {status}")
    print("=" * 60)
    for step in result.steps:
        mark = "ok" if step.success else "FAILED"
        print(f"  [{mark:>6}] {step.name}")
    print()

    if result.success:
        for key, value in result.summary.items():
            print(f"  {key}: {value}")
    elif result.error is not None:
        print(f"  {result.error.kind}: {result.error}")
        if result.error.payload:
            print(f"  payload: {json.dumps(result.error.payload, default=str)}")


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)

    logger.info(f"Environment: {settings.environment}")
    logger.debug(f"Settings: {settings.get_safe_dict()}")

    result = asyncio.run(run_workflow(args.workflow, settings, dry_run=args.dry_run))
    print_result(result, as_json=args.json)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
