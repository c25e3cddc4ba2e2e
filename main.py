#!/usr/bin/env python3
"""Intune Stale Device Cleanup CLI.

This module provides a command-line interface for finding stale, orphaned,
failed and duplicate devices in Microsoft Intune (and optionally Entra ID),
reporting them, and retiring or deleting a capped number of them.

Architecture:
    - GraphClient is the shared HTTP layer for all Graph calls
    - TokenManager handles the OAuth2 client credentials flow
    - CleanupDevicesUseCase orchestrates fetch, classify, plan, report, act
    - Runs in WhatIf mode unless --execute is given

Environment Variables Required:
    - AZURE_TENANT_ID: Entra ID tenant
    - AZURE_CLIENT_ID: App registration client ID
    - AZURE_CLIENT_SECRET: App registration client secret

Optional defaults (CLI flags override them) are documented in
src/intune/config.py.

Example Usage:
    $ python main.py                                   # Report only (Export)
    $ python main.py --stale-days 120 --include-directory
    $ python main.py --action retire                   # WhatIf retire
    $ python main.py --action delete --execute --max-count 10

Exit codes:
    0: success
    1: configuration error, invalid argument or failed run
    2: some device actions failed
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.intune.api import (
    ConfigurationError,
    DeviceInventory,
    DeviceManager,
    GraphClient,
    TokenManager,
)
from src.intune.cleanup.adapters import (
    CleanupReportGenerator,
    ExclusionFileParser,
    GraphActionExecutor,
    GraphDeviceInventoryAdapter,
    GraphFieldMapper,
)
from src.intune.cleanup.domain import InvalidArgumentError, RequestedAction
from src.intune.cleanup.use_cases import CleanupDevicesUseCase, CleanupOptions
from src.intune.config import CleanupConfig

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_options(args: argparse.Namespace, config: CleanupConfig) -> CleanupOptions:
    """Merge CLI flags over environment defaults."""
    action = RequestedAction.parse(args.action) if args.action else config.action

    if args.execute:
        dry_run = False
    elif args.whatif:
        dry_run = True
    else:
        dry_run = config.dry_run

    exclusions = Path(args.exclusions) if args.exclusions else config.exclusions_file

    return CleanupOptions(
        stale_days=args.stale_days if args.stale_days is not None else config.stale_days,
        duplicate_threshold=(
            args.duplicate_threshold
            if args.duplicate_threshold is not None
            else config.duplicate_threshold
        ),
        max_count=args.max_count if args.max_count is not None else config.max_count,
        requested_action=action,
        include_directory=args.include_directory or config.include_directory,
        dry_run=dry_run,
        exclusions_path=exclusions,
    )


async def run_cleanup(args: argparse.Namespace) -> int:
    """Main cleanup orchestration function.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    try:
        config = CleanupConfig()
        options = build_options(args, config)
        token_manager = TokenManager(config.tenant_id, config.client_id, config.client_secret)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_FAILED

    output_dir = Path(args.output_dir) if args.output_dir else config.output_dir
    logger.info(f"Running with {config!r}")

    async with GraphClient(token_manager, base_url=config.graph_base_url) as client:
        use_case = CleanupDevicesUseCase(
            inventory=GraphDeviceInventoryAdapter(DeviceInventory(client)),
            field_mapper=GraphFieldMapper(),
            exclusion_source=ExclusionFileParser(),
            report_sink=CleanupReportGenerator(output_dir),
            executor=GraphActionExecutor(
                DeviceManager(client),
                max_concurrent=config.max_concurrent,
            ),
        )
        try:
            result = await use_case.execute(options)
        except InvalidArgumentError as e:
            logger.error(f"Invalid argument: {e}")
            return EXIT_FAILED

    print("\n" + "=" * 60)
    print("CLEANUP COMPLETE" if result.success else "CLEANUP FINISHED WITH ERRORS")
    print("=" * 60)
    print(f"Mode:        {'WhatIf' if result.dry_run else 'Execute'} ({result.requested_action.value})")
    print(f"Devices:     {result.managed_devices} managed, {result.directory_devices} directory")
    print(f"Candidates:  {result.candidates}")
    print(f"Planned:     {result.planned}")
    print(f"Skipped:     {result.skipped}")
    if result.executed:
        print(f"Actions:     {result.actions_succeeded} succeeded, {result.actions_failed} failed")
    for kind, path in result.report_paths.items():
        print(f"Report ({kind}): {path}")
    for error in result.error_details:
        print(f"  ! {error}")

    if result.executed and result.actions_failed:
        return EXIT_PARTIAL
    return EXIT_OK if result.success else EXIT_FAILED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Find and clean up stale Intune devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Report candidates only
  python main.py --stale-days 120                 # Use a 120 day threshold
  python main.py --include-directory              # Also check Entra ID objects
  python main.py --action delete                  # WhatIf delete
  python main.py --action delete --execute        # Really delete (capped)
  python main.py --exclusions keep.csv            # Never touch listed devices
        """
    )

    # Detection rules
    rule_group = parser.add_argument_group("Detection Rules")
    rule_group.add_argument(
        "--stale-days",
        type=int,
        metavar="DAYS",
        help="Flag devices with no sync for DAYS days (default: 90)"
    )
    rule_group.add_argument(
        "--duplicate-threshold",
        type=int,
        metavar="N",
        help="Registrations allowed per user/OS/name before flagging (default: 1)"
    )
    rule_group.add_argument(
        "--include-directory",
        action="store_true",
        help="Also flag stale Entra ID devices with no Intune record"
    )

    # Action options
    action_group = parser.add_argument_group("Action Options")
    action_group.add_argument(
        "--action",
        choices=["export", "retire", "delete"],
        type=str.lower,
        help="Action to perform on planned devices (default: export)"
    )
    action_group.add_argument(
        "--max-count",
        type=int,
        metavar="N",
        help="Maximum devices to act on in one run (default: 50)"
    )
    action_group.add_argument(
        "--exclusions",
        type=str,
        metavar="FILE",
        help="CSV or .xlsx with DeviceId/DirectoryId/SerialNumber/DeviceName columns"
    )
    mode = action_group.add_mutually_exclusive_group()
    mode.add_argument(
        "--whatif",
        action="store_true",
        help="Report what would happen without changing anything (default)"
    )
    mode.add_argument(
        "--execute",
        action="store_true",
        help="Actually retire/delete the planned devices"
    )

    # Output options
    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--output-dir",
        type=str,
        metavar="DIR",
        help="Directory for reports and backups (default: ./reports)"
    )
    output_group.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    return parser


def main() -> int:
    args = build_parser().parse_args()
    configure_logging(args.verbose)
    return asyncio.run(run_cleanup(args))


if __name__ == "__main__":
    sys.exit(main())
