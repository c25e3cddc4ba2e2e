"""Cleanup Devices Use Case - Orchestrates the stale device cleanup workflow.

This use case depends on ports (interfaces) for every external operation,
making it fully testable without Graph or the filesystem.

Workflow:
1. Fetch managed (and optionally directory) devices (via IDeviceInventory)
2. Map raw responses to domain records (via IFieldMapper)
3. Load exclusions (via IExclusionSource)
4. Classify candidates and plan actions
5. Write reports and backups (via IReportSink)
6. Execute retire/delete unless exporting or in WhatIf mode (via IActionExecutor)
7. Return a CleanupResult
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from ..domain.classifier import DeviceLifecycleClassifier
from ..domain.entities import (
    CleanupResult,
    DeviceRecord,
    DirectoryDeviceRecord,
    ExclusionEntry,
    RequestedAction,
)
from ..domain.planner import ActionPlanner
from ..domain.ports import (
    IActionExecutor,
    IDeviceInventory,
    IExclusionSource,
    IFieldMapper,
    IReportSink,
)

logger = logging.getLogger(__name__)


@dataclass
class CleanupOptions:
    """Parameters for a single cleanup run."""

    stale_days: int = 90
    duplicate_threshold: int = 1
    max_count: int = 50
    requested_action: RequestedAction = RequestedAction.EXPORT
    include_directory: bool = False
    dry_run: bool = True
    exclusions_path: Optional[Path] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stale_days": self.stale_days,
            "duplicate_threshold": self.duplicate_threshold,
            "max_count": self.max_count,
            "requested_action": self.requested_action.value,
            "include_directory": self.include_directory,
            "dry_run": self.dry_run,
            "exclusions_path": str(self.exclusions_path) if self.exclusions_path else None,
        }


class CleanupDevicesUseCase:
    """Orchestrates the device cleanup workflow.

    Classification and planning are pure; this class owns every side
    effect around them. Nothing is retired or deleted unless the reports
    (including the raw-record backup) were written first.

    Example:
        use_case = CleanupDevicesUseCase(
            inventory=GraphDeviceInventoryAdapter(DeviceInventory(client)),
            field_mapper=GraphFieldMapper(),
            exclusion_source=ExclusionFileParser(),
            report_sink=CleanupReportGenerator(Path("./reports")),
            executor=GraphActionExecutor(DeviceManager(client)),
        )
        result = await use_case.execute(CleanupOptions(stale_days=120))
    """

    def __init__(
        self,
        inventory: IDeviceInventory,
        field_mapper: IFieldMapper,
        exclusion_source: Optional[IExclusionSource] = None,
        report_sink: Optional[IReportSink] = None,
        executor: Optional[IActionExecutor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the use case with its dependencies.

        Args:
            inventory: Port for fetching device snapshots
            field_mapper: Port for transforming raw payloads to records
            exclusion_source: Port for loading the exclusion list
            report_sink: Port for writing reports and backups
            executor: Port for retire/delete calls; required to execute
            clock: Returns "now"; injectable for deterministic tests
        """
        self.inventory = inventory
        self.mapper = field_mapper
        self.exclusion_source = exclusion_source
        self.report_sink = report_sink
        self.executor = executor
        self.classifier = DeviceLifecycleClassifier(clock=clock)
        self.planner = ActionPlanner()

    async def execute(self, options: CleanupOptions) -> CleanupResult:
        """Execute the cleanup workflow.

        Returns:
            CleanupResult describing what was found, planned and done

        Raises:
            InvalidArgumentError: If a threshold in options is out of range
        """
        started_at = datetime.now(timezone.utc)
        errors: list[str] = []
        action = options.requested_action

        result = CleanupResult(
            success=False,
            requested_action=action,
            dry_run=options.dry_run,
            started_at=started_at,
        )

        mode = "WhatIf" if options.dry_run else "Execute"
        logger.info(f"Starting device cleanup ({action.value}, {mode}) at {started_at.isoformat()}")

        # Step 1: Fetch snapshots
        try:
            raw_managed = await self.inventory.fetch_managed_devices()
            raw_directory: list[dict] = []
            if options.include_directory:
                raw_directory = await self.inventory.fetch_directory_devices()
            logger.info(
                f"Fetched {len(raw_managed)} managed and {len(raw_directory)} directory devices"
            )
        except Exception as e:
            logger.error(f"Failed to fetch devices: {e}")
            return self._finish(result, [f"Device fetch failed: {e}"])

        # Step 2: Map to domain records
        managed: list[DeviceRecord] = []
        for raw in raw_managed:
            try:
                managed.append(self.mapper.map_managed_device(raw))
            except Exception as e:
                error_msg = f"Mapping error for managed device {raw.get('id', 'unknown')}: {e}"
                logger.warning(error_msg)
                errors.append(error_msg)

        directory: list[DirectoryDeviceRecord] = []
        for raw in raw_directory:
            try:
                directory.append(self.mapper.map_directory_device(raw))
            except Exception as e:
                error_msg = f"Mapping error for directory device {raw.get('id', 'unknown')}: {e}"
                logger.warning(error_msg)
                errors.append(error_msg)

        result.managed_devices = len(managed)
        result.directory_devices = len(directory)

        # Step 3: Exclusions
        exclusions: list[ExclusionEntry] = []
        if options.exclusions_path is not None:
            if self.exclusion_source is None:
                return self._finish(result, errors + ["Exclusions file given but no exclusion source configured"])
            try:
                exclusions = self.exclusion_source.load(options.exclusions_path)
            except Exception as e:
                logger.error(f"Failed to load exclusions: {e}")
                return self._finish(result, errors + [f"Exclusion load failed: {e}"])

        # Step 4: Classify and plan (InvalidArgumentError propagates)
        candidates = self.classifier.classify(
            managed,
            directory,
            options.stale_days,
            options.duplicate_threshold,
        )
        plan = self.planner.plan(candidates, exclusions, options.max_count, action)

        result.candidates = len(plan.candidates)
        result.planned = len(plan.planned)
        result.skipped = len(plan.skipped)

        # Step 5: Reports
        reports_ok = True
        if self.report_sink is not None:
            try:
                result.report_paths = self.report_sink.write_all(
                    plan,
                    action,
                    options.dry_run,
                    settings=options.to_dict(),
                )
            except Exception as e:
                reports_ok = False
                error_msg = f"Report write failed: {e}"
                logger.error(error_msg)
                errors.append(error_msg)

        # Step 6: Execute
        if action == RequestedAction.EXPORT:
            logger.info("Export only; no device actions requested")
        elif options.dry_run:
            for candidate in plan.planned:
                logger.info(
                    f"[WhatIf] Would {action.value.lower()} {candidate.source.value} "
                    f"{candidate.display_name} ({candidate.id})"
                )
        elif not reports_ok:
            logger.error("Skipping device actions because reports could not be written")
        elif self.executor is None:
            errors.append("No action executor configured")
        elif plan.planned:
            try:
                result.outcomes = await self.executor.execute(plan.planned, action)
                result.executed = True
            except Exception as e:
                error_msg = f"Action execution failed: {e}"
                logger.error(error_msg)
                errors.append(error_msg)

            for outcome in result.outcomes:
                if not outcome.success:
                    errors.append(
                        f"{outcome.action.value} failed for {outcome.device_id}: {outcome.error}"
                    )

        return self._finish(result, errors)

    @staticmethod
    def _finish(result: CleanupResult, errors: list[str]) -> CleanupResult:
        result.completed_at = datetime.now(timezone.utc)
        result.error_details = errors
        result.success = len(errors) == 0

        logger.info(
            f"Device cleanup completed in {result.duration_seconds:.2f}s: "
            f"{result.candidates} candidates, {result.planned} planned, "
            f"{result.actions_succeeded} succeeded, {len(errors)} errors"
        )
        return result
