"""Graph adapters for the inventory and action-executor ports.

These adapters wrap DeviceInventory and DeviceManager so the use case
can be tested without Graph:
- GraphDeviceInventoryAdapter: IDeviceInventory over DeviceInventory
- GraphActionExecutor: IActionExecutor over DeviceManager
"""

import logging
from typing import Any

from ...api.device_manager import DeviceManager
from ...api.devices import DeviceInventory
from ...api.exceptions import IntuneError
from ...api.resilience import process_concurrent
from ..domain.entities import (
    ActionOutcome,
    CandidateSource,
    ClassifiedCandidate,
    DirectoryDeviceRecord,
    RequestedAction,
)
from ..domain.ports import IActionExecutor, IDeviceInventory

logger = logging.getLogger(__name__)


class GraphDeviceInventoryAdapter(IDeviceInventory):
    """Reads device snapshots through DeviceInventory."""

    def __init__(self, inventory: DeviceInventory):
        self.inventory = inventory

    async def fetch_managed_devices(self) -> list[dict[str, Any]]:
        return await self.inventory.fetch_managed_devices()

    async def fetch_directory_devices(self) -> list[dict[str, Any]]:
        return await self.inventory.fetch_directory_devices()


class GraphActionExecutor(IActionExecutor):
    """Executes planned retire/delete actions through DeviceManager.

    Routing:
        Retire + managed device   -> retire_device
        Delete + managed device   -> delete_managed_device
        Delete + directory device -> delete_directory_device (by object id)

    Calls run with bounded concurrency. A failed call becomes an
    unsuccessful ActionOutcome; the rest of the batch continues.
    """

    def __init__(self, device_manager: DeviceManager, max_concurrent: int = 5):
        self.manager = device_manager
        self.max_concurrent = max_concurrent

    async def execute(
        self,
        planned: list[ClassifiedCandidate],
        action: RequestedAction,
    ) -> list[ActionOutcome]:
        if action == RequestedAction.EXPORT:
            raise ValueError("Export does not execute device actions")

        async def run(candidate: ClassifiedCandidate) -> ActionOutcome:
            try:
                await self._dispatch(candidate, action)
            except (IntuneError, ValueError) as e:
                logger.error(f"{action.value} failed for {candidate.display_name} ({candidate.id}): {e}")
                return self._outcome(candidate, action, success=False, error=str(e))
            return self._outcome(candidate, action, success=True)

        outcomes = await process_concurrent(
            planned,
            run,
            max_concurrent=self.max_concurrent,
        )

        failed = sum(1 for outcome in outcomes if not outcome.success)
        logger.info(
            f"{action.value} finished: {len(outcomes) - failed} succeeded, {failed} failed"
        )
        return outcomes

    async def _dispatch(self, candidate: ClassifiedCandidate, action: RequestedAction) -> None:
        if candidate.source == CandidateSource.DIRECTORY_DEVICE:
            if action != RequestedAction.DELETE:
                raise ValueError("Directory devices can only be deleted")
            record = candidate.record
            object_id = (
                record.object_id if isinstance(record, DirectoryDeviceRecord) else None
            ) or candidate.id
            await self.manager.delete_directory_device(object_id)
            return

        if action == RequestedAction.RETIRE:
            await self.manager.retire_device(candidate.id)
        else:
            await self.manager.delete_managed_device(candidate.id)

    @staticmethod
    def _outcome(
        candidate: ClassifiedCandidate,
        action: RequestedAction,
        success: bool,
        error: str | None = None,
    ) -> ActionOutcome:
        return ActionOutcome(
            device_id=candidate.id,
            display_name=candidate.display_name,
            source=candidate.source,
            action=action,
            success=success,
            error=error,
        )
