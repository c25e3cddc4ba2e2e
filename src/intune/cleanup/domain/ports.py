"""Port interfaces for the cleanup workflow.

Ports define the contracts between the use case and the infrastructure.
Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from .entities import (
    ActionOutcome,
    ClassifiedCandidate,
    CleanupPlan,
    DeviceRecord,
    DirectoryDeviceRecord,
    ExclusionEntry,
    RequestedAction,
)


class IDeviceInventory(ABC):
    """Port for reading device snapshots from the management backend."""

    @abstractmethod
    async def fetch_managed_devices(self) -> list[dict[str, Any]]:
        """Fetch all managed devices as raw API dictionaries."""
        ...

    @abstractmethod
    async def fetch_directory_devices(self) -> list[dict[str, Any]]:
        """Fetch all directory device objects as raw API dictionaries."""
        ...


class IFieldMapper(ABC):
    """Port for mapping raw API dictionaries to domain records."""

    @abstractmethod
    def map_managed_device(self, raw: dict[str, Any]) -> DeviceRecord:
        """Transform a managed device payload into a DeviceRecord.

        Raises:
            ValueError: If the payload has no usable identifier
        """
        ...

    @abstractmethod
    def map_directory_device(self, raw: dict[str, Any]) -> DirectoryDeviceRecord:
        """Transform a directory device payload into a DirectoryDeviceRecord."""
        ...


class IExclusionSource(ABC):
    """Port for loading the operator's exclusion list."""

    @abstractmethod
    def load(self, path: Path) -> list[ExclusionEntry]:
        """Load exclusions from a file. All-empty rows are dropped.

        Raises:
            ValueError: If the file cannot be understood
        """
        ...


class IReportSink(ABC):
    """Port for persisting run reports and pre-action backups."""

    @abstractmethod
    def write_all(
        self,
        plan: CleanupPlan,
        requested_action: RequestedAction,
        dry_run: bool,
        settings: Optional[dict[str, Any]] = None,
    ) -> dict[str, str]:
        """Write every report artifact.

        Returns:
            Mapping of artifact kind ("json", "csv", ...) to file path
        """
        ...


class IActionExecutor(ABC):
    """Port for executing retire/delete against the backend."""

    @abstractmethod
    async def execute(
        self,
        planned: list[ClassifiedCandidate],
        action: RequestedAction,
    ) -> list[ActionOutcome]:
        """Apply the action to every planned candidate.

        Per-device failures are reported as unsuccessful outcomes, not raised.
        """
        ...
