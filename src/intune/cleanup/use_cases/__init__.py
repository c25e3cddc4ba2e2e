"""Use cases layer - Business logic orchestration for device cleanup.

This layer contains use case classes that orchestrate the cleanup workflow:
- Fetch device snapshots (via IDeviceInventory)
- Transform to domain records (via IFieldMapper)
- Classify, plan, report and act (via IReportSink/IActionExecutor)

Use cases depend only on ports, not concrete implementations.
"""

from .cleanup_devices import CleanupDevicesUseCase, CleanupOptions

__all__ = [
    "CleanupDevicesUseCase",
    "CleanupOptions",
]
