"""Cleanup module - Clean Architecture implementation for stale device cleanup.

This module finds stale, orphaned, failed and duplicate Intune devices,
plans which of them a run may act on, and orchestrates reporting and
retire/delete execution.

Architecture:
    domain/     - Pure records, classification/planning rules and port interfaces
    use_cases/  - Workflow orchestration
    adapters/   - Infrastructure implementations (Graph, exclusion files, reports)
"""

from .domain.classifier import DeviceLifecycleClassifier
from .domain.entities import (
    ActionOutcome,
    CandidateSource,
    ClassifiedCandidate,
    CleanupPlan,
    CleanupResult,
    DeviceRecord,
    DirectoryDeviceRecord,
    ExclusionEntry,
    ReasonCode,
    RecommendedAction,
    RequestedAction,
    SkippedEntry,
    SkipReason,
)
from .domain.errors import InvalidArgumentError
from .domain.planner import ActionPlanner
from .domain.ports import (
    IActionExecutor,
    IDeviceInventory,
    IExclusionSource,
    IFieldMapper,
    IReportSink,
)

__all__ = [
    # Records
    "DeviceRecord",
    "DirectoryDeviceRecord",
    "ExclusionEntry",
    # Classification
    "ClassifiedCandidate",
    "CandidateSource",
    "ReasonCode",
    "RecommendedAction",
    # Planning
    "ActionPlanner",
    "CleanupPlan",
    "DeviceLifecycleClassifier",
    "InvalidArgumentError",
    "RequestedAction",
    "SkippedEntry",
    "SkipReason",
    # Results
    "ActionOutcome",
    "CleanupResult",
    # Ports
    "IActionExecutor",
    "IDeviceInventory",
    "IExclusionSource",
    "IFieldMapper",
    "IReportSink",
]
