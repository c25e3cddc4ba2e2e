"""Domain layer - Pure entities, rules and port interfaces.

This layer contains:
- Entities: Device records, candidates and run results
- Rules: DeviceLifecycleClassifier and ActionPlanner
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .classifier import DeviceLifecycleClassifier
from .entities import (
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
from .errors import InvalidArgumentError
from .planner import ActionPlanner
from .ports import (
    IActionExecutor,
    IDeviceInventory,
    IExclusionSource,
    IFieldMapper,
    IReportSink,
)

__all__ = [
    # Entities
    "ActionOutcome",
    "CandidateSource",
    "ClassifiedCandidate",
    "CleanupPlan",
    "CleanupResult",
    "DeviceRecord",
    "DirectoryDeviceRecord",
    "ExclusionEntry",
    "ReasonCode",
    "RecommendedAction",
    "RequestedAction",
    "SkippedEntry",
    "SkipReason",
    # Rules
    "ActionPlanner",
    "DeviceLifecycleClassifier",
    "InvalidArgumentError",
    # Ports
    "IActionExecutor",
    "IDeviceInventory",
    "IExclusionSource",
    "IFieldMapper",
    "IReportSink",
]
