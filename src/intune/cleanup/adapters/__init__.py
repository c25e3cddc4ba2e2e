"""Infrastructure adapters for device cleanup.

These adapters implement the port interfaces defined in the domain layer,
connecting the workflow to Microsoft Graph, exclusion files and the
report directory.
"""

from .exclusion_parser import ExclusionFileParser
from .field_mapper import GraphFieldMapper, parse_graph_timestamp
from .graph_adapter import GraphActionExecutor, GraphDeviceInventoryAdapter
from .report_generator import CleanupReportGenerator

__all__ = [
    "GraphFieldMapper",
    "parse_graph_timestamp",
    "GraphDeviceInventoryAdapter",
    "GraphActionExecutor",
    "ExclusionFileParser",
    "CleanupReportGenerator",
]
