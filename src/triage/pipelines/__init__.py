"""Discovery, export and cleanup pipelines."""

from triage.pipelines.cleanup import cleanup
from triage.pipelines.discovery import DiscoveryPipeline, DiscoverySummary, GroupDiscovery
from triage.pipelines.export import ExportOutputs, ExportPipeline, ExportSummary, classify

__all__ = [
    "DiscoveryPipeline",
    "DiscoverySummary",
    "ExportOutputs",
    "ExportPipeline",
    "ExportSummary",
    "GroupDiscovery",
    "classify",
    "cleanup",
]
