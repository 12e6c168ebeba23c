"""
Services layer.

IngestionPipeline is THE entry point for adding media to the catalog.
"""

from .ingestion import (
    IngestionPipeline,
    IngestionExecutor,
    IngestionJob,
    resolve_display_name,
)
from .state import PipelineState, IllegalTransition

__all__ = [
    "IngestionPipeline",
    "IngestionExecutor",
    "IngestionJob",
    "resolve_display_name",
    "PipelineState",
    "IllegalTransition",
]
