"""Ingestion job execution: the asyncio job runner and progress tracking."""

from tenantrag.pipeline.job_runner import JobRunner, register_ingestion_handlers
from tenantrag.pipeline.progress_tracker import ProgressTracker

__all__ = [
    "JobRunner",
    "ProgressTracker",
    "register_ingestion_handlers",
]
