"""Ingestion pipeline: bounded-concurrency uploads and the issue orchestrator."""

from .concurrency import indexed_parallel_map
from .inputs import parse_issue_date, target_from_ids
from .orchestrator import IssueIngestionOrchestrator
from .uploader import PageUploader, UploadedPage

__all__ = [
    "IssueIngestionOrchestrator",
    "PageUploader",
    "UploadedPage",
    "indexed_parallel_map",
    "parse_issue_date",
    "target_from_ids",
]
