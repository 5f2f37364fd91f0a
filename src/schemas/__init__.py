"""Schema definitions for the ePaper pipeline."""

from .clip import (
    ClipCandidate,
    ClipMetadata,
    ClipSource,
    ClipState,
    ClipUpdate,
    ClipView,
    PageSize,
)
from .context import AdminContext
from .issue import DeletionResult, ExistenceAction, ExistenceCheck, IssueView
from .page import PageView
from .source import PdfSource, PdfUpload, PdfUrl
from .target import EditionTarget, SubEditionTarget, Target, target_for

__all__ = [
    "AdminContext",
    "ClipCandidate",
    "ClipMetadata",
    "ClipSource",
    "ClipState",
    "ClipUpdate",
    "ClipView",
    "DeletionResult",
    "EditionTarget",
    "ExistenceAction",
    "ExistenceCheck",
    "IssueView",
    "PageSize",
    "PageView",
    "PdfSource",
    "PdfUpload",
    "PdfUrl",
    "SubEditionTarget",
    "Target",
    "target_for",
]
