"""Persistence for issues, pages and clips."""

from .models import Base, Clip, ClipAsset, Edition, Issue, Page, SubEdition
from .session import create_db_engine, create_session_factory, init_db

__all__ = [
    "Base",
    "Edition",
    "SubEdition",
    "Issue",
    "Page",
    "Clip",
    "ClipAsset",
    "create_db_engine",
    "create_session_factory",
    "init_db",
]
