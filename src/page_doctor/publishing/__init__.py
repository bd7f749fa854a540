"""Idempotent page and asset publishing through the CLI for Microsoft 365."""

from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.files import FilePublisher
from page_doctor.publishing.folders import FolderCreator
from page_doctor.publishing.models import EnsureResult, PageAttributes
from page_doctor.publishing.pages import PublishOrchestrator
from page_doctor.publishing.sites import SiteLists

__all__ = [
    "EnsureResult",
    "FilePublisher",
    "FolderCreator",
    "PageAttributes",
    "PublishOrchestrator",
    "ResourceCache",
    "SiteLists",
]
