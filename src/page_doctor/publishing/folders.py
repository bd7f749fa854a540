"""Nested folder creation inside a document library."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from page_doctor.execution import CommandExecutionError, ExecutionEngine, parse_arguments
from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.sites import cli_value, relative_url

logger = logging.getLogger(__name__)


class FolderCreator:
    """Creates missing folders segment by segment, checking each path once per run."""

    def __init__(
        self,
        *,
        engine: ExecutionEngine,
        cache: ResourceCache,
        retry: bool = True,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.retry = retry

    def ensure(self, library: str, segments: Sequence[str], web_url: str) -> None:
        parent = library
        for segment in segments:
            if not segment:
                continue
            folder_path = f"{parent}/{segment}"
            cache_key = f"folder:{web_url}/{folder_path}"
            if not self.cache.has_checked(cache_key):
                if not self._exists(web_url, folder_path):
                    logger.debug("Creating folder %s", folder_path)
                    self.engine.execute(
                        parse_arguments(
                            f"spo folder add --webUrl {cli_value(web_url)} "
                            f"--parentFolderUrl {cli_value(parent)} --name {cli_value(segment)}",
                        ),
                        retry=self.retry,
                    )
                self.cache.mark_checked(cache_key)
            parent = folder_path

    def _exists(self, web_url: str, folder_path: str) -> bool:
        try:
            self.engine.execute(
                parse_arguments(
                    f"spo folder get --webUrl {cli_value(web_url)} "
                    f"--url {cli_value(relative_url(web_url, folder_path))}",
                ),
            )
        except CommandExecutionError as error:
            logger.debug("Folder %s not found: %s", folder_path, error)
            return False
        return True
