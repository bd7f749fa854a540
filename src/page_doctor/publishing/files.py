"""Asset uploads, folder clean-up and the cached page listing."""

from __future__ import annotations

import logging
from pathlib import PurePath

from page_doctor.execution import CommandExecutionError, ExecutionEngine, parse_arguments
from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.models import (
    ListItem,
    normalize_key,
    parse_files,
    parse_folders,
    parse_list_items,
)
from page_doctor.publishing.sites import SiteLists, cli_value, relative_url

logger = logging.getLogger(__name__)

PROTECTED_FOLDERS: frozenset[str] = frozenset({"forms", "templates"})
PAGES_LISTING_SCOPE = "pages"


class FilePublisher:
    """Uploads files at most once per run and cleans library folders."""

    def __init__(
        self,
        *,
        engine: ExecutionEngine,
        cache: ResourceCache,
        lists: SiteLists,
        retry: bool = True,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.lists = lists
        self.retry = retry

    def create(self, folder: str, local_path: str, web_url: str, *, override: bool = False) -> str:
        """Make sure ``local_path`` exists in ``folder`` and return its absolute URL."""

        file_name = PurePath(local_path).name
        cache_key = f"{local_path.replace(' ', '%20')}-{folder.replace(' ', '%20')}"
        if not self.cache.has_checked(cache_key):
            logger.debug("Create file %r in %r", local_path, folder)
            if override or not self._exists(web_url, f"{folder}/{file_name}"):
                self._upload(web_url, folder, local_path)
            self.cache.mark_checked(cache_key)
        return f"{web_url}/{folder}/{file_name}".replace(" ", "%20")

    def clean_up(self, folder: str, web_url: str) -> list[str]:
        """Remove every file, then every unprotected sub-folder, of ``folder``."""

        removed: list[str] = []
        normalized_folder = normalize_key(folder)

        files = parse_files(
            self.engine.execute_json(
                parse_arguments(
                    f"spo file list --webUrl {cli_value(web_url)} -f {cli_value(folder)} -o json",
                ),
                retry=self.retry,
            ),
        )
        logger.debug("Files to be removed: %s", [item.server_relative_url for item in files])
        for remote_file in files:
            file_path = _library_path(folder, normalized_folder, remote_file.server_relative_url)
            self.engine.execute(
                parse_arguments(
                    f"spo file remove --webUrl {cli_value(web_url)} "
                    f"--url {cli_value(file_path)} --force",
                ),
                retry=self.retry,
            )
            removed.append(file_path)

        folders = parse_folders(
            self.engine.execute_json(
                parse_arguments(
                    f"spo folder list --webUrl {cli_value(web_url)} "
                    f"--parentFolderUrl {cli_value(folder)} -o json",
                ),
                retry=self.retry,
            ),
        )
        logger.debug("Folders to be removed: %s", [item.name for item in folders])
        for remote_folder in folders:
            name = normalize_key(remote_folder.name)
            if not remote_folder.exists or not name or name in PROTECTED_FOLDERS:
                continue
            folder_path = _library_path(
                folder,
                normalized_folder,
                remote_folder.server_relative_url,
            )
            self.engine.execute(
                parse_arguments(
                    f"spo folder remove --webUrl {cli_value(web_url)} "
                    f"--url {cli_value(folder_path)} --force",
                ),
                retry=self.retry,
            )
            removed.append(folder_path)
        return removed

    def all_pages(self, web_url: str) -> list[ListItem]:
        """Site Pages listing, fetched once per run and never refreshed."""

        return self.cache.cached_listing(
            f"{PAGES_LISTING_SCOPE}:{web_url}",
            lambda: self._fetch_pages(web_url),
        )

    def _fetch_pages(self, web_url: str) -> list[ListItem]:
        page_list = self.lists.site_pages_list(web_url)
        if page_list is None:
            logger.warning("Site Pages list not found on %s, page listing is empty.", web_url)
            return []
        items = parse_list_items(
            self.engine.execute_json(
                parse_arguments(
                    f"spo listitem list --webUrl {cli_value(web_url)} "
                    f"--id {cli_value(page_list.list_id)} --fields \"ID,Title,FileRef\" -o json",
                ),
                retry=self.retry,
            ),
        )
        logger.debug("Existing pages: %s", [item.file_ref for item in items])
        return items

    def _exists(self, web_url: str, file_path: str) -> bool:
        try:
            self.engine.execute(
                parse_arguments(
                    f"spo file get --webUrl {cli_value(web_url)} "
                    f"--url {cli_value(relative_url(web_url, file_path))}",
                ),
            )
        except CommandExecutionError as error:
            logger.debug("File %s not found remotely: %s", file_path, error)
            return False
        return True

    def _upload(self, web_url: str, folder: str, local_path: str) -> None:
        logger.debug("Uploading file %r to %r", local_path, folder)
        self.engine.execute(
            parse_arguments(
                f"spo file add --webUrl {cli_value(web_url)} "
                f"--folder {cli_value(folder)} --path {cli_value(local_path)}",
            ),
            retry=self.retry,
        )


def _library_path(folder: str, normalized_folder: str, server_relative_url: str) -> str:
    """Rebuild ``folder``-relative path from a server-relative URL."""

    tail = normalize_key(server_relative_url).split(normalized_folder)[-1]
    return f"{folder}{tail}"
