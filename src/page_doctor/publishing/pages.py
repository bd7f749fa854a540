"""Idempotent page publishing on top of the CLI execution engine.

Every page goes through the same ensure step: look it up, then either leave
it alone, patch only the fields that differ, create it from a named template
or create a default page. Pages handled during the run are recorded in the
run cache; at the end of a clean-start run, pages present in the initial
listing but never recorded are removed one by one.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import replace
from pathlib import PurePath
from typing import Any

from page_doctor.execution import CommandExecutionError, ExecutionEngine, parse_arguments
from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.files import PROTECTED_FOLDERS, FilePublisher
from page_doctor.publishing.folders import FolderCreator
from page_doctor.publishing.models import (
    MARKDOWN_WEB_PART_ID,
    EnsureResult,
    ListItem,
    PageAttributes,
    PageTemplate,
    RemotePage,
    extract_item_id,
    normalize_key,
    parse_remote_page,
    parse_templates,
)
from page_doctor.publishing.sites import SiteLists, cli_value, relative_url

logger = logging.getLogger(__name__)

PAGES_LIBRARY = "sitepages"
PAGE_SUFFIX = ".aspx"


class PublishOrchestrator:
    """Create-or-update decisions for pages within one publish run."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        engine: ExecutionEngine,
        cache: ResourceCache,
        files: FilePublisher,
        folders: FolderCreator,
        lists: SiteLists,
        retry: bool = True,
        continue_on_error: bool = False,
        strict_lookups: bool = False,
    ) -> None:
        self.engine = engine
        self.cache = cache
        self.files = files
        self.folders = folders
        self.lists = lists
        self.retry = retry
        self.continue_on_error = continue_on_error
        self.strict_lookups = strict_lookups

    def load_pages(self, web_url: str) -> list[ListItem]:
        """Snapshot of existing pages; later calls return the same snapshot."""

        return self.files.all_pages(web_url)

    def ensure_page(self, web_url: str, slug: str, attributes: PageAttributes) -> EnsureResult:
        """Make sure the page exists with the requested attributes.

        ``existed`` is ``False`` only when a default page had to be created; a
        page copied from a template reports ``existed`` and ``created``.
        """

        key = normalize_key(slug)

        if attributes.skip_existing:
            skipped = self._skip_existing(web_url, slug)
            if skipped is not None:
                return skipped

        page = self._lookup_page(web_url, slug)
        if page is not None:
            self.cache.record_processed(key, page.item_id)
            logger.debug("Processed pages: %s", dict(self.cache.processed))
            changes = page_changes(page, attributes)
            if changes:
                self.engine.execute(
                    parse_arguments(
                        f"spo page set --webUrl {cli_value(web_url)} --name {cli_value(slug)} "
                        + " ".join(changes),
                    ),
                    retry=self.retry,
                )
            return EnsureResult(existed=True, identifier=page.item_id, updated=bool(changes))

        segments = slug.split("/")
        if len(segments) > 1:
            self.folders.ensure(PAGES_LIBRARY, segments[:-1], web_url)

        if attributes.template:
            template = self._find_template(web_url, attributes.template)
            if template is not None:
                self._copy_template(web_url, slug, template)
                copied = self.ensure_page(web_url, slug, replace(attributes, template=None))
                return replace(copied, created=True)
            logger.warning(
                "Template %r not found on the site, creating a default page instead.",
                attributes.template,
            )

        identifier = self._create_page(web_url, slug, attributes)
        self.cache.record_processed(key, identifier)
        return EnsureResult(existed=False, identifier=identifier, created=True)

    def page_controls(self, web_url: str, slug: str) -> str:
        """Canvas JSON of the page, ``"[]"`` when it has none."""

        logger.debug("Get page controls for %s", slug)
        output = self.engine.execute_json(
            parse_arguments(
                f"spo page get --webUrl {cli_value(web_url)} --name {cli_value(slug)} "
                "--output json",
            ),
            retry=self.retry,
        )
        canvas = output.get("canvasContentJson") if isinstance(output, dict) else None
        return canvas or "[]"

    def ensure_default_section(self, web_url: str, slug: str) -> None:
        logger.debug("Ensuring default section exists for %s", slug)
        self.engine.execute(
            parse_arguments(
                f"spo page section add --webUrl {cli_value(web_url)} "
                f"--pageName {cli_value(slug)} --sectionTemplate OneColumn",
            ),
            retry=self.retry,
        )

    def set_body(
        self,
        web_url: str,
        slug: str,
        control_id: str | None,
        payload_path: str | PurePath,
    ) -> None:
        """Push the rendered web part payload, updating ``control_id`` when given."""

        logger.debug("Insert markdown web part for %s (control: %s)", slug, control_id)
        payload = cli_value(f"@{payload_path}")
        if control_id:
            command = (
                f"spo page control set --webUrl {cli_value(web_url)} --pageName {cli_value(slug)} "
                f"--id {cli_value(control_id)} --webPartData {payload}"
            )
        else:
            command = (
                f"spo page clientsidewebpart add --webUrl {cli_value(web_url)} "
                f"--pageName {cli_value(slug)} --webPartId {MARKDOWN_WEB_PART_ID} "
                f"--webPartData {payload}"
            )
        self.engine.execute(parse_arguments(command), retry=self.retry)

    def set_metadata(self, web_url: str, slug: str, fields: Mapping[str, Any] | None) -> None:
        page_id = self._page_id(web_url, slug)
        page_list = self.lists.site_pages_list(web_url)
        if page_id is None or page_list is None:
            logger.debug("Skipping metadata for %s, page item not resolved.", slug)
            return
        command = (
            f"spo listitem set --listId {cli_value(page_list.list_id)} --id {page_id} "
            f"--webUrl {cli_value(web_url)}"
        )
        for field_name, value in (fields or {}).items():
            command = f"{command} --{field_name} {cli_value(value)}"
        self.engine.execute(parse_arguments(command), retry=self.retry)

    def publish(self, web_url: str, slug: str) -> None:
        """Check the page in when someone holds it, then publish it."""

        page_url = relative_url(web_url, f"{PAGES_LIBRARY}/{slug}")
        if self._requires_check_in(web_url, page_url):
            try:
                self.engine.execute(
                    parse_arguments(
                        f"spo file checkin --webUrl {cli_value(web_url)} "
                        f"--url {cli_value(page_url)}",
                    ),
                )
            except CommandExecutionError as error:
                logger.debug("Page check-in skipped for %s: %s", page_url, error)
        else:
            logger.debug("Skipping check-in for %s, no pending checkout.", page_url)
        self.engine.execute(
            parse_arguments(
                f"spo page set --name {cli_value(slug)} --webUrl {cli_value(web_url)} --publish",
            ),
            retry=self.retry,
        )

    def untouched_pages(self, web_url: str) -> list[str]:
        """Slugs from the run's page snapshot that no ensure call recorded."""

        slugs: list[str] = []
        for item in self.load_pages(web_url):
            _, marker, slug = normalize_key(item.file_ref).partition(f"/{PAGES_LIBRARY}/")
            if marker and slug:
                slugs.append(slug)
        return self.cache.untouched(slugs)

    def clean(self, web_url: str) -> Iterator[str]:
        """Remove untouched pages one at a time, yielding a status line per page.

        A failed removal aborts the sweep unless ``continue_on_error`` is set,
        in which case it is recorded on the run status and the sweep goes on.
        Removals already done are never undone.
        """

        untouched = [slug for slug in self.untouched_pages(web_url) if _removable_page(slug)]
        logger.debug("Removing the following pages: %s", untouched)
        for slug in untouched:
            message = f"Cleaning up page: {slug}"
            logger.debug(message)
            yield message
            page_url = relative_url(web_url, f"{PAGES_LIBRARY}/{slug}")
            try:
                self.engine.execute(
                    parse_arguments(
                        f"spo file remove --webUrl {cli_value(web_url)} "
                        f"--url {cli_value(page_url)} --force",
                    ),
                    retry=self.retry,
                )
            except CommandExecutionError as error:
                logger.debug("Cleaning up %s failed: %s", slug, error)
                if not self.continue_on_error:
                    raise
                self.engine.status.add_error(f"{slug}: {error}")
                yield f"Failed to clean up page: {slug} ({error})"

    def _skip_existing(self, web_url: str, slug: str) -> EnsureResult | None:
        key = normalize_key(slug)
        if self.cache.is_processed(key):
            return EnsureResult(existed=True, identifier=self.cache.processed_id(key), skipped=True)
        page_url = normalize_key(relative_url(web_url, f"{PAGES_LIBRARY}/{slug}"))
        for item in self.load_pages(web_url):
            if normalize_key(item.file_ref) == page_url:
                self.cache.record_processed(key, item.item_id)
                logger.debug("Processed pages: %s", dict(self.cache.processed))
                return EnsureResult(existed=True, identifier=item.item_id, skipped=True)
        return None

    def _lookup_page(self, web_url: str, slug: str) -> RemotePage | None:
        try:
            raw = self.engine.execute_json(
                parse_arguments(
                    f"spo page get --webUrl {cli_value(web_url)} --name {cli_value(slug)} "
                    "--metadataOnly --output json",
                ),
            )
        except CommandExecutionError as error:
            if error.not_found:
                logger.debug("Page %s not found: %s", slug, error)
                return None
            if self.strict_lookups:
                raise
            logger.warning("Lookup of page %s failed, treating it as missing: %s", slug, error)
            return None
        if raw is None:
            return None
        try:
            return parse_remote_page(raw)
        except TypeError as error:
            logger.warning(
                "Unexpected metadata for page %s, treating it as missing: %s",
                slug,
                error,
            )
            return None

    def _find_template(self, web_url: str, name: str) -> PageTemplate | None:
        templates = parse_templates(
            self.engine.execute_json(
                parse_arguments(
                    f"spo page template list --webUrl {cli_value(web_url)} --output json",
                ),
                retry=self.retry,
            ),
        )
        logger.debug("Available templates: %s", [template.title for template in templates])
        for template in templates:
            if template.title == name:
                return template
        return None

    def _copy_template(self, web_url: str, slug: str, template: PageTemplate) -> None:
        source_name = normalize_key(template.url).replace(f"{PAGES_LIBRARY}/", "")
        self.engine.execute(
            parse_arguments(
                f"spo page copy --webUrl {cli_value(web_url)} "
                f"--sourceName {cli_value(source_name)} "
                f"--targetUrl {cli_value(slug)}",
            ),
            retry=self.retry,
        )
        self.engine.execute(
            parse_arguments(
                f"spo page set --webUrl {cli_value(web_url)} --name {cli_value(slug)} --publish",
            ),
            retry=self.retry,
        )

    def _create_page(self, web_url: str, slug: str, attributes: PageAttributes) -> int | None:
        command = (
            f"spo page add --webUrl {cli_value(web_url)} --name {cli_value(slug)} "
            f"--title {cli_value(attributes.title)} --layoutType {cli_value(attributes.layout)}"
        )
        if not attributes.comments_disabled:
            command = f"{command} --commentsEnabled"
        if attributes.description:
            command = f"{command} --description {cli_value(attributes.description)}"
        output = self.engine.execute(
            parse_arguments(f"{command} --output json"),
            retry=self.retry,
        )
        try:
            return extract_item_id(json.loads(output)) if output.strip() else None
        except json.JSONDecodeError:
            return None

    def _page_id(self, web_url: str, slug: str) -> int | None:
        key = normalize_key(slug)
        known = self.cache.processed_id(key)
        if known is not None:
            return known
        raw = self.engine.execute_json(
            parse_arguments(
                f"spo page get --webUrl {cli_value(web_url)} --name {cli_value(slug)} "
                "--metadataOnly --output json",
            ),
            retry=self.retry,
        )
        identifier = extract_item_id(raw)
        if identifier is not None:
            self.cache.record_processed(key, identifier)
        return identifier

    def _requires_check_in(self, web_url: str, page_url: str) -> bool:
        try:
            info = self.engine.execute_json(
                parse_arguments(
                    f"spo file get --webUrl {cli_value(web_url)} "
                    f"--url {cli_value(page_url)} -o json",
                ),
                retry=self.retry,
            )
        except CommandExecutionError as error:
            logger.debug("Unable to determine checkout status for %s: %s", page_url, error)
            return False
        if not isinstance(info, dict):
            return False
        return is_checked_out(info)


def page_changes(page: RemotePage, attributes: PageAttributes) -> list[str]:
    """CLI arguments for the requested fields whose remote value differs."""

    changes: list[str] = []
    if page.title != attributes.title:
        changes.append(f"--title {cli_value(attributes.title)}")
    if attributes.description and (page.description or "") != attributes.description:
        changes.append(f"--description {cli_value(attributes.description)}")
    if page.layout_type != attributes.layout:
        changes.append(f"--layoutType {cli_value(attributes.layout)}")
    if page.comments_disabled != attributes.comments_disabled:
        enabled = "false" if attributes.comments_disabled else "true"
        changes.append(f"--commentsEnabled {enabled}")
    return changes


def is_checked_out(info: Mapping[str, Any]) -> bool:
    """Whether file info reports a checkout or lock held by anyone."""

    checkout_type = info.get("CheckOutType")
    if isinstance(checkout_type, bool):
        checkout_type = None
    if isinstance(checkout_type, int) and checkout_type != 2:  # noqa: PLR2004
        return True
    if isinstance(checkout_type, str) and checkout_type.lower() != "none":
        return True
    holder = (
        info.get("CheckedOutByUserId") or info.get("CheckedOutByUser") or info.get("LockedByUserId")
    )
    return bool(holder)


def find_markdown_control(canvas_json: str) -> str | None:
    """Instance id of the first markdown web part on a page canvas."""

    try:
        controls = json.loads(canvas_json or "[]")
    except json.JSONDecodeError:
        logger.debug("Page canvas is not valid JSON, treating it as empty.")
        return None
    if not isinstance(controls, list):
        return None
    for control in controls:
        if not isinstance(control, dict):
            continue
        if normalize_key(str(control.get("webPartId") or "")) == MARKDOWN_WEB_PART_ID:
            control_id = control.get("id")
            return str(control_id) if control_id else None
    return None


def _removable_page(slug: str) -> bool:
    normalized = normalize_key(slug)
    if not normalized or not normalized.endswith(PAGE_SUFFIX):
        return False
    return normalized.split("/", 1)[0] not in PROTECTED_FOLDERS
