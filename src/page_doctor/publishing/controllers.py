"""Controllers for publishing CLI commands."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from page_doctor.config import Settings
from page_doctor.execution import CommandExecutionError, ExecutionEngine, ProcessRunner
from page_doctor.publishing.cache import ResourceCache
from page_doctor.publishing.files import FilePublisher
from page_doctor.publishing.folders import FolderCreator
from page_doctor.publishing.manifest import PageEntry, read_publish_manifest
from page_doctor.publishing.pages import PublishOrchestrator, find_markdown_control
from page_doctor.publishing.preflight import run_preflight
from page_doctor.publishing.sites import SiteLists

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PublishCommand:
    """CLI input for one publish run; ``None`` keeps the environment value."""

    manifest_path: Path
    web_url: str | None = None
    command_name: str | None = None
    asset_folder: str | None = None
    dry_run: bool | None = None
    retry: bool | None = None
    clean_start: bool | None = None
    continue_on_error: bool | None = None
    skip_existing_pages: bool | None = None
    strict_lookups: bool | None = None
    mask_values: tuple[str, ...] = ()


@dataclass(slots=True)
class PreflightCommand:
    """CLI input for the external tool probe."""

    command_name: str | None
    manifest_path: Path | None
    timeout_seconds: int | None


@dataclass(slots=True)
class PublishSummary:
    """Counters reported at the end of a run."""

    pages: int = 0
    created: int = 0
    updated: int = 0
    files: int = 0
    removed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PreflightReport:
    lines: list[str]
    success: bool


@dataclass(slots=True)
class PublishSession:
    """Collaborators sharing one run's engine and cache."""

    settings: Settings
    engine: ExecutionEngine
    cache: ResourceCache
    files: FilePublisher
    orchestrator: PublishOrchestrator


def build_session(
    settings: Settings,
    *,
    runner: ProcessRunner | None = None,
    sleep: Callable[[float], None] | None = None,
    on_output: Callable[[str], None] | None = None,
) -> PublishSession:
    """Wire a fresh engine, cache and orchestrator for one run."""

    engine_kwargs: dict[str, object] = {"runner": runner, "on_output": on_output}
    if sleep is not None:
        engine_kwargs["sleep"] = sleep
    engine = ExecutionEngine.from_settings(settings.cli, **engine_kwargs)
    cache = ResourceCache()
    retry = settings.cli.retry
    lists = SiteLists(engine=engine, cache=cache, retry=retry)
    files = FilePublisher(engine=engine, cache=cache, lists=lists, retry=retry)
    orchestrator = PublishOrchestrator(
        engine=engine,
        cache=cache,
        files=files,
        folders=FolderCreator(engine=engine, cache=cache, retry=retry),
        lists=lists,
        retry=retry,
        continue_on_error=settings.run.continue_on_error,
        strict_lookups=settings.run.strict_lookups,
    )
    return PublishSession(
        settings=settings,
        engine=engine,
        cache=cache,
        files=files,
        orchestrator=orchestrator,
    )


class PublishCliController:
    """Coordinates one publish run from a manifest."""

    def __init__(
        self,
        *,
        runner: ProcessRunner | None = None,
        sleep: Callable[[float], None] | None = None,
        on_output: Callable[[str], None] | None = None,
    ) -> None:
        self._runner = runner
        self._sleep = sleep
        self._on_output = on_output

    def publish(self, command: PublishCommand) -> list[str]:
        settings = _settings_for(command)
        settings.validate_for_publish()
        manifest = read_publish_manifest(command.manifest_path)
        session = build_session(
            settings,
            runner=self._runner,
            sleep=self._sleep,
            on_output=self._on_output,
        )
        web_url = settings.run.web_url
        orchestrator = session.orchestrator
        summary = PublishSummary()
        lines: list[str] = []
        if settings.cli.dry_run:
            lines.append("Dry run: no CLI commands will be executed.")

        if settings.run.clean_start:
            orchestrator.load_pages(web_url)
            for removed in session.files.clean_up(settings.run.asset_folder, web_url):
                lines.append(f"Removed asset: {removed}")

        for file_entry in manifest.files:
            url = session.files.create(
                file_entry.folder,
                str(file_entry.path),
                web_url,
                override=file_entry.override,
            )
            summary.files += 1
            lines.append(f"File: {url}")

        for page in manifest.pages:
            try:
                lines.append(self._publish_page(session, page, summary))
            except CommandExecutionError as error:
                if not settings.run.continue_on_error:
                    raise
                logger.warning("Publishing %s failed: %s", page.slug, error)
                summary.errors.append(f"{page.slug}: {error}")
                lines.append(f"Page failed: {page.slug} ({error})")

        if settings.run.clean_start:
            for status_line in orchestrator.clean(web_url):
                lines.append(status_line)
                if status_line.startswith("Cleaning up page:"):
                    summary.removed += 1
                elif status_line.startswith("Failed to clean up page:"):
                    summary.removed -= 1
            summary.errors.extend(session.engine.status.errors)

        lines.append(
            "Publish summary: "
            f"pages={summary.pages} created={summary.created} updated={summary.updated} "
            f"files={summary.files} removed={summary.removed} "
            f"retries={session.engine.status.retries} errors={len(summary.errors)}",
        )
        return lines

    def preflight(self, command: PreflightCommand) -> PreflightReport:
        settings = Settings.from_env()
        command_name = command.command_name or settings.cli.command_name
        result = run_preflight(
            command_name=command_name,
            timeout_seconds=command.timeout_seconds or settings.cli.probe_timeout_seconds,
            manifest_path=command.manifest_path,
        )
        lines = [
            f"cli={result.command_name} available={'yes' if result.available else 'no'} "
            f"probe={'ok' if result.probe_ok else 'failed'}",
        ]
        if result.version:
            lines.append(f"  version: {result.version}")
        if result.error:
            lines.append(f"  error: {result.error}")
        if result.manifest_found is not None:
            found = "yes" if result.manifest_found else "no"
            lines.append(f"manifest={command.manifest_path} found={found}")
        lines.append(f"Preflight status: {'passed' if result.success else 'failed'}")
        return PreflightReport(lines=lines, success=result.success)

    def _publish_page(
        self,
        session: PublishSession,
        page: PageEntry,
        summary: PublishSummary,
    ) -> str:
        settings = session.settings
        web_url = settings.run.web_url
        orchestrator = session.orchestrator
        result = orchestrator.ensure_page(
            web_url,
            page.slug,
            page.attributes(skip_existing=settings.run.skip_existing_pages),
        )
        summary.pages += 1
        if result.skipped:
            return f"Page skipped (already exists): {page.slug}"

        if result.created:
            summary.created += 1
        if result.updated:
            summary.updated += 1

        if page.body is not None:
            control_id = None
            if result.existed:
                control_id = find_markdown_control(orchestrator.page_controls(web_url, page.slug))
            else:
                orchestrator.ensure_default_section(web_url, page.slug)
            orchestrator.set_body(web_url, page.slug, control_id, page.body)
        if page.metadata:
            orchestrator.set_metadata(web_url, page.slug, page.metadata)
        orchestrator.publish(web_url, page.slug)

        state = "created" if result.created else "updated" if result.updated else "unchanged"
        return f"Page {state}: {page.slug}"


def _settings_for(command: PublishCommand) -> Settings:
    settings = Settings.from_env()
    cli = settings.cli
    run = settings.run
    if command.command_name is not None:
        cli.command_name = command.command_name
    if command.dry_run is not None:
        cli.dry_run = command.dry_run
    if command.retry is not None:
        cli.retry = command.retry
    if command.mask_values:
        cli.mask_values = (*cli.mask_values, *command.mask_values)
    if command.web_url is not None:
        run.web_url = command.web_url.rstrip("/")
    if command.asset_folder is not None:
        run.asset_folder = command.asset_folder
    if command.clean_start is not None:
        run.clean_start = command.clean_start
    if command.continue_on_error is not None:
        run.continue_on_error = command.continue_on_error
    if command.skip_existing_pages is not None:
        run.skip_existing_pages = command.skip_existing_pages
    if command.strict_lookups is not None:
        run.strict_lookups = command.strict_lookups
    return settings
