"""CLI entrypoint for page-doctor."""

import logging
from pathlib import Path

import rich_click as click

from page_doctor import __version__
from page_doctor.execution import CommandExecutionError
from page_doctor.publishing.controllers import (
    PreflightCommand,
    PublishCliController,
    PublishCommand,
)
from page_doctor.publishing.manifest import ManifestError

click.rich_click.USE_MARKDOWN = True
PUBLISH_CONTROLLER = PublishCliController(on_output=lambda chunk: click.echo(chunk, nl=False))


@click.group()
@click.version_option(version=__version__, prog_name="page-doctor")
@click.option(
    "--debug/--no-debug",
    default=False,
    show_default=True,
    help="Log every CLI invocation (secrets masked).",
)
def page_doctor(debug: bool) -> None:
    """Publish pre-rendered pages to SharePoint through the CLI for Microsoft 365."""

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@page_doctor.command("publish")
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Publish manifest (JSON) listing pages and assets.",
)
@click.option("--web-url", default=None, help="Site URL. Defaults to PAGE_DOCTOR_WEB_URL.")
@click.option(
    "--cli-name",
    default=None,
    help="External CLI binary. Defaults to PAGE_DOCTOR_CLI_NAME or `m365`.",
)
@click.option(
    "--asset-folder",
    default=None,
    help="Library folder cleaned on clean start. Defaults to PAGE_DOCTOR_ASSET_FOLDER.",
)
@click.option(
    "--dry-run/--no-dry-run",
    default=None,
    help="Validate the run without executing any CLI command.",
)
@click.option(
    "--retry/--no-retry",
    default=None,
    help="Retry failed mutating commands once after a short delay.",
)
@click.option(
    "--clean-start/--no-clean-start",
    default=None,
    help="Clean the asset folder first and remove pages this run did not touch.",
)
@click.option(
    "--continue-on-error/--stop-on-error",
    default=None,
    help="Keep going when a page or a clean-up removal fails.",
)
@click.option(
    "--skip-existing-pages/--update-existing-pages",
    default=None,
    help="Leave pages that already exist untouched.",
)
@click.option(
    "--strict-lookups/--lenient-lookups",
    default=None,
    help="Only treat explicit not-found errors as missing pages.",
)
@click.option(
    "--mask",
    "mask_values",
    multiple=True,
    help="Value to redact from logs and errors. Can be repeated.",
)
def publish(  # noqa: PLR0913
    manifest_path: Path,
    web_url: str | None,
    cli_name: str | None,
    asset_folder: str | None,
    dry_run: bool | None,
    retry: bool | None,
    clean_start: bool | None,
    continue_on_error: bool | None,
    skip_existing_pages: bool | None,
    strict_lookups: bool | None,
    mask_values: tuple[str, ...],
) -> None:
    """Ensure every manifest page exists, push its content and publish it."""

    try:
        lines = PUBLISH_CONTROLLER.publish(
            PublishCommand(
                manifest_path=manifest_path,
                web_url=web_url,
                command_name=cli_name,
                asset_folder=asset_folder,
                dry_run=dry_run,
                retry=retry,
                clean_start=clean_start,
                continue_on_error=continue_on_error,
                skip_existing_pages=skip_existing_pages,
                strict_lookups=strict_lookups,
                mask_values=mask_values,
            ),
        )
    except (CommandExecutionError, ManifestError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@page_doctor.command("preflight")
@click.option(
    "--cli-name",
    default=None,
    help="External CLI binary. Defaults to PAGE_DOCTOR_CLI_NAME or `m365`.",
)
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Optional manifest path to check for.",
)
@click.option(
    "--timeout-seconds",
    type=click.IntRange(min=1, max=300),
    default=None,
    help="Timeout for the probe command.",
)
def preflight(
    cli_name: str | None,
    manifest_path: Path | None,
    timeout_seconds: int | None,
) -> None:
    """Check that the external CLI is installed and answers."""

    report = PUBLISH_CONTROLLER.preflight(
        PreflightCommand(
            command_name=cli_name,
            manifest_path=manifest_path,
            timeout_seconds=timeout_seconds,
        ),
    )
    _emit_lines(report.lines)
    if not report.success:
        raise click.ClickException("Preflight check failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    page_doctor()
