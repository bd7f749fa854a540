"""Runtime configuration for publish runs."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse


@dataclass(slots=True)
class CliSettings:
    """External CLI invocation settings."""

    command_name: str = "m365"
    dry_run: bool = False
    retry: bool = True
    mask_values: tuple[str, ...] = ()
    probe_timeout_seconds: int = 30


@dataclass(slots=True)
class RunSettings:
    """Per-run publishing behavior."""

    web_url: str = ""
    asset_folder: str = "siteassets"
    clean_start: bool = False
    continue_on_error: bool = False
    skip_existing_pages: bool = False
    strict_lookups: bool = False


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    cli: CliSettings = field(default_factory=CliSettings)
    run: RunSettings = field(default_factory=RunSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults suitable for local runs."""

        return cls(
            cli=CliSettings(
                command_name=os.getenv("PAGE_DOCTOR_CLI_NAME", "m365").strip(),
                dry_run=_env_bool("PAGE_DOCTOR_DRY_RUN", default=False),
                retry=_env_bool("PAGE_DOCTOR_RETRY", default=True),
                mask_values=_collect_mask_values(),
                probe_timeout_seconds=int(os.getenv("PAGE_DOCTOR_PROBE_TIMEOUT_SECONDS", "30")),
            ),
            run=RunSettings(
                web_url=os.getenv("PAGE_DOCTOR_WEB_URL", "").strip().rstrip("/"),
                asset_folder=os.getenv("PAGE_DOCTOR_ASSET_FOLDER", "siteassets").strip(),
                clean_start=_env_bool("PAGE_DOCTOR_CLEAN_START", default=False),
                continue_on_error=_env_bool("PAGE_DOCTOR_CONTINUE_ON_ERROR", default=False),
                skip_existing_pages=_env_bool("PAGE_DOCTOR_SKIP_EXISTING_PAGES", default=False),
                strict_lookups=_env_bool("PAGE_DOCTOR_STRICT_LOOKUPS", default=False),
            ),
        )

    def validate_for_publish(self) -> None:
        """Raise configuration error if the target site or CLI name is unusable."""

        if not self.cli.command_name.strip():
            raise ValueError("PAGE_DOCTOR_CLI_NAME must not be empty.")
        if self.cli.probe_timeout_seconds <= 0:
            raise ValueError("PAGE_DOCTOR_PROBE_TIMEOUT_SECONDS must be > 0.")
        if not self.run.web_url:
            raise ValueError("A site URL is required (--web-url or PAGE_DOCTOR_WEB_URL).")
        parsed = urlparse(self.run.web_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "Invalid site URL: "
                f"{self.run.web_url!r}. Expected an absolute URL with http:// or https:// scheme.",
            )
        if not self.run.asset_folder:
            raise ValueError("PAGE_DOCTOR_ASSET_FOLDER must not be empty.")


def _collect_mask_values() -> tuple[str, ...]:
    raw = os.getenv("PAGE_DOCTOR_MASK_VALUES", "")
    values: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        value = part.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        values.append(value)
    return tuple(values)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
