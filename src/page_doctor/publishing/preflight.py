"""Preflight probe of the external CLI before a publish run."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

PROBE_FLAGS = ("--version", "--help")


@dataclass(slots=True)
class PreflightResult:
    """Probe outcome for the CLI and the manifest."""

    command_name: str
    available: bool = False
    probe_ok: bool = False
    version: str = ""
    error: str | None = None
    manifest_found: bool | None = None

    @property
    def success(self) -> bool:
        return self.available and self.probe_ok and self.manifest_found is not False


def run_preflight(
    *,
    command_name: str,
    timeout_seconds: int,
    manifest_path: Path | None = None,
) -> PreflightResult:
    """Check that the CLI resolves on PATH and answers ``--version`` or ``--help``.

    Only a ``--version`` answer fills ``version``; a CLI that merely prints its
    help still passes.
    """

    result = PreflightResult(
        command_name=command_name,
        manifest_found=manifest_path.is_file() if manifest_path is not None else None,
    )
    resolved = shutil.which(command_name)
    if resolved is None:
        result.error = f"Executable not found in PATH: {command_name}"
        return result

    result.available = True
    for flag in PROBE_FLAGS:
        try:
            completed = subprocess.run(  # noqa: S603
                [resolved, flag],
                check=False,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            result.error = f"Probe timed out after {timeout_seconds}s: {resolved} {flag}"
            return result
        except OSError as error:
            result.error = f"Probe failed to start: {error} ({resolved})"
            return result
        if completed.returncode == 0:
            result.probe_ok = True
            if flag == "--version":
                result.version = _first_line(completed.stdout)
            return result

    result.error = f"Probe command failed. (resolved executable: {resolved})"
    return result


def _first_line(text: str) -> str:
    return next((line.strip() for line in text.splitlines() if line.strip()), "")
