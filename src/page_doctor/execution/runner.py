"""Subprocess runners for CLI invocations."""

from __future__ import annotations

import subprocess
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from page_doctor.execution.deferred import CompletionGuard


@dataclass(slots=True)
class ProcessOutput:
    """Captured outcome of one buffered process run."""

    stdout: str
    stderr: str
    exit_code: int


class StreamFailure(RuntimeError):
    """First chunk written to stderr by a streamed process."""


class ProcessRunner(Protocol):
    """Protocol implemented by process runners."""

    def run_buffered(self, command_line: str) -> ProcessOutput:
        """Run to completion and capture both streams."""

    def run_streaming(
        self,
        command_line: str,
        guard: CompletionGuard,
        on_output: Callable[[str], None],
    ) -> None:
        """Run while forwarding stdout; settle ``guard`` on the first terminating event."""


class SubprocessRunner:
    """Run CLI command lines through the system shell."""

    def run_buffered(self, command_line: str) -> ProcessOutput:
        completed = subprocess.run(  # noqa: S602
            command_line,
            shell=True,
            check=False,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
        )
        return ProcessOutput(
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            exit_code=completed.returncode,
        )

    def run_streaming(
        self,
        command_line: str,
        guard: CompletionGuard,
        on_output: Callable[[str], None],
    ) -> None:
        process = subprocess.Popen(  # noqa: S602
            command_line,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
        stdout_stream, stderr_stream = process.stdout, process.stderr
        if stdout_stream is None or stderr_stream is None:
            raise OSError(f"Process pipes were not opened: {command_line}")

        def _watch_stderr() -> None:
            first = True
            for chunk in stderr_stream:
                if first and chunk:
                    guard.fail(StreamFailure(chunk))
                    first = False

        watcher = threading.Thread(target=_watch_stderr, name="cli-stderr", daemon=True)
        watcher.start()

        collected: list[str] = []
        for chunk in stdout_stream:
            collected.append(chunk)
            on_output(chunk)
        guard.succeed("".join(collected))

        process.wait()
        watcher.join()
