"""Execution engine for external CLI invocations with dry-run and retry."""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from page_doctor.config import CliSettings
from page_doctor.execution.deferred import CompletionGuard, Deferred
from page_doctor.execution.failure_classifier import FailureClass, classify_failure
from page_doctor.execution.masking import mask_secrets
from page_doctor.execution.runner import ProcessRunner, SubprocessRunner

logger = logging.getLogger(__name__)

RETRY_DELAY_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class Invocation:
    """One external CLI call; never mutated once built."""

    args: tuple[str, ...]
    retry: bool = False
    spawn: bool = False
    mask: tuple[str, ...] = ()

    def command_line(self, command_name: str) -> str:
        return " ".join((command_name, *self.args))


class CommandExecutionError(RuntimeError):
    """CLI invocation failure carrying only masked text."""

    def __init__(
        self,
        message: str,
        *,
        command: str,
        failure_class: FailureClass = FailureClass.UNKNOWN,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.failure_class = failure_class
        self.cause = cause

    @property
    def not_found(self) -> bool:
        return self.failure_class is FailureClass.NOT_FOUND


@dataclass(slots=True)
class RunStatus:
    """Counters shared by everything executed during one run."""

    executions: int = 0
    retries: int = 0
    errors: list[str] = field(default_factory=list)

    def add_retry(self) -> None:
        self.retries += 1

    def add_error(self, message: str) -> None:
        self.errors.append(message)


class ExecutionEngine:
    """Runs CLI invocations, retrying opt-in calls once after a fixed delay."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        command_name: str = "m365",
        dry_run: bool = False,
        runner: ProcessRunner | None = None,
        status: RunStatus | None = None,
        mask_values: Iterable[str] = (),
        sleep: Callable[[float], None] = time.sleep,
        on_output: Callable[[str], None] | None = None,
    ) -> None:
        self.command_name = command_name
        self.dry_run = dry_run
        self.runner = runner or SubprocessRunner()
        self.status = status or RunStatus()
        self.mask_values = tuple(mask_values)
        self._sleep = sleep
        self._on_output = on_output or sys.stdout.write

    @classmethod
    def from_settings(cls, settings: CliSettings, **kwargs: Any) -> ExecutionEngine:
        return cls(
            command_name=settings.command_name,
            dry_run=settings.dry_run,
            mask_values=settings.mask_values,
            **kwargs,
        )

    def execute(
        self,
        args: Iterable[str],
        *,
        retry: bool = False,
        spawn: bool = False,
        mask: Iterable[str] = (),
    ) -> str:
        """Run one invocation and return its stdout, raising on final failure."""

        invocation = Invocation(args=tuple(args), retry=retry, spawn=spawn, mask=tuple(mask))
        return self.submit(invocation).result()

    def execute_json(
        self,
        args: Iterable[str],
        *,
        retry: bool = False,
        mask: Iterable[str] = (),
    ) -> Any:
        """Run one invocation and decode its JSON output; empty output decodes to ``None``."""

        args = tuple(args)
        mask = tuple(mask)
        output = self.execute(args, retry=retry, mask=mask)
        if not output or not output.strip():
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as error:
            command = mask_secrets(
                " ".join((self.command_name, *args)),
                (*mask, *self.mask_values),
            )
            raise CommandExecutionError(
                f"Invalid JSON output from command: {error}",
                command=command,
                cause=error,
            ) from error

    def submit(self, invocation: Invocation) -> Deferred[str]:
        """Start an invocation bound to a fresh handle that also covers its retry."""

        deferred: Deferred[str] = Deferred()
        self._run(invocation, deferred, first_run=True)
        return deferred

    def _run(self, invocation: Invocation, deferred: Deferred[str], *, first_run: bool) -> None:
        try:
            output = self._attempt(invocation)
        except CommandExecutionError as error:
            if invocation.retry and first_run:
                logger.debug(
                    "Command failed, retrying once in %.0fs: %s",
                    RETRY_DELAY_SECONDS,
                    error,
                )
                self.status.add_retry()
                self._sleep(RETRY_DELAY_SECONDS)
                self._run(invocation, deferred, first_run=False)
            else:
                deferred.reject(error)
            return
        deferred.resolve(output)

    def _attempt(self, invocation: Invocation) -> str:
        secrets = (*invocation.mask, *self.mask_values)
        command_line = invocation.command_line(self.command_name)
        masked_command = mask_secrets(command_line, secrets)
        started = time.monotonic()
        self._log_phase("start", masked_command, started)

        if self.dry_run:
            logger.debug("[dry-run] Skipping execution: %s", masked_command)
            return ""

        self.status.executions += 1
        try:
            if invocation.spawn:
                output = self._stream(command_line, masked_command, secrets)
            else:
                output = self._buffered(command_line, masked_command, secrets)
        except CommandExecutionError as error:
            self._log_phase("error", masked_command, started, str(error))
            raise
        except OSError as error:
            message = mask_secrets(str(error), secrets)
            self._log_phase("error", masked_command, started, message)
            raise CommandExecutionError(
                message,
                command=masked_command,
                cause=error,
            ) from error

        self._log_phase("success", masked_command, started)
        return output

    def _buffered(self, command_line: str, masked_command: str, secrets: tuple[str, ...]) -> str:
        completed = self.runner.run_buffered(command_line)
        if completed.stderr:
            raise _failure(completed.stderr, masked_command, secrets)
        if completed.exit_code != 0:
            raise _failure(
                completed.stdout or f"Command failed with exit code {completed.exit_code}",
                masked_command,
                secrets,
            )
        return completed.stdout

    def _stream(self, command_line: str, masked_command: str, secrets: tuple[str, ...]) -> str:
        attempt: Deferred[str] = Deferred()
        guard = CompletionGuard(attempt)
        self.runner.run_streaming(command_line, guard, self._on_output)
        try:
            return attempt.result(timeout=0)
        except TimeoutError:
            raise _failure(
                "Streamed command ended without output events",
                masked_command,
                secrets,
            ) from None
        except Exception as error:  # noqa: BLE001
            raise _failure(str(error), masked_command, secrets, cause=error) from error

    def _log_phase(
        self,
        phase: str,
        command: str,
        started: float,
        extra: str | None = None,
    ) -> None:
        duration = "" if phase == "start" else f" ({int((time.monotonic() - started) * 1000)}ms)"
        suffix = f" {extra}" if extra else ""
        logger.debug("[exec:%s] %s%s%s", phase, command, duration, suffix)


def _failure(
    text: str,
    command: str,
    secrets: tuple[str, ...],
    *,
    cause: BaseException | None = None,
) -> CommandExecutionError:
    message = mask_secrets(text.strip(), secrets)
    return CommandExecutionError(
        message,
        command=command,
        failure_class=classify_failure(message).failure_class,
        cause=cause,
    )
