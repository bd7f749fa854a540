"""Shared test fixtures."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from typing import Any

import pytest

from page_doctor.config import CliSettings, RunSettings, Settings
from page_doctor.execution import CompletionGuard, ProcessOutput
from page_doctor.execution.runner import StreamFailure
from page_doctor.publishing.controllers import PublishSession, build_session

WEB_URL = "https://contoso.sharepoint.com/sites/docs"


def ok(stdout: Any = "") -> ProcessOutput:
    """Successful run; non-string payloads are dumped as JSON."""
    text = stdout if isinstance(stdout, str) else json.dumps(stdout)
    return ProcessOutput(stdout=text, stderr="", exit_code=0)


def fail(stderr: str, exit_code: int = 1) -> ProcessOutput:
    return ProcessOutput(stdout="", stderr=stderr, exit_code=exit_code)


class FakeRunner:
    """Scripted process runner matching command lines by substring.

    Rules are checked in registration order. A rule with several outputs hands
    them out one per call and then keeps repeating the last one.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self._rules: list[tuple[str, list[ProcessOutput]]] = []
        self.default = ok()

    def on(self, fragment: str, *outputs: ProcessOutput) -> FakeRunner:
        self._rules.append((fragment, list(outputs)))
        return self

    def commands(self, fragment: str) -> list[str]:
        return [call for call in self.calls if fragment in call]

    def run_buffered(self, command_line: str) -> ProcessOutput:
        self.calls.append(command_line)
        for fragment, outputs in self._rules:
            if fragment in command_line:
                return outputs.pop(0) if len(outputs) > 1 else outputs[0]
        return self.default

    def run_streaming(
        self,
        command_line: str,
        guard: CompletionGuard,
        on_output: Callable[[str], None],
    ) -> None:
        output = self.run_buffered(command_line)
        if output.stdout:
            on_output(output.stdout)
        if output.stderr:
            guard.fail(StreamFailure(output.stderr))
        guard.succeed(output.stdout)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep PAGE_DOCTOR_* variables of the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("PAGE_DOCTOR_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def make_session(fake_runner: FakeRunner, sleeps: list[float]):
    """Build a publish session over the fake runner; keyword args override run settings."""

    def _make(*, dry_run: bool = False, retry: bool = True, **run_overrides: Any) -> PublishSession:
        settings = Settings(
            cli=CliSettings(dry_run=dry_run, retry=retry),
            run=RunSettings(web_url=WEB_URL, **run_overrides),
        )
        return build_session(
            settings,
            runner=fake_runner,
            sleep=sleeps.append,
            on_output=lambda _chunk: None,
        )

    return _make
