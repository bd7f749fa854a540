"""External CLI execution: tokenization, masking, dry-run and retry."""

from page_doctor.execution.deferred import CompletionGuard, Deferred, DeferredState
from page_doctor.execution.engine import (
    RETRY_DELAY_SECONDS,
    CommandExecutionError,
    ExecutionEngine,
    Invocation,
    RunStatus,
)
from page_doctor.execution.failure_classifier import FailureClass, classify_failure
from page_doctor.execution.masking import mask_secrets
from page_doctor.execution.runner import ProcessOutput, ProcessRunner, SubprocessRunner
from page_doctor.execution.tokenizer import parse_arguments, quote_argument, split_arguments

__all__ = [
    "RETRY_DELAY_SECONDS",
    "CommandExecutionError",
    "CompletionGuard",
    "Deferred",
    "DeferredState",
    "ExecutionEngine",
    "FailureClass",
    "Invocation",
    "ProcessOutput",
    "ProcessRunner",
    "RunStatus",
    "SubprocessRunner",
    "classify_failure",
    "mask_secrets",
    "parse_arguments",
    "quote_argument",
    "split_arguments",
]
