"""Error taxonomy for the verification pipeline.

Analyzer, parser and staging write errors abort a run. Judge failures stay
local to one finding and are recorded in the report. Cleanup failures are
only ever reported as warnings.
"""
from __future__ import annotations

from typing import Optional


class ScverifyError(Exception):
    """Base class; ``kind`` names the failure within its family."""

    kind: str = "error"

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


class ConfigError(ScverifyError):
    INVALID = "invalid"

    def __init__(self, message: str) -> None:
        super().__init__(self.INVALID, message)


class StagingError(ScverifyError):
    WRITE_FAILED = "write_failed"
    CLEANUP_FAILED = "cleanup_failed"
    SLOT_IN_USE = "slot_in_use"


class AnalyzerError(ScverifyError):
    EXECUTION_FAILED = "execution_failed"
    NO_OUTPUT_PRODUCED = "no_output_produced"
    TIMED_OUT = "timed_out"

    def __init__(
        self,
        kind: str,
        message: str,
        exit_code: Optional[int] = None,
        stderr: str = "",
    ) -> None:
        super().__init__(kind, message)
        self.exit_code = exit_code
        self.stderr = stderr


class ParseError(ScverifyError):
    MALFORMED = "malformed"
    SCHEMA_MISMATCH = "schema_mismatch"


class JudgeFailure(ScverifyError):
    EXHAUSTED_RETRIES = "exhausted_retries"
    MALFORMED_RESPONSE = "malformed_response"

    def __init__(
        self,
        kind: str,
        message: str,
        attempts: int,
        raw_response: Optional[str] = None,
    ) -> None:
        super().__init__(kind, message)
        self.attempts = attempts
        self.raw_response = raw_response


class JudgeTransportError(Exception):
    """Transport-level failure (connection, timeout, non-2xx); retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VerificationCancelled(Exception):
    """Raised when a run is cancelled or its deadline passes."""


__all__ = [
    "AnalyzerError",
    "ConfigError",
    "JudgeFailure",
    "JudgeTransportError",
    "ParseError",
    "ScverifyError",
    "StagingError",
    "VerificationCancelled",
]
