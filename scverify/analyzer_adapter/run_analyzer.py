# Adapter boundary: launch the external static analyzer and hand back its results file.
from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from scverify.errors import AnalyzerError, VerificationCancelled
from scverify.orchestrator.cancel import CancelToken

logger = logging.getLogger(__name__)

DEFAULT_COMMAND = ("slither", "{source}", "--json", "{output}")
_POLL_INTERVAL = 0.1
_STDERR_TAIL = 2000


@dataclass(frozen=True)
class RawFindingsDocument:
    """Location of the analyzer's results file plus process diagnostics."""

    path: Path
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")


class AnalyzerAdapter:
    def __init__(self, command: Sequence[str] = DEFAULT_COMMAND, timeout: float = 300.0) -> None:
        self.command = list(command)
        self.timeout = timeout

    def build_argv(self, artifact_path: Path, output_path: Path) -> List[str]:
        return [
            part.format(source=artifact_path.name, output=str(output_path))
            for part in self.command
        ]

    def run(
        self,
        artifact_path: Path,
        output_path: Path,
        cancel: Optional[CancelToken] = None,
    ) -> RawFindingsDocument:
        """Run the analyzer on ``artifact_path``.

        The exit code alone never decides success: Slither exits non-zero
        whenever it reports findings. Only a non-empty ``output_path`` does.
        """

        argv = self.build_argv(artifact_path, output_path)
        logger.info("Running analyzer: %s", " ".join(argv))
        try:
            proc = subprocess.Popen(
                argv,
                cwd=str(artifact_path.parent),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise AnalyzerError(
                AnalyzerError.EXECUTION_FAILED, f"cannot launch '{argv[0]}': {exc}"
            ) from exc

        stdout, stderr = self._communicate(proc, cancel)
        exit_code = proc.returncode
        logger.debug("Analyzer exited with code %s", exit_code)

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise AnalyzerError(
                AnalyzerError.NO_OUTPUT_PRODUCED,
                f"analyzer produced no results at {output_path.name} (exit code {exit_code})",
                exit_code=exit_code,
                stderr=stderr[-_STDERR_TAIL:],
            )
        return RawFindingsDocument(path=output_path, exit_code=exit_code, stdout=stdout, stderr=stderr)

    def _communicate(self, proc: subprocess.Popen, cancel: Optional[CancelToken]) -> tuple[str, str]:
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._kill(proc)
                raise AnalyzerError(
                    AnalyzerError.TIMED_OUT,
                    f"analyzer did not finish within {self.timeout:g}s",
                )
            if cancel is not None and cancel.cancelled:
                self._kill(proc)
                raise VerificationCancelled("analyzer run cancelled")
            try:
                return proc.communicate(timeout=min(_POLL_INTERVAL, remaining))
            except subprocess.TimeoutExpired:
                continue

    @staticmethod
    def _kill(proc: subprocess.Popen) -> None:
        proc.kill()
        proc.communicate()


__all__ = ["AnalyzerAdapter", "RawFindingsDocument", "DEFAULT_COMMAND"]
