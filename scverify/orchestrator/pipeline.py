"""Verification pipeline: stage, analyze, parse, judge, report."""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from scverify.analyzer_adapter.run_analyzer import AnalyzerAdapter
from scverify.config.settings import Settings, load_settings
from scverify.errors import AnalyzerError, JudgeFailure, ParseError, StagingError
from scverify.findings.parser import parse_findings
from scverify.judge_llm.engine import JudgeClient
from scverify.orchestrator.cancel import CancelToken
from scverify.schema.models import (
    DEFAULT_IDENTIFIER,
    Finding,
    JudgeFailureRecord,
    PipelineError,
    SourceArtifact,
    VerificationOutcome,
    VerificationReport,
)
from scverify.staging.workspace import ArtifactStaging

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VerificationOrchestrator:
    def __init__(
        self,
        analyzer: AnalyzerAdapter,
        judge: JudgeClient,
        staging: Optional[ArtifactStaging] = None,
        max_workers: int = 1,
    ) -> None:
        self.analyzer = analyzer
        self.judge = judge
        self.staging = staging if staging is not None else ArtifactStaging()
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_settings(cls, settings: Settings, judge: Optional[JudgeClient] = None) -> "VerificationOrchestrator":
        return cls(
            analyzer=AnalyzerAdapter(settings.analyzer.command, settings.analyzer.timeout),
            judge=judge if judge is not None else JudgeClient(settings.judge),
            staging=ArtifactStaging(settings.staging.root),
            max_workers=settings.judge.max_workers,
        )

    def verify(
        self,
        artifact: SourceArtifact,
        cancel: Optional[CancelToken] = None,
        run_id: Optional[str] = None,
    ) -> VerificationReport:
        """Run the whole pipeline for ``artifact``.

        Analyzer, parser and staging failures produce a failed report with no
        outcomes. ``VerificationCancelled`` and unexpected errors propagate,
        but only after the staging slot is released.
        """

        cancel = cancel or CancelToken()
        started_at = _now()
        fields: Dict[str, Any] = {
            "source_id": artifact.identifier,
            "started_at": started_at,
            "judge_model": self.judge.config.model,
        }
        logger.info("Verifying %s", artifact.identifier)

        try:
            with self.staging.stage(artifact, run_id=run_id) as slot:
                fields.update(self._run(artifact, slot.source_path, slot.output_path, cancel))
        except StagingError as exc:
            logger.error("Staging failed: %s", exc)
            fields.update(_fatal("staging", exc))
        else:
            if slot.cleanup_warnings:
                fields["warnings"] = tuple(slot.cleanup_warnings)

        report = VerificationReport(finished_at=_now(), **fields)
        logger.info("Verification of %s finished: status=%s %s", report.source_id, report.status, report.summary())
        return report

    def _run(
        self, artifact: SourceArtifact, source_path: Path, output_path: Path, cancel: CancelToken
    ) -> Dict[str, Any]:
        cancel.raise_if_cancelled()
        try:
            document = self.analyzer.run(source_path, output_path, cancel=cancel)
        except AnalyzerError as exc:
            logger.error("Analyzer failed: %s", exc)
            return _fatal("analyzer", exc, exit_code=exc.exit_code)

        try:
            findings = parse_findings(document)
        except ParseError as exc:
            logger.error("Cannot parse analyzer output: %s", exc)
            return _fatal("parser", exc, exit_code=document.exit_code)

        outcomes = self._judge_all(findings, artifact.text, cancel)
        return {
            "status": "success",
            "analyzer_exit_code": document.exit_code,
            "outcomes": tuple(outcomes),
        }

    def _judge_all(self, findings: List[Finding], source_code: str, cancel: CancelToken) -> List[VerificationOutcome]:
        if not findings:
            return []
        if self.max_workers == 1 or len(findings) == 1:
            return [self._judge_one(finding, source_code, cancel) for finding in findings]

        # siblings stop through their own scope; the caller's token stays untouched
        scope = cancel.child()
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(findings))) as pool:
            futures: List[Future] = [
                pool.submit(self._judge_one, finding, source_code, scope) for finding in findings
            ]
            try:
                # collected in submission order, not completion order
                return [future.result() for future in futures]
            except BaseException:
                scope.cancel()
                for future in futures:
                    future.cancel()
                raise

    def _judge_one(self, finding: Finding, source_code: str, cancel: CancelToken) -> VerificationOutcome:
        cancel.raise_if_cancelled()
        try:
            judgment = self.judge.judge(finding, source_code, cancel=cancel)
        except JudgeFailure as exc:
            logger.warning("Judging %s failed: %s", finding.check_id, exc)
            return VerificationOutcome(
                finding=finding,
                failure=JudgeFailureRecord(
                    kind=exc.kind,
                    message=exc.message,
                    attempts=exc.attempts,
                    raw_response=exc.raw_response,
                ),
            )
        logger.debug("Judged %s: real=%s", finding.check_id, judgment.is_real_vulnerability)
        return VerificationOutcome(finding=finding, judgment=judgment)


def _fatal(stage: str, exc: Exception, exit_code: Optional[int] = None) -> Dict[str, Any]:
    return {
        "status": "failed",
        "analyzer_exit_code": exit_code,
        "outcomes": (),
        "error": PipelineError(
            stage=stage,
            kind=getattr(exc, "kind", type(exc).__name__),
            message=getattr(exc, "message", str(exc)),
            exit_code=exit_code,
        ),
    }


def verify(
    source_code: str,
    identifier: str = DEFAULT_IDENTIFIER,
    settings: Optional[Settings] = None,
    judge: Optional[JudgeClient] = None,
    cancel: Optional[CancelToken] = None,
) -> VerificationReport:
    """Entry point: verify ``source_code`` with the default or given settings."""

    settings = settings or load_settings()
    owned = judge is None
    if owned:
        judge = JudgeClient(settings.judge)
    try:
        orchestrator = VerificationOrchestrator.from_settings(settings, judge=judge)
        return orchestrator.verify(SourceArtifact.from_text(source_code, identifier), cancel=cancel)
    finally:
        if owned:
            judge.close()


__all__ = ["VerificationOrchestrator", "verify"]
