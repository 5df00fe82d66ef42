# Contract-only models. Keep names/fields stable.
from __future__ import annotations

import json
from collections import Counter
from datetime import datetime
from pathlib import PurePath
from typing import Any, Dict, Literal, Optional, Tuple

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


Severity = Literal["informational", "low", "medium", "high"]
AnalyzerConfidence = Literal["low", "medium", "high"]
OutcomeStatus = Literal["real", "false_positive", "judging_failed"]
RunStatus = Literal["success", "failed"]
FailureKind = Literal["exhausted_retries", "malformed_response"]
PipelineStage = Literal["staging", "analyzer", "parser"]

DEFAULT_IDENTIFIER = "contract.sol"


class SourceArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: bytes
    identifier: str = DEFAULT_IDENTIFIER

    @field_validator("identifier")
    @classmethod
    def _safe_basename(cls, value: str) -> str:
        name = PurePath(value.replace("\\", "/")).name
        if not name or name in {".", ".."}:
            raise ValueError(f"invalid source identifier '{value}'")
        return name

    @classmethod
    def from_text(cls, code: str, identifier: str = DEFAULT_IDENTIFIER) -> "SourceArtifact":
        return cls(content=code.encode("utf-8"), identifier=identifier)

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class Location(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    start_line: Optional[int] = None
    end_line: Optional[int] = None


class Finding(BaseModel):
    model_config = ConfigDict(frozen=True)

    check_id: str = Field(min_length=1)
    severity: Severity
    description: str = ""
    locations: Tuple[Location, ...] = ()
    analyzer_confidence: Optional[AnalyzerConfidence] = None
    raw_fingerprint: Optional[str] = None

    def judge_payload(self) -> Dict[str, Any]:
        """JSON-ready view sent to the judge; the fingerprint never leaves."""
        return self.model_dump(mode="json", exclude={"raw_fingerprint"})


class Judgment(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_real_vulnerability: bool
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rationale: str = ""
    raw_response: str = "{}"

    @property
    def raw_payload(self) -> Dict[str, Any]:
        """The verbatim response decoded again; a fresh dict on every access."""
        return json.loads(self.raw_response)


class JudgeVerdict(BaseModel):
    """Shape the judge is asked to answer with."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    is_real_vulnerability: bool = Field(
        validation_alias=AliasChoices("is_real_vulnerability", "isRealVulnerability"),
    )
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    rationale: str = Field(
        default="",
        validation_alias=AliasChoices("rationale", "reason", "explanation"),
    )

    @field_validator("rationale", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class JudgeFailureRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str
    attempts: int
    raw_response: Optional[str] = None


class VerificationOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    finding: Finding
    judgment: Optional[Judgment] = None
    failure: Optional[JudgeFailureRecord] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "VerificationOutcome":
        if (self.judgment is None) == (self.failure is None):
            raise ValueError("an outcome carries exactly one of judgment or failure")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> OutcomeStatus:
        if self.judgment is None:
            return "judging_failed"
        return "real" if self.judgment.is_real_vulnerability else "false_positive"


class PipelineError(BaseModel):
    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    kind: str
    message: str
    exit_code: Optional[int] = None


class VerificationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    status: RunStatus
    started_at: datetime
    finished_at: datetime
    judge_model: Optional[str] = None
    analyzer_exit_code: Optional[int] = None
    outcomes: Tuple[VerificationOutcome, ...] = ()
    error: Optional[PipelineError] = None
    warnings: Tuple[str, ...] = ()

    def summary(self) -> Dict[str, int]:
        counts = Counter(outcome.status for outcome in self.outcomes)
        return {
            "total": len(self.outcomes),
            "real": counts.get("real", 0),
            "false_positive": counts.get("false_positive", 0),
            "judging_failed": counts.get("judging_failed", 0),
        }
