# JSON writers for verification reports (one record per outcome, or the whole report).
from pathlib import Path

import json

from scverify.schema.models import VerificationReport


def write_jsonl(path: Path, report: VerificationReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for outcome in report.outcomes:
            rec = {
                "source": report.source_id,
                "finding": outcome.finding.model_dump(mode="json"),
                "status": outcome.status,
                "judgment": outcome.judgment.model_dump(mode="json") if outcome.judgment else None,
                "failure": outcome.failure.model_dump(mode="json") if outcome.failure else None,
                "model": report.judge_model,
            }
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")


def write_report_json(path: Path, report: VerificationReport) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = report.model_dump(mode="json")
    payload["summary"] = report.summary()
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)
        f.write("\n")
