import json
from datetime import datetime, timezone

from scverify.exporters.jsonl import write_jsonl, write_report_json
from scverify.exporters.sarif import to_sarif
from scverify.schema.models import (
    Finding,
    JudgeFailureRecord,
    Judgment,
    Location,
    PipelineError,
    VerificationOutcome,
    VerificationReport,
)


NOW = datetime(2026, 10, 19, tzinfo=timezone.utc)


def _report(**overrides) -> VerificationReport:
    reentrancy = Finding(
        check_id="reentrancy-eth",
        severity="high",
        description="Reentrancy in EtherStore.withdraw()",
        locations=[Location(file="contract.sol", start_line=12, end_line=20)],
        raw_fingerprint="abc",
    )
    solc = Finding(check_id="solc-version", severity="informational", description="old solc")
    tx_origin = Finding(check_id="tx-origin", severity="medium")
    data = {
        "source_id": "contract.sol",
        "status": "success",
        "started_at": NOW,
        "finished_at": NOW,
        "judge_model": "gpt-4o-mini",
        "analyzer_exit_code": 255,
        "outcomes": [
            VerificationOutcome(
                finding=reentrancy,
                judgment=Judgment(is_real_vulnerability=True, confidence=0.9, rationale="call before write"),
            ),
            VerificationOutcome(finding=solc, judgment=Judgment(is_real_vulnerability=False, rationale="style")),
            VerificationOutcome(
                finding=tx_origin,
                failure=JudgeFailureRecord(kind="exhausted_retries", message="gave up", attempts=4),
            ),
        ],
    }
    data.update(overrides)
    return VerificationReport(**data)


def test_jsonl_has_one_record_per_outcome(tmp_path):
    path = tmp_path / "out" / "report.jsonl"
    write_jsonl(path, _report())

    records = [json.loads(line) for line in path.read_text().splitlines()]
    assert [r["status"] for r in records] == ["real", "false_positive", "judging_failed"]
    assert records[0]["judgment"]["confidence"] == 0.9
    assert records[2]["failure"]["kind"] == "exhausted_retries"
    assert records[0]["model"] == "gpt-4o-mini"


def test_report_json_includes_summary(tmp_path):
    path = tmp_path / "report.json"
    write_report_json(path, _report())

    payload = json.loads(path.read_text())
    assert payload["summary"] == {"total": 3, "real": 1, "false_positive": 1, "judging_failed": 1}
    assert payload["outcomes"][0]["status"] == "real"
    assert payload["analyzer_exit_code"] == 255


def test_sarif_maps_rules_levels_and_verdicts():
    sarif = to_sarif(_report(), tool_version="9.9.9")

    run = sarif["runs"][0]
    assert sarif["version"] == "2.1.0"
    assert run["tool"]["driver"]["version"] == "9.9.9"
    assert [r["id"] for r in run["tool"]["driver"]["rules"]] == ["reentrancy-eth", "solc-version", "tx-origin"]
    results = run["results"]
    assert [r["level"] for r in results] == ["error", "none", "warning"]
    assert results[0]["locations"][0]["physicalLocation"]["region"] == {"startLine": 12, "endLine": 20}
    assert results[1]["locations"][0]["physicalLocation"]["artifactLocation"]["uri"] == "contract.sol"
    assert results[2]["properties"] == {"verdict": "judging_failed", "failure": "exhausted_retries"}


def test_sarif_records_fatal_error():
    report = _report(
        status="failed",
        outcomes=[],
        error=PipelineError(stage="analyzer", kind="no_output_produced", message="no results", exit_code=1),
    )

    run = to_sarif(report)["runs"][0]
    assert run["results"] == []
    assert run["invocations"][0]["executionSuccessful"] is False
