# SARIF 2.1.0 export: one rule per detector, one result per outcome.
from typing import Any, Dict, List

from scverify.schema.models import Location, VerificationOutcome, VerificationReport

_LEVELS = {
    "high": "error",
    "medium": "warning",
    "low": "note",
    "informational": "note",
}


def to_sarif(
    report: VerificationReport,
    tool_name: str = "scverify",
    tool_version: str = "0.0.0",
) -> Dict[str, Any]:
    rules: Dict[str, Dict[str, Any]] = {}
    results: List[Dict[str, Any]] = []

    for outcome in report.outcomes:
        finding = outcome.finding
        if finding.check_id not in rules:
            rules[finding.check_id] = {
                "id": finding.check_id,
                "name": finding.check_id,
                "properties": {"severity": finding.severity},
            }
        results.append(_result(outcome, report.source_id))

    run: Dict[str, Any] = {
        "tool": {
            "driver": {
                "name": tool_name,
                "version": tool_version,
                "rules": list(rules.values()),
            }
        },
        "results": results,
        "properties": {
            "status": report.status,
            "judgeModel": report.judge_model,
            "summary": report.summary(),
        },
    }
    if report.error is not None:
        run["invocations"] = [
            {
                "executionSuccessful": False,
                "toolExecutionNotifications": [
                    {"level": "error", "message": {"text": f"{report.error.kind}: {report.error.message}"}}
                ],
            }
        ]

    return {
        "version": "2.1.0",
        "$schema": "https://json.schemastore.org/sarif-2.1.0.json",
        "runs": [run],
    }


def _result(outcome: VerificationOutcome, source_id: str) -> Dict[str, Any]:
    finding = outcome.finding
    properties: Dict[str, Any] = {"verdict": outcome.status}
    if outcome.judgment is not None:
        properties["confidence"] = outcome.judgment.confidence
        properties["rationale"] = outcome.judgment.rationale
    if outcome.failure is not None:
        properties["failure"] = outcome.failure.kind

    locations = [_location(loc) for loc in finding.locations] or [
        {"physicalLocation": {"artifactLocation": {"uri": source_id}}}
    ]
    return {
        "ruleId": finding.check_id,
        # false positives are kept but demoted
        "level": "none" if outcome.status == "false_positive" else _LEVELS[finding.severity],
        "message": {"text": finding.description or finding.check_id},
        "locations": locations,
        "properties": properties,
    }


def _location(location: Location) -> Dict[str, Any]:
    physical: Dict[str, Any] = {"artifactLocation": {"uri": location.file}}
    if location.start_line is not None:
        region = {"startLine": location.start_line}
        if location.end_line is not None:
            region["endLine"] = location.end_line
        physical["region"] = region
    return {"physicalLocation": physical}
