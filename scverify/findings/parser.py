"""Decode the analyzer's detector results into ordered ``Finding`` objects."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from scverify.analyzer_adapter.run_analyzer import RawFindingsDocument
from scverify.errors import ParseError
from scverify.schema.models import Finding, Location

logger = logging.getLogger(__name__)

_SEVERITY = {
    "high": "high",
    "medium": "medium",
    "low": "low",
    "informational": "informational",
    "optimization": "informational",
}
_CONFIDENCE = {"high", "medium", "low"}
_FILENAME_KEYS = ("filename_relative", "filename_short", "filename_absolute")


def parse_findings(document: RawFindingsDocument) -> List[Finding]:
    try:
        text = document.read_text()
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(ParseError.MALFORMED, f"cannot read {document.path}: {exc}") from exc
    return parse_findings_text(text)


def parse_findings_text(text: str) -> List[Finding]:
    """Parse a results document. An empty detector list is a clean contract."""

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(ParseError.MALFORMED, f"results are not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError(ParseError.SCHEMA_MISMATCH, "results document is not an object")

    detectors = _detector_entries(data)
    findings = [_to_finding(index, entry) for index, entry in enumerate(detectors)]
    logger.info("Parsed %d finding(s)", len(findings))
    return findings


def _detector_entries(data: Dict[str, Any]) -> List[Any]:
    results = data.get("results")
    if isinstance(results, dict) and "detectors" in results:
        detectors = results["detectors"]
        if not isinstance(detectors, list):
            raise ParseError(ParseError.SCHEMA_MISMATCH, "results.detectors is not an array")
        return detectors

    # slither drops the detectors key entirely on a clean run
    if results == {} and data.get("success") is True:
        return []

    message = "results.detectors is missing"
    if data.get("success") is False and data.get("error"):
        message = f"{message}; analyzer reported: {data['error']}"
    raise ParseError(ParseError.SCHEMA_MISMATCH, message)


def _to_finding(index: int, entry: Any) -> Finding:
    if not isinstance(entry, dict):
        raise ParseError(ParseError.SCHEMA_MISMATCH, f"detector #{index} is not an object")

    impact = str(entry.get("impact", "")).strip().lower()
    severity = _SEVERITY.get(impact)
    if severity is None:
        raise ParseError(
            ParseError.SCHEMA_MISMATCH, f"detector #{index} has unknown impact '{entry.get('impact')}'"
        )

    confidence = str(entry.get("confidence", "")).strip().lower()
    fingerprint = entry.get("fingerprint", entry.get("id"))
    try:
        return Finding(
            check_id=entry.get("check") or "",
            severity=severity,
            description=str(entry.get("description") or "").strip(),
            locations=_locations(entry.get("elements")),
            analyzer_confidence=confidence if confidence in _CONFIDENCE else None,
            raw_fingerprint=str(fingerprint) if fingerprint is not None else None,
        )
    except ValidationError as exc:
        raise ParseError(ParseError.SCHEMA_MISMATCH, f"detector #{index} is invalid: {exc}") from exc


def _locations(elements: Any) -> List[Location]:
    if not isinstance(elements, list):
        return []
    seen = set()
    locations: List[Location] = []
    for element in elements:
        location = _location(element)
        if location is None or location in seen:
            continue
        seen.add(location)
        locations.append(location)
    return locations


def _location(element: Any) -> Optional[Location]:
    if not isinstance(element, dict):
        return None
    mapping = element.get("source_mapping")
    if not isinstance(mapping, dict):
        return None
    filename = next((mapping[key] for key in _FILENAME_KEYS if mapping.get(key)), None)
    if filename is None:
        return None
    raw_lines = mapping.get("lines")
    if not isinstance(raw_lines, list):
        raw_lines = []
    lines = [line for line in raw_lines if isinstance(line, int) and not isinstance(line, bool)]
    return Location(
        file=str(filename),
        start_line=min(lines) if lines else None,
        end_line=max(lines) if lines else None,
    )


__all__ = ["parse_findings", "parse_findings_text"]
