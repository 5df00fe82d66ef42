
"""Typer CLI entrypoint for scverify runs."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from scverify.config.settings import JudgeConfig, load_settings
from scverify.errors import ConfigError, VerificationCancelled
from scverify.exporters.jsonl import write_jsonl, write_report_json
from scverify.exporters.sarif import to_sarif
from scverify.judge_llm.engine import JudgeClient
from scverify.orchestrator.cancel import CancelToken
from scverify.orchestrator.pipeline import VerificationOrchestrator
from scverify.schema.models import SourceArtifact, VerificationReport

app = typer.Typer(add_completion=False)
console = Console()

API_KEY_ENV = "OPENAI_API_KEY"
TOOL_VERSION = "0.1.0"

_VALID_FORMATS = {"json", "jsonl", "sarif", "table"}
_STATUS_STYLES = {
    "real": "[red]real[/]",
    "false_positive": "[green]false positive[/]",
    "judging_failed": "[yellow]judging failed[/]",
}


def _normalize_formats(values: Sequence[str]) -> List[str]:
    if not values:
        return ["table"]
    normalized = []
    for value in values:
        fmt = value.lower()
        if fmt not in _VALID_FORMATS:
            raise typer.BadParameter(
                f"Unsupported format '{value}'. Choose from {sorted(_VALID_FORMATS)}"
            )
        if fmt not in normalized:
            normalized.append(fmt)
    return normalized


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def verify(
    contract: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Solidity source to verify"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML settings merged over the defaults"),
    model: Optional[str] = typer.Option(None, "--model", help="Override the judge model"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Parallel judge calls"),
    deadline: Optional[float] = typer.Option(None, "--deadline", min=0, help="Cancel the run after N seconds"),
    format: List[str] = typer.Option(
        ["table"], "--format", help="Repeatable option: json, jsonl, sarif, table"
    ),
    out: Path = typer.Option(Path("artifacts/scverify.json"), "--out", help="Output path for file formats"),
    fail_on_high: bool = typer.Option(
        False,
        "--fail-on-high",
        help="Treat only high-severity confirmed findings as blocking",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Run the static analyzer and have the LLM judge verify each finding."""

    _configure_logging(verbose)
    formats = _normalize_formats(format)

    try:
        settings = load_settings(config)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/]")
        raise typer.Exit(code=2) from exc

    updates = {}
    if model:
        updates["model"] = model
    if workers:
        updates["max_workers"] = workers
    api_key = os.environ.get(API_KEY_ENV)
    if api_key:
        updates["api_key"] = api_key
    judge_config = JudgeConfig.model_validate({**settings.judge.model_dump(), **updates})
    settings = settings.model_copy(update={"judge": judge_config})

    try:
        judge = JudgeClient(settings.judge)
    except ValueError as exc:
        console.print(f"[red]Cannot create judge client: {exc}. Set {API_KEY_ENV}.[/]")
        raise typer.Exit(code=2) from exc

    orchestrator = VerificationOrchestrator.from_settings(settings, judge=judge)
    artifact = SourceArtifact(content=contract.read_bytes(), identifier=contract.name)
    console.log(f"Starting verification: contract={contract} model={settings.judge.model} formats={formats}")

    try:
        report = orchestrator.verify(artifact, cancel=CancelToken(deadline))
    except VerificationCancelled as exc:
        console.print(f"[yellow]Verification cancelled: {exc}[/]")
        raise typer.Exit(code=130) from exc
    finally:
        judge.close()

    _export_results(report, formats=formats, out=out)

    for warning in report.warnings:
        console.print(f"[yellow]warning: {warning}[/]")

    if report.error is not None:
        console.print(f"[red]{report.error.stage} failed ({report.error.kind}): {report.error.message}[/]")
        raise typer.Exit(code=2)

    blocking = _blocking_outcomes(report, fail_on_high)
    if blocking:
        console.print(f"[red]{blocking} confirmed vulnerabilit{'y' if blocking == 1 else 'ies'}[/]")
        raise typer.Exit(code=1)

    unjudged = report.summary()["judging_failed"]
    if unjudged:
        console.print(
            f"[yellow]No confirmed vulnerabilities, but {unjudged} finding(s) could not be judged[/]"
        )
        raise typer.Exit(code=3)

    console.print("[green]No confirmed vulnerabilities[/]")
    raise typer.Exit(code=0)


def _blocking_outcomes(report: VerificationReport, fail_on_high: bool) -> int:
    return sum(
        1
        for outcome in report.outcomes
        if outcome.status == "real" and (not fail_on_high or outcome.finding.severity == "high")
    )


def _export_results(
    report: VerificationReport,
    *,
    formats: Sequence[str],
    out: Path,
) -> dict[str, Path]:
    fmt_set = set(formats)
    outputs: dict[str, Path] = {}

    if "json" in fmt_set:
        json_path = out.with_suffix(".json") if out.suffix in {".jsonl", ".sarif"} else out
        write_report_json(json_path, report)
        outputs["json"] = json_path

    if "jsonl" in fmt_set:
        jsonl_path = out.with_suffix(".jsonl")
        write_jsonl(jsonl_path, report)
        outputs["jsonl"] = jsonl_path

    if "sarif" in fmt_set:
        sarif_path = out.with_suffix(".sarif")
        sarif_path.parent.mkdir(parents=True, exist_ok=True)
        with sarif_path.open("w", encoding="utf-8") as handle:
            json.dump(to_sarif(report, tool_version=TOOL_VERSION), handle, indent=2)
            handle.write("\n")
        outputs["sarif"] = sarif_path

    if "table" in fmt_set:
        table = Table(title=f"scverify: {report.source_id}")
        table.add_column("Check")
        table.add_column("Severity")
        table.add_column("Verdict")
        table.add_column("Confidence", justify="right")
        table.add_column("Location")
        for outcome in report.outcomes:
            finding = outcome.finding
            location = ", ".join(
                f"{loc.file}:{loc.start_line}" if loc.start_line else loc.file for loc in finding.locations[:2]
            )
            confidence = outcome.judgment.confidence if outcome.judgment else None
            table.add_row(
                finding.check_id,
                finding.severity,
                _STATUS_STYLES[outcome.status],
                f"{confidence:.2f}" if confidence is not None else "-",
                location or "-",
            )
        console.print(table)

    for fmt, path in outputs.items():
        console.log(f"Wrote {fmt} report to {path}")
    return outputs

if __name__ == "__main__":  # pragma: no cover - manual execution
    app()
