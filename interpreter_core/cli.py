"""Interpreter Copilot CLI - Main entry point."""

import asyncio
import json
import sys
from typing import Any, Dict, List, Optional, Tuple, Union

import click
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from interpreter_core import __version__
from interpreter_core.analysis.base import Category, CategoryScore, Finding
from interpreter_core.analysis.detectors import default_detectors
from interpreter_core.analysis.rubric import interpret_score, weighted_overall
from interpreter_core.config import LogFormat, LoggingSettings, Settings
from interpreter_core.core.errors import ErrorEnvelope, InterpreterError
from interpreter_core.core.logging import configure_logging
from interpreter_core.enrichment.terminology import TermEnrichment
from interpreter_core.orchestrator import SessionListener, SessionOrchestrator
from interpreter_core.persistence.records import SessionRecord
from interpreter_core.streaming.models import Utterance
from interpreter_core.streaming.transport import InMemoryTransport

console = Console()


# =============================================================================
# Output helpers
# =============================================================================


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    json_str = json.dumps(data, indent=2, default=str)
    console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))


def score_style(score: float) -> str:
    if score >= 90:
        return "green"
    if score >= 80:
        return "cyan"
    if score >= 70:
        return "yellow"
    return "red"


def print_report(record: SessionRecord, terms: List[TermEnrichment], errors: List[ErrorEnvelope]) -> None:
    report = record.report

    summary = Table(title="Session")
    summary.add_column("Field", style="cyan")
    summary.add_column("Value")
    summary.add_row("Session", record.session_id)
    summary.add_row("Platform", record.platform)
    summary.add_row("Status", record.status.value)
    summary.add_row("Duration", record.summary()["duration"])
    summary.add_row("Utterances", str(record.utterance_count))
    if report is not None:
        summary.add_row("Words", str(report.metadata.word_count))
        summary.add_row(
            "Overall",
            f"[{score_style(report.overall_score)}]{report.overall_score:.1f}[/] "
            f"({report.interpretation.label})",
        )
    console.print(summary)

    if report is None:
        console.print("[yellow]No report was produced[/yellow]")
        return

    scores = Table(title="Category Scores")
    scores.add_column("Category", style="cyan")
    scores.add_column("Score", justify="right")
    scores.add_column("Issues", justify="right")
    for name, value in report.category_scores.items():
        scores.add_row(
            name.replace("_", " "),
            f"[{score_style(value)}]{value:.1f}[/]",
            str(len(report.findings.get(name, []))),
        )
    console.print(scores)

    if report.top_suggestions:
        suggestions = Table(title="Top Suggestions")
        suggestions.add_column("Priority", style="bold")
        suggestions.add_column("Issue")
        suggestions.add_column("Count", justify="right")
        suggestions.add_column("Recommendation")
        for suggestion in report.top_suggestions:
            suggestions.add_row(
                suggestion.priority.value,
                suggestion.issue,
                str(suggestion.occurrences),
                suggestion.recommendations[0] if suggestion.recommendations else "",
            )
        console.print(suggestions)

    if terms:
        table = Table(title="Medical Terms")
        table.add_column("Term", style="cyan")
        table.add_column("Translation")
        table.add_column("Pronunciation")
        table.add_column("Definition")
        for term in terms:
            table.add_row(term.term, term.translation, term.phonetics, term.definition)
        console.print(table)

    if errors:
        console.print(f"\n[yellow]{len(errors)} error(s) during replay[/yellow]")
        for envelope in errors[:10]:
            console.print(f"  [dim]{envelope.source}[/dim] {envelope.message}")


# =============================================================================
# Replay
# =============================================================================


class ReplayCollector(SessionListener):
    """Keeps what a replayed session produced for printing."""

    def __init__(self) -> None:
        self.utterances: List[Utterance] = []
        self.terms: List[TermEnrichment] = []
        self.errors: List[ErrorEnvelope] = []
        self.record: Optional[SessionRecord] = None
        self.ended = asyncio.Event()

    async def on_utterance(self, utterance: Utterance) -> None:
        self.utterances.append(utterance)

    async def on_term_enriched(self, enrichment: TermEnrichment) -> None:
        self.terms.append(enrichment)

    async def on_error(self, envelope: ErrorEnvelope) -> None:
        self.errors.append(envelope)

    async def on_session_complete(self, record: SessionRecord) -> None:
        self.record = record
        self.ended.set()


def to_source_message(line: str) -> Union[str, Dict[str, Any]]:
    """Turn one JSONL line into a recognition-source message.

    Lines already in the source's ``results`` shape are passed through, as
    are lines that do not parse (the channel reports those). Plain records
    ``{"text", "is_final", "confidence", "language", "speaker"}`` are
    wrapped into the source shape.
    """
    try:
        data = json.loads(line)
    except ValueError:
        return line
    if not isinstance(data, dict) or "results" in data or "text" not in data:
        return line

    result: Dict[str, Any] = {
        "alternatives": [
            {
                "transcript": data["text"],
                "confidence": data.get("confidence", 1.0),
            }
        ],
        "isFinal": data.get("is_final", True),
    }
    if data.get("language"):
        result["languageCode"] = data["language"]
    if data.get("speaker"):
        result["speaker"] = data["speaker"]
    return {"results": [result]}


async def replay_transcript(
    lines: List[str],
    platform: str,
    settings: Settings,
) -> Tuple[Optional[SessionRecord], ReplayCollector]:
    """Run a full session over recorded source messages.

    The session is stopped once every message has been handled, or earlier
    if a non-recoverable error ended it.
    """
    transport = InMemoryTransport()
    collector = ReplayCollector()
    orchestrator = SessionOrchestrator(
        settings=settings,
        transport_factory=lambda: transport,
        listeners=[collector],
    )

    await orchestrator.start(platform)
    try:
        for line in lines:
            transport.push(to_source_message(line))

        waiters = [
            asyncio.create_task(transport.wait_consumed()),
            asyncio.create_task(collector.ended.wait()),
        ]
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for waiter in waiters:
            waiter.cancel()
        await asyncio.gather(*waiters, return_exceptions=True)

        record = await orchestrator.stop()
    finally:
        await orchestrator.close()
    return record or collector.record, collector


# =============================================================================
# Commands
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="interpreter-copilot")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table",
              help="Output format")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, output: str, debug: bool):
    """Interpreter Copilot - Quality analysis for medical interpreters.

    \b
    Examples:
      interpreter-copilot replay session.jsonl
      interpreter-copilot score "Um, the patient was having chest pain."
      interpreter-copilot serve --port 8090
    """
    ctx.ensure_object(dict)
    configure_logging(
        LoggingSettings(level="debug" if debug else "warning", format=LogFormat.CONSOLE)
    )
    ctx.obj["output"] = output
    ctx.obj["debug"] = debug


@cli.command("replay")
@click.argument("transcript", type=click.File("r"))
@click.option("--platform", "-p", default="replay", help="Platform name recorded on the session")
@click.option("--no-enrichment", is_flag=True, help="Skip terminology enrichment")
@click.pass_context
def replay(ctx: click.Context, transcript, platform: str, no_enrichment: bool):
    """Replay a JSONL transcript through a full session and print the report."""
    lines = [line.strip() for line in transcript if line.strip()]
    if not lines:
        console.print("[red]✗[/red] Transcript is empty")
        sys.exit(1)

    settings = Settings()
    settings.deep_analysis.enabled = False
    settings.enrichment.enabled = not no_enrichment

    try:
        record, collector = asyncio.run(replay_transcript(lines, platform, settings))
    except InterpreterError as e:
        console.print(f"[red]✗[/red] Replay failed: {e.message}")
        sys.exit(1)

    if record is None:
        console.print("[red]✗[/red] Session ended before the replay finished")
        for envelope in collector.errors:
            console.print(f"  [dim]{envelope.source}[/dim] {envelope.message}")
        sys.exit(1)

    if ctx.obj.get("output") == "json":
        data = record.to_dict()
        data["terms"] = [t.to_dict() for t in collector.terms]
        data["errors"] = [e.to_dict() for e in collector.errors]
        print_json(data)
        return

    print_report(record, collector.terms, collector.errors)


async def score_utterance(text: str, language: str, settings: Settings) -> Dict[Category, CategoryScore]:
    utterance = Utterance(text=text, is_final=True, confidence=1.0, language=language)
    scores = {c: CategoryScore(c) for c in Category}
    for detector in default_detectors(settings.analysis.deductions):
        findings = await detector.detect(utterance)
        scores[detector.category].apply(findings)
    return scores


@cli.command("score")
@click.argument("text")
@click.option("--language", "-l", default="en-US", help="Language code of the utterance")
@click.pass_context
def score(ctx: click.Context, text: str, language: str):
    """Run the detectors on a single utterance."""
    settings = Settings()
    scores = asyncio.run(score_utterance(text, language, settings))

    category_scores = {c.value: s.score for c, s in scores.items()}
    overall = weighted_overall(category_scores, settings.analysis.weights)
    findings: List[Finding] = [f for s in scores.values() for f in s.findings]

    if ctx.obj.get("output") == "json":
        print_json({
            "text": text,
            "overall_score": round(overall, 2),
            "category_scores": category_scores,
            "findings": [f.to_dict() for f in findings],
        })
        return

    if not findings:
        console.print("[green]✓[/green] No issues found")
    else:
        table = Table(title="Findings")
        table.add_column("Category", style="cyan")
        table.add_column("Type")
        table.add_column("Span")
        table.add_column("Delta", justify="right")
        table.add_column("Severity")
        for finding in findings:
            table.add_row(
                finding.category.value,
                finding.finding_type,
                finding.span,
                f"{finding.delta:+.1f}",
                finding.severity.value,
            )
        console.print(table)

    band = interpret_score(overall)
    console.print(
        f"\nOverall: [{score_style(overall)}]{overall:.1f}[/] ({band.label})"
    )


@cli.command("serve")
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Port to listen on")
def serve(host: Optional[str], port: Optional[int]):
    """Run the HTTP and websocket service."""
    from interpreter_core.api.app import run

    run(host=host, port=port)


def main():
    """Main entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
