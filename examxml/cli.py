"""
CLI Interface
=============
Command-line interface for the exam XML converter.

Usage:
    python -m examxml build <exam_json> [-o exam.xml]
    python -m examxml allocate <mastered_xml> <exam_json> [-o out.xml]
    python -m examxml convert <exam_json> --mastering-url <url>
    python -m examxml master <exam_json> --mastering-url <url>
    python -m examxml check <exam_json>
    python -m examxml hash <filename>...
    python -m examxml serve [--host] [--port]

Exam JSON files hold a stored exam record: examUuid, content or
contentXml, attachmentsMimetype and attachmentsMetadata.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .allocator import allocate_answer_ids
from .attachments import cross_reference_hash
from .engine import ConversionConfig, ConversionEngine
from .exceptions import ExamXmlError
from .models import ExamRecord
from .validator import ReferenceValidator

console = Console()

_mastering_url_option = click.option(
    "--mastering-url",
    envvar="EXAMXML_MASTERING_URL",
    required=True,
    help="Base URL of the mastering service",
)
_timeout_option = click.option(
    "--timeout",
    default=60.0,
    type=float,
    help="Mastering request timeout (seconds)",
)
_log_level_option = click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)


def _load_record(path: str) -> ExamRecord:
    with open(path, "r", encoding="utf-8") as f:
        return ExamRecord.model_validate(json.load(f))


def _write_output(text: str, output: Optional[str]):
    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]✓[/] Written: {output}")
    else:
        click.echo(text)


def _fail(e: Exception, log_level: str = "INFO"):
    console.print(f"[red]Error:[/] {e}")
    if e.__cause__ is not None:
        console.print(f"[dim]Caused by: {type(e.__cause__).__name__}: {e.__cause__}[/]")
    if log_level == "DEBUG":
        console.print_exception()
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="examxml")
def cli():
    """Exam XML converter: exam content to mastering-ready exam XML."""
    pass


@cli.command()
@click.argument("exam_json", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Output XML file")
@_log_level_option
def build(exam_json: str, output: Optional[str], log_level: str):
    """Build canonical exam XML from JSON content (no mastering)."""
    try:
        engine = ConversionEngine(ConversionConfig(log_level=log_level))
        xml = engine.build(_load_record(exam_json))
    except Exception as e:
        _fail(e, log_level)
    _write_output(xml, output)


@cli.command()
@click.argument("mastered_xml", type=click.Path(exists=True))
@click.argument("exam_json", type=click.Path(exists=True))
@click.option("--output", "-o", default=None, help="Output XML file")
def allocate(mastered_xml: str, exam_json: str, output: Optional[str]):
    """Stamp answer ids from EXAM_JSON onto MASTERED_XML."""
    record = _load_record(exam_json)
    if record.content is None:
        _fail(click.UsageError("Exam JSON has no content"))

    xml = Path(mastered_xml).read_text(encoding="utf-8")
    try:
        result = allocate_answer_ids(xml, record.content)
    except IndexError as e:
        _fail(RuntimeError(f"Mastered XML does not match content: {e}"))
    _write_output(result, output)


@cli.command()
@click.argument("exam_json", type=click.Path(exists=True))
@_mastering_url_option
@_timeout_option
@click.option("--output", "-o", default=None, help="Output XML file")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Print the full result as JSON (xml + attachments)",
)
@_log_level_option
def convert(
    exam_json: str,
    mastering_url: str,
    timeout: float,
    output: Optional[str],
    json_output: bool,
    log_level: str,
):
    """Convert JSON content into mastered XML with answer ids."""
    if json_output:
        log_level = "ERROR"

    record = _load_record(exam_json)
    config = ConversionConfig(
        mastering_url=mastering_url,
        mastering_timeout=timeout,
        log_level=log_level,
    )

    try:
        result = ConversionEngine(config).convert(record)
    except ExamXmlError as e:
        _fail(e, log_level)

    if json_output:
        print(json.dumps(result.model_dump(), ensure_ascii=False, default=str))
        return

    _write_output(result.xml, output)
    if output:
        console.print(f"[dim]Attachments: {len(result.attachments)}[/]")


@cli.command()
@click.argument("exam_json", type=click.Path(exists=True))
@_mastering_url_option
@_timeout_option
@click.option(
    "--shuffle-secret",
    envvar="EXAMXML_SHUFFLE_SECRET",
    default=None,
    help="Secret for deterministic multi-choice shuffling",
)
@click.option("--output", "-o", default=None, help="Output XML file")
@_log_level_option
def master(
    exam_json: str,
    mastering_url: str,
    timeout: float,
    shuffle_secret: Optional[str],
    output: Optional[str],
    log_level: str,
):
    """Master the hand-written exam XML (contentXml) of an exam."""
    record = _load_record(exam_json)
    config = ConversionConfig(
        mastering_url=mastering_url,
        mastering_timeout=timeout,
        shuffle_secret=shuffle_secret,
        log_level=log_level,
    )

    try:
        result = ConversionEngine(config).master(record)
    except ExamXmlError as e:
        _fail(e, log_level)

    _write_output(result.xml, output)
    if output:
        console.print(
            f"[dim]Title: {result.exam_title or '(none)'} | "
            f"Attachments: {len(result.attachments)}[/]"
        )


@cli.command()
@click.argument("exam_json", type=click.Path(exists=True))
def check(exam_json: str):
    """Report attachment cross-references of the built exam XML."""
    try:
        engine = ConversionEngine(
            ConversionConfig(check_references=False, log_level="ERROR")
        )
        xml = engine.build(_load_record(exam_json))
    except Exception as e:
        _fail(e)

    report = ReferenceValidator().validate(xml)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Reference Report[/]\n[dim]File: {exam_json}[/]",
            border_style="cyan",
        )
    )
    _display_reference_table(report.model_dump())

    if not report.is_consistent:
        sys.exit(1)


@cli.command(name="hash")
@click.argument("filenames", nargs=-1, required=True)
def hash_(filenames: tuple[str, ...]):
    """Print the cross-reference hash of attachment filenames."""
    table = Table(title="Cross-reference Hashes", border_style="cyan")
    table.add_column("Filename", style="bold")
    table.add_column("Hash")

    for filename in filenames:
        table.add_row(filename, cross_reference_hash(filename))

    console.print(table)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
@click.option(
    "--mastering-url",
    envvar="EXAMXML_MASTERING_URL",
    default=None,
    help="Base URL of the mastering service",
)
@click.option(
    "--shuffle-secret",
    envvar="EXAMXML_SHUFFLE_SECRET",
    default=None,
    help="Secret for deterministic multi-choice shuffling",
)
def serve(
    host: str,
    port: int,
    debug: bool,
    mastering_url: Optional[str],
    shuffle_secret: Optional[str],
):
    """Start the HTTP conversion service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Exam XML Converter v{__version__}[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(
        host=host,
        port=port,
        debug=debug,
        mastering_url=mastering_url,
        shuffle_secret=shuffle_secret,
    )


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_reference_table(report: dict):
    """Display a reference report as a rich table."""
    table = Table(title="Cross-references", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count):
        return "[green]✓[/]" if count == 0 else "[red]✗[/]"

    table.add_row("Attachments", str(report.get("attachment_count", 0)), "")
    table.add_row("Attachment Links", str(report.get("reference_count", 0)), "")

    for label, key in (
        ("Duplicate Attachments", "duplicate_attachments"),
        ("Unresolved References", "unresolved_references"),
        ("Unknown Media Sources", "unknown_media_sources"),
    ):
        items = report.get(key, [])
        table.add_row(label, str(len(items)), status_icon(len(items)))

    console.print(table)
    console.print()

    for key in ("unresolved_references", "unknown_media_sources"):
        for item in report.get(key, []):
            console.print(f"  [yellow]•[/] {key.replace('_', ' ')}: {item}")


# ─── Entry point (for python -m examxml.cli) ──────────────────────────────────


if __name__ == "__main__":
    cli()
