"""Click CLI entry point.

Usage:
    patent-risk analyze "A method for ..." --execute
    patent-risk analyze --file claim.txt --execute --risk-threshold 5 --source lens
    patent-risk analyze --checkpoint my-claim --resume --execute
    patent-risk analyze-multiple claims.txt --execute --concurrency 3
    patent-risk search 'ABST/"battery" AND CPC/H01M' --claim-file claim.txt
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click

from patent_risk.config import settings
from patent_risk.errors import PatentRiskError
from patent_risk.utils.logging import BOLD, DIM, RED, RESET, get_logger

log = get_logger(level=settings.log_level)

SOURCE_CHOICES = click.Choice(["projectpq", "lens", "all"], case_sensitive=False)
FORMAT_CHOICES = click.Choice(["json", "text"], case_sensitive=False)


def read_claim_file(path: str) -> str:
    log.info(f"{DIM}Reading claim from file: {path}{RESET}")
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise click.FileError(path, hint=str(e)) from e


def _emit(result: Any, output_format: str, render) -> None:
    if output_format.lower() == "text":
        click.echo(render(result))
    else:
        click.echo(json.dumps(result, indent=2, ensure_ascii=False))


def _run(coro_factory) -> Any:
    """Run one pipeline operation, closing the checkpoint store afterwards."""
    from patent_risk.pipeline import Pipeline

    async def _main() -> Any:
        pipeline = Pipeline.from_settings(settings)
        try:
            return await coro_factory(pipeline)
        finally:
            await pipeline.close()

    try:
        return asyncio.run(_main())
    except (PatentRiskError, ValueError, OSError) as e:
        log.error(f"{RED}✗ Error:{RESET} {e}")
        raise SystemExit(1)


@click.group()
def cli() -> None:
    """Patent claim conflict-risk analyzer."""
    pass


@cli.command()
@click.argument("claim_text", required=False)
@click.option("-f", "--file", "claim_file", default=None, help="Path to a file containing a single claim")
@click.option("-d", "--date-range", default=settings.default_date_range, help="Date range for search")
@click.option("--independent/--dependent", default=True, help="Whether the claim is independent")
@click.option("-e", "--execute", is_flag=True, help="Run the search and risk scoring")
@click.option("--output-format", default="json", type=FORMAT_CHOICES, help="Output format")
@click.option("--checkpoint", "checkpoint_id", default=None, help="Checkpoint id for resumable runs")
@click.option("--resume", is_flag=True, help="Resume from the checkpoint if it exists")
@click.option("--risk-threshold", default=0, type=int, help="Drop patents scoring below this")
@click.option("-s", "--source", default="all", type=SOURCE_CHOICES, help="Search source")
def analyze(
    claim_text: str | None,
    claim_file: str | None,
    date_range: str,
    independent: bool,
    execute: bool,
    output_format: str,
    checkpoint_id: str | None,
    resume: bool,
    risk_threshold: int,
    source: str,
) -> None:
    """Analyze a single patent claim."""
    from patent_risk.pipeline import AnalyzeOptions
    from patent_risk.report import render_analysis

    if not claim_text and not claim_file and not (checkpoint_id and resume):
        raise click.UsageError("Either CLAIM_TEXT or --file must be provided")
    if claim_file:
        claim_text = read_claim_file(claim_file)

    options = AnalyzeOptions(
        date_range=date_range,
        independent=independent,
        execute=execute,
        checkpoint_id=checkpoint_id,
        resume=resume,
        risk_threshold=risk_threshold,
        source=source.lower(),
    )
    result = _run(lambda pipeline: pipeline.analyze(claim_text or None, options))
    _emit(result, output_format, render_analysis)


@cli.command("analyze-multiple")
@click.argument("claims_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-d", "--date-range", default=settings.default_date_range, help="Date range for search")
@click.option("-e", "--execute", is_flag=True, help="Run the search and risk scoring")
@click.option("--output-format", default="json", type=FORMAT_CHOICES, help="Output format")
@click.option("--checkpoint", "checkpoint_id", default=None, help="Checkpoint id for resumable runs")
@click.option("--resume", is_flag=True, help="Resume from the checkpoint if it exists")
@click.option("--risk-threshold", default=0, type=int, help="Drop patents scoring below this")
@click.option("-s", "--source", default="all", type=SOURCE_CHOICES, help="Search source")
@click.option("--concurrency", default=1, type=click.IntRange(min=1), help="Claims analyzed at once")
def analyze_multiple(
    claims_file: str,
    date_range: str,
    execute: bool,
    output_format: str,
    checkpoint_id: str | None,
    resume: bool,
    risk_threshold: int,
    source: str,
    concurrency: int,
) -> None:
    """Analyze every claim in a claims file."""
    from patent_risk.pipeline import AnalyzeOptions
    from patent_risk.report import render_multiple

    options = AnalyzeOptions(
        date_range=date_range,
        execute=execute,
        checkpoint_id=checkpoint_id,
        resume=resume,
        risk_threshold=risk_threshold,
        source=source.lower(),
        concurrency=concurrency,
    )
    log.info(f"{BOLD}Claims file:{RESET} {claims_file}")
    results = _run(lambda pipeline: pipeline.analyze_multiple(claims_file, options))
    _emit(results, output_format, render_multiple)


@cli.command()
@click.argument("query_text")
@click.option("-d", "--date-range", default=settings.default_date_range, help="Date range for search")
@click.option("--output-format", default="json", type=FORMAT_CHOICES, help="Output format")
@click.option("--claim", default=None, help="Claim text to score the results against")
@click.option("--claim-file", default=None, help="File containing the claim to score against")
@click.option("--risk-threshold", default=0, type=int, help="Drop patents scoring below this")
@click.option("-s", "--source", default="all", type=SOURCE_CHOICES, help="Search source")
def search(
    query_text: str,
    date_range: str,
    output_format: str,
    claim: str | None,
    claim_file: str | None,
    risk_threshold: int,
    source: str,
) -> None:
    """Run a hand-written search query."""
    from patent_risk.pipeline import SearchOptions
    from patent_risk.report import render_search

    if claim_file:
        claim = read_claim_file(claim_file)

    options = SearchOptions(
        date_range=date_range,
        claim=claim,
        risk_threshold=risk_threshold,
        source=source.lower(),
    )
    payload = _run(lambda pipeline: pipeline.search(query_text, options))
    _emit(payload, output_format, render_search)


if __name__ == "__main__":
    cli()
