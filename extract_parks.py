#!/usr/bin/env python3
"""
Extract structured facts for one or more national parks.

Each park runs the full pipeline (page text -> structured fields -> backfill
of up to 3 missing fields). Parks are independent; --workers runs several
pipelines at once.

Usage:
    python extract_parks.py --park "Yellowstone National Park" \\
        --url https://en.wikipedia.org/wiki/Yellowstone_National_Park
    python extract_parks.py --parks parks.txt --workers 4
    python extract_parks.py --parks parks.txt --persist          # requires PARK_UNIQUE_KEY
    python extract_parks.py --parks parks.txt --json-out output/

Park list format (comments start with #):
    Yellowstone National Park | https://en.wikipedia.org/wiki/Yellowstone_National_Park
"""

import argparse
import json
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from threading import Lock

import pymysql
from rich.console import Console
from rich.table import Table

from park_facts.config import load_settings
from park_facts.db.client import check_connection
from park_facts.db.repository import NationalParkRepository, ParkIdentity, UniquenessPolicy, park_row_from_outcome
from park_facts.errors import ConfigurationError, ParkExtractionError
from park_facts.llm.llm_client import ParkModelClient
from park_facts.services.extraction_orchestrator import ExtractionOrchestrator, ExtractionOutcome
from park_facts.utils.logger import PipelineLogger, configure_global_logging

console = Console()
print_lock = Lock()


def load_parks_from_file(filepath: str) -> list[tuple[str, str]]:
    """Load (name, url) pairs from a pipe-delimited park list.

    Args:
        filepath: Path to park list file (comments start with #).

    Returns:
        List of (name, url) pairs, de-duplicated by name.
    """
    path = Path(filepath)
    if not path.exists():
        console.print(f"[red]Error: Park file not found: {filepath}[/red]")
        sys.exit(1)

    parks = []
    seen = set()
    with open(path, encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue

            parts = [p.strip() for p in line.split("|")]
            if len(parts) < 2 or not parts[0] or not parts[1]:
                console.print(f"[yellow]Warning: Line {line_num}: expected 'Name | URL', skipping[/yellow]")
                continue

            name, url = parts[0], parts[1]
            if name in seen:
                continue
            seen.add(name)
            parks.append((name, url))

    return parks


def _slug(name: str) -> str:
    return "".join(c if c.isalnum() else "_" for c in name.lower()).strip("_")


def process_park(
    name: str,
    url: str,
    orchestrator: ExtractionOrchestrator,
    logger: PipelineLogger,
    repo: NationalParkRepository | None,
    json_out: Path | None,
) -> tuple[ExtractionOutcome | None, str | None]:
    """
    Run one park through the pipeline.

    Returns:
        Tuple of (outcome, error_message)
    """
    try:
        with logger.time_park(name):
            outcome = orchestrator.run(name, url)
    except ParkExtractionError as e:
        return None, f"{type(e).__name__}: {e}"

    for stage, usage, cost in (
        ("page_text", outcome.text_usage, outcome.text_cost),
        ("fields", outcome.json_usage, outcome.json_cost),
        ("backfill", outcome.backfill_usage, outcome.backfill_cost),
    ):
        if usage is not None:
            logger.log_llm_call(stage, name, usage.total_tokens or 0, cost.usd.total if cost else 0.0)

    if json_out:
        try:
            json_out.mkdir(parents=True, exist_ok=True)
            target = json_out / f"{_slug(name)}.json"
            target.write_text(json.dumps(outcome.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.error("Failed to write JSON", exception=e, park=name)
            return None, f"json write failed: {e}"

    if repo:
        try:
            park, created = repo.create_or_update(ParkIdentity(name=name, source_url=url), park_row_from_outcome(outcome))
        except pymysql.Error as e:
            logger.error("Failed to persist park", exception=e, park=name)
            return None, f"persist failed: {e}"
        logger.info(f"{'Created' if created else 'Updated'} park record", park=name, id=park.id)

    return outcome, None


def render_results(results: list[tuple[str, ExtractionOutcome | None, str | None]]) -> None:
    table = Table(title="Park Extraction Results")
    table.add_column("Park")
    table.add_column("Missing", justify="right")
    table.add_column("Backfilled", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost (USD)", justify="right")
    table.add_column("Time (s)", justify="right")
    table.add_column("Status")

    for name, outcome, error in results:
        if outcome is None:
            table.add_row(name, "-", "-", "-", "-", "-", f"[red]{error}[/red]")
            continue
        tokens = outcome.total_usage.total_tokens if outcome.total_usage else 0
        cost = outcome.total_cost.usd.total if outcome.total_cost else 0.0
        status = "[yellow]backfill skipped[/yellow]" if outcome.backfill_skipped else "[green]ok[/green]"
        table.add_row(
            name,
            str(len(outcome.missing_fields)),
            str(len(outcome.backfilled_fields)),
            str(tokens),
            f"{cost:.6f}",
            f"{outcome.total_duration_seconds:.1f}",
            status,
        )

    console.print(table)


def main():
    parser = argparse.ArgumentParser(description="Extract national park facts from reference pages")
    source_group = parser.add_mutually_exclusive_group(required=True)
    source_group.add_argument("--park", type=str, help="Single park name (requires --url)")
    source_group.add_argument("--parks", type=str, help="Path to park list file (Name | URL)")
    parser.add_argument("--url", type=str, help="Reference page URL for --park")
    parser.add_argument("--workers", type=int, default=1, help="Parallel pipelines (default: 1)")
    parser.add_argument("--persist", action="store_true", help="Store results (requires PARK_UNIQUE_KEY)")
    parser.add_argument("--json-out", type=Path, help="Directory for per-park JSON outcomes")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args()

    if args.park and not args.url:
        parser.error("--park requires --url")
    if args.workers < 1:
        parser.error("--workers must be >= 1")

    parks = [(args.park, args.url)] if args.park else load_parks_from_file(args.parks)
    if not parks:
        console.print("[yellow]No parks to extract[/yellow]")
        sys.exit(0)

    configure_global_logging(args.log_level, phase="extract")
    logger = PipelineLogger("extract_parks", log_level=args.log_level, phase="extract")

    try:
        settings = load_settings()
        client = ParkModelClient.from_settings(settings)
        repo = NationalParkRepository(UniquenessPolicy.from_setting(settings.unique_key)) if args.persist else None
        db_ok = repo is None or check_connection()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(1)

    if not db_ok:
        console.print("[red]Cannot connect to the parks database (check PARKS_DB_* settings)[/red]")
        sys.exit(1)

    orchestrator = ExtractionOrchestrator(client, settings)

    console.print(f"[bold]Extracting {len(parks)} park(s)[/bold] with {args.workers} worker(s)")
    start = time.perf_counter()
    results: list[tuple[str, ExtractionOutcome | None, str | None]] = []

    with ThreadPoolExecutor(max_workers=args.workers) as executor:
        futures = {
            executor.submit(process_park, name, url, orchestrator, logger, repo, args.json_out): name
            for name, url in parks
        }
        for completed, future in enumerate(as_completed(futures), 1):
            name = futures[future]
            outcome, error = future.result()
            results.append((name, outcome, error))
            with print_lock:
                mark = "[green]✓[/green]" if outcome else "[red]✗[/red]"
                console.print(f"[{completed}/{len(parks)}] {mark} {name}")

    order = {name: i for i, (name, _) in enumerate(parks)}
    results.sort(key=lambda r: order[r[0]])

    console.print()
    render_results(results)

    failed = sum(1 for _, outcome, _ in results if outcome is None)
    logger.log_run_complete(len(results) - failed, failed, time.perf_counter() - start)

    summary = logger.get_error_summary()
    if summary["total_warnings"]:
        console.print(f"[yellow]{summary['total_warnings']} warning(s) logged[/yellow]")

    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
