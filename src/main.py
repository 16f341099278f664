"""Main application entry point for trendscout.

Usage:
    python src/main.py "A restaurant specializing in healthy food options"
    python src/main.py "Indie bookstore" --videos-per-query 3 --owner-id user-123
    python src/main.py "Yoga studio" --json
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from tqdm import tqdm

from models.video import SearchFilters
from models.workflow import STAGE_ORDER, StageEvent, WorkflowRequest, WorkflowResult
from services.errors import WorkflowError
from services.trend_store import TrendStore
from services.workflow import TrendWorkflow
from utils.config import load_config, setup_logging, validate_config

logger = logging.getLogger(__name__)

console = Console()


class StageProgressBar:
    """tqdm bar that advances one step per completed workflow stage."""

    def __init__(self):
        self.bar = tqdm(total=len(STAGE_ORDER) - 1, desc="Workflow", unit="stage", leave=True)

    def __call__(self, event: StageEvent) -> None:
        label = event.stage.value.replace("_", " ")
        if event.stage.value == "failed":
            self.bar.set_description(f"Workflow ✗ {event.message[:60]}")
        else:
            self.bar.update(1)
            self.bar.set_description(f"Workflow: {label} ({event.count})")
        self.bar.refresh()

    def close(self) -> None:
        self.bar.close()


def print_result(result: WorkflowResult) -> None:
    """Render a finished run with rich."""
    strategy = result.strategy
    console.print(
        f"\n[bold green]✓ Strategy built[/bold green] from {len(result.analyzed_videos)} of "
        f"{len(result.staged_videos)} staged videos "
        f"({', '.join(q.text for q in result.queries)})"
    )
    if not strategy.sections_parsed:
        console.print(Panel(strategy.raw_content, title="Strategy (unstructured)"))
        return

    for title, body in (
        ("Observations", strategy.observations),
        ("Key Takeaways", strategy.key_takeaways),
        ("Sample Script", strategy.sample_script),
        ("Technical Specs", strategy.technical_specs),
        ("Content Themes", "\n".join(f"• {t}" for t in strategy.content_themes)),
        ("Hashtag Strategy", strategy.hashtag_strategy),
        ("Posting Frequency", strategy.posting_frequency),
    ):
        if body:
            console.print(Panel(body, title=title, title_align="left"))

    if strategy.strategy_id:
        console.print(f"[dim]Saved as strategy {strategy.strategy_id}[/dim]")


async def run(args: argparse.Namespace, config: dict) -> int:
    store: Optional[TrendStore] = None
    if args.owner_id:
        store = TrendStore(config["database_path"])
        await store.connect()

    progress = None if args.json else StageProgressBar()
    try:
        workflow = TrendWorkflow.from_config(config, store=store)
        request = WorkflowRequest(
            business_description=args.business_description,
            owner_id=args.owner_id,
            videos_per_query=args.videos_per_query,
            filters=SearchFilters(
                sort_mode=args.sort_mode or config["search_sort_mode"],
                recency_days=config["search_recency_days"],
                region=config["search_region"],
            ),
        )
        result = await workflow.run(request, progress_callback=progress)
    except WorkflowError as e:
        if progress:
            progress.close()
        console.print(f"[red]✗ Workflow failed at {e.stage}: {e}[/red]")
        return 1
    finally:
        if store is not None:
            await store.close()

    if progress:
        progress.close()

    if args.json:
        payload = {
            "run_id": result.run_id,
            "queries": [q.text for q in result.queries],
            "staged_videos": [v.storage_url for v in result.staged_videos],
            "analyses": [a.to_payload() for a in result.analyses],
            "strategy": result.strategy.to_dict(),
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        print_result(result)
    return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Research trending short videos for a business and build a content strategy."
    )
    parser.add_argument("business_description", help="What the business does")
    parser.add_argument(
        "--videos-per-query",
        type=int,
        default=None,
        help="Videos staged per search term (default: VIDEOS_PER_QUERY)",
    )
    parser.add_argument("--owner-id", default=None, help="Persist the run under this owner")
    parser.add_argument(
        "--sort-mode",
        choices=["relevance", "likes", "latest", "rise", "rate"],
        default=None,
        help="Search ordering (default: SEARCH_SORT_MODE)",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config = load_config()
    setup_logging(config.get("log_level", "INFO"))

    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]✗ {error}[/red]")
        return 2

    if args.videos_per_query is None:
        args.videos_per_query = config["videos_per_query"]

    try:
        return asyncio.run(run(args, config))
    except ValueError as e:
        console.print(f"[red]✗ {e}[/red]")
        return 2
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
