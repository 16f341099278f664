#!/usr/bin/env python3
"""CLI for re-analyzing videos already staged in object storage.

Usage:
    # Analyze stored videos of the 5 most recent trend queries
    python -m cli.analyze_stored_videos

    # Cover more queries and free the storage afterwards
    python -m cli.analyze_stored_videos --limit 10 --delete-after

    # Only videos not analyzed in the last week
    python -m cli.analyze_stored_videos --stale-days 7
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from services.errors import UpstreamUnavailableError
from services.model_clients import DashScopeClient
from services.object_storage import create_storage
from services.stored_video_batch import BatchReport, StoredVideoBatch
from services.trend_store import TrendStore
from services.video_analyzer import VideoAnalyzer
from utils.config import load_config, setup_logging

console = Console()


def show_report(report: BatchReport) -> None:
    table = Table(title="Stored video analysis")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    for metric, value in report.to_dict().items():
        table.add_row(metric.replace("_", " ").title(), str(value))
    console.print(table)

    if report.failed:
        console.print(f"[red]✗ {len(report.failed)} failed[/red]")
        for name in report.failed[:5]:  # Show first 5 failures
            console.print(f"  [dim]{name}[/dim]")


async def run(limit: int, delete_after: bool, stale_days: int | None = None) -> int:
    config = load_config()

    storage = create_storage(config)
    if storage is None:
        console.print("[red]✗ Object storage is not configured (STORAGE_* settings)[/red]")
        return 2
    if not config.get("dashscope_api_key"):
        console.print("[red]✗ DASHSCOPE_API_KEY is required[/red]")
        return 2

    analyzer = VideoAnalyzer(
        DashScopeClient(
            api_key=config["dashscope_api_key"],
            model=config["dashscope_model"],
            base_url=config["dashscope_base_url"],
            timeout_seconds=config["analysis_timeout_seconds"],
        ),
        fps=config["analysis_fps"],
        window_seconds=config["analysis_window_seconds"],
    )

    async with TrendStore(config["database_path"]) as store:
        batch = StoredVideoBatch(store, storage, analyzer)
        with tqdm(desc="Analyzing", unit="video") as bar:

            def on_video(name: str, ok: bool) -> None:
                bar.update(1)
                bar.set_postfix_str(("✓ " if ok else "✗ ") + name[-40:])

            try:
                report = await batch.run(
                    limit=limit, delete_after=delete_after, on_video=on_video, stale_days=stale_days
                )
            except UpstreamUnavailableError as e:
                console.print(f"[red]✗ {e}[/red]")
                return 1

    show_report(report)
    return 0 if not report.failed else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="Analyze videos already staged in storage")
    parser.add_argument(
        "--limit", type=int, default=5, help="Number of most recent trend queries (default: 5)"
    )
    parser.add_argument(
        "--delete-after", action="store_true", help="Delete analyzed files from storage"
    )
    parser.add_argument(
        "--stale-days",
        type=int,
        default=None,
        help="Skip videos analyzed within this many days (default: analyze all)",
    )
    args = parser.parse_args()

    setup_logging(load_config().get("log_level", "INFO"))
    return asyncio.run(run(args.limit, args.delete_after, args.stale_days))


if __name__ == "__main__":
    sys.exit(main())
