"""CLI for desksearch: rebuild the search index, show statistics, run a search."""
from __future__ import annotations

import argparse
import sys

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn
from rich.table import Table

from desksearch.config import Config
from desksearch.core.logging_config import get_logger, setup_logging
from desksearch.models import ResultPage, SearchUser
from desksearch.orchestrator import SearchOrchestrator

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="desksearch",
        description="Helpdesk ticket search commands.",
    )
    parser.add_argument("--version", action="store_true", help="Print the version and exit.")
    sub = parser.add_subparsers(dest="subcommand", metavar="SUBCOMMAND")

    # rebuild-index
    sub.add_parser("rebuild-index", help="Clear and rebuild the search index from the ticket tables.")

    # stats
    sub.add_parser("stats", help="Show search history statistics.")

    # search
    search_p = sub.add_parser("search", help="Run a search as a user.")
    search_p.add_argument("query", help="Query text, operators allowed (e.g. 'refund status:open').")
    search_p.add_argument("--user", type=int, default=0, help="Acting user id (default: 0).")
    search_p.add_argument("--admin", action="store_true", default=False, help="Act as an admin user.")
    search_p.add_argument("--page", type=int, default=1, help="Result page (default: 1).")
    search_p.add_argument("--per-page", type=int, default=None, help="Results per page.")

    return parser


def _cmd_rebuild(orchestrator: SearchOrchestrator, console: Console) -> int:
    with Progress(
        TextColumn("[bold cyan]Indexing"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("index", total=None)

        def report(current: int, total: int) -> None:
            progress.update(task, completed=current, total=total)

        count = orchestrator.rebuild_index(report)
    logger.info("rebuild-index finished with %d conversation(s)", count)

    console.print(f"[green]Indexed {count} conversation(s)[/green]")
    return 0


def _cmd_stats(orchestrator: SearchOrchestrator, console: Console) -> int:
    stats = orchestrator.get_statistics()

    summary = Table(title="Search statistics", show_header=False)
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", justify="right")
    summary.add_row("Total searches", str(stats.total_searches))
    summary.add_row("Unique queries", str(stats.unique_queries))
    summary.add_row("Searches today", str(stats.searches_today))
    summary.add_row("Indexed conversations", str(stats.indexed_count))
    console.print(summary)

    if stats.top_queries:
        top = Table(title="Top queries")
        top.add_column("Query", style="magenta")
        top.add_column("Count", justify="right")
        for query, count in stats.top_queries:
            top.add_row(escape(query), str(count))
        console.print(top)
    return 0


def _cmd_search(orchestrator: SearchOrchestrator, args: argparse.Namespace, console: Console) -> int:
    user = SearchUser(id=args.user, is_admin=args.admin)
    outcome = orchestrator.perform_search(args.query, None, user, page=args.page, per_page=args.per_page)
    if not isinstance(outcome, ResultPage):
        console.print("[yellow]No search override: query too short or no backend could answer.[/yellow]")
        return 1

    orchestrator.track_history(args.query, user, outcome.total_count)

    table = Table(
        title=f"{outcome.total_count} result(s), page {outcome.page}/{max(1, outcome.page_count)} "
              f"({outcome.engine})",
    )
    table.add_column("#", style="dim", justify="right")
    table.add_column("Subject", style="bold")
    table.add_column("Customer", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Updated", style="dim")
    table.add_column("Score", justify="right")
    for item in outcome.items:
        record = item.record
        table.add_row(
            str(record.number if record.number is not None else record.id),
            escape(record.subject),
            escape(record.customer_email or record.customer_name),
            str(record.status),
            record.updated_at.strftime("%Y-%m-%d %H:%M") if record.updated_at else "",
            f"{item.relevance_score:.1f}",
        )
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for the ``desksearch`` command."""
    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.version:
        from desksearch import __version__

        print(__version__)
        return 0
    if not args.subcommand:
        parser.print_help()
        return 2

    console = Console()
    try:
        config = Config.load()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        return 1
    setup_logging(config.logging)

    orchestrator = SearchOrchestrator.from_config(config)
    if args.subcommand == "rebuild-index":
        return _cmd_rebuild(orchestrator, console)
    if args.subcommand == "stats":
        return _cmd_stats(orchestrator, console)
    return _cmd_search(orchestrator, args, console)


if __name__ == "__main__":
    sys.exit(main())
