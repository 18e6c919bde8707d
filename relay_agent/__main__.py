# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Main entrypoint when running the agent with `python -m relay_agent`.
"""

import logging
import asyncio
import argparse

from rich.console import Console
from rich.markdown import Markdown
from rich.table import Table

from .src.config import settings
from .src.agents.implementations.master import build_master_agent
from .src.callgraph.reporting import _format_duration
from .src.io.console_output import ConsoleOutput, LiveCallView
from .src.jobs.job import Job
from .src.jobs.runner import JobRunner
from .src.oversight.summarizer import Summarizer
from .src.storage.job_store import JobStore
from .src.web_server.server import run_server

logging.captureWarnings(True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(filename)s - %(message)s",  # Include the filename in the log format
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="relay_agent")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one request against the master agent")
    run_parser.add_argument("message", type=str, help="The request, in natural language")
    run_parser.add_argument(
        "--verbose",
        action="store_true",
        default=settings.VERBOSE,
        help="Stream reasoning, output and nested calls live",
    )
    run_parser.add_argument(
        "--store",
        action="store_true",
        help=f"Persist the job under {settings.JOBS_DIR} for the web inspector",
    )
    run_parser.add_argument(
        "--summaries",
        action="store_true",
        help="Summarise finished calls with the fast model",
    )
    run_parser.add_argument(
        "--timeout", type=float, default=None, help="Seconds before the job is reported as failed"
    )

    serve_parser = subparsers.add_parser("serve", help="Start the web inspector")
    serve_parser.add_argument("--host", type=str, default=settings.WEB_HOST)
    serve_parser.add_argument("--port", type=int, default=settings.WEB_PORT)

    jobs_parser = subparsers.add_parser("jobs", help="List stored jobs")
    jobs_parser.add_argument("--limit", type=int, default=20, help="How many jobs to show")

    return parser


async def run_command(args: argparse.Namespace) -> int:
    console = Console()
    agent = build_master_agent()
    store = JobStore(settings.JOBS_DIR) if args.store else None
    summarizer = Summarizer() if args.summaries else None
    job = Job(args.message, agent_name=agent.name)

    if args.verbose:
        # The live call view owns the terminal, so the block view is not used
        runner = JobRunner(
            agent, lambda job, link: [], store=store, summarizer=summarizer, timeout=args.timeout
        )
        with LiveCallView(job.root, console=console, verbose=True):
            await runner.run(job)
        if job.answer:
            console.print(Markdown(job.answer))
    else:
        runner = JobRunner(
            agent,
            lambda job, link: [ConsoleOutput(console)],
            store=store,
            summarizer=summarizer,
            timeout=args.timeout,
        )
        await runner.run(job)

    if job.status == "error":
        console.print(f"[red]Job {job.id} failed:[/red] {job.error}")
        return 1
    if store is not None:
        console.print(f"[dim]Stored as job {job.id}[/dim]")
    return 0


def jobs_command(args: argparse.Namespace) -> int:
    store = JobStore(settings.JOBS_DIR)
    jobs = store.list_jobs(args.limit)
    if not jobs:
        print("No stored jobs.")
        return 0

    table = Table(title=f"Jobs in {settings.JOBS_DIR}")
    table.add_column("ID", style="cyan")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Task", overflow="ellipsis", max_width=60)
    colours = {"running": "cyan", "completed": "green", "error": "red"}
    for job in jobs:
        table.add_row(
            job.id,
            job.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{colours.get(job.status, 'white')}]{job.status}[/]",
            _format_duration(job.duration),
            job.task,
        )
    Console().print(table)
    return 0


def main() -> int:
    parser = setup_parser()
    args = parser.parse_args()

    if args.command == "run":
        return asyncio.run(run_command(args))
    if args.command == "serve":
        logger.info(f"Serving job inspector on http://{args.host}:{args.port}")
        try:
            asyncio.run(run_server(JobStore(settings.JOBS_DIR), host=args.host, port=args.port))
        except KeyboardInterrupt:
            logger.info("Shutting down")
        return 0
    if args.command == "jobs":
        return jobs_command(args)
    parser.error(f"Unknown command {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
