from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

import httpx
import structlog

from rpc_checks.chainlist import (
    ChainDirectoryError,
    fetch_chain_directory,
    load_chain_ids_file,
    parse_chain_ids,
    parse_chains,
    select_chains,
)
from rpc_checks.config import CheckerSettings, load_settings
from rpc_checks.processor import Emit, process_chain
from rpc_checks.report import RunStats, format_summary
from rpc_checks.sink import ResultSink


logger = structlog.get_logger(__name__)


def configure_logging(log_level: str) -> None:
    level = getattr(logging, str(log_level or "INFO").upper(), logging.INFO)
    # Progress lines own stdout; structured logs go to stderr.
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_http_client(settings: CheckerSettings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        follow_redirects=True,
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=max(100, settings.concurrency * 2),
            max_keepalive_connections=settings.concurrency,
        ),
    )


async def run_checks(
    settings: CheckerSettings,
    client: httpx.AsyncClient,
    *,
    emit: Emit = print,
) -> RunStats:
    """
    Fetch the directory, process the selected chains one after another and write the
    merged document. Raises ChainDirectoryError when the directory is unusable.
    """
    out_dir = Path(settings.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    emit(f"Output directory: {out_dir.resolve()}")
    emit(f"Batch size: {settings.concurrency}")
    if settings.skip_existing:
        emit("Skip existing: yes (chains with existing file will be skipped)")

    emit(f"Fetching chainlist from {settings.chainlist_url}")
    raw_chains = await fetch_chain_directory(
        settings.chainlist_url,
        client,
        timeout_seconds=settings.directory_timeout_seconds,
    )
    selected = select_chains(raw_chains, settings.chain_ids)
    emit(f"Loaded {len(raw_chains)} chains")
    if settings.chain_ids is not None:
        emit(f"Processing only chainIds: {', '.join(str(c) for c in settings.chain_ids)}")
    else:
        emit("Processing all chains")

    chains = parse_chains(selected)
    total = len(selected)
    emit(f"Chains to process: {total}")

    sink = ResultSink(out_dir, merged_filename=settings.merged_filename)
    stats = RunStats()
    for position, chain in chains:
        await process_chain(
            chain,
            client=client,
            sink=sink,
            settings=settings,
            stats=stats,
            position=position,
            total=total,
            emit=emit,
        )

    merged_path = sink.write_merged()
    emit(f"Merged file written: {merged_path}")
    emit("")
    emit(format_summary(stats))
    emit(f"Output directory: {out_dir.resolve()}")
    return stats


async def run(settings: CheckerSettings, *, emit: Emit = print) -> int:
    async with build_http_client(settings) as client:
        try:
            await run_checks(settings, client, emit=emit)
        except ChainDirectoryError as exc:
            logger.error("chain_directory_failed", error=str(exc))
            print(f"Error: {exc}", file=sys.stderr)
            return 1
    return 0


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    chain_ids = None
    if args.chains_file:
        chain_ids = load_chain_ids_file(Path(args.chains_file))
    elif args.chains:
        chain_ids = parse_chain_ids(args.chains)

    overrides: dict[str, Any] = {
        "chain_ids": chain_ids,
        "out_dir": args.out,
        "concurrency": args.batch,
        "chainlist_url": args.source,
        "log_level": args.log_level,
    }
    if args.skip_existing:
        overrides["skip_existing"] = True
    return overrides


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check public blockchain RPC endpoints for liveness and IPv6 support")
    parser.add_argument("--config", default=None, help="Path to YAML config (default: RPC_CHECKER_CONFIG or bundled config.yaml)")
    parser.add_argument("--chains", default=None, help="Comma-separated chain IDs to process")
    parser.add_argument("--chains-file", default=None, help="File with chain IDs (newline or comma separated)")
    parser.add_argument("--out", default=None, help="Output directory (default ./rpcs)")
    parser.add_argument("--batch", "--concurrency", dest="batch", default=None, help="Concurrent probes per chain (1-128, default 16)")
    parser.add_argument("--skip-existing", action="store_true", help="Skip chains whose output file already exists")
    parser.add_argument("--source", default=None, help="Chain directory URL or local JSON file")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL"), help="Logging level (INFO, WARNING, ...)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(
            Path(args.config) if args.config else None,
            overrides=_cli_overrides(args),
        )
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)
    return asyncio.run(run(settings))


if __name__ == "__main__":
    raise SystemExit(main())
