from __future__ import annotations

import enum
from functools import partial
from typing import Any, Callable, Sequence

import httpx
import structlog

from rpc_checks.batching import TaskFn, batch_call
from rpc_checks.chainlist import Chain
from rpc_checks.common_check import ProbeOutcome, ProbeTimeouts, probe_endpoint
from rpc_checks.config import CheckerSettings
from rpc_checks.report import (
    RunStats,
    format_chain_empty,
    format_chain_footer,
    format_chain_header,
    format_chain_skipped,
    format_url_lines,
)
from rpc_checks.sink import ResultSink


logger = structlog.get_logger(__name__)

Emit = Callable[[str], None]


class ChainState(str, enum.Enum):
    SKIPPED = "skipped"
    EMPTY_WRITTEN = "empty-written"
    CHECKED_WRITTEN = "checked-written"


def chain_record(chain: Chain, rpcs: list[dict[str, Any]]) -> dict[str, Any]:
    return {"name": chain.name, "chainId": chain.chain_id, "rpcs": rpcs}


def build_probe_tasks(
    urls: Sequence[str],
    client: httpx.AsyncClient,
    *,
    timeouts: ProbeTimeouts,
    dns_resolvers: list[str] | None = None,
) -> list[TaskFn]:
    return [
        partial(probe_endpoint, url, client, timeouts=timeouts, dns_resolvers=dns_resolvers)
        for url in urls
    ]


def _load_existing(chain: Chain, sink: ResultSink) -> Any | None:
    if not sink.exists(chain.chain_id):
        return None
    try:
        return sink.load(chain.chain_id)
    except (OSError, ValueError) as exc:
        logger.warning(
            "existing_chain_file_unreadable",
            chain_id=chain.key,
            path=str(sink.path_for(chain.chain_id)),
            error=f"{type(exc).__name__}: {exc}",
        )
        return None


async def process_chain(
    chain: Chain,
    *,
    client: httpx.AsyncClient,
    sink: ResultSink,
    settings: CheckerSettings,
    stats: RunStats,
    position: int = 1,
    total: int = 1,
    emit: Emit = print,
) -> ChainState:
    if settings.skip_existing:
        existing = _load_existing(chain, sink)
        if existing is not None:
            sink.add(chain.key, existing)
            stats.skipped += 1
            emit("")
            emit(format_chain_skipped(chain, position, total))
            return ChainState.SKIPPED

    if not chain.urls:
        record = chain_record(chain, [])
        sink.write_chain(chain.chain_id, record)
        sink.add(chain.key, record)
        stats.written += 1
        emit("")
        emit(format_chain_empty(chain, position, total))
        return ChainState.EMPTY_WRITTEN

    emit("")
    emit(format_chain_header(chain, position, total, settings.concurrency))

    tasks = build_probe_tasks(
        chain.urls,
        client,
        timeouts=settings.probe_timeouts,
        dns_resolvers=settings.dns_resolvers,
    )
    outcomes: list[ProbeOutcome | None] = await batch_call(tasks, settings.concurrency)

    rpcs: list[dict[str, Any]] = []
    for idx, (url, outcome) in enumerate(zip(chain.urls, outcomes)):
        stats.urls_checked += 1
        for line in format_url_lines(idx, len(chain.urls), url, outcome):
            emit(line)
        if outcome is None or not outcome.present:
            continue
        rpcs.append(outcome.as_record())
        stats.urls_working += 1

    record = chain_record(chain, rpcs)
    sink.write_chain(chain.chain_id, record)
    sink.add(chain.key, record)
    stats.written += 1
    emit(format_chain_footer(chain, len(rpcs)))
    logger.info("chain_checked", chain_id=chain.key, candidates=len(chain.urls), working=len(rpcs))
    return ChainState.CHECKED_WRITTEN
