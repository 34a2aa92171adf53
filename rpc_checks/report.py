from __future__ import annotations

from dataclasses import dataclass

from rpc_checks.chainlist import Chain
from rpc_checks.common_check import ProbeOutcome


SHORT_URL_MAX_LEN = 60


@dataclass
class RunStats:
    written: int = 0
    skipped: int = 0
    urls_checked: int = 0
    urls_working: int = 0


def short_url(url: str, *, max_len: int = SHORT_URL_MAX_LEN) -> str:
    s = url or ""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def _chain_label(chain: Chain, position: int, total: int) -> str:
    return f"[{position}/{total}] {chain.name} (chainId {chain.chain_id})"


def format_chain_skipped(chain: Chain, position: int, total: int) -> str:
    return f"{_chain_label(chain, position, total)} - skipped (file exists: {chain.chain_id}.json)"


def format_chain_empty(chain: Chain, position: int, total: int) -> str:
    return f"{_chain_label(chain, position, total)} - 0 RPCs, written {chain.chain_id}.json (empty)"


def format_chain_header(chain: Chain, position: int, total: int, concurrency: int) -> str:
    return (
        f"{_chain_label(chain, position, total)} - {len(chain.urls)} RPCs "
        f"(parallel, concurrency {concurrency})"
    )


def format_url_lines(idx: int, total: int, url: str, outcome: ProbeOutcome | None) -> list[str]:
    lines = [f"  RPC {idx + 1}/{total}: {short_url(url)}"]
    if outcome is None:
        lines.append("    connect or eth_blockNumber: fail")
        return lines
    if outcome.failed_stage == "connect":
        lines.append("    connect: fail")
        return lines
    lines.append("    connect: ok")
    if outcome.failed_stage == "rpc":
        lines.append("    eth_blockNumber: fail")
        return lines
    lines.append("    eth_blockNumber: ok")
    lines.append(f"    IPv6: {'yes' if outcome.supports_ipv6 else 'no'}")
    return lines


def format_chain_footer(chain: Chain, working: int) -> str:
    return f"  -> {working} working RPC(s), written {chain.chain_id}.json"


def format_summary(stats: RunStats) -> str:
    return (
        f"Done. Written: {stats.written} | Skipped: {stats.skipped} | "
        f"RPCs checked: {stats.urls_checked} | Working: {stats.urls_working}"
    )
