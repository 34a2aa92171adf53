from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import httpx
import structlog


logger = structlog.get_logger(__name__)

DEFAULT_CHAINLIST_URL = "https://chainlist.org/rpcs.json"
DEFAULT_CHAIN_NAME = "unknown"

_INT_PREFIX_RE = re.compile(r"\s*([+-]?\d+)")
_ID_LIST_SPLIT_RE = re.compile(r"[\n,]+")
_CHAIN_ID_TEXT_RE = re.compile(r"[0-9]+")


class ChainDirectoryError(RuntimeError):
    """The chain directory could not be fetched or has an unexpected shape."""


@dataclass(frozen=True)
class Chain:
    # Kept exactly as supplied by the directory (int or numeric string).
    chain_id: int | str
    name: str
    urls: tuple[str, ...]

    @property
    def key(self) -> str:
        return str(self.chain_id)


def chain_urls(raw_rpc: Any) -> list[str]:
    """
    Candidate URLs of one descriptor, in order, duplicates kept.

    Entries are plain strings or mappings with a "url" field. Anything without a usable
    string becomes "" so it still counts as a (failing) candidate.
    """
    if not isinstance(raw_rpc, list):
        return []
    urls: list[str] = []
    for entry in raw_rpc:
        url = entry.get("url") if isinstance(entry, dict) else entry
        urls.append(url if isinstance(url, str) else "")
    return urls


def _valid_chain_id(value: Any) -> bool:
    # Chain IDs end up in file names, so only positive integers (or their decimal
    # spelling) are accepted.
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, str):
        return _CHAIN_ID_TEXT_RE.fullmatch(value) is not None and int(value) > 0
    return False


def parse_chain(raw: Any) -> Chain | None:
    if not isinstance(raw, dict):
        return None
    chain_id = raw.get("chainId")
    if not _valid_chain_id(chain_id):
        return None
    name = raw.get("name")
    return Chain(
        chain_id=chain_id,
        name=str(name) if name is not None else DEFAULT_CHAIN_NAME,
        urls=tuple(chain_urls(raw.get("rpc") or [])),
    )


def _coerce_chain_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    s = str(value or "").strip()
    try:
        return int(s)
    except ValueError:
        return None


def select_chains(raw_chains: list[Any], chain_ids: Iterable[int] | None) -> list[Any]:
    """
    Apply the optional allow-list. Directory order is kept; the allow-list order is not.
    """
    if chain_ids is None:
        return list(raw_chains)
    wanted = {int(c) for c in chain_ids}
    selected: list[Any] = []
    for raw in raw_chains:
        if not isinstance(raw, dict) or raw.get("chainId") is None:
            continue
        cid = _coerce_chain_id(raw.get("chainId"))
        if cid is not None and cid in wanted:
            selected.append(raw)
    return selected


def parse_chains(raw_chains: list[Any]) -> list[tuple[int, Chain]]:
    """
    (position, chain) pairs. Positions are 1-based over raw_chains, so descriptors that
    are skipped still take up their slot in progress labels.
    """
    chains: list[tuple[int, Chain]] = []
    for position, raw in enumerate(raw_chains, start=1):
        chain = parse_chain(raw)
        if chain is None:
            name = raw.get("name") if isinstance(raw, dict) else None
            chain_id = raw.get("chainId") if isinstance(raw, dict) else None
            logger.warning(
                "chain_descriptor_skipped",
                position=position,
                name=name,
                chain_id=repr(chain_id),
                reason="missing or invalid chainId",
            )
            continue
        chains.append((position, chain))
    return chains


def _parse_int_prefix(token: str) -> int | None:
    m = _INT_PREFIX_RE.match(token or "")
    return int(m.group(1)) if m else None


def parse_chain_ids(text: str) -> list[int] | None:
    """
    "1, 10\\n8453" -> [1, 10, 8453]. Tokens without a leading integer are ignored;
    None when nothing usable remains (meaning: no allow-list).
    """
    ids: list[int] = []
    for token in _ID_LIST_SPLIT_RE.split(text or ""):
        value = _parse_int_prefix(token)
        if value is not None:
            ids.append(value)
    return ids or None


def load_chain_ids_file(path: Path) -> list[int] | None:
    return parse_chain_ids(Path(path).read_text(encoding="utf-8"))


def _decode_directory(data: Any, source: str) -> list[Any]:
    if not isinstance(data, list):
        raise ChainDirectoryError(f"Expected array from chain directory {source}, got {type(data).__name__}")
    return data


async def fetch_chain_directory(
    source: str,
    client: httpx.AsyncClient,
    *,
    timeout_seconds: float = 30.0,
) -> list[Any]:
    """
    Load the raw chain directory from an http(s) URL or a local JSON file.
    """
    src = str(source or "").strip()
    if not src.lower().startswith(("http://", "https://")):
        try:
            data = json.loads(Path(src).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ChainDirectoryError(f"Failed to read chain directory {src}: {exc}") from exc
        return _decode_directory(data, src)

    try:
        resp = await client.get(src, timeout=float(timeout_seconds), follow_redirects=True)
    except httpx.HTTPError as exc:
        raise ChainDirectoryError(f"Fetch failed: {type(exc).__name__}: {exc}") from exc
    if not resp.is_success:
        raise ChainDirectoryError(f"Fetch failed: {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as exc:
        raise ChainDirectoryError(f"Chain directory is not valid JSON: {exc}") from exc
    return _decode_directory(data, src)
