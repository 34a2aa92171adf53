from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
import structlog

from rpc_checks.metrics_dns import check_ipv6


logger = structlog.get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT_SECONDS = 3.0
DEFAULT_RPC_TIMEOUT_SECONDS = 10.0
DEFAULT_DNS_TIMEOUT_SECONDS = 5.0

ETH_BLOCK_NUMBER_REQUEST = {
    "jsonrpc": "2.0",
    "method": "eth_blockNumber",
    "params": [],
    "id": 1,
}

_HEX_QUANTITY_RE = re.compile(r"0x[0-9a-fA-F]+")


@dataclass(frozen=True)
class ProbeTimeouts:
    connect_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    rpc_seconds: float = DEFAULT_RPC_TIMEOUT_SECONDS
    dns_seconds: float = DEFAULT_DNS_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ProbeOutcome:
    url: str
    # None when the endpoint passed both connectivity and eth_blockNumber.
    failed_stage: str | None
    supports_ipv6: bool = False

    @property
    def present(self) -> bool:
        return self.failed_stage is None

    def as_record(self) -> dict[str, object]:
        return {"url": self.url, "supportsIpv6": bool(self.supports_ipv6)}


def _log_url(url: str) -> str:
    """
    scheme://host[:port]/path for log lines. Credentials and query strings (where
    providers put API keys) are left out.
    """
    raw = str(url or "").strip()
    try:
        parts = urlsplit(raw)
        host = parts.hostname or ""
        port = f":{parts.port}" if parts.port else ""
    except ValueError:
        return raw[:120]
    if not host:
        return raw[:120]
    return f"{parts.scheme}://{host}{port}{parts.path}"


def extract_host(url: str) -> str:
    try:
        return urlsplit(str(url or "")).hostname or ""
    except ValueError:
        return ""


def is_hex_quantity(value: object) -> bool:
    return isinstance(value, str) and _HEX_QUANTITY_RE.fullmatch(value) is not None


async def _response_status(url: str, client: httpx.AsyncClient, timeout_seconds: float) -> int:
    # Leaving the stream context closes the response without reading its body.
    async with client.stream("GET", url, timeout=timeout_seconds) as resp:
        return resp.status_code


async def check_connect(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
) -> bool:
    # Response headers of any status are enough; the body is never awaited.
    try:
        await asyncio.wait_for(
            _response_status(url, client, float(timeout_seconds)),
            timeout=float(timeout_seconds),
        )
    except Exception as exc:
        logger.debug("connect_failed", url=_log_url(url), error=f"{type(exc).__name__}: {exc}")
        return False
    return True


async def check_rpc(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeout_seconds: float = DEFAULT_RPC_TIMEOUT_SECONDS,
) -> bool:
    try:
        resp = await asyncio.wait_for(
            client.post(
                url,
                json=ETH_BLOCK_NUMBER_REQUEST,
                headers={"Content-Type": "application/json"},
                timeout=float(timeout_seconds),
            ),
            timeout=float(timeout_seconds),
        )
        data = resp.json()
    except Exception as exc:
        logger.debug("rpc_failed", url=_log_url(url), error=f"{type(exc).__name__}: {exc}")
        return False

    result = data.get("result") if isinstance(data, dict) else None
    if not is_hex_quantity(result):
        logger.debug("rpc_bad_result", url=_log_url(url), result=repr(result)[:120])
        return False
    return True


async def probe_endpoint(
    url: str,
    client: httpx.AsyncClient,
    *,
    timeouts: ProbeTimeouts | None = None,
    dns_resolvers: list[str] | None = None,
) -> ProbeOutcome:
    t = timeouts or ProbeTimeouts()

    if not await check_connect(url, client, timeout_seconds=t.connect_seconds):
        return ProbeOutcome(url=url, failed_stage="connect")

    if not await check_rpc(url, client, timeout_seconds=t.rpc_seconds):
        return ProbeOutcome(url=url, failed_stage="rpc")

    supports_ipv6 = await check_ipv6(
        extract_host(url),
        timeout_seconds=t.dns_seconds,
        resolvers=dns_resolvers,
    )
    return ProbeOutcome(url=url, failed_stage=None, supports_ipv6=supports_ipv6)
