from __future__ import annotations

import asyncio

import structlog


logger = structlog.get_logger(__name__)


async def _dns_query(
    *,
    domain: str,
    record_type: str,
    resolvers: list[str] | None,
    timeout_seconds: float,
) -> list[str]:
    # Native asyncio resolver: the lookup starts as soon as it is awaited, so the
    # caller's deadline covers the query alone and not a thread-pool queue.
    import dns.asyncresolver  # type: ignore
    import dns.resolver  # type: ignore

    resolver = dns.asyncresolver.Resolver(configure=True)
    if resolvers:
        resolver.nameservers = list(resolvers)
    resolver.lifetime = max(0.5, float(timeout_seconds))
    try:
        answer = await resolver.resolve(domain, record_type)
    except dns.resolver.NoAnswer:
        return []
    return [text for text in (str(rr or "").strip() for rr in answer) if text]


async def resolve_aaaa(
    host: str,
    *,
    timeout_seconds: float,
    resolvers: list[str] | None = None,
) -> list[str]:
    """
    AAAA lookup bounded by its own deadline. Raises on resolver errors and on timeout.
    """
    return await asyncio.wait_for(
        _dns_query(
            domain=host,
            record_type="AAAA",
            resolvers=resolvers,
            timeout_seconds=float(timeout_seconds),
        ),
        timeout=float(timeout_seconds),
    )


async def check_ipv6(
    host: str,
    *,
    timeout_seconds: float = 5.0,
    resolvers: list[str] | None = None,
) -> bool:
    cleaned = str(host or "").strip().lower()
    if not cleaned:
        return False
    try:
        records = await resolve_aaaa(cleaned, timeout_seconds=timeout_seconds, resolvers=resolvers)
    except Exception as exc:
        logger.debug("aaaa_lookup_failed", host=cleaned, error=f"{type(exc).__name__}: {exc}")
        return False
    return len(records) > 0
