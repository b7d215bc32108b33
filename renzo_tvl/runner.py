"""One snapshot cycle: read -> decode -> aggregate -> assemble."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from .aggregator import aggregate
from .chain_reader import ChainReader
from .config.registry import ProtocolRegistry
from .config.rpc_config import get_rpc_timeout, get_rpc_url
from .config.rpc_pool import get_endpoint
from .decoder import decode_all
from .queries import BlockId, QuerySpec, build_queries
from .snapshot import assemble

logger = logging.getLogger(__name__)


def build_reader(registry: ProtocolRegistry, rpc_url: Optional[str] = None, timeout: Optional[float] = None,
                 max_workers: int = 8, calls_per_second: float = 5) -> ChainReader:
    url = get_rpc_url(rpc_url, default=registry.rpc_url)
    endpoint = get_endpoint(url, timeout=get_rpc_timeout(timeout), calls_per_second=calls_per_second)
    return ChainReader(endpoint, max_workers=max_workers)


def run_cycle(
    registry: ProtocolRegistry,
    reader: ChainReader,
    queries: Optional[Sequence[QuerySpec]] = None,
    block: BlockId = "latest",
    pin: bool = False,
    generated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Produce one assembled snapshot.

    Raises ChainReadError / DecodeError; nothing partial is returned on failure.
    """
    limiter = reader.endpoint.rate_limiter
    if limiter.is_backing_off():
        logger.warning("RPC endpoint is rate limited, backing off for %.1fs", limiter.get_backoff_remaining())

    queries = queries if queries is not None else build_queries(registry)
    block = reader.resolve_block(block, pin)
    results = reader.read(queries, block=block)
    decoded = decode_all(results)
    snapshot = aggregate(decoded, registry.operators, block=block)

    if not snapshot.residual_in_range:
        logger.warning(
            "beacon-chain residual %.4f ETH is outside [0, %.4f]; reads are inconsistent",
            snapshot.beacon_chain, snapshot.total_tvl,
        )
    if not snapshot.distribution_defined:
        logger.warning("total TVL is 0; distribution percentages are undefined")

    return assemble(snapshot, registry, generated_at=generated_at)
