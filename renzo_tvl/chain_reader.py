"""
Chain reader: run the whole query batch concurrently against one endpoint.

Results come back in input order; each worker writes only its own slot.
The endpoint may answer different queries from slightly different block
heights when reading "latest". Pass pin=True to resolve the tag (head, safe
or finalized) once and use that block number for every query.

Failure policy:
- optional query fails -> ERROR RawResult carrying an OptionalQueryFailure, logged
- required query fails -> ChainReadError, whole cycle aborted
- endpoint unreachable, or every query failed -> ChainReadError
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence

import requests
from web3.exceptions import Web3Exception

from .config.rpc_pool import RpcEndpoint
from .decoder import RawResult
from .errors import ChainReadError, OptionalQueryFailure, QueryFailure
from .queries import BlockId, QuerySpec

logger = logging.getLogger(__name__)

# Exceptions a single query may raise without taking down the cycle
TRANSPORT_ERRORS = (requests.exceptions.RequestException, Web3Exception, ValueError, OSError)


class ChainReader:
    """
    Executes QuerySpecs against an RpcEndpoint on a thread pool.

    Args:
        endpoint: shared RpcEndpoint (see config.rpc_pool.get_endpoint)
        max_workers: concurrent in-flight requests
        check_connection: probe the endpoint before issuing the batch
    """

    def __init__(self, endpoint: RpcEndpoint, max_workers: int = 8, check_connection: bool = True):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.endpoint = endpoint
        self.max_workers = max_workers
        self.check_connection = check_connection

    def resolve_block(self, block: BlockId = "latest", pin: bool = False) -> BlockId:
        """Turn a block tag into the identifier used for every query of the batch."""
        if not pin or isinstance(block, int):
            return block
        try:
            return self.endpoint.block_number(block)
        except TRANSPORT_ERRORS as e:
            raise ChainReadError(f"could not resolve block {block!r}: {e}") from e

    def _execute(self, spec: QuerySpec, block: BlockId) -> RawResult:
        failure_cls = QueryFailure if spec.required else OptionalQueryFailure
        try:
            resp = self.endpoint.request(spec.kind.method, spec.params(block))
        except TRANSPORT_ERRORS as e:
            return RawResult.failed(spec, failure_cls(spec.key, f"{type(e).__name__}: {e}"))

        if "error" in resp:
            err = resp["error"]
            reason = err.get("message", str(err)) if isinstance(err, dict) else str(err)
            return RawResult.failed(spec, failure_cls(spec.key, reason))
        if "result" not in resp:
            return RawResult.failed(spec, failure_cls(spec.key, "response has no result"))
        return RawResult.ok(spec, resp["result"])

    def read(self, queries: Sequence[QuerySpec], block: BlockId = "latest", pin: bool = False) -> List[RawResult]:
        """
        Run every query and return one RawResult per QuerySpec, in input order.

        Raises:
            ChainReadError: endpoint unreachable, a required query failed, or nothing succeeded
        """
        if not queries:
            return []
        if self.check_connection and not self.endpoint.is_connected():
            raise ChainReadError(f"RPC endpoint is not reachable ({len(queries)} queries not sent)")

        block = self.resolve_block(block, pin)

        results: List[Optional[RawResult]] = [None] * len(queries)
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(queries))) as pool:
            futures: Dict[Any, int] = {
                pool.submit(self._execute, spec, block): i for i, spec in enumerate(queries)
            }
            for future in as_completed(futures):
                results[futures[future]] = future.result()

        failed = [r for r in results if r.is_error]
        if len(failed) == len(results):
            first = failed[0].failure
            raise ChainReadError(f"all {len(results)} queries failed; first error: {first}") from first

        required_failures = [r for r in failed if r.spec.required]
        if required_failures:
            keys = ", ".join(r.spec.key for r in required_failures)
            raise ChainReadError(f"required queries failed: {keys}") from required_failures[0].failure

        for r in failed:
            logger.warning("optional query %s failed: %s", r.spec.key, r.failure.reason)

        logger.debug("read %d queries at block %s (%d failed)", len(results), block, len(failed))
        return results
