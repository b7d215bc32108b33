"""
Shared JSON-RPC endpoint with rate limiting

Every query of a snapshot cycle goes through one cached RpcEndpoint per URL.
The endpoint owns a single Web3 HTTPProvider (requests keeps a pooled session
underneath) and a RateLimiter so a burst of concurrent queries does not trip
the provider's per-second limits:

- Public RPCs: ~5 calls/second is a safe default
- Alchemy free tier: 300 CUs/second, eth_call ~26 CUs, eth_getBalance ~19 CUs

A 429/503 (or a JSON-RPC error mentioning rate limits) puts the endpoint into
exponential backoff, capped at the endpoint timeout; the next successful call
resets it.

Usage:
    from renzo_tvl.config.rpc_pool import get_endpoint

    endpoint = get_endpoint('https://rpc.mevblocker.io')
    resp = endpoint.request('eth_blockNumber', [])
"""

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import requests
from web3 import Web3

logger = logging.getLogger(__name__)


def is_rate_limit_error(error_str: str) -> bool:
    lowered = error_str.lower()
    return '429' in error_str or '503' in error_str or 'too many' in lowered or 'rate limit' in lowered


class RateLimiter:
    """
    Minimum-interval limiter with exponential backoff on rate-limit errors.

    Thread-safe; shared by all worker threads of a cycle.
    """

    def __init__(self, calls_per_second: float = 5, max_backoff: float = 300):
        self.calls_per_second = calls_per_second
        self.min_interval = 1.0 / calls_per_second if calls_per_second > 0 else 0.0
        self.last_call = 0.0
        self.lock = threading.Lock()
        # Backoff state for 429/503 errors
        self.backoff_until = 0.0
        self.consecutive_errors = 0
        self.max_backoff = max_backoff

    def wait(self):
        """Block until the next call is allowed (interval and any active backoff)."""
        with self.lock:
            now = time.time()
            next_allowed = max(self.last_call + self.min_interval, self.backoff_until)
            if next_allowed > now:
                time.sleep(next_allowed - now)
            self.last_call = time.time()

    def is_backing_off(self) -> bool:
        with self.lock:
            return time.time() < self.backoff_until

    def get_backoff_remaining(self) -> float:
        """Seconds remaining in backoff period (0 if not backing off)"""
        with self.lock:
            return max(0.0, self.backoff_until - time.time())

    def report_error(self, is_rate_limit: bool = False):
        with self.lock:
            if is_rate_limit:
                self.consecutive_errors += 1
                # 5s, 10s, 20s, 40s... up to max_backoff
                backoff_time = min(5 * (2 ** (self.consecutive_errors - 1)), self.max_backoff)
                self.backoff_until = time.time() + backoff_time
                logger.warning("[RateLimiter] rate limit hit (%dx), backing off %ss", self.consecutive_errors, backoff_time)

    def report_success(self):
        with self.lock:
            if self.consecutive_errors > 0:
                self.consecutive_errors = 0
                self.backoff_until = 0.0


class RpcEndpoint:
    """
    One remote JSON-RPC endpoint: a Web3 instance plus its rate limiter.

    request() returns the raw JSON-RPC response dict ({"result": ...} or
    {"error": {...}}). Transport failures propagate as exceptions.
    """

    def __init__(self, url: str, timeout: float = 30.0, calls_per_second: float = 5,
                 web3: Optional[Web3] = None, rate_limiter: Optional[RateLimiter] = None):
        self.url = url
        self.timeout = timeout
        self.web3 = web3 or Web3(Web3.HTTPProvider(url, request_kwargs={'timeout': timeout}))
        # backoff is capped at one request timeout
        self.rate_limiter = rate_limiter or RateLimiter(calls_per_second=calls_per_second, max_backoff=timeout)

    def request(self, method: str, params: List[Any]) -> Dict[str, Any]:
        self.rate_limiter.wait()
        try:
            resp = self.web3.provider.make_request(method, params)
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            self.rate_limiter.report_error(is_rate_limit=status in (429, 503))
            raise
        if "error" in resp:
            message = str(resp["error"].get("message", "")) if isinstance(resp["error"], dict) else str(resp["error"])
            self.rate_limiter.report_error(is_rate_limit=is_rate_limit_error(message))
        else:
            self.rate_limiter.report_success()
        return resp

    def is_connected(self) -> bool:
        try:
            return bool(self.web3.is_connected())
        except requests.exceptions.RequestException:
            return False

    def block_number(self, tag: str = "latest") -> int:
        """Height of the head ("latest") or of a tagged block such as "safe" or "finalized"."""
        if tag == "latest":
            resp = self.request("eth_blockNumber", [])
            if "error" in resp or "result" not in resp:
                raise ValueError(f"eth_blockNumber failed: {resp.get('error')}")
            return int(resp["result"], 16)
        resp = self.request("eth_getBlockByNumber", [tag, False])
        if "error" in resp or not resp.get("result"):
            raise ValueError(f"eth_getBlockByNumber({tag}) failed: {resp.get('error')}")
        return int(resp["result"]["number"], 16)


# Global endpoint cache (one per URL, timeout and rate)
_ENDPOINT_CACHE: Dict[Tuple[str, float, float], RpcEndpoint] = {}
_cache_lock = threading.Lock()


def get_endpoint(url: str, timeout: float = 30.0, calls_per_second: float = 5, force_new: bool = False) -> RpcEndpoint:
    """
    Get the shared RpcEndpoint for a URL, creating it on first use.

    Args:
        url: JSON-RPC URL
        timeout: Per-request HTTP timeout in seconds
        calls_per_second: Rate limit applied across all threads
        force_new: Replace any cached endpoint (resets rate limiter state)
    """
    key = (url, float(timeout), float(calls_per_second))
    with _cache_lock:
        if key not in _ENDPOINT_CACHE or force_new:
            _ENDPOINT_CACHE[key] = RpcEndpoint(url, timeout=timeout, calls_per_second=calls_per_second)
            logger.debug("[RPC Pool] new endpoint (timeout=%ss, %s calls/s)", timeout, calls_per_second)
        return _ENDPOINT_CACHE[key]


def clear_endpoints():
    with _cache_lock:
        _ENDPOINT_CACHE.clear()
