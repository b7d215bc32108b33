"""
RPC URL resolution - explicit URL, env override, Alchemy key, then public RPC.
"""

import os
from typing import Optional

ALCHEMY_MAINNET = 'https://eth-mainnet.g.alchemy.com/v2/{key}'

# Public mainnet RPCs (no auth needed)
PUBLIC_RPCS = [
    'https://rpc.mevblocker.io',
    'https://eth.llamarpc.com',
    'https://rpc.ankr.com/eth',
]

DEFAULT_TIMEOUT = 30.0


def get_rpc_url(url: Optional[str] = None, default: Optional[str] = None, api_key: Optional[str] = None) -> str:
    """
    Get the Ethereum mainnet RPC URL.

    Args:
        url: Explicit URL (e.g. from --rpc-url); wins over everything else
        default: Registry default, used when no env override or key is set
        api_key: Alchemy API key (uses ALCHEMY_API_KEY env var if not provided)

    Returns:
        Complete RPC URL
    """
    if url:
        return url

    env_url = os.getenv('RENZO_RPC_URL')
    if env_url:
        return env_url

    key = api_key or os.getenv('ALCHEMY_API_KEY')
    if key:
        return ALCHEMY_MAINNET.format(key=key)

    return default or PUBLIC_RPCS[0]


def get_rpc_timeout(timeout: Optional[float] = None) -> float:
    """Per-request timeout in seconds (RENZO_RPC_TIMEOUT env var if not provided)."""
    if timeout is not None:
        return float(timeout)
    raw = os.getenv('RENZO_RPC_TIMEOUT')
    if not raw:
        return DEFAULT_TIMEOUT
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"RENZO_RPC_TIMEOUT must be a number of seconds, got {raw!r}") from None
