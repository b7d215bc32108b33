"""
Query registry: the fixed batch of read-only lookups behind one snapshot.

Two kinds of query exist:
- BALANCE: eth_getBalance(address) - native ETH held by a queue or pod
- CALL:    eth_call({to, data}) - a no-argument view function, data is the 4-byte selector

Which decoder handles a result is fixed here per query (the `decoder` key
into decoder.DECODERS), as is whether the cycle can survive its failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from eth_utils import keccak

from .config.registry import ProtocolRegistry

BlockId = Union[str, int]

TOTAL_SUPPLY = "total_supply"
EXCHANGE_RATE = "exchange_rate"
TOTAL_TVL = "total_tvl"
PAUSED = "paused"
DEPOSIT_QUEUE_BALANCE = "deposit_queue_balance"
WITHDRAW_QUEUE_BALANCE = "withdraw_queue_balance"
COOLDOWN_PERIOD = "cooldown_period"
WITHDRAW_REQUEST_NONCE = "withdraw_request_nonce"
POD_BALANCE = "pod_balance"
POD_REWARDS = "pod_rewards"

# View functions (all take no arguments)
SIG_TOTAL_SUPPLY = "totalSupply()"
SIG_GET_RATE = "getRate()"
SIG_CALCULATE_TVLS = "calculateTVLs()"
SIG_PAUSED = "paused()"
SIG_COOLDOWN_PERIOD = "coolDownPeriod()"
SIG_WITHDRAW_REQUEST_NONCE = "withdrawRequestNonce()"
SIG_WITHDRAWABLE_EL_GWEI = "withdrawableRestakedExecutionLayerGwei()"


def selector(signature: str) -> str:
    """0x-prefixed bytes4(keccak256(signature))."""
    return "0x" + keccak(text=signature)[:4].hex()


class QueryKind(Enum):
    BALANCE = "eth_getBalance"
    CALL = "eth_call"

    @property
    def method(self) -> str:
        return self.value


def block_param(block: BlockId) -> str:
    if isinstance(block, int):
        return hex(block)
    return block


@dataclass(frozen=True)
class QuerySpec:
    key: str
    kind: QueryKind
    address: str
    decoder: str
    unit: str
    data: Optional[str] = None
    required: bool = False
    operator: Optional[int] = None

    def params(self, block: BlockId = "latest") -> List[Any]:
        tag = block_param(block)
        if self.kind is QueryKind.BALANCE:
            return [self.address, tag]
        return [{"to": self.address, "data": self.data}, tag]


def _call(key: str, address: str, signature: str, decoder: str, unit: str, **kw) -> QuerySpec:
    return QuerySpec(key=key, kind=QueryKind.CALL, address=address, data=selector(signature),
                     decoder=decoder, unit=unit, **kw)


def _balance(key: str, address: str, **kw) -> QuerySpec:
    return QuerySpec(key=key, kind=QueryKind.BALANCE, address=address, decoder="uint", unit="wei", **kw)


def operator_key(kind: str, index: int) -> str:
    return f"{kind}:{index}"


def build_queries(registry: ProtocolRegistry) -> Tuple[QuerySpec, ...]:
    """
    Build the query batch for a deployment.

    Total supply, exchange rate and TVL are required: the snapshot has no
    meaning without them. Everything else degrades to zero (or absent for
    pod rewards, which older EigenPods do not implement).
    """
    ezeth = registry.address("EZETH_TOKEN")
    rate_provider = registry.address("BALANCE_RATE_PROVIDER")
    manager = registry.address("RESTAKE_MANAGER")
    deposit_queue = registry.address("DEPOSIT_QUEUE")
    withdraw_queue = registry.address("WITHDRAW_QUEUE")

    queries = [
        _call(TOTAL_SUPPLY, ezeth, SIG_TOTAL_SUPPLY, "uint", "wei", required=True),
        _call(EXCHANGE_RATE, rate_provider, SIG_GET_RATE, "uint", "wei", required=True),
        _call(TOTAL_TVL, manager, SIG_CALCULATE_TVLS, "tvl_total", "wei", required=True),
        _call(PAUSED, manager, SIG_PAUSED, "bool", "flag"),
        _balance(DEPOSIT_QUEUE_BALANCE, deposit_queue),
        _balance(WITHDRAW_QUEUE_BALANCE, withdraw_queue),
        _call(COOLDOWN_PERIOD, withdraw_queue, SIG_COOLDOWN_PERIOD, "uint", "seconds"),
        _call(WITHDRAW_REQUEST_NONCE, withdraw_queue, SIG_WITHDRAW_REQUEST_NONCE, "uint", "count"),
    ]
    for i, op in enumerate(registry.operators):
        queries.append(_balance(operator_key(POD_BALANCE, i), op.pod, operator=i))
        queries.append(_call(operator_key(POD_REWARDS, i), op.pod, SIG_WITHDRAWABLE_EL_GWEI,
                             "uint", "gwei", operator=i))
    return tuple(queries)

