"""
Metric aggregation: decoded chain values -> Snapshot.

TVL is split into four custody buckets:

    deposit queue + withdraw queue + EigenPods + beacon chain = total TVL

Only the first three are read from chain. The beacon-chain bucket is the
residual, so the identity holds by construction. Because the reads are not
atomic (and a failed read decodes to 0) the residual can fall outside
[0, TVL]; it is never clamped. residual_in_range and distribution_defined
make those states visible to consumers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .config.registry import OperatorRecord
from .decoder import DecodedBatch, gwei_to_eth, to_eth
from .queries import (
    COOLDOWN_PERIOD,
    DEPOSIT_QUEUE_BALANCE,
    EXCHANGE_RATE,
    PAUSED,
    POD_BALANCE,
    POD_REWARDS,
    TOTAL_SUPPLY,
    TOTAL_TVL,
    WITHDRAW_QUEUE_BALANCE,
    WITHDRAW_REQUEST_NONCE,
    BlockId,
    operator_key,
)

ETH_PER_VALIDATOR = 32
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class OperatorSnapshot:
    name: str
    delegator: str
    pod: str
    pod_balance: float
    # None when the pod does not implement withdrawableRestakedExecutionLayerGwei()
    withdrawable_execution_layer: Optional[float]


@dataclass(frozen=True)
class Distribution:
    beacon_chain_pct: float
    withdraw_queue_pct: float
    deposit_queue_pct: float
    eigen_pods_pct: float

    def total(self) -> float:
        return self.beacon_chain_pct + self.withdraw_queue_pct + self.deposit_queue_pct + self.eigen_pods_pct


@dataclass(frozen=True)
class Snapshot:
    total_supply: float
    exchange_rate: float
    total_tvl: float
    paused: bool
    deposit_queue: float
    withdraw_queue: float
    total_pod_balance: float
    beacon_chain: float
    estimated_validators: int
    cooldown_seconds: int
    cooldown_days: float
    withdraw_requests: int
    operators: Tuple[OperatorSnapshot, ...]
    distribution: Distribution
    residual_in_range: bool
    distribution_defined: bool
    degraded_queries: Tuple[str, ...] = ()
    block: BlockId = "latest"

    @property
    def total_staked(self) -> int:
        return self.estimated_validators * ETH_PER_VALIDATOR

    @property
    def consistent(self) -> bool:
        return self.residual_in_range and self.distribution_defined and not self.degraded_queries


def beacon_chain_residual(total_tvl: float, deposit_queue: float, withdraw_queue: float, pods: float) -> float:
    return total_tvl - deposit_queue - withdraw_queue - pods


def estimate_validators(beacon_chain: float) -> int:
    """floor(beacon / 32); a negative residual gives a non-positive estimate."""
    return math.floor(beacon_chain / ETH_PER_VALIDATOR)


def percent_of(part: float, total: float) -> float:
    # NaN, not 0 or inf, when there is nothing to divide by
    if total == 0:
        return math.nan
    return part / total * 100


def distribution(total_tvl: float, beacon_chain: float, withdraw_queue: float,
                 deposit_queue: float, pods: float) -> Distribution:
    return Distribution(
        beacon_chain_pct=percent_of(beacon_chain, total_tvl),
        withdraw_queue_pct=percent_of(withdraw_queue, total_tvl),
        deposit_queue_pct=percent_of(deposit_queue, total_tvl),
        eigen_pods_pct=percent_of(pods, total_tvl),
    )


def operator_snapshots(operators: Sequence[OperatorRecord], decoded: DecodedBatch) -> Tuple[OperatorSnapshot, ...]:
    out = []
    for i, op in enumerate(operators):
        rewards_key = operator_key(POD_REWARDS, i)
        rewards = None if decoded.is_degraded(rewards_key) else gwei_to_eth(decoded.get(rewards_key))
        out.append(OperatorSnapshot(
            name=op.name,
            delegator=op.delegator,
            pod=op.pod,
            pod_balance=to_eth(decoded.get(operator_key(POD_BALANCE, i))),
            withdrawable_execution_layer=rewards,
        ))
    return tuple(out)


def aggregate(decoded: DecodedBatch, operators: Sequence[OperatorRecord], block: BlockId = "latest") -> Snapshot:
    total_tvl = to_eth(decoded.get(TOTAL_TVL))
    deposit_queue = to_eth(decoded.get(DEPOSIT_QUEUE_BALANCE))
    withdraw_queue = to_eth(decoded.get(WITHDRAW_QUEUE_BALANCE))

    ops = operator_snapshots(operators, decoded)
    total_pods = sum(op.pod_balance for op in ops)

    beacon = beacon_chain_residual(total_tvl, deposit_queue, withdraw_queue, total_pods)
    cooldown_seconds = int(decoded.get(COOLDOWN_PERIOD))

    return Snapshot(
        total_supply=to_eth(decoded.get(TOTAL_SUPPLY)),
        exchange_rate=to_eth(decoded.get(EXCHANGE_RATE)),
        total_tvl=total_tvl,
        paused=bool(decoded.get(PAUSED, False)),
        deposit_queue=deposit_queue,
        withdraw_queue=withdraw_queue,
        total_pod_balance=total_pods,
        beacon_chain=beacon,
        estimated_validators=estimate_validators(beacon),
        cooldown_seconds=cooldown_seconds,
        cooldown_days=cooldown_seconds / SECONDS_PER_DAY,
        withdraw_requests=int(decoded.get(WITHDRAW_REQUEST_NONCE)),
        operators=ops,
        distribution=distribution(total_tvl, beacon, withdraw_queue, deposit_queue, total_pods),
        residual_in_range=0 <= beacon <= total_tvl,
        distribution_defined=total_tvl != 0,
        degraded_queries=decoded.degraded,
        block=block,
    )
