"""
Snapshot assembler: Snapshot -> the JSON document served to the dashboard.

Layout (camelCase keys, as the rendering layer expects):

    timestamp, block,
    core          {totalSupply, totalTVL, exchangeRate, isPaused}
    balances      {depositQueue, withdrawQueue, totalEigenPods, beaconChain}
    withdrawal    {coolDownPeriod, coolDownDays, totalRequests}
    validators    {estimated, totalStaked}
    operators     [{name, odAddress, podAddress, podBalance, withdrawableExecutionLayer}]
    contracts     {RESTAKE_MANAGER: 0x..., ...}
    distribution  {beaconChainPct, withdrawQueuePct, depositQueuePct, eigenPodsPct}
    consistency   {beaconChainInRange, distributionDefined, degradedQueries}
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .aggregator import Snapshot
from .config.registry import ProtocolRegistry

ERROR_MESSAGE = "Failed to fetch on-chain data"


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    dt = dt or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def assemble(snapshot: Snapshot, registry: ProtocolRegistry, generated_at: Optional[datetime] = None) -> Dict[str, Any]:
    dist = snapshot.distribution
    return {
        "timestamp": iso_timestamp(generated_at),
        "block": snapshot.block,
        "core": {
            "totalSupply": snapshot.total_supply,
            "totalTVL": snapshot.total_tvl,
            "exchangeRate": snapshot.exchange_rate,
            "isPaused": snapshot.paused,
        },
        "balances": {
            "depositQueue": snapshot.deposit_queue,
            "withdrawQueue": snapshot.withdraw_queue,
            "totalEigenPods": snapshot.total_pod_balance,
            "beaconChain": snapshot.beacon_chain,
        },
        "withdrawal": {
            "coolDownPeriod": snapshot.cooldown_seconds,
            "coolDownDays": snapshot.cooldown_days,
            "totalRequests": snapshot.withdraw_requests,
        },
        "validators": {
            "estimated": snapshot.estimated_validators,
            "totalStaked": snapshot.total_staked,
        },
        "operators": [
            {
                "name": op.name,
                "odAddress": op.delegator,
                "podAddress": op.pod,
                "podBalance": op.pod_balance,
                "withdrawableExecutionLayer": op.withdrawable_execution_layer,
            }
            for op in snapshot.operators
        ],
        "contracts": dict(registry.contracts),
        "distribution": {
            "beaconChainPct": dist.beacon_chain_pct,
            "withdrawQueuePct": dist.withdraw_queue_pct,
            "depositQueuePct": dist.deposit_queue_pct,
            "eigenPodsPct": dist.eigen_pods_pct,
        },
        "consistency": {
            "beaconChainInRange": snapshot.residual_in_range,
            "distributionDefined": snapshot.distribution_defined,
            "degradedQueries": list(snapshot.degraded_queries),
        },
    }


def error_payload(exc: BaseException) -> Dict[str, str]:
    return {"error": ERROR_MESSAGE, "details": str(exc)}


def _finite(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_finite(v) for v in value]
    return value


def to_json(payload: Dict[str, Any], indent: Optional[int] = None) -> str:
    """Strict JSON: NaN / inf are written as null."""
    return json.dumps(_finite(payload), indent=indent, allow_nan=False)
