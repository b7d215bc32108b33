"""Console rendering of an assembled snapshot."""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional


def fmt(n: Optional[float], d: int = 2) -> str:
    """Compact number: 1234567 -> '1.23M', 4321 -> '4.32K'."""
    if n is None or (isinstance(n, float) and math.isnan(n)):
        return "n/a"
    if abs(n) >= 1e6:
        return f"{n / 1e6:.{d}f}M"
    if abs(n) >= 1e3:
        return f"{n / 1e3:.{d}f}K"
    return f"{n:.{d}f}"


def short_address(a: str) -> str:
    return a[:6] + "..." + a[-4:]


def pct(p: Optional[float]) -> str:
    if p is None or math.isnan(p):
        return "n/a"
    return f"{p:.1f}%"


def render_summary(payload: Dict[str, Any]) -> str:
    core = payload["core"]
    bal = payload["balances"]
    dist = payload["distribution"]
    wd = payload["withdrawal"]
    val = payload["validators"]
    cons = payload["consistency"]

    lines: List[str] = []
    paused = " (PAUSED)" if core["isPaused"] else ""
    lines.append(f"🔹 Renzo ezETH @ {payload['timestamp']} block={payload['block']}{paused}")
    lines.append(
        f"   TVL {fmt(core['totalTVL'])} ETH | supply {fmt(core['totalSupply'])} ezETH"
        f" | rate {core['exchangeRate']:.4f} ETH/ezETH"
    )
    for label, value, share in (
        ("Beacon chain", bal["beaconChain"], dist["beaconChainPct"]),
        ("EigenPods", bal["totalEigenPods"], dist["eigenPodsPct"]),
        ("Withdraw queue", bal["withdrawQueue"], dist["withdrawQueuePct"]),
        ("Deposit queue", bal["depositQueue"], dist["depositQueuePct"]),
    ):
        lines.append(f"   {label:<15}{fmt(value):>10} ETH ({pct(share)})")
    lines.append(
        f"   Withdrawals: {wd['totalRequests']:,} requests, cooldown {wd['coolDownDays']:g} days"
    )
    lines.append(f"   Validators: ~{val['estimated']:,} ({fmt(val['totalStaked'], 0)} ETH staked)")

    for op in payload["operators"]:
        rewards = op["withdrawableExecutionLayer"]
        extra = "" if rewards is None else f" | EL withdrawable {rewards:.4f} ETH"
        lines.append(f"   - {op['name']:<14} pod {short_address(op['podAddress'])} {op['podBalance']:.4f} ETH{extra}")

    if not cons["beaconChainInRange"]:
        lines.append("⚠️  beacon-chain residual outside [0, TVL]: reads were inconsistent")
    if not cons["distributionDefined"]:
        lines.append("⚠️  TVL is 0: distribution undefined")
    if cons["degradedQueries"]:
        lines.append(f"⚠️  degraded queries: {', '.join(cons['degradedQueries'])}")
    return "\n".join(lines)
