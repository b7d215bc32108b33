"""renzo_tvl package: read Renzo (ezETH) restaking state over JSON-RPC, decode it, and split TVL into custody buckets."""
__all__ = [
    "config",
    "errors",
    "queries",
    "decoder",
    "chain_reader",
    "aggregator",
    "snapshot",
    "runner",
    "scheduler",
]
