"""Static deployment registry and JSON-RPC endpoint configuration."""
__all__ = [
    "registry",
    "rpc_config",
    "rpc_pool",
]
