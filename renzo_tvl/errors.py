"""
Error taxonomy for a snapshot cycle.

Only DecodeError and ChainReadError abort a cycle. QueryFailure instances are
carried inside RawResult objects so a degraded query can be reported without
being raised.
"""

from __future__ import annotations


class RenzoTVLError(Exception):
    """Base class for everything raised by renzo_tvl."""


class ConfigError(RenzoTVLError):
    """Registry file missing or malformed."""


class DecodeError(RenzoTVLError, ValueError):
    """A non-empty result that cannot be decoded for its query."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"{key}: {reason}")


class QueryFailure(RenzoTVLError):
    """One query failed at the endpoint (transport error, revert, missing function)."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"{key}: {reason}")


class OptionalQueryFailure(QueryFailure):
    """Failure of a query the cycle can do without; its value degrades to zero/absent."""


class ChainReadError(RenzoTVLError):
    """Endpoint unreachable or a required query failed. No snapshot is produced."""
