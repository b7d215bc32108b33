"""
Decoder: raw JSON-RPC results -> Python ints / bools -> ETH floats.

Policy: an absent or empty result ("0x") decodes to 0 instead of raising, so
one failed read degrades one bucket rather than the whole snapshot. A
non-empty result that is not valid hex (or too short for the word it must
contain) raises DecodeError.

Raw amounts stay Python ints (arbitrary precision) until to_eth() converts
them through Decimal; nothing is rounded through float before that point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from eth_utils import decode_hex, is_hex, remove_0x_prefix
from web3 import Web3

from .errors import DecodeError, QueryFailure
from .queries import QueryKind, QuerySpec

logger = logging.getLogger(__name__)

WORD_SIZE = 32
GWEI = 10 ** 9

# calculateTVLs() returns (uint256[][] operatorTVLs, uint256[] tokenTVLs, uint256 totalTVL).
# The two dynamic arrays are encoded as offsets in the head, so the scalar total
# is the third head word: bytes 64..96 of the return data.
TVL_TOTAL_WORD = 2

Decoded = Union[int, bool]


class ResultKind(Enum):
    BALANCE = "balance"
    CALL = "call"
    ERROR = "error"


@dataclass(frozen=True)
class RawResult:
    spec: QuerySpec
    kind: ResultKind
    data: Optional[str] = None
    failure: Optional[QueryFailure] = None

    @staticmethod
    def ok(spec: QuerySpec, data: Optional[str]) -> "RawResult":
        kind = ResultKind.BALANCE if spec.kind is QueryKind.BALANCE else ResultKind.CALL
        return RawResult(spec=spec, kind=kind, data=data)

    @staticmethod
    def failed(spec: QuerySpec, failure: QueryFailure) -> "RawResult":
        return RawResult(spec=spec, kind=ResultKind.ERROR, failure=failure)

    @property
    def is_error(self) -> bool:
        return self.kind is ResultKind.ERROR


def _hex_body(raw: Optional[str], key: str) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise DecodeError(key, f"expected a hex string, got {type(raw).__name__}")
    body = remove_0x_prefix(raw)
    if body and not is_hex(raw):
        raise DecodeError(key, f"not a hex string: {raw[:20]!r}")
    return body


def decode_uint(raw: Optional[str], key: str = "") -> int:
    """Big-endian unsigned integer of any width. None / '' / '0x' -> 0."""
    body = _hex_body(raw, key)
    if not body:
        return 0
    return int(body, 16)


def decode_word(raw: Optional[str], index: int, key: str = "") -> int:
    """The 32-byte ABI word at a fixed word index of the return data."""
    body = _hex_body(raw, key)
    if not body:
        return 0
    if len(body) % 2:
        raise DecodeError(key, "odd-length return data")
    data = decode_hex(body)
    start = index * WORD_SIZE
    end = start + WORD_SIZE
    if len(data) < end:
        raise DecodeError(key, f"return data has {len(data)} bytes, word {index} needs {end}")
    return int.from_bytes(data[start:end], "big")


def decode_bool(raw: Optional[str], key: str = "") -> bool:
    return decode_word(raw, 0, key) != 0


def decode_tvl_total(raw: Optional[str], key: str = "") -> int:
    """Total TVL (wei) out of a calculateTVLs() return payload."""
    return decode_word(raw, TVL_TOTAL_WORD, key)


def to_eth(raw: int) -> float:
    """wei -> ETH (raw / 10**18)."""
    return float(Web3.from_wei(raw, "ether"))


def gwei_to_eth(raw: int) -> float:
    """gwei -> ETH (raw * 10**9 / 10**18)."""
    return float(Web3.from_wei(raw * GWEI, "ether"))


DECODERS: Dict[str, Callable[[Optional[str], str], Decoded]] = {
    "uint": decode_uint,
    "bool": decode_bool,
    "tvl_total": decode_tvl_total,
}


def decode(result: RawResult) -> Decoded:
    """Decode one result with the decoder its QuerySpec names. Failed results decode like an empty one."""
    fn = DECODERS[result.spec.decoder]
    data = None if result.is_error else result.data
    return fn(data, result.spec.key)


@dataclass(frozen=True)
class DecodedBatch:
    values: Dict[str, Decoded]
    degraded: Tuple[str, ...]

    def get(self, key: str, default: Decoded = 0) -> Decoded:
        return self.values.get(key, default)

    def is_degraded(self, key: str) -> bool:
        return key in self.degraded


def decode_all(results: Iterable[RawResult]) -> DecodedBatch:
    """
    Decode a whole batch.

    A DecodeError on a required query propagates. On any other query it is
    logged and the value falls back to zero; the key is reported as degraded
    along with every key whose read failed.
    """
    values: Dict[str, Decoded] = {}
    degraded: List[str] = []
    for result in results:
        key = result.spec.key
        if result.is_error:
            degraded.append(key)
        try:
            values[key] = decode(result)
        except DecodeError:
            if result.spec.required:
                raise
            logger.warning("could not decode %s, using 0", key, exc_info=True)
            values[key] = DECODERS[result.spec.decoder](None, key)
            if key not in degraded:
                degraded.append(key)
    return DecodedBatch(values=values, degraded=tuple(degraded))
