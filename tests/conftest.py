import threading
from decimal import Decimal

import pytest
from web3 import Web3

from renzo_tvl.config.registry import load_registry
from renzo_tvl.config.rpc_pool import RateLimiter
from renzo_tvl.queries import (
    SIG_CALCULATE_TVLS,
    SIG_COOLDOWN_PERIOD,
    SIG_GET_RATE,
    SIG_PAUSED,
    SIG_TOTAL_SUPPLY,
    SIG_WITHDRAW_REQUEST_NONCE,
    SIG_WITHDRAWABLE_EL_GWEI,
    selector,
)

REVERT = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "execution reverted"}}
BLOCK_METHODS = ("eth_blockNumber", "eth_getBlockByNumber")


def word(n: int) -> str:
    return format(n, "064x")


def uint_result(n: int) -> str:
    return "0x" + word(n)


def tvl_result(total_wei: int) -> str:
    # (uint256[][], uint256[], uint256): two offsets, the total, then two empty arrays
    return "0x" + word(0x60) + word(0x80) + word(total_wei) + word(0) + word(0)


def wei(eth) -> int:
    return Web3.to_wei(Decimal(str(eth)), "ether")


def ok(result: str) -> dict:
    return {"jsonrpc": "2.0", "id": 1, "result": result}


class FakeEndpoint:
    """Stands in for RpcEndpoint; answers from a dict keyed by (kind, address[, selector])."""

    def __init__(self, responses=None, connected=True, head=19_000_000, tagged=None):
        self.responses = dict(responses or {})
        self.connected = connected
        self.head = head
        self.tagged = dict(tagged or {})
        self.rate_limiter = RateLimiter(calls_per_second=0)
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, params):
        with self._lock:
            self.calls.append((method, params))
        if method == "eth_blockNumber":
            return ok(hex(self.head))
        if method == "eth_getBlockByNumber":
            number = self.tagged.get(params[0])
            return ok({"number": hex(number)} if number is not None else None)
        if method == "eth_getBalance":
            key = ("balance", params[0])
        else:
            key = ("call", params[0]["to"], params[0]["data"])
        resp = self.responses.get(key, REVERT)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def is_connected(self):
        return self.connected

    def block_number(self, tag="latest"):
        if tag == "latest":
            return int(self.request("eth_blockNumber", [])["result"], 16)
        result = self.request("eth_getBlockByNumber", [tag, False])["result"]
        if result is None:
            raise ValueError(f"unknown block tag {tag}")
        return int(result["number"], 16)

    def block_tags(self):
        return {params[-1] for method, params in self.calls if method not in BLOCK_METHODS}


def chain_state(
    registry,
    total_supply=1000,
    rate="1.05",
    tvl=1050,
    deposit=10,
    withdraw=20,
    pods=(100, 100, 100, 100, 100),
    rewards_gwei=(0, 0, 0, 0, 0),
    cooldown=604800,
    nonce=4321,
    paused=False,
):
    """JSON-RPC responses for a whole deployment, amounts given in ETH. A rewards entry of None reverts."""
    c = registry.contracts
    r = {
        ("call", c["EZETH_TOKEN"], selector(SIG_TOTAL_SUPPLY)): ok(uint_result(wei(total_supply))),
        ("call", c["BALANCE_RATE_PROVIDER"], selector(SIG_GET_RATE)): ok(uint_result(wei(rate))),
        ("call", c["RESTAKE_MANAGER"], selector(SIG_CALCULATE_TVLS)): ok(tvl_result(wei(tvl))),
        ("call", c["RESTAKE_MANAGER"], selector(SIG_PAUSED)): ok(uint_result(1 if paused else 0)),
        ("balance", c["DEPOSIT_QUEUE"]): ok(hex(wei(deposit))),
        ("balance", c["WITHDRAW_QUEUE"]): ok(hex(wei(withdraw))),
        ("call", c["WITHDRAW_QUEUE"], selector(SIG_COOLDOWN_PERIOD)): ok(uint_result(cooldown)),
        ("call", c["WITHDRAW_QUEUE"], selector(SIG_WITHDRAW_REQUEST_NONCE)): ok(uint_result(nonce)),
    }
    for op, balance, gwei in zip(registry.operators, pods, rewards_gwei):
        r[("balance", op.pod)] = ok(hex(wei(balance)))
        r[("call", op.pod, selector(SIG_WITHDRAWABLE_EL_GWEI))] = REVERT if gwei is None else ok(uint_result(gwei))
    return r


@pytest.fixture
def registry():
    return load_registry()


@pytest.fixture
def endpoint(registry):
    return FakeEndpoint(chain_state(registry))
