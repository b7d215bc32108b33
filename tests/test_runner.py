import logging
from datetime import datetime, timezone

import pytest

from conftest import FakeEndpoint, chain_state
from renzo_tvl.chain_reader import ChainReader
from renzo_tvl.config.rpc_pool import RpcEndpoint, clear_endpoints, get_endpoint
from renzo_tvl.errors import ChainReadError, DecodeError
from renzo_tvl.queries import SIG_CALCULATE_TVLS, SIG_TOTAL_SUPPLY, selector
from renzo_tvl.runner import build_reader, run_cycle

WHEN = datetime(2024, 5, 1, tzinfo=timezone.utc)


def test_reference_cycle(registry):
    endpoint = FakeEndpoint(chain_state(registry, rewards_gwei=(1_000_000_000, None, 0, 0, 0)))
    payload = run_cycle(registry, ChainReader(endpoint), generated_at=WHEN)

    assert payload["timestamp"] == "2024-05-01T00:00:00Z"
    assert payload["core"]["totalSupply"] == 1000
    assert payload["core"]["exchangeRate"] == pytest.approx(1.05)
    assert payload["core"]["totalTVL"] == 1050
    assert payload["core"]["isPaused"] is False
    assert payload["balances"] == {
        "depositQueue": 10,
        "withdrawQueue": 20,
        "totalEigenPods": 500,
        "beaconChain": pytest.approx(520),
    }
    assert payload["validators"]["estimated"] == 16
    assert payload["withdrawal"]["coolDownDays"] == 7
    assert payload["withdrawal"]["totalRequests"] == 4321
    assert payload["distribution"]["beaconChainPct"] == pytest.approx(49.52, abs=0.01)
    assert payload["distribution"]["eigenPodsPct"] == pytest.approx(47.62, abs=0.01)

    ops = payload["operators"]
    assert [o["name"] for o in ops] == ["Figment", "P2P.org", "Luganodes", "HashKey Cloud", "Pier Two"]
    assert ops[0]["withdrawableExecutionLayer"] == 1.0
    assert ops[1]["withdrawableExecutionLayer"] is None
    assert all(o["podBalance"] == 100 for o in ops)
    assert payload["consistency"]["degradedQueries"] == ["pod_rewards:1"]


def test_total_supply_failure_aborts_cycle(registry):
    state = chain_state(registry)
    del state[("call", registry.contracts["EZETH_TOKEN"], selector(SIG_TOTAL_SUPPLY))]
    with pytest.raises(ChainReadError):
        run_cycle(registry, ChainReader(FakeEndpoint(state)))


def test_malformed_tvl_aborts_cycle(registry):
    state = chain_state(registry)
    state[("call", registry.contracts["RESTAKE_MANAGER"], selector(SIG_CALCULATE_TVLS))] = {
        "jsonrpc": "2.0", "id": 1, "result": "0x1234",
    }
    with pytest.raises(DecodeError):
        run_cycle(registry, ChainReader(FakeEndpoint(state)))


def test_zero_tvl_cycle_flags_distribution(registry):
    state = chain_state(registry, tvl=0, deposit=0, withdraw=0, pods=(0,) * 5)
    payload = run_cycle(registry, ChainReader(FakeEndpoint(state)))
    assert payload["consistency"]["distributionDefined"] is False


def test_pinned_cycle_reports_block(registry):
    endpoint = FakeEndpoint(chain_state(registry), head=20_000_000)
    payload = run_cycle(registry, ChainReader(endpoint), pin=True)
    assert payload["block"] == 20_000_000
    assert endpoint.block_tags() == {hex(20_000_000)}


def test_build_reader_uses_shared_endpoint(registry, monkeypatch):
    monkeypatch.delenv("RENZO_RPC_URL", raising=False)
    monkeypatch.delenv("ALCHEMY_API_KEY", raising=False)
    clear_endpoints()
    a = build_reader(registry, timeout=5)
    b = build_reader(registry, timeout=5, max_workers=2)
    assert isinstance(a.endpoint, RpcEndpoint)
    assert a.endpoint is b.endpoint
    assert a.endpoint.url == registry.rpc_url
    assert b.max_workers == 2


def test_pinned_finalized_cycle_reports_finalized_block(registry):
    endpoint = FakeEndpoint(chain_state(registry), head=20_000_000, tagged={"finalized": 19_999_936})
    payload = run_cycle(registry, ChainReader(endpoint), block="finalized", pin=True)
    assert payload["block"] == 19_999_936
    assert endpoint.block_tags() == {hex(19_999_936)}


def test_cycle_logs_active_backoff(registry, caplog):
    endpoint = FakeEndpoint(chain_state(registry))
    endpoint.rate_limiter.report_error(is_rate_limit=True)
    with caplog.at_level(logging.WARNING, logger="renzo_tvl.runner"):
        run_cycle(registry, ChainReader(endpoint))
    assert "backing off" in caplog.text


def test_endpoints_cached_per_rate():
    clear_endpoints()
    slow = get_endpoint("https://rpc.example", timeout=5, calls_per_second=1)
    fast = get_endpoint("https://rpc.example", timeout=5, calls_per_second=20)
    assert slow is not fast
    assert fast.rate_limiter.calls_per_second == 20
    assert get_endpoint("https://rpc.example", timeout=5, calls_per_second=1) is slow
