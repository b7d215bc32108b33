import pytest

from conftest import tvl_result, uint_result, word
from renzo_tvl.decoder import (
    DECODERS,
    RawResult,
    decode,
    decode_all,
    decode_bool,
    decode_tvl_total,
    decode_uint,
    decode_word,
    gwei_to_eth,
    to_eth,
)
from renzo_tvl.errors import DecodeError, OptionalQueryFailure, QueryFailure
from renzo_tvl.queries import QueryKind, QuerySpec

ADDR = "0xbf5495Efe5DB9ce00f80364C8B423567e58d2110"


def spec(key="q", decoder="uint", required=False, kind=QueryKind.CALL):
    return QuerySpec(key=key, kind=kind, address=ADDR, decoder=decoder, unit="wei", data="0x18160ddd",
                     required=required)


@pytest.mark.parametrize("raw", [None, "", "0x"])
@pytest.mark.parametrize("decoder", sorted(DECODERS))
def test_empty_results_decode_to_zero(raw, decoder):
    assert DECODERS[decoder](raw, "q") == 0


@pytest.mark.parametrize("n", [0, 1, 255, 256, 10 ** 18, 2 ** 53 + 1, 2 ** 64 - 1])
def test_hex_integer_round_trip(n):
    assert decode_uint(hex(n)) == n
    assert decode_uint(uint_result(n)) == n


def test_amounts_beyond_float_precision_stay_exact():
    raw = 10 ** 27 + 7
    assert decode_uint(hex(raw)) == raw


def test_malformed_hex_raises():
    with pytest.raises(DecodeError) as exc:
        decode_uint("0xnothex", "total_supply")
    assert exc.value.key == "total_supply"


def test_non_string_raises():
    with pytest.raises(DecodeError):
        decode_uint(12345)


def test_decode_word_extracts_fixed_offset():
    payload = "0x" + word(1) + word(2) + word(3)
    assert decode_word(payload, 0) == 1
    assert decode_word(payload, 2) == 3


def test_decode_word_short_payload_raises():
    with pytest.raises(DecodeError):
        decode_word("0x" + word(1), 2)


def test_decode_word_odd_length_raises():
    with pytest.raises(DecodeError):
        decode_word("0x" + word(1) + "0", 0)


def test_tvl_total_reads_third_head_word():
    total = 1050 * 10 ** 18
    assert decode_tvl_total(tvl_result(total)) == total


def test_decode_bool():
    assert decode_bool(uint_result(1)) is True
    assert decode_bool(uint_result(0)) is False


def test_to_eth_and_gwei_conversion():
    assert to_eth(10 ** 18) == 1.0
    assert to_eth(1_500_000_000_000_000_000) == 1.5
    assert to_eth(0) == 0.0
    # gwei * 1e9 / 1e18
    assert gwei_to_eth(2_500_000_000) == 2.5


def test_error_result_decodes_like_empty():
    failed = RawResult.failed(spec(), OptionalQueryFailure("q", "reverted"))
    assert failed.is_error
    assert decode(failed) == 0


def test_decode_all_marks_failed_reads_degraded():
    results = [
        RawResult.ok(spec("a"), uint_result(5)),
        RawResult.failed(spec("b"), OptionalQueryFailure("b", "reverted")),
    ]
    batch = decode_all(results)
    assert batch.values == {"a": 5, "b": 0}
    assert batch.degraded == ("b",)
    assert batch.is_degraded("b") and not batch.is_degraded("a")


def test_decode_all_optional_malformed_falls_back_to_zero():
    batch = decode_all([RawResult.ok(spec("cooldown"), "0xzz")])
    assert batch.values["cooldown"] == 0
    assert batch.degraded == ("cooldown",)


def test_decode_all_required_malformed_propagates():
    with pytest.raises(DecodeError):
        decode_all([RawResult.ok(spec("total_supply", required=True), "0xzz")])


def test_decode_all_required_short_tvl_propagates():
    results = [RawResult.ok(spec("total_tvl", decoder="tvl_total", required=True), uint_result(1))]
    with pytest.raises(DecodeError):
        decode_all(results)


def test_raw_result_kind_follows_query_kind():
    assert RawResult.ok(spec(kind=QueryKind.BALANCE), "0x1").kind.value == "balance"
    assert RawResult.ok(spec(), "0x1").kind.value == "call"
    assert RawResult.failed(spec(), QueryFailure("q", "x")).kind.value == "error"
