"""Tests for event and view-function ABI handling."""

import pytest
from eth_abi import encode

from raffle_indexer import contracts
from raffle_indexer.chain.abi import (
    AbiDecodeError,
    EventSpec,
    LogDecodeError,
    ViewFunction,
    is_bytes32_hash,
    is_zero_address,
)

POOL = "0x00000000000000000000000000000000000000a1"
ALICE = "0x00000000000000000000000000000000000000b1"
BOB = "0x00000000000000000000000000000000000000b2"
TX_HASH = "0x" + "ab" * 32


class TestEventSpec:
    def test_parse_signature_and_topic(self) -> None:
        spec = EventSpec.parse("Transfer(address indexed from, address indexed to, uint256 value)")

        assert spec.signature == "Transfer(address,address,uint256)"
        assert spec.topic == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        assert [p.name for p in spec.params] == ["from", "to", "value"]
        assert spec.data_types == ["uint256"]

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            EventSpec.parse("not an event")

    def test_decode_indexed_and_data_args(self) -> None:
        log = contracts.SLOTS_PURCHASED.encode_log(
            address=POOL, block_number=101, transaction_hash=TX_HASH, log_index=4, participant=ALICE, quantity=3
        )

        event = contracts.SLOTS_PURCHASED.decode_log(log)

        assert event.name == "SlotsPurchased"
        assert event.args == {"participant": ALICE, "quantity": 3}
        assert event.address == POOL
        assert event.block_number == 101
        assert event.transaction_hash == TX_HASH
        assert event.log_index == 4
        assert event.sort_key == (101, 4)

    def test_decode_accepts_bytes_topics(self) -> None:
        log = contracts.SLOTS_PURCHASED.encode_log(
            address=POOL, block_number=1, transaction_hash=TX_HASH, log_index=0, participant=ALICE, quantity=1
        )
        log["topics"] = [bytes.fromhex(t[2:]) for t in log["topics"]]
        log["transactionHash"] = bytes.fromhex(TX_HASH[2:])

        event = contracts.SLOTS_PURCHASED.decode_log(log)

        assert event.args["participant"] == ALICE
        assert event.transaction_hash == TX_HASH

    def test_decode_address_array(self) -> None:
        log = contracts.WINNERS_SELECTED.encode_log(
            address=POOL, block_number=5, transaction_hash=TX_HASH, log_index=0, winners=[ALICE, BOB]
        )

        assert contracts.WINNERS_SELECTED.decode_log(log).args["winners"] == [ALICE, BOB]

    def test_decode_event_without_params(self) -> None:
        log = contracts.POINTS_CLAIMS_ACTIVATED.encode_log(
            address=POOL, block_number=5, transaction_hash=TX_HASH, log_index=0
        )

        assert contracts.POINTS_CLAIMS_ACTIVATED.decode_log(log).args == {}

    def test_decode_wrong_event_raises(self) -> None:
        log = contracts.POOL_ENDED.encode_log(
            address=POOL, block_number=1, transaction_hash=TX_HASH, log_index=0, timestamp=1
        )

        with pytest.raises(LogDecodeError, match="not a SlotsPurchased"):
            contracts.SLOTS_PURCHASED.decode_log(log)

    def test_decode_truncated_data_raises(self) -> None:
        log = contracts.SLOTS_PURCHASED.encode_log(
            address=POOL, block_number=1, transaction_hash=TX_HASH, log_index=0, participant=ALICE, quantity=1
        )
        log["data"] = "0x1234"

        with pytest.raises(LogDecodeError):
            contracts.SLOTS_PURCHASED.decode_log(log)

    def test_decode_missing_topic_raises(self) -> None:
        log = contracts.SLOTS_PURCHASED.encode_log(
            address=POOL, block_number=1, transaction_hash=TX_HASH, log_index=0, participant=ALICE, quantity=1
        )
        log["topics"] = log["topics"][:1]

        with pytest.raises(LogDecodeError, match="expected 2 topics"):
            contracts.SLOTS_PURCHASED.decode_log(log)

    def test_log_decode_error_is_abi_decode_error(self) -> None:
        assert issubclass(LogDecodeError, AbiDecodeError)

    def test_parse_tuple_param_and_type_alias(self) -> None:
        spec = EventSpec.parse("Configured(address indexed pool, (uint256 fee, address token) config, uint amount)")

        assert spec.signature == "Configured(address,(uint256,address),uint256)"
        assert [p.name for p in spec.params] == ["pool", "config", "amount"]

    def test_decode_tuple_data(self) -> None:
        spec = EventSpec.parse("Configured(address indexed pool, (uint256,address) config)")
        log = spec.encode_log(
            address=POOL, block_number=5, transaction_hash=TX_HASH, log_index=0, pool=POOL, config=(25, ALICE)
        )

        assert spec.decode_log(log).args == {"pool": POOL, "config": (25, ALICE)}

    def test_indexed_string_is_kept_as_hash(self) -> None:
        spec = EventSpec.parse("Tagged(string indexed tag, uint256 value)")
        hashed = "0x" + "cd" * 32
        log = {
            "address": POOL,
            "topics": [spec.topic, hashed],
            "data": "0x" + encode(["uint256"], [1]).hex(),
            "blockNumber": 1,
            "transactionHash": TX_HASH,
            "logIndex": 0,
        }

        assert spec.decode_log(log).args == {"tag": hashed, "value": 1}

    @pytest.mark.parametrize(
        "declaration",
        ["Broken(uint256 a", "Bad(uint7 a)", "Extra(uint256 a) trailing"],
    )
    def test_parse_rejects_invalid_declarations(self, declaration: str) -> None:
        with pytest.raises(ValueError):
            EventSpec.parse(declaration)


class TestViewFunction:
    def test_selector(self) -> None:
        assert ViewFunction.parse("name() returns (string)").selector == "0x06fdde03"
        assert ViewFunction.parse("balanceOf(address) returns (uint256)").selector == "0x70a08231"

    def test_encode_call_with_argument(self) -> None:
        data = contracts.POOL_REFUNDABLE_AMOUNT.encode_call(ALICE)

        assert data.startswith(contracts.POOL_REFUNDABLE_AMOUNT.selector)
        assert data.endswith(ALICE[2:])

    def test_encode_call_wrong_arity(self) -> None:
        with pytest.raises(ValueError, match="expects 1 arguments"):
            contracts.POOL_REFUNDABLE_AMOUNT.encode_call()

    def test_decode_single_output_is_unwrapped(self) -> None:
        assert contracts.POOL_SLOT_FEE.decode_result(encode(["uint256"], [10**18])) == 10**18

    def test_decode_tuple_output(self) -> None:
        raw = encode(["bool", "bool", "address", "uint256", "uint256"], [True, False, ALICE, 5, 100])

        assert contracts.POINTS_SYSTEM_INFO.decode_result(raw) == (True, False, ALICE, 5, 100)

    def test_decode_empty_result_raises(self) -> None:
        with pytest.raises(AbiDecodeError, match="empty return data"):
            contracts.POOL_STATE.decode_result(b"")

    def test_decode_malformed_result_raises(self) -> None:
        with pytest.raises(AbiDecodeError):
            contracts.POOL_NAME.decode_result(b"\x01\x02")


    def test_parse_tuple_outputs(self) -> None:
        fn = ViewFunction.parse("getInfo(address user) returns ((uint256 points, bool active), string)")

        assert fn.inputs == ("address",)
        assert fn.outputs == ("(uint256,bool)", "string")
        assert fn.decode_result(encode(["(uint256,bool)", "string"], [(7, True), "ok"])) == ((7, True), "ok")

    def test_parse_rejects_unknown_tail(self) -> None:
        with pytest.raises(ValueError):
            ViewFunction.parse("name() yields (string)")


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("0x" + "a" * 64, True),
            ("ipfs://QmHash/", False),
            ("0x1234", False),
            (None, False),
        ],
    )
    def test_is_bytes32_hash(self, value: object, expected: bool) -> None:
        assert is_bytes32_hash(value) is expected

    def test_is_zero_address(self) -> None:
        assert is_zero_address("0x" + "0" * 40)
        assert is_zero_address(None)
        assert not is_zero_address(ALICE)
