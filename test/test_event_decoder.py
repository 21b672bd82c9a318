#!/usr/bin/env python3
"""Tests for EventDecoder."""

import pytest
from eth_abi import encode
from web3 import Web3

from ethda_relayer.event_decoder import DEFAULT_EVENT_SIGNATURE, EventDecoder, event_topic
from ethda_relayer.models import DomainEvent, RawLogEntry

TOPIC = event_topic(DEFAULT_EVENT_SIGNATURE)
CONTRACT = "0x85bFE05492aFC3D04Ff3b2CA6771acf6F853d90D"


def entry(data: bytes, topics=(TOPIC,), tx="0x" + "aa" * 32, block=101) -> RawLogEntry:
    return RawLogEntry(
        address=CONTRACT,
        topics=tuple(topics),
        data=data,
        transaction_hash=tx,
        block_number=block,
    )


@pytest.fixture
def decoder():
    return EventDecoder()


def test_topic_is_keccak_of_signature():
    assert TOPIC == Web3.to_hex(Web3.keccak(text="EthDAEvent(string)"))
    assert len(TOPIC) == 66


class TestEventDecoderSetup:
    """Signature validation."""

    def test_default_signature(self, decoder):
        assert decoder.signature == "EthDAEvent(string)"
        assert decoder.topic == TOPIC

    @pytest.mark.parametrize("signature", [
        "EthDAEvent(uint256)",
        "EthDAEvent(string,string)",
        "EthDAEvent()",
        "EthDAEvent",
        "(string)",
    ])
    def test_rejects_unsupported_signatures(self, signature):
        with pytest.raises(ValueError):
            EventDecoder(signature)

    def test_custom_event_name(self):
        decoder = EventDecoder("StoreRequest( string )")
        assert decoder.topic == event_topic("StoreRequest( string )")


class TestEventDecoding:
    """Decoding single entries and batches."""

    def test_decodes_string_payload(self, decoder):
        event = decoder.decode(entry(encode(["string"], ["hello storage"]), block=150))

        assert event == DomainEvent("hello storage", "0x" + "aa" * 32, 150)

    def test_decodes_unicode_payload(self, decoder):
        event = decoder.decode(entry(encode(["string"], ["données ✓"])))
        assert event.message == "données ✓"

    def test_topic_comparison_ignores_case(self, decoder):
        event = decoder.decode(entry(encode(["string"], ["x"]), topics=(TOPIC.upper().replace("0X", "0x"),)))
        assert event is not None

    def test_foreign_topic_is_skipped(self, decoder):
        assert decoder.decode(entry(encode(["string"], ["x"]), topics=("0x" + "00" * 32,))) is None

    def test_missing_topics_is_skipped(self, decoder):
        assert decoder.decode(entry(encode(["string"], ["x"]), topics=())) is None

    @pytest.mark.parametrize("data", [b"", b"\x01\x02", encode(["uint256"], [2**200])])
    def test_malformed_data_is_skipped(self, decoder, data):
        assert decoder.decode(entry(data)) is None

    def test_decode_all_keeps_order_and_drops_failures(self, decoder):
        entries = [
            entry(encode(["string"], ["first"]), tx="0x01"),
            entry(b"\x00", tx="0x02"),
            entry(encode(["string"], ["third"]), tx="0x03"),
        ]

        events = decoder.decode_all(entries)

        assert [(e.message, e.transaction_hash) for e in events] == [("first", "0x01"), ("third", "0x03")]

    def test_decode_all_empty(self, decoder):
        assert decoder.decode_all([]) == []
