from __future__ import annotations

import pytest

from pyobdble.ingestion.decoder import PidDecoder, clean_response, decode_response, parse_mode01_response
from pyobdble.models.snapshot import TelemetrySnapshot
from pyobdble.state.store import TelemetryStore


def test_clean_response_strips_whitespace_and_uppercases() -> None:
    assert clean_response(" 41 0c 1a f8\r\n") == "410C1AF8"


@pytest.mark.parametrize(
    "response",
    ["410C1AF8", "41 0C 1A F8", "410c1af8", "\r410C1AF8\r\r", "41 0C\r\n1A F8"],
)
def test_whitespace_and_case_variants_decode_identically(response: str) -> None:
    update = decode_response(response)
    assert update is not None
    assert update.pid == "0C"
    assert update.field == "rpm"
    assert update.value == 1726
    assert update.raw == "410C1AF8"


@pytest.mark.parametrize(
    "response",
    ["NO DATA", "OK", "SEARCHING...", "?", "ELM327 v1.5", "7F0112", "410C1AZZ", "41", ""],
)
def test_non_mode01_replies_are_ignored(response: str) -> None:
    assert decode_response(response) is None


def test_parse_splits_pid_and_payload() -> None:
    assert parse_mode01_response("410D3C") == ("0D", "3C")
    assert parse_mode01_response("410D") == ("0D", "")


def test_unmapped_pid_is_ignored() -> None:
    assert decode_response("41FF12") is None


def test_truncated_payload_is_discarded() -> None:
    assert decode_response("410C1A") is None


def test_decoder_applies_update_to_store() -> None:
    store = TelemetryStore()
    decoder = PidDecoder(store)
    seen: list[TelemetrySnapshot] = []
    store.subscribe(seen.append)

    assert decoder.feed("410D3C") is not None
    assert decoder.feed("NO DATA") is None

    assert store.get_snapshot().speed == 60
    assert decoder.decoded == 1
    assert decoder.discarded == 1
    # Initial delivery plus one publish for the decoded reply.
    assert len(seen) == 2


def test_decoder_leaves_other_fields_untouched() -> None:
    store = TelemetryStore()
    decoder = PidDecoder(store)

    decoder.feed("410C1AF8")
    decoder.feed("410D3C")
    decoder.feed("410C0FA0")

    snapshot = store.get_snapshot()
    assert snapshot.rpm == 1000
    assert snapshot.speed == 60
    assert snapshot.coolant_temp == 0


@pytest.mark.parametrize("response", ["NODATA", "NO DATA", "410C1", "010C", "41 0C", "STOPPED"])
def test_malformed_replies_never_touch_the_snapshot(response: str) -> None:
    store = TelemetryStore()
    decoder = PidDecoder(store)
    decoder.feed("410D3C")
    before = store.get_snapshot()
    published: list[TelemetrySnapshot] = []
    store.subscribe(published.append)
    published.clear()

    assert decoder.feed(response) is None

    assert store.get_snapshot() is before
    assert published == []
    assert decoder.discarded == 1
