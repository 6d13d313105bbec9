from __future__ import annotations

from pyobdble.ingestion.decoder import PidDecoder
from pyobdble.ingestion.framing import FrameAssembler
from pyobdble.state.store import TelemetryStore


def _assembler(max_buffer_size: int = 4096) -> tuple[FrameAssembler, list[str]]:
    frames: list[str] = []
    return FrameAssembler(frames.append, max_buffer_size=max_buffer_size), frames


def test_reply_split_across_chunks() -> None:
    assembler, frames = _assembler()

    assert assembler.feed(b"410C") == 0
    assert assembler.feed(b"1AF8\r") == 0
    assert assembler.feed(b"\r>") == 1

    assert frames == ["410C1AF8"]
    assert assembler.pending == ""


def test_several_replies_in_one_chunk_emitted_in_order() -> None:
    assembler, frames = _assembler()

    assert assembler.feed(b"410D3C\r>410B65\r>41113\r>") == 3

    assert frames == ["410D3C", "410B65", "41113"]


def test_terminator_flushes_trailing_reply_in_same_chunk() -> None:
    assembler, frames = _assembler()

    assert assembler.feed(b"410D20>410C1AF8") == 2

    assert frames == ["410D20", "410C1AF8"]
    assert assembler.pending == ""


def test_trailing_reply_is_decoded_without_waiting_for_next_prompt() -> None:
    store = TelemetryStore()
    assembler = FrameAssembler(PidDecoder(store).feed)

    assembler.feed(b"410D20>410C1AF8")

    snapshot = store.get_snapshot()
    assert snapshot.speed == 32
    assert snapshot.rpm == 1726


def test_split_reply_decodes_like_single_chunk() -> None:
    split, split_frames = _assembler()
    whole, whole_frames = _assembler()

    split.feed(b"410C1A")
    split.feed(b"F8\r>")
    whole.feed(b"410C1AF8\r>")

    assert split_frames == whole_frames == ["410C1AF8"]


def test_empty_segments_are_skipped() -> None:
    assembler, frames = _assembler()

    assert assembler.feed(b">\r\r>  >") == 0
    assert frames == []


def test_overflow_discards_and_resyncs_on_next_terminator() -> None:
    assembler, frames = _assembler(max_buffer_size=16)

    assembler.feed(b"GARBAGE-" * 3)
    assert assembler.resyncing is True
    assert assembler.pending == ""
    assert assembler.overflow_count == 1

    # Everything up to the next prompt belongs to the discarded reply.
    assembler.feed(b"MORE\r>410D3C\r>")
    assert assembler.resyncing is False
    assert frames == ["410D3C"]


def test_reset_drops_partial_reply() -> None:
    assembler, frames = _assembler()

    assembler.feed(b"410C1A")
    assembler.reset()
    assembler.feed(b"410D3C>")

    assert frames == ["410D3C"]


def test_accepts_str_chunks() -> None:
    assembler, frames = _assembler()

    assembler.feed("410D3C>")

    assert frames == ["410D3C"]
