from __future__ import annotations

import pytest

from tests.conftest import FakeTransport
from xbeectl.core.errors import ChecksumMismatchError, MalformedFieldError, TransportClosedError
from xbeectl.core.framer import FramerState, StreamFramer
from xbeectl.core.frames import ATCommandFrame, GenericFrame, checksum, encode

NI_QUERY = bytes.fromhex("7E 00 04 08 01 4E 49 5F")


def _framer(escaped: bool = False) -> tuple[StreamFramer, FakeTransport]:
    transport = FakeTransport()
    transport.open()
    return StreamFramer(transport, escaped=escaped, read_timeout=0.01), transport


def test_reads_frame_after_leading_garbage() -> None:
    framer, transport = _framer()
    transport.feed(b"\x00\x11\xff" + NI_QUERY)

    assert framer.read_frame() == ATCommandFrame(1, "NI")
    assert framer.state is FramerState.SEEKING


def test_quiet_transport_means_no_frame() -> None:
    framer, _ = _framer()

    assert framer.read_frame() is None
    assert framer.state is FramerState.SEEKING


def test_timeout_mid_frame_discards_partial_frame() -> None:
    framer, transport = _framer()
    transport.feed(NI_QUERY[:5])

    assert framer.read_frame() is None
    assert framer.state is FramerState.SEEKING

    transport.feed(NI_QUERY)
    assert framer.read_frame() == ATCommandFrame(1, "NI")


def test_checksum_failure_then_next_frame() -> None:
    framer, transport = _framer()
    corrupt = NI_QUERY[:-1] + b"\x00"
    transport.feed(corrupt + NI_QUERY)

    with pytest.raises(ChecksumMismatchError):
        framer.read_frame()
    assert framer.read_frame() == ATCommandFrame(1, "NI")


def test_resync_finds_delimiter_inside_rejected_frame() -> None:
    framer, transport = _framer()
    # A bogus length swallows the real frame; it must be rescanned after the failure.
    transport.feed(b"\x7e\x00\x0a" + NI_QUERY + b"\x00\x00\x00")

    with pytest.raises(ChecksumMismatchError):
        framer.read_frame()
    assert framer.read_frame() == ATCommandFrame(1, "NI")


def test_malformed_frame_is_skipped_without_rescan() -> None:
    framer, transport = _framer()
    payload = bytes((0x88, 0x01, 0x4E))
    short_response = b"\x7e" + len(payload).to_bytes(2, "big") + payload + bytes((checksum(payload),))
    transport.feed(short_response + NI_QUERY)

    with pytest.raises(MalformedFieldError):
        framer.read_frame()
    assert framer.read_frame() == ATCommandFrame(1, "NI")


def test_escaped_frame_counts_logical_bytes() -> None:
    framer, transport = _framer(escaped=True)
    frame = GenericFrame(b"\x7e\x7d\x11\x13")
    transport.feed(encode(frame, escaped=True))

    assert framer.read_frame() == frame


def test_escaped_mode_restarts_on_unescaped_delimiter() -> None:
    framer, transport = _framer(escaped=True)
    transport.feed(b"\x7e\x00\x04\x08" + encode(ATCommandFrame(2, "ID"), escaped=True))

    assert framer.read_frame() == ATCommandFrame(2, "ID")


def test_escape_mode_can_change_between_frames() -> None:
    framer, transport = _framer()
    frame = GenericFrame(b"\x11")
    transport.feed(encode(frame))
    assert framer.read_frame() == frame

    framer.escaped = True
    transport.feed(encode(frame, escaped=True))
    assert framer.read_frame() == frame


def test_closed_transport_propagates() -> None:
    framer, transport = _framer()
    transport.close()

    with pytest.raises(TransportClosedError):
        framer.read_frame()
