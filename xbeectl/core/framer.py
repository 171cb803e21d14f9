"""Incremental frame extraction from a byte transport."""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum

from xbeectl.core.constants import ESCAPE_BYTE, ESCAPE_MASK, START_DELIMITER
from xbeectl.core.errors import ChecksumMismatchError, LengthMismatchError, TransportTimeoutError
from xbeectl.core.frames import Frame, decode
from xbeectl.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class FramerState(Enum):
    SEEKING = "seeking"
    READING_LENGTH = "reading_length"
    READING_BODY = "reading_body"


class _FrameRestart(Exception):
    """An unescaped delimiter showed up inside an escaped frame."""


class StreamFramer:
    """Reads one API frame at a time from a transport.

    Lengths are counted in logical bytes; in escaped mode an escape byte
    and the byte after it count as one. A read timeout in the middle of a
    frame drops the partial frame and reports "no frame yet". After a
    length or checksum failure the bytes read past the delimiter are
    rescanned for the next delimiter.
    """

    def __init__(self, transport: Transport, escaped: bool = False, read_timeout: float = 0.1) -> None:
        self.transport = transport
        self.escaped = escaped
        self.read_timeout = read_timeout
        self._state = FramerState.SEEKING
        self._pushback: deque[int] = deque()
        self._consumed = bytearray()

    @property
    def state(self) -> FramerState:
        return self._state

    def reset(self) -> None:
        self._state = FramerState.SEEKING
        self._pushback.clear()
        self._consumed = bytearray()

    def read_frame(self) -> Frame | None:
        """Return the next frame, or None when the transport went quiet.

        Raises a DecodeError subclass for a corrupt frame; the stream stays
        usable and the next call continues with the following frame.
        """
        if self._state is FramerState.SEEKING and not self._seek():
            return None
        while True:
            try:
                return self._read_frame_body()
            except _FrameRestart:
                LOGGER.debug("Delimiter inside escaped frame on %s, restarting", self.transport.name)
                self._begin_frame()

    def _physical(self) -> int | None:
        if self._pushback:
            value = self._pushback.popleft()
        else:
            try:
                value = self.transport.read_byte(self.read_timeout)
            except TransportTimeoutError:
                return None
        if self._state is not FramerState.SEEKING:
            self._consumed.append(value)
        return value

    def _seek(self) -> bool:
        while True:
            value = self._physical()
            if value is None:
                return False
            if value == START_DELIMITER:
                self._begin_frame()
                return True

    def _begin_frame(self) -> None:
        self._consumed = bytearray()
        self._state = FramerState.READING_LENGTH

    def _abandon(self) -> None:
        if self._consumed:
            LOGGER.debug(
                "Read timed out mid-frame on %s, dropping %d bytes",
                self.transport.name,
                len(self._consumed),
            )
        self._consumed = bytearray()
        self._state = FramerState.SEEKING

    def _logical(self) -> int | None:
        value = self._physical()
        if value is None or not self.escaped:
            return value
        if value == START_DELIMITER:
            raise _FrameRestart
        if value == ESCAPE_BYTE:
            value = self._physical()
            if value is None:
                return None
            if value == START_DELIMITER:
                raise _FrameRestart
            return value ^ ESCAPE_MASK
        return value

    def _read_logical(self, count: int) -> bytes | None:
        out = bytearray()
        while len(out) < count:
            value = self._logical()
            if value is None:
                return None
            out.append(value)
        return bytes(out)

    def _read_frame_body(self) -> Frame | None:
        header = self._read_logical(2)
        if header is None:
            self._abandon()
            return None

        self._state = FramerState.READING_BODY
        body = self._read_logical(int.from_bytes(header, "big") + 1)
        if body is None:
            self._abandon()
            return None

        consumed = bytes(self._consumed)
        self._consumed = bytearray()
        self._state = FramerState.SEEKING
        try:
            return decode(bytes((START_DELIMITER,)) + header + body)
        except (LengthMismatchError, ChecksumMismatchError):
            self._pushback.extendleft(reversed(consumed))
            raise
