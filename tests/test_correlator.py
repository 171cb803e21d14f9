from __future__ import annotations

import threading
import time

import pytest

from tests.conftest import wait_until
from xbeectl.core.constants import ATCommandStatus
from xbeectl.core.correlator import Correlator, FrameIdCounter, check_response
from xbeectl.core.dispatch_queue import DispatchQueue
from xbeectl.core.errors import ProtocolMismatchError, ResponseTimeoutError, TransportClosedError
from xbeectl.core.frames import (
    ATCommandFrame,
    ATCommandResponseFrame,
    Frame,
    ReceiveFrame,
    RemoteATCommandFrame,
    RemoteATCommandResponseFrame,
    TransmitRequestFrame,
    TransmitStatusFrame,
)
from xbeectl.core.model import XBee16BitAddress, XBee64BitAddress

TARGET = XBee64BitAddress.from_hex("0013A20040A1B2C3")
OTHER = XBee64BitAddress.from_hex("0013A20040FFFFFF")


def test_counter_wraps_to_one_not_zero() -> None:
    counter = FrameIdCounter()

    ids = [counter.next() for _ in range(256)]

    assert ids[:255] == list(range(1, 256))
    assert ids[255] == 1
    assert 0 not in ids


def test_counter_is_safe_across_threads() -> None:
    counter = FrameIdCounter()
    results: list[int] = []
    lock = threading.Lock()

    def worker() -> None:
        for _ in range(100):
            value = counter.next()
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert counter.current == 400 % 255
    assert 0 not in results


def test_check_response_accepts_matching_at_response() -> None:
    check_response(ATCommandFrame(5, "NI"), ATCommandResponseFrame(5, "NI", ATCommandStatus.OK, b"n"))


@pytest.mark.parametrize(
    "candidate",
    [
        ATCommandResponseFrame(6, "NI", 0),
        ATCommandResponseFrame(5, "ID", 0),
        ATCommandFrame(5, "NI"),
        ReceiveFrame(TARGET, XBee16BitAddress.UNKNOWN, 0),
    ],
    ids=["wrong-id", "wrong-command", "echo", "no-id"],
)
def test_check_response_rejects(candidate: Frame) -> None:
    with pytest.raises(ProtocolMismatchError):
        check_response(ATCommandFrame(5, "NI"), candidate)


def test_check_response_requires_remote_source_to_match() -> None:
    sent = RemoteATCommandFrame(7, TARGET, XBee16BitAddress.UNKNOWN, 0x02, "D1")

    check_response(sent, RemoteATCommandResponseFrame(7, TARGET, XBee16BitAddress.UNKNOWN, "D1", 0))
    with pytest.raises(ProtocolMismatchError):
        check_response(sent, RemoteATCommandResponseFrame(7, OTHER, XBee16BitAddress.UNKNOWN, "D1", 0))
    with pytest.raises(ProtocolMismatchError):
        check_response(sent, ATCommandResponseFrame(7, "D1", 0))


def test_check_response_expects_transmit_status_for_data() -> None:
    sent = TransmitRequestFrame(8, TARGET, XBee16BitAddress.UNKNOWN, 0, 0, b"x")

    check_response(sent, TransmitStatusFrame(8, XBee16BitAddress.UNKNOWN, 0, 0, 0))
    with pytest.raises(ProtocolMismatchError):
        check_response(sent, ATCommandResponseFrame(8, "NI", 0))


def test_send_and_await_returns_matching_response() -> None:
    queue = DispatchQueue()
    response = ATCommandResponseFrame(1, "NI", ATCommandStatus.OK, b"node")
    written: list[Frame] = []

    def write(frame: Frame) -> None:
        written.append(frame)
        queue.push(ATCommandResponseFrame(1, "ID", 0))
        queue.push(response)

    correlator = Correlator(write, queue)

    assert correlator.send_and_await(ATCommandFrame(1, "NI"), timeout=1.0) == response
    assert written == [ATCommandFrame(1, "NI")]
    assert queue.snapshot() == [ATCommandResponseFrame(1, "ID", 0)]
    assert correlator.pending_count == 0


def test_late_response_times_out_and_is_not_claimed() -> None:
    queue = DispatchQueue()
    late = ATCommandResponseFrame(1, "NI", ATCommandStatus.OK, b"late")
    timers: list[threading.Timer] = []

    def write(frame: Frame) -> None:
        timer = threading.Timer(1.5, queue.push, args=(late,))
        timers.append(timer)
        timer.start()

    correlator = Correlator(write, queue)
    started = time.monotonic()

    with pytest.raises(ResponseTimeoutError):
        correlator.send_and_await(ATCommandFrame(1, "NI"), timeout=1.0)

    elapsed = time.monotonic() - started
    assert 0.95 <= elapsed < 1.5
    assert correlator.pending_count == 0

    assert wait_until(lambda: len(queue) == 1, timeout=2.0)
    assert queue.snapshot() == [late]
    for timer in timers:
        timer.join()


def test_timeout_is_a_builtin_timeout_error() -> None:
    correlator = Correlator(lambda frame: None, DispatchQueue())

    with pytest.raises(TimeoutError):
        correlator.send_and_await(ATCommandFrame(3, "NI"), timeout=0.05)


def test_cancel_all_releases_waiters_with_closed_error() -> None:
    correlator = Correlator(lambda frame: None, DispatchQueue())
    errors: list[BaseException] = []

    def wait() -> None:
        try:
            correlator.send_and_await(ATCommandFrame(9, "NI"), timeout=10.0)
        except TransportClosedError as exc:
            errors.append(exc)

    thread = threading.Thread(target=wait)
    thread.start()
    assert wait_until(lambda: correlator.pending_count == 1)

    correlator.cancel_all()
    thread.join(2.0)

    assert not thread.is_alive()
    assert len(errors) == 1
    assert correlator.pending_count == 0


def test_write_failure_deregisters() -> None:
    def write(frame: Frame) -> None:
        raise TransportClosedError("gone")

    correlator = Correlator(write, DispatchQueue())

    with pytest.raises(TransportClosedError):
        correlator.send_and_await(ATCommandFrame(1, "NI"), timeout=1.0)
    assert correlator.pending_count == 0


def test_frames_without_id_are_rejected() -> None:
    correlator = Correlator(lambda frame: None, DispatchQueue())

    with pytest.raises(ValueError):
        correlator.send_and_await(ATCommandFrame(0, "NI"), timeout=1.0)
    with pytest.raises(ValueError):
        correlator.send_and_await(ReceiveFrame(TARGET, XBee16BitAddress.UNKNOWN, 0), timeout=1.0)


def test_fire_and_forget_only_writes() -> None:
    written: list[Frame] = []
    correlator = Correlator(written.append, DispatchQueue())

    correlator.send_fire_and_forget(TransmitRequestFrame(0, TARGET, XBee16BitAddress.UNKNOWN, 0, 0, b"x"))

    assert len(written) == 1
    assert correlator.pending_count == 0


def test_release_ends_only_the_wait_given_that_event() -> None:
    correlator = Correlator(lambda frame: None, DispatchQueue())
    cancel = threading.Event()
    outcomes: dict[str, BaseException] = {}

    def wait(name: str, frame: Frame, event: threading.Event | None) -> None:
        try:
            correlator.send_and_await(frame, timeout=0.8 if event is None else 10.0, cancel=event)
        except (ResponseTimeoutError, TransportClosedError) as exc:
            outcomes[name] = exc

    threads = [
        threading.Thread(target=wait, args=("released", ATCommandFrame(1, "N?"), cancel)),
        threading.Thread(target=wait, args=("other", ATCommandFrame(2, "NI"), None)),
    ]
    for thread in threads:
        thread.start()
    assert wait_until(lambda: correlator.pending_count == 2)
    started = time.monotonic()

    correlator.release(cancel)
    threads[0].join(2.0)

    assert time.monotonic() - started < 0.5
    assert isinstance(outcomes["released"], TransportClosedError)
    threads[1].join(2.0)
    assert isinstance(outcomes["other"], ResponseTimeoutError)
    assert correlator.pending_count == 0


def test_released_event_stops_later_requests_before_writing() -> None:
    written: list[Frame] = []
    correlator = Correlator(written.append, DispatchQueue())
    cancel = threading.Event()
    correlator.release(cancel)

    with pytest.raises(TransportClosedError, match="before sending"):
        correlator.send_and_await(ATCommandFrame(4, "NT"), timeout=1.0, cancel=cancel)

    assert written == []
    assert correlator.pending_count == 0
