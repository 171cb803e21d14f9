from __future__ import annotations

import logging

import pytest

from xbeectl.core.events import EventHook


def test_handlers_run_in_subscription_order() -> None:
    hook = EventHook("test")
    calls: list[str] = []
    hook.subscribe(lambda value: calls.append(f"a{value}"))
    hook.subscribe(lambda value: calls.append(f"b{value}"))

    hook.notify(1)

    assert calls == ["a1", "b1"]


def test_duplicate_subscription_is_ignored() -> None:
    hook = EventHook("test")
    calls: list[int] = []
    hook.subscribe(calls.append)
    hook.subscribe(calls.append)

    hook.notify(3)

    assert calls == [3]
    assert len(hook) == 1


def test_unsubscribe_during_notify_is_safe() -> None:
    hook = EventHook("test")
    calls: list[str] = []

    def once(value: int) -> None:
        calls.append("once")
        hook.unsubscribe(once)

    hook.subscribe(once)
    hook.subscribe(lambda value: calls.append("always"))

    hook.notify(1)
    hook.notify(2)

    assert calls == ["once", "always", "always"]


def test_failing_handler_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    hook = EventHook("frames")
    calls: list[int] = []

    def broken(value: int) -> None:
        raise ValueError("bad handler")

    hook.subscribe(broken)
    hook.subscribe(calls.append)

    with caplog.at_level(logging.ERROR, logger="xbeectl.core.events"):
        hook.notify(5)

    assert calls == [5]
    assert "frames" in caplog.text
    assert "bad handler" in caplog.text
