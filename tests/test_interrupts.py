"""
Tests for the interrupt monitor around provider calls.

Run with:
$ pytest -q
"""

import io
import socket
import threading
import time

import pytest

from console_agent.agent.interrupts import (
    AgentInterrupted,
    CancellationToken,
    EscapeKeyWatcher,
    InterruptMonitor,
)


def test_guard_returns_value() -> None:
    """Uninterrupted calls pass their result through."""

    assert InterruptMonitor(enabled=False).guard(lambda: 42) == 42


def test_keyboard_interrupt_becomes_agent_interrupted() -> None:
    """Ctrl-C during the call is reported as an agent interrupt."""

    def _call():
        raise KeyboardInterrupt

    with pytest.raises(AgentInterrupted):
        InterruptMonitor(enabled=False).guard(_call)


def test_errors_pass_through() -> None:
    """Ordinary exceptions are not interrupts."""

    def _call():
        raise ValueError("bad")

    with pytest.raises(ValueError):
        InterruptMonitor(enabled=False).guard(_call)


def test_agent_interrupted_is_not_an_exception() -> None:
    """``except Exception`` handlers never swallow an interrupt."""

    assert not issubclass(AgentInterrupted, Exception)
    assert issubclass(AgentInterrupted, KeyboardInterrupt)


def test_token() -> None:
    """The cancellation token latches."""

    token = CancellationToken()
    assert not token.cancelled
    token.cancel()
    assert token.cancelled


def test_watcher_ignores_non_terminals() -> None:
    """On a pipe or StringIO the watcher never starts a thread."""

    watcher = EscapeKeyWatcher(CancellationToken(), io.StringIO("\x1b"))
    watcher.start()
    assert watcher._thread is None  # pylint: disable=protected-access
    watcher.stop()


def test_fire_interrupts_blocking_socket_read() -> None:
    """Firing breaks a read blocked on a silent socket instead of waiting for it."""

    server = socket.socket()
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    client = socket.create_connection(server.getsockname())
    client.settimeout(5)
    token = CancellationToken()
    watcher = EscapeKeyWatcher(token, io.StringIO())
    timer = threading.Timer(0.2, watcher.fire)

    started = time.monotonic()
    try:
        watcher.start()
        timer.start()
        with pytest.raises(KeyboardInterrupt):
            client.recv(1)
    finally:
        watcher.stop()
        timer.cancel()
        client.close()
        server.close()

    assert time.monotonic() - started < 2
    assert token.cancelled


def test_fire_after_stop_does_nothing() -> None:
    """Once stopped, a late Escape neither cancels nor signals."""

    token = CancellationToken()
    watcher = EscapeKeyWatcher(token, io.StringIO())
    watcher.start()
    watcher.stop()

    watcher.fire()

    assert not token.cancelled


def test_guard_escape_during_blocking_call(monkeypatch) -> None:
    """An Escape while the guarded call sleeps ends it as an agent interrupt."""

    original_start = EscapeKeyWatcher.start

    def _start(self):
        original_start(self)
        threading.Timer(0.1, self.fire).start()

    monkeypatch.setattr(EscapeKeyWatcher, "start", _start)
    with pytest.raises(AgentInterrupted):
        InterruptMonitor(stream=io.StringIO()).guard(lambda: time.sleep(5))
