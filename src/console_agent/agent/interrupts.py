"""
Human cancellation of in-flight provider calls.

While the agent waits on the LLM, one :class:`EscapeKeyWatcher` thread watches the terminal for the
Escape key.  When it fires, the call's :class:`CancellationToken` is set and ``SIGINT`` is delivered
to the calling thread: the blocking socket read fails with ``EINTR`` and the default handler raises
``KeyboardInterrupt`` there.  :class:`InterruptMonitor` turns that (or a plain Ctrl-C) into
:class:`AgentInterrupted`.

``AgentInterrupted`` derives from ``KeyboardInterrupt`` rather than ``Exception``: it is a control
signal, and ``except Exception`` error handlers must never swallow it.
"""

import logging
import select
import signal
import sys
import threading
from typing import (
    Callable,
    Optional,
    TextIO,
    TypeVar,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ESCAPE = "\x1b"


class AgentInterrupted(KeyboardInterrupt):
    """The human cancelled the operation while the agent was waiting on the provider."""


class CancellationToken:
    """A one-shot flag shared between the watcher thread and the caller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Mark the operation as cancelled."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """``True`` once :meth:`cancel` has been called."""
        return self._event.is_set()


class EscapeKeyWatcher:
    """
    Background thread that reads single keys from a POSIX terminal in cbreak mode.

    The terminal attributes are restored when the watcher stops.  On non-terminals (pipes, tests,
    Windows) no thread is started and only Ctrl-C can interrupt.  The watcher is armed between
    :meth:`start` and :meth:`stop`; :meth:`fire` outside that window does nothing, so a late
    Escape never interrupts code after the guarded call has returned.
    """

    def __init__(self, token: CancellationToken, stream: TextIO | None = None):
        self.token = token
        self.stream = stream if stream is not None else sys.stdin
        self._stop = threading.Event()
        self._stop.set()
        self._lock = threading.Lock()
        self._target: Optional[int] = None
        self._thread: Optional[threading.Thread] = None

    def _usable(self) -> bool:
        try:
            return self.stream.isatty()
        except (AttributeError, ValueError):
            return False

    def start(self) -> None:
        """Arm the watcher for the calling thread, listening if the stream is a terminal."""
        # Signals are only delivered to the main thread's handler.
        if threading.current_thread() is not threading.main_thread():
            return
        with self._lock:
            self._target = threading.get_ident()
            self._stop.clear()
        if not self._usable():
            return
        self._thread = threading.Thread(
            target=self._listen, name="console-agent-escape-watcher", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Disarm and wait for the thread to restore the terminal."""
        with self._lock:
            self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def fire(self) -> None:
        """Cancel the token and interrupt the blocked thread with ``SIGINT``, if still armed."""
        with self._lock:
            if self._stop.is_set() or self._target is None:
                return
            self.token.cancel()
            signal.pthread_kill(self._target, signal.SIGINT)

    def _listen(self) -> None:
        try:
            import termios  # pylint: disable=import-outside-toplevel
            import tty  # pylint: disable=import-outside-toplevel
        except ImportError:
            return

        try:
            fd = self.stream.fileno()
            original_attrs = termios.tcgetattr(fd)
        except (AttributeError, ValueError, OSError, termios.error):
            return

        try:
            tty.setcbreak(fd)
            while not self._stop.is_set():
                try:
                    ready, _, _ = select.select([self.stream], [], [], 0.05)
                except (OSError, ValueError):
                    break
                if not ready:
                    continue
                key = self.stream.read(1)
                if not key:
                    break
                if key == ESCAPE:
                    logger.debug("Escape pressed; interrupting provider call")
                    self.fire()
                    break
        finally:
            termios.tcsetattr(fd, termios.TCSADRAIN, original_attrs)


class InterruptMonitor:
    """Runs one provider call at a time with an escape-key watcher alongside it."""

    def __init__(self, stream: TextIO | None = None, enabled: bool = True):
        self.stream = stream
        self.enabled = enabled

    def guard(self, fn: Callable[[], T]) -> T:
        """
        Call *fn*; convert a human interrupt during the call into :class:`AgentInterrupted`.

        Raises
        ------
        AgentInterrupted
            If Escape or Ctrl-C was pressed before *fn* returned.
        """
        token = CancellationToken()
        watcher = EscapeKeyWatcher(token, self.stream) if self.enabled else None
        try:
            if watcher is not None:
                watcher.start()
            try:
                result = fn()
            finally:
                if watcher is not None:
                    watcher.stop()
        except AgentInterrupted:
            raise
        except KeyboardInterrupt as exc:
            raise AgentInterrupted("Request cancelled") from exc

        if token.cancelled:
            raise AgentInterrupted("Request cancelled")
        return result
