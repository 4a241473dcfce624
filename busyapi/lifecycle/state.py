"""Process lifecycle: stop flag and in-flight worker tracking."""

import logging
import threading
import time

from busyapi.domain.connection_id import ConnectionLoggerAdapter

LIFECYCLE_LOGGER = ConnectionLoggerAdapter(logging.getLogger("busyapi.lifecycle"), {})


class ServerLifecycle:
    """Tracks connection workers so shutdown can let delayed requests finish."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._stop_event = threading.Event()
        self._workers: set[threading.Thread] = set()

    def should_stop(self) -> bool:
        """Check if the accept loop should stop taking new connections."""
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Stop accepting connections; in-flight workers keep running."""
        if not self._stop_event.is_set():
            self._stop_event.set()
            LIFECYCLE_LOGGER.info("Stop requested", extra={"event": "stop_requested"})

    def register_worker(self, thread: threading.Thread) -> None:
        with self._condition:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        with self._condition:
            self._workers.discard(thread)
            self._condition.notify_all()

    def active_worker_count(self) -> int:
        with self._condition:
            return len(self._workers)

    def wait_for_workers(self, timeout: float) -> bool:
        """Block until every tracked worker is done or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        with self._condition:
            while True:
                # Threads that died without cleanup (or never started) do not count.
                self._workers = {w for w in self._workers if w.is_alive()}
                if not self._workers:
                    return True
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    LIFECYCLE_LOGGER.warning(
                        "Shutdown grace period exceeded",
                        extra={
                            "event": "shutdown_timeout",
                            "remaining_workers": len(self._workers),
                        },
                    )
                    return False
                self._condition.wait(min(0.1, remaining))
