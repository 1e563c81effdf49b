"""Supervised background execution for generation runs.

Runs are daemon threads: callers get a Future back immediately and never wait on
it in request handlers. A run still active when the process exits is abandoned;
its rows are settled at the next startup (see GenerationService.recover_interrupted).
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from typing import Any

logger = logging.getLogger(__name__)


class BackgroundRunner:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: set[Future[None]] = set()
        self._closed = False

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> Future[None]:
        """Start *fn(*args)* on a daemon thread and return its Future."""
        future: Future[None] = Future()
        with self._lock:
            if self._closed:
                raise RuntimeError("background runner is shut down")
            self._active.add(future)

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            error: Exception | None = None
            try:
                fn(*args)
            except Exception as exc:
                logger.exception("background run %s failed", name)
                error = exc
            with self._lock:
                self._active.discard(future)
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(None)

        threading.Thread(target=_run, name=name, daemon=True).start()
        return future

    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def shutdown(self) -> None:
        """Refuse new runs; runs still active are abandoned with the process."""
        with self._lock:
            self._closed = True
            abandoned = len(self._active)
        if abandoned:
            logger.warning("shutting down with %d generation run(s) still active", abandoned)
