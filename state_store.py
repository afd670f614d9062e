"""Shared controller state with best-effort JSON persistence.

One mutable mapping is shared by every API route handler. Handlers receive
the store explicitly and mutate it through ``transaction()``. After each
handled request the router calls ``schedule_save()``, which snapshots the
mapping under the lock and hands it to a single writer thread. Snapshots carry
a monotonically increasing version; the writer only ever writes a version
newer than the last one on disk, so files cannot go backwards even when saves
pile up. Save failures never reach the request; they are logged and counted.
"""

from __future__ import annotations

import copy
import json
import logging
import queue
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from config import STATE_FILE, STATE_FLUSH_TIMEOUT_SECS

if TYPE_CHECKING:
    from metrics import MetricsRegistry

logger = logging.getLogger(__name__)

Snapshot = tuple[int, str]


class StateStore:
    def __init__(
        self,
        *,
        initial_state: dict[str, Any] | None = None,
        state_file: str | Path = STATE_FILE,
        persist: bool = False,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        self._state: dict[str, Any] = copy.deepcopy(initial_state) if initial_state else {}
        self._state_file = Path(state_file)
        self._persist = persist
        self._metrics = metrics
        self._lock = threading.RLock()

        self._version = 0
        self._written_version = 0
        self._save_failures = 0
        self._last_save_error: str | None = None

        self._queue: queue.Queue[Snapshot | None] = queue.Queue()
        self._pending = 0
        self._idle = threading.Condition()
        self._writer: threading.Thread | None = None
        self._closed = False

        if self._persist:
            self.load()

    @property
    def persist(self) -> bool:
        return self._persist

    @property
    def state_file(self) -> Path:
        return self._state_file

    @property
    def written_version(self) -> int:
        return self._written_version

    @property
    def save_failures(self) -> int:
        return self._save_failures

    @property
    def last_save_error(self) -> str | None:
        return self._last_save_error

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return copy.deepcopy(self._state.get(key, default))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state)

    @contextmanager
    def transaction(self) -> Iterator[dict[str, Any]]:
        """Yield the live mapping while holding the store lock."""
        with self._lock:
            yield self._state

    def replace(self, new_state: dict[str, Any]) -> None:
        with self._lock:
            self._state = copy.deepcopy(new_state)

    def load(self) -> bool:
        """Hydrate from the state file; keep the current state on any failure."""
        try:
            payload = json.loads(self._state_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("state not loaded: %s does not exist", self._state_file)
            return False
        except (OSError, ValueError) as exc:
            logger.warning("state not loaded from %s: %s", self._state_file, exc)
            return False

        if not isinstance(payload, dict):
            logger.warning(
                "state not loaded from %s: expected a JSON object, got %s",
                self._state_file,
                type(payload).__name__,
            )
            return False

        self.replace(payload)
        logger.info("state loaded from %s", self._state_file)
        return True

    def schedule_save(self) -> int | None:
        """Queue the current state for writing; return its version, or None if skipped."""
        if not self._persist or self._closed:
            return None

        with self._lock:
            try:
                payload = json.dumps(self._state, indent=2)
            except (TypeError, ValueError) as exc:
                self._record_failure(exc)
                logger.error("state snapshot is not JSON serializable: %s", exc)
                return None
            self._version += 1
            version = self._version

        self._ensure_writer()
        with self._idle:
            self._pending += 1
        self._queue.put((version, payload))
        return version

    def flush(self, timeout: float | None = STATE_FLUSH_TIMEOUT_SECS) -> bool:
        """Wait until every queued snapshot has been written or dropped."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._pending > 0:
                if deadline is None:
                    self._idle.wait(timeout=0.1)
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(timeout=min(remaining, 0.1))
            return True

    def close(self, timeout: float | None = STATE_FLUSH_TIMEOUT_SECS) -> None:
        if self._closed:
            return
        self.flush(timeout=timeout)
        self._closed = True
        if self._writer is not None:
            self._queue.put(None)
            self._writer.join(timeout=1.0)
            self._writer = None

    def _ensure_writer(self) -> None:
        with self._lock:
            if self._writer is not None:
                return
            self._writer = threading.Thread(
                target=self._writer_loop,
                name="state-writer",
                daemon=True,
            )
            self._writer.start()

    def _writer_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return

            batch = [item]
            stop = False
            while True:
                try:
                    queued = self._queue.get_nowait()
                except queue.Empty:
                    break
                if queued is None:
                    stop = True
                    break
                batch.append(queued)

            version, payload = max(batch, key=lambda snapshot: snapshot[0])
            if version > self._written_version:
                self._write(version, payload)

            with self._idle:
                self._pending = max(0, self._pending - len(batch))
                self._idle.notify_all()
            if stop:
                return

    def _write(self, version: int, payload: str) -> None:
        tmp_path = self._state_file.with_suffix(self._state_file.suffix + ".tmp")
        try:
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._state_file)
        except OSError as exc:
            self._record_failure(exc)
            logger.exception("state save to %s failed (version %s)", self._state_file, version)
            return

        self._written_version = version
        if self._metrics is not None:
            self._metrics.record_state_save()

    def _record_failure(self, exc: Exception) -> None:
        self._save_failures += 1
        self._last_save_error = str(exc)
        if self._metrics is not None:
            self._metrics.record_state_save_failure(exc.__class__.__name__)
