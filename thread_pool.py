"""Bounded worker pool for accepted client connections."""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable

ClientAddress = tuple[str, int]
ConnectionJob = tuple[object, ClientAddress]
ConnectionHandler = Callable[[object, ClientAddress], None]


class ThreadPool:
    """Fixed-size worker threads fed from a bounded queue.

    With a single worker every request is handled on one thread, in arrival
    order.
    """

    def __init__(
        self,
        worker_count: int,
        queue_size: int,
        handler: ConnectionHandler,
        *,
        name_prefix: str = "devserve-worker",
    ) -> None:
        if worker_count <= 0:
            raise ValueError("worker_count must be positive")
        if queue_size <= 0:
            raise ValueError("queue_size must be positive")

        self._handler = handler
        self._name_prefix = name_prefix
        self._worker_count = worker_count
        self._queue: queue.Queue[ConnectionJob | None] = queue.Queue(maxsize=queue_size)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def threads(self) -> tuple[threading.Thread, ...]:
        return tuple(self._threads)

    def start(self) -> None:
        for index in range(self._worker_count):
            worker = threading.Thread(
                target=self._worker_loop,
                name=f"{self._name_prefix}-{index}",
                daemon=True,
            )
            self._threads.append(worker)
            worker.start()

    def submit(self, client_socket: object, address: ClientAddress) -> bool:
        """Queue a connection; False when the pool is stopping or the queue is full."""
        if self._stop_event.is_set():
            return False
        try:
            self._queue.put_nowait((client_socket, address))
        except queue.Full:
            return False
        return True

    def shutdown(self) -> None:
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        for _ in self._threads:
            try:
                self._queue.put_nowait(None)
            except queue.Full:
                break
        for thread in self._threads:
            thread.join(timeout=1.0)

    def _worker_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                item = self._queue.get(timeout=0.2)
            except queue.Empty:
                continue
            if item is None:
                return
            client_socket, address = item
            self._handler(client_socket, address)
