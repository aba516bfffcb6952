"""Fixed-size worker pools and single-consumer channels."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Generic, Iterable, Iterator, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_CLOSED = object()


class Channel(Generic[T]):
    """Unbounded FIFO that many producers send to and one consumer iterates until closed."""

    def __init__(self) -> None:
        self._queue: "queue.Queue[object]" = queue.Queue()

    def send(self, item: T) -> None:
        self._queue.put(item)

    def close(self) -> None:
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[T]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]


class WorkerPool(Generic[T, R]):
    """Runs a handler over items with ``num_workers`` threads sharing one queue.

    The first handler exception stops the other workers from taking new items;
    items already in progress finish, all threads are joined and the first
    exception is re-raised to the caller.
    """

    def __init__(self, num_workers: int, name: str = "worker") -> None:
        if num_workers < 1:
            raise ValueError(f"num_workers must be positive, got {num_workers}")
        self.num_workers = num_workers
        self.name = name

    def run(
        self,
        items: Iterable[T],
        handler: Callable[[T], R],
        abort: Optional[threading.Event] = None,
    ) -> List[R]:
        """Run ``handler`` over ``items``.

        Setting ``abort`` from outside stops the workers from taking new items;
        the results collected so far are returned.
        """
        jobs: "queue.Queue[object]" = queue.Queue()
        for item in items:
            jobs.put(item)
        for _ in range(self.num_workers):
            jobs.put(_CLOSED)

        results: List[R] = []
        lock = threading.Lock()
        if abort is None:
            abort = threading.Event()
        first_error: List[BaseException] = []

        def _work() -> None:
            while not abort.is_set():
                item = jobs.get()
                if item is _CLOSED:
                    return
                try:
                    result = handler(item)  # type: ignore[arg-type]
                except BaseException as exc:  # noqa: BLE001 - re-raised by run()
                    with lock:
                        if not first_error:
                            first_error.append(exc)
                    abort.set()
                    return
                with lock:
                    results.append(result)

        threads = [
            threading.Thread(target=_work, name=f"{self.name}-{idx + 1}", daemon=True)
            for idx in range(self.num_workers)
        ]
        logger.debug("Starting %d %s threads", len(threads), self.name)
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        if first_error:
            raise first_error[0]
        return results


def run_in_thread(
    target: Callable[[], None],
    name: str,
    abort: Optional[threading.Event] = None,
) -> "ThreadResult":
    """Start ``target`` in a thread whose exception is handed to the joiner.

    A failure also sets ``abort``, if given.
    """
    result = ThreadResult(target, name, abort)
    result.start()
    return result


class ThreadResult:
    def __init__(
        self,
        target: Callable[[], None],
        name: str,
        abort: Optional[threading.Event] = None,
    ) -> None:
        self.error: Optional[BaseException] = None
        self._target = target
        self._abort = abort
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        try:
            self._target()
        except BaseException as exc:  # noqa: BLE001 - surfaced by join()
            logger.error("%s failed: %s", self._thread.name, exc)
            self.error = exc
            if self._abort is not None:
                self._abort.set()

    def start(self) -> None:
        self._thread.start()

    def join(self) -> Optional[BaseException]:
        """Wait for the thread and return its exception, if any."""
        self._thread.join()
        return self.error
