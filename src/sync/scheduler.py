"""Fixed-interval background runner."""

import threading
from collections.abc import Callable

import structlog

from src.sync.constants import SCHEDULER_JOIN_TIMEOUT_SECONDS


logger = structlog.get_logger()


class PeriodicScheduler:
    """Runs a task immediately and then every ``interval_seconds``.

    Ticks are never suppressed; overlap protection belongs to the task.
    Stopping lets an in-flight run finish.
    """

    def __init__(
        self,
        task: Callable[[], object],
        interval_seconds: float,
        name: str = "periodic-sync",
    ) -> None:
        """Initialize the scheduler.

        Args:
            task: Callable to run on each tick.
            interval_seconds: Period between ticks.
            name: Thread name.

        Raises:
            ValueError: If the interval is not positive.
        """
        if interval_seconds <= 0:
            msg = f"interval_seconds must be positive, got {interval_seconds}"
            raise ValueError(msg)
        self._task = task
        self._interval = interval_seconds
        self._name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()
        self._log = logger.bind(component="sync", subcomponent="scheduler")

    @property
    def is_running(self) -> bool:
        """Whether the background thread is alive."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def interval_seconds(self) -> float:
        """Period between ticks."""
        return self._interval

    def start(self) -> bool:
        """Start ticking.

        Returns:
            False if the scheduler was already running.
        """
        with self._state_lock:
            if self.is_running:
                self._log.debug("scheduler_already_running")
                return False
            # A thread left behind by a timed-out stop keeps its own set event.
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name=self._name,
                daemon=True,
            )
            self._thread.start()

        self._log.info("scheduler_started", interval_seconds=self._interval)
        return True

    def stop(self, timeout: float | None = SCHEDULER_JOIN_TIMEOUT_SECONDS) -> bool:
        """Stop future ticks and wait for an in-flight run.

        Safe to call repeatedly.

        Args:
            timeout: Seconds to wait for the thread to exit.

        Returns:
            False if the scheduler was not running.
        """
        with self._state_lock:
            thread = self._thread
            if thread is None:
                return False
            self._stop_event.set()
            self._thread = None

        if thread is not threading.current_thread():
            thread.join(timeout)
        self._log.info("scheduler_stopped")
        return True

    def _run(self, stop_event: threading.Event) -> None:
        while True:
            self._tick()
            if stop_event.wait(self._interval):
                break

    def _tick(self) -> None:
        try:
            self._task()
        except Exception:
            self._log.exception("scheduler_task_failed")
