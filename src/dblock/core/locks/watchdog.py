"""Background renewal thread for a held lease."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from dblock.core.constants import WATCHDOG_JOIN_TIMEOUT
from dblock.core.exceptions import CanNotRenewError

logger = logging.getLogger(__name__)


class WatchDog:
    """Run `renew_action` every `interval` seconds on a daemon thread.

    The loop ends when `stop()` is called or when the action raises
    `CanNotRenewError`. An optional `on_give_up` callback runs on the
    watchdog thread after the action gives up.
    """

    def __init__(self, name: str = "lock-watchdog", on_give_up: Callable[[Exception], None] | None = None):
        self.name = name
        self.on_give_up = on_give_up
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, renew_action: Callable[[], object], interval: float) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Watchdog '{self.name}' was already started")
        if interval <= 0:
            raise ValueError(f"Watchdog interval must be positive, got {interval}")

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            args=(renew_action, interval),
            daemon=True,
            name=self.name,
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the loop to exit and wait until the thread has finished."""
        self._stop.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=WATCHDOG_JOIN_TIMEOUT)

    def _loop(self, renew_action: Callable[[], object], interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                renew_action()
            except CanNotRenewError as e:
                logger.warning("Watchdog '%s' stopped: %s", self.name, e)
                self._give_up(e)
                return
            except Exception as e:
                logger.error("Watchdog '%s' renewal failed unexpectedly: %s", self.name, e, exc_info=True)
                self._give_up(e)
                return

    def _give_up(self, error: Exception) -> None:
        if self.on_give_up is None:
            return
        try:
            self.on_give_up(error)
        except Exception:
            logger.exception("Watchdog '%s' give-up callback failed", self.name)
