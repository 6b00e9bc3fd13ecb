from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from orgscope.contracts import AttendanceEventRecord
from orgscope.services.cascade import FanoutReport, NotificationCascade, RollupReport

logger = logging.getLogger(__name__)


@dataclass
class CascadeTask:
    """Handle on a queued cascade run."""

    future: Future
    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> bool:
        """Ask the run to stop. Returns True if it was dropped before starting."""
        self.cancel_event.set()
        return self.future.cancel()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: float | None = None):
        return self.future.result(timeout=timeout)


class CascadeDispatcher:
    """
    Hands cascade work off the request path.

    Request handlers call ``on_*`` and return immediately; runs execute on a
    small background pool owned by the app and stopped in its lifespan.
    """

    def __init__(self, cascade: NotificationCascade, max_workers: int = 2) -> None:
        self._cascade = cascade
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="cascade-dispatch")

    def on_attendance_recorded(self, event: AttendanceEventRecord) -> CascadeTask:
        cancel = threading.Event()
        future = self._executor.submit(self._run_fanout, event, cancel)
        logger.debug("Queued attendance fan-out event=%s", event.id)
        return CascadeTask(future=future, cancel_event=cancel)

    def on_notification_marked_read(self, notification_id: int, principal_id: str) -> CascadeTask:
        cancel = threading.Event()
        future = self._executor.submit(self._run_rollup, notification_id, principal_id, cancel)
        logger.debug("Queued acknowledgment rollup notification=%s", notification_id)
        return CascadeTask(future=future, cancel_event=cancel)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def _run_fanout(self, event: AttendanceEventRecord, cancel: threading.Event) -> FanoutReport:
        return self._cascade.send_attendance_notifications(event, cancel=cancel)

    def _run_rollup(self, notification_id: int, principal_id: str, cancel: threading.Event) -> RollupReport | None:
        if cancel.is_set():
            logger.info("Acknowledgment rollup cancelled before start notification=%s", notification_id)
            return None
        return self._cascade.on_mark_read(notification_id, principal_id)
