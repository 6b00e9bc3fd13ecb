"""
Attendance notification cascade.

Two flows:
- fan-out: an attendance event for a university notifies the leaders of
  every small group that had absentees, one notification per leader;
- rollup: when a small group leader reads that alert, the university leaders
  get (or have updated) a single acknowledgment notification per event.

Neither flow raises. Failures are isolated per small group and per
recipient, logged, and reported back in the returned report.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import TypeVar

from orgscope.contracts import (
    ATTENDANCE_MISS,
    UNIVERSITY_ACKNOWLEDGMENT,
    AttendanceEventRecord,
    Leader,
    NewNotification,
    OrgIds,
    SmallGroupRecord,
)
from orgscope.errors import CascadeInternalError
from orgscope.repository import OrgRepository
from orgscope.scope.types import ScopeTag
from orgscope.services import messages
from orgscope.services.locks import KeyedLocks

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREATED = "created"
UPDATED = "updated"
DUPLICATE = "duplicate"
OPTED_OUT = "opted_out"
FAILED = "failed"
CANCELLED = "cancelled"


class _Cancelled(Exception):
    pass


@dataclass
class RecipientFailure:
    recipient_id: str
    small_group_id: int | None
    error: str


@dataclass
class FanoutReport:
    """Outcome of one attendance fan-out. Safe to update from worker threads."""

    event_id: int
    ok: bool = True
    timed_out: bool = False
    cancelled: bool = False
    created: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    duplicates: int = 0
    opted_out: list[str] = field(default_factory=list)
    cancelled_recipients: list[str] = field(default_factory=list)
    skipped_groups: dict[int, str] = field(default_factory=dict)
    failures: list[RecipientFailure] = field(default_factory=list)

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, outcome: str, recipient_id: str, small_group_id: int | None, detail: object = None) -> None:
        with self._lock:
            if outcome == CREATED:
                self.created.append(int(detail))
            elif outcome == UPDATED:
                self.updated.append(int(detail))
            elif outcome == DUPLICATE:
                self.duplicates += 1
            elif outcome == OPTED_OUT:
                self.opted_out.append(recipient_id)
            elif outcome == CANCELLED:
                self.cancelled_recipients.append(recipient_id)
            else:
                self.failures.append(RecipientFailure(recipient_id, small_group_id, str(detail)))

    def skip_group(self, small_group_id: int, reason: str) -> None:
        with self._lock:
            self.skipped_groups[small_group_id] = reason


@dataclass
class RollupReport:
    notification_id: int
    applied: bool = False
    reason: str | None = None
    university_id: int | None = None
    outcomes: dict[str, str] = field(default_factory=dict)


class NotificationCascade:
    def __init__(
        self,
        repository: OrgRepository,
        *,
        max_workers: int = 8,
        fanout_timeout_seconds: float = 30.0,
        max_attempts: int = 3,
        retry_base_delay: float = 0.2,
        retry_max_delay: float = 2.0,
    ) -> None:
        self._repository = repository
        self._max_workers = max(1, max_workers)
        self._fanout_timeout = fanout_timeout_seconds
        self._max_attempts = max(1, max_attempts)
        self._base_delay = retry_base_delay
        self._max_delay = retry_max_delay
        self._locks = KeyedLocks()

    # ---- Fan-out --------------------------------------------------------------------

    def send_attendance_notifications(
        self,
        event: AttendanceEventRecord,
        cancel: threading.Event | None = None,
    ) -> FanoutReport:
        """
        Notify the leaders of every small group with absentees for ``event``.

        Small groups are processed concurrently, and within a group each
        leader write is its own task. The whole run is bounded by the
        fan-out timeout; on expiry ``cancel`` is set, queued work is dropped
        and the report is marked ``timed_out``. ``cancelled`` is reserved for
        runs stopped by the caller through ``cancel``.

        A re-recorded event refreshes an existing alert in place when the
        group's absentees changed and marks it unread again.
        """

        cancel = cancel or threading.Event()
        report = FanoutReport(event_id=event.id)

        if event.university_id is None:
            logger.warning("Attendance event id=%s has no university; nothing to fan out", event.id)
            report.ok = False
            return report

        try:
            groups = self._repository.list_small_groups(event.university_id)
        except Exception:
            logger.exception(
                "Could not list small groups event=%s university=%s", event.id, event.university_id
            )
            report.ok = False
            return report

        if not groups:
            logger.info("University id=%s has no small groups event=%s", event.university_id, event.id)
            return report

        deadline = time.monotonic() + self._fanout_timeout
        group_pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="cascade-group")
        insert_pool = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="cascade-insert")
        timed_out = False
        try:
            group_futures = [
                group_pool.submit(self._fan_out_group, event, group, insert_pool, report, cancel)
                for group in groups
            ]
            _, pending = wait(group_futures, timeout=_remaining(deadline))
            timed_out = bool(pending)

            insert_futures: list[Future] = []
            for future in group_futures:
                if future.done() and not future.cancelled():
                    insert_futures.extend(future.result())

            if not timed_out and insert_futures:
                _, pending = wait(insert_futures, timeout=_remaining(deadline))
                timed_out = bool(pending)
        finally:
            cancelled_by_caller = cancel.is_set()
            if timed_out:
                cancel.set()
            group_pool.shutdown(wait=not timed_out, cancel_futures=timed_out)
            insert_pool.shutdown(wait=not timed_out, cancel_futures=timed_out)

        if timed_out:
            logger.error(
                "Attendance fan-out timed out after %.1fs event=%s; pending work cancelled",
                self._fanout_timeout,
                event.id,
            )
            report.timed_out = True
        report.cancelled = cancelled_by_caller

        logger.info(
            "Attendance fan-out done event=%s created=%d updated=%d duplicates=%d opted_out=%d failed=%d",
            event.id,
            len(report.created),
            len(report.updated),
            report.duplicates,
            len(report.opted_out),
            len(report.failures),
        )
        return report

    def _fan_out_group(
        self,
        event: AttendanceEventRecord,
        group: SmallGroupRecord,
        insert_pool: ThreadPoolExecutor,
        report: FanoutReport,
        cancel: threading.Event,
    ) -> list[Future]:
        if cancel.is_set():
            report.skip_group(group.id, CANCELLED)
            return []

        try:
            absent = self._repository.list_absent_members(group.id, event.id)
            if not absent:
                report.skip_group(group.id, "no absentees")
                return []

            leaders = self._repository.list_leaders(ScopeTag.SMALL_GROUP.value, small_group_id=group.id)
            if not leaders:
                logger.warning("No leaders for small group id=%s event=%s; skipping", group.id, event.id)
                report.skip_group(group.id, "no leaders")
                return []
        except Exception as exc:
            logger.exception("Small group lookup failed group=%s event=%s", group.id, event.id)
            report.skip_group(group.id, f"lookup failed: {exc}")
            return []

        metadata = messages.attendance_metadata(event, group, absent)
        futures: list[Future] = []
        for leader in leaders:
            if cancel.is_set():
                break
            try:
                futures.append(insert_pool.submit(self._notify_leader, event, group, leader, metadata, report, cancel))
            except RuntimeError:
                # pool already shut down after a timeout
                report.record(CANCELLED, leader.principal_id, group.id)
                break
        return futures

    def _notify_leader(
        self,
        event: AttendanceEventRecord,
        group: SmallGroupRecord,
        leader: Leader,
        metadata: dict,
        report: FanoutReport,
        cancel: threading.Event,
    ) -> None:
        new = NewNotification(
            recipient_id=leader.principal_id,
            subject=messages.attendance_subject(event),
            message=messages.attendance_message(metadata["totalAbsent"], group.name),
            event_type=ATTENDANCE_MISS,
            event_id=event.id,
            metadata=metadata,
            dedupe_key=messages.attendance_dedupe_key(event.id, group.id, leader.principal_id),
            org=OrgIds(region_id=group.region_id, university_id=group.university_id, small_group_id=group.id),
        )

        def merge(existing: dict) -> tuple[dict, str] | None:
            return messages.merge_attendance(existing, metadata, group.name)

        def deliver() -> tuple[str, int | None]:
            if self._opted_out(leader.principal_id):
                return OPTED_OUT, None
            record, outcome = self._repository.upsert_notification(new, merge, reopen=True)
            return (DUPLICATE if outcome == "unchanged" else outcome), record.id

        try:
            outcome, notification_id = self._with_retries(deliver, cancel, what=new.dedupe_key)
        except _Cancelled:
            report.record(CANCELLED, leader.principal_id, group.id)
            return
        except Exception as exc:
            logger.error(
                "Giving up on attendance notification recipient=%s group=%s event=%s",
                leader.principal_id,
                group.id,
                event.id,
                exc_info=exc,
            )
            report.record(FAILED, leader.principal_id, group.id, exc)
            return

        if outcome == OPTED_OUT:
            logger.info("Recipient opted out of attendance alerts recipient=%s", leader.principal_id)
        report.record(outcome, leader.principal_id, group.id, notification_id)

    # ---- Rollup ---------------------------------------------------------------------

    def on_mark_read(self, notification_id: int, principal_id: str) -> RollupReport:
        """
        Roll a small group's acknowledgment up to its university leaders.

        No-op unless the notification is an ``attendance_miss`` addressed to
        ``principal_id``. The original notification is never modified here.
        """

        report = RollupReport(notification_id=notification_id)
        try:
            self._roll_up(notification_id, principal_id, report)
        except Exception:
            logger.exception("Acknowledgment rollup failed notification=%s", notification_id)
            report.applied = False
            report.reason = "error"
        return report

    def _roll_up(self, notification_id: int, principal_id: str, report: RollupReport) -> None:
        notification = self._repository.get_notification(notification_id)
        if notification is None:
            report.reason = "missing notification"
            return
        if notification.event_type != ATTENDANCE_MISS:
            report.reason = "not an attendance alert"
            return
        if notification.recipient_id != principal_id:
            report.reason = "not the recipient"
            return
        if notification.event_id is None:
            raise CascadeInternalError(f"attendance notification id={notification_id} has no event")

        group = self._resolve_group(notification.small_group_id, principal_id)
        if group is None:
            logger.warning("No small group for acknowledgment notification=%s", notification_id)
            report.reason = "no small group"
            return
        report.university_id = group.university_id

        event = self._repository.get_event(notification.event_id)
        if event is None:
            raise CascadeInternalError(f"event id={notification.event_id} missing for notification={notification_id}")

        leaders = self._repository.list_leaders(ScopeTag.UNIVERSITY.value, university_id=group.university_id)
        if not leaders:
            logger.info("No university leaders university=%s; nothing to roll up", group.university_id)
            report.reason = "no university leaders"
            return

        acknowledger = self._repository.get_principal(principal_id)
        total_absent = int(notification.metadata.get("totalAbsent") or 0)
        entry = messages.acknowledgment_entry(group, acknowledger.name if acknowledger else None, total_absent)

        with self._locks.hold((event.id, group.university_id)):
            for leader in leaders:
                report.outcomes[leader.principal_id] = self._acknowledge_for(event, group, leader, entry)

        report.applied = any(o in (CREATED, UPDATED) for o in report.outcomes.values())

    def _acknowledge_for(
        self,
        event: AttendanceEventRecord,
        group: SmallGroupRecord,
        leader: Leader,
        entry: dict,
    ) -> str:
        if self._opted_out(leader.principal_id):
            logger.info("University leader opted out recipient=%s", leader.principal_id)
            return OPTED_OUT

        new = NewNotification(
            recipient_id=leader.principal_id,
            subject=messages.acknowledgment_subject(event),
            message=messages.acknowledgment_message(event.name, [entry]),
            event_type=UNIVERSITY_ACKNOWLEDGMENT,
            event_id=event.id,
            metadata=messages.acknowledgment_metadata(event, group.university_id, entry),
            dedupe_key=messages.acknowledgment_dedupe_key(event.id, group.university_id, leader.principal_id),
            org=OrgIds(region_id=group.region_id, university_id=group.university_id),
        )

        def merge(existing: dict) -> tuple[dict, str] | None:
            return messages.merge_acknowledgment(existing, entry, event.name)

        try:
            _, outcome = self._with_retries(
                lambda: self._repository.upsert_notification(new, merge),
                None,
                what=new.dedupe_key,
            )
        except Exception as exc:
            logger.error(
                "Giving up on acknowledgment recipient=%s event=%s", leader.principal_id, event.id, exc_info=exc
            )
            return FAILED
        return outcome

    def _resolve_group(self, small_group_id: int | None, principal_id: str) -> SmallGroupRecord | None:
        if small_group_id is None:
            roles = self._repository.get_role_assignments(principal_id)
            candidates = [r for r in roles if r.scope == ScopeTag.SMALL_GROUP.value and r.small_group_id is not None]
            if not candidates:
                return None
            small_group_id = min(candidates, key=lambda r: r.id).small_group_id
        return self._repository.get_small_group(small_group_id)

    # ---- Helpers --------------------------------------------------------------------

    def _opted_out(self, principal_id: str) -> bool:
        pref = self._repository.get_preference(principal_id)
        return pref is not None and not pref.attendance_alerts

    def _with_retries(self, fn: Callable[[], T], cancel: threading.Event | None, *, what: str) -> T:
        """Run ``fn`` with exponential backoff and jitter between attempts."""

        for attempt in range(self._max_attempts):
            if cancel is not None and cancel.is_set():
                raise _Cancelled()
            try:
                return fn()
            except Exception as exc:
                if attempt >= self._max_attempts - 1:
                    raise
                delay = min(self._max_delay, self._base_delay * (2**attempt))
                if delay:
                    delay = delay + random.uniform(0, delay / 2)
                logger.warning("Cascade step failed, retrying key=%s attempt=%d", what, attempt + 1, exc_info=exc)
                if delay:
                    if cancel is not None:
                        if cancel.wait(delay):
                            raise _Cancelled() from exc
                    else:
                        time.sleep(delay)
        raise CascadeInternalError(f"no attempts made for {what}")


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())
