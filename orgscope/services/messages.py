"""
Message text and metadata payloads for cascade notifications.

Metadata keys are camelCase because the payload is consumed as-is by the
frontend inbox.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from orgscope.contracts import (
    ATTENDANCE_MISS,
    UNIVERSITY_ACKNOWLEDGMENT,
    AbsentMember,
    AttendanceEventRecord,
    SmallGroupRecord,
)


def attendance_dedupe_key(event_id: int, small_group_id: int, recipient_id: str) -> str:
    return f"{ATTENDANCE_MISS}:{event_id}:{small_group_id}:{recipient_id}"


def acknowledgment_dedupe_key(event_id: int, university_id: int, recipient_id: str) -> str:
    return f"{UNIVERSITY_ACKNOWLEDGMENT}:{event_id}:{university_id}:{recipient_id}"


def attendance_subject(event: AttendanceEventRecord) -> str:
    return f"Attendance Alert: {event.name}"


def attendance_message(total_absent: int, group_name: str) -> str:
    return f"{total_absent} member(s) from {group_name} missed the university event"


def attendance_metadata(
    event: AttendanceEventRecord,
    group: SmallGroupRecord,
    absent: list[AbsentMember],
) -> dict[str, Any]:
    return {
        "eventId": event.id,
        "eventType": event.kind,
        "eventName": event.name,
        "eventDate": event.event_date.isoformat(),
        "smallGroupId": group.id,
        "smallGroupName": group.name,
        "absentMembers": [
            {"id": m.id, "name": m.display_name, "phone": m.phone or "N/A"} for m in absent
        ],
        "totalAbsent": len(absent),
    }


def acknowledgment_subject(event: AttendanceEventRecord) -> str:
    return f"Event Acknowledgment: {event.name}"


def acknowledgment_message(event_name: str, entries: list[dict[str, Any]]) -> str:
    if len(entries) == 1:
        entry = entries[0]
        return (
            f"{entry['smallGroupName']} has acknowledged {entry['totalAbsent']} "
            f'absent member(s) from event "{event_name}"'
        )
    return f'{len(entries)} small groups have acknowledged absent members from event "{event_name}"'


def acknowledgment_entry(
    group: SmallGroupRecord,
    leader_name: str | None,
    total_absent: int,
    acknowledged_at: datetime | None = None,
) -> dict[str, Any]:
    at = acknowledged_at or datetime.now(timezone.utc)
    return {
        "smallGroupId": group.id,
        "smallGroupName": group.name,
        "smallGroupLeaderName": leader_name or "Unknown",
        "totalAbsent": total_absent,
        "acknowledgedAt": at.isoformat(),
    }


def acknowledgment_metadata(
    event: AttendanceEventRecord,
    university_id: int,
    entry: dict[str, Any],
) -> dict[str, Any]:
    return {
        "eventId": event.id,
        "eventType": event.kind,
        "eventName": event.name,
        "eventDate": event.event_date.isoformat(),
        "universityId": university_id,
        "acknowledgedSmallGroups": [entry],
        "totalAcknowledgedGroups": 1,
        "notificationType": UNIVERSITY_ACKNOWLEDGMENT,
    }


def merge_acknowledgment(
    existing: dict[str, Any],
    entry: dict[str, Any],
    event_name: str,
) -> tuple[dict[str, Any], str] | None:
    """
    Fold one group's acknowledgment into an existing rollup payload.

    Each small group is counted exactly once however often its leaders read
    the alert. A group already listed only has its ``totalAbsent`` refreshed;
    ``None`` means nothing changed.
    """

    entries = list(existing.get("acknowledgedSmallGroups") or [])
    for i, listed in enumerate(entries):
        if listed.get("smallGroupId") != entry["smallGroupId"]:
            continue
        if listed.get("totalAbsent") == entry["totalAbsent"]:
            return None
        entries[i] = {**listed, "totalAbsent": entry["totalAbsent"], "acknowledgedAt": entry["acknowledgedAt"]}
        break
    else:
        entries.append(entry)

    merged = dict(existing)
    merged["acknowledgedSmallGroups"] = entries
    merged["totalAcknowledgedGroups"] = len(entries)
    return merged, acknowledgment_message(event_name, entries)


def merge_attendance(
    existing: dict[str, Any],
    metadata: dict[str, Any],
    group_name: str,
) -> tuple[dict[str, Any], str] | None:
    """Replace a stale alert payload; ``None`` when the absentees are the same."""

    def ids(payload: dict[str, Any]) -> list[Any]:
        return sorted(m.get("id") for m in payload.get("absentMembers") or [])

    if ids(existing) == ids(metadata) and existing.get("totalAbsent") == metadata["totalAbsent"]:
        return None
    return dict(metadata), attendance_message(metadata["totalAbsent"], group_name)
