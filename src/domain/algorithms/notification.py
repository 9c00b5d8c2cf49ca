from __future__ import annotations

from datetime import datetime, timezone

from src.domain.models import (
    NotificationEvent,
    NotificationKind,
    RiderSession,
    RiderStatus,
)

NEWSWORTHY = frozenset({RiderStatus.APPROACHING, RiderStatus.PASSED})


class NotificationGate:
    """Edge-triggered filter between computed statuses and rider events.

    Only a change into APPROACHING or PASSED relative to what the rider was
    last told produces an event. FAR is recorded as the latest status but is
    never announced on its own.
    """

    def on_status_computed(
        self,
        vehicle_id: str,
        new_status: RiderStatus,
        *,
        session: RiderSession,
        at: datetime | None = None,
    ) -> NotificationEvent | None:
        session.last_status = new_status
        if new_status not in NEWSWORTHY:
            return None
        if new_status is session.last_notified_status:
            return None

        previous = session.last_notified_status
        session.last_notified_status = new_status
        return NotificationEvent(
            kind=NotificationKind.STATUS_CHANGED,
            vehicle_id=vehicle_id,
            rider_stop_id=session.rider_stop_id,
            occurred_at=at or datetime.now(timezone.utc),
            status=new_status,
            previous_status=previous,
        )
