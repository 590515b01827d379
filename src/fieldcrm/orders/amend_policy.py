"""Gate deciding whether a technician may still amend a completed order.

The completion service receives a policy object instead of reading the
rule from global state, so callers and tests can swap it.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from fieldcrm.config import Config
from fieldcrm.database.models import Order
from fieldcrm.errors import BadRequestError, ForbiddenError
from fieldcrm.utils.formatters import parse_iso


class AmendPolicy(Protocol):
    def check(self, order: Order, technician_id: int,
              now: datetime) -> None:
        """Raise when the amendment is not allowed."""


class TimeWindowAmendPolicy:
    """Owner-only amendments within a fixed window after completion."""

    def __init__(self, window_minutes: Optional[int] = None):
        self._window_minutes = window_minutes

    @property
    def window(self) -> timedelta:
        minutes = self._window_minutes
        if minutes is None:
            minutes = Config.AMEND_WINDOW_MINUTES
        return timedelta(minutes=minutes)

    def check(self, order: Order, technician_id: int,
              now: datetime) -> None:
        if order.technician_id != technician_id:
            raise ForbiddenError(
                f"Order {order.order_number} is not assigned to you"
            )
        if not order.completed_at:
            raise BadRequestError(
                f"Order {order.order_number} has not been completed yet"
            )
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        elapsed = now - parse_iso(order.completed_at)
        if elapsed > self.window:
            minutes = int(self.window.total_seconds() // 60)
            raise ForbiddenError(
                f"The {minutes}-minute edit window for order "
                f"{order.order_number} has passed"
            )


class AllowAllAmendPolicy:
    """No restrictions; for back-office tools that already gate access."""

    def check(self, order: Order, technician_id: int,
              now: datetime) -> None:
        return None
