"""Tests for the amendment gate."""

from datetime import datetime, timedelta, timezone

import pytest

from fieldcrm.config import Config
from fieldcrm.database.models import Order
from fieldcrm.errors import BadRequestError, ForbiddenError
from fieldcrm.orders.amend_policy import (
    AllowAllAmendPolicy,
    TimeWindowAmendPolicy,
)
from fieldcrm.orders.completion import OrderCompletionService
from fieldcrm.orders.payloads import CompletionRequest

COMPLETED = datetime(2024, 5, 6, 10, 0, tzinfo=timezone.utc)


def _order(technician_id=7, completed_at=COMPLETED.isoformat()):
    return Order(id=1, order_number="ZL/1", status="COMPLETED",
                 technician_id=technician_id, completed_at=completed_at)


class TestTimeWindowPolicy:
    def test_inside_window(self):
        TimeWindowAmendPolicy(15).check(
            _order(), 7, COMPLETED + timedelta(minutes=14)
        )

    def test_boundary_is_inclusive(self):
        TimeWindowAmendPolicy(15).check(
            _order(), 7, COMPLETED + timedelta(minutes=15)
        )

    def test_after_window(self):
        with pytest.raises(ForbiddenError, match="15-minute edit window"):
            TimeWindowAmendPolicy(15).check(
                _order(), 7, COMPLETED + timedelta(minutes=15, seconds=1)
            )

    def test_other_technician(self):
        with pytest.raises(ForbiddenError, match="not assigned"):
            TimeWindowAmendPolicy(15).check(_order(), 8, COMPLETED)

    def test_never_completed(self):
        with pytest.raises(BadRequestError):
            TimeWindowAmendPolicy(15).check(
                _order(completed_at=None), 7, COMPLETED
            )

    def test_naive_times_treated_as_utc(self):
        naive = _order(completed_at="2024-05-06T10:00:00")
        TimeWindowAmendPolicy(15).check(
            naive, 7, datetime(2024, 5, 6, 10, 10)
        )

    def test_default_window_follows_config(self, monkeypatch):
        monkeypatch.setattr(Config, "AMEND_WINDOW_MINUTES", 60)
        TimeWindowAmendPolicy().check(
            _order(), 7, COMPLETED + timedelta(minutes=45)
        )

    def test_zero_window(self):
        with pytest.raises(ForbiddenError, match="0-minute"):
            TimeWindowAmendPolicy(0).check(
                _order(), 7, COMPLETED + timedelta(seconds=1)
            )


class TestAllowAllPolicy:
    def test_never_raises(self):
        AllowAllAmendPolicy().check(_order(completed_at=None), 99, COMPLETED)

    def test_service_amends_long_after_completion(self, db, repo, make_order,
                                                  tech):
        order_id = make_order(technician=tech, order_type="SERVICE")
        service = OrderCompletionService(
            db, amend_policy=AllowAllAmendPolicy(),
            clock=lambda: datetime.now(timezone.utc) + timedelta(days=2),
        )
        service.complete_order(
            CompletionRequest(order_id=order_id, status="COMPLETED"), tech.id
        )
        service.amend_completion(
            CompletionRequest(order_id=order_id, status="COMPLETED",
                              notes="late fix"),
            tech.id,
        )
        assert repo.get_order_by_id(order_id).notes == "late fix"

    def test_ownership_still_checked_by_service(self, db, make_order, tech,
                                                tech2):
        order_id = make_order(technician=tech, order_type="SERVICE")
        service = OrderCompletionService(db,
                                         amend_policy=AllowAllAmendPolicy())
        service.complete_order(
            CompletionRequest(order_id=order_id, status="COMPLETED"), tech.id
        )
        with pytest.raises(ForbiddenError):
            service.amend_completion(
                CompletionRequest(order_id=order_id, status="COMPLETED"),
                tech2.id,
            )
