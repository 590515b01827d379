"""Order completion: first submission, technician amendment, admin rewrite.

All three entry points share one script. Ownership, payload and policy
checks run before the transaction opens; once inside, any failure rolls
back every step.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fieldcrm.config import Config
from fieldcrm.database.connection import DatabaseConnection
from fieldcrm.database.lookups import require_order, require_user
from fieldcrm.database.models import Order
from fieldcrm.errors import (
    BadRequestError,
    ConflictError,
    FieldCrmError,
    ForbiddenError,
    InternalError,
)
from fieldcrm.io.validators import validate_completion_request
from fieldcrm.orders.amend_policy import AmendPolicy, TimeWindowAmendPolicy
from fieldcrm.orders.collected import sync_collected_devices
from fieldcrm.orders.equipment import reconcile_equipment
from fieldcrm.orders.history import append_history
from fieldcrm.orders.materials import reconcile_materials
from fieldcrm.orders.payloads import (
    CompletionRequest,
    CompletionResult,
    ReconcileContext,
)
from fieldcrm.orders.services import (
    delete_services,
    replace_services,
    stock_extra_device_ids,
)
from fieldcrm.utils.constants import MODE_ADMIN, MODE_AMEND, MODE_COMPLETE

logger = logging.getLogger(__name__)


class OrderCompletionService:
    """Transaction boundary for closing and re-editing orders."""

    def __init__(self, db: DatabaseConnection,
                 amend_policy: Optional[AmendPolicy] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.amend_policy = amend_policy or TimeWindowAmendPolicy()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def complete_order(self, request: CompletionRequest,
                       editor_id: int) -> CompletionResult:
        """Technician closes an open order for the first time."""
        return self._run(MODE_COMPLETE, request, editor_id)

    def amend_completion(self, request: CompletionRequest,
                         editor_id: int) -> CompletionResult:
        """Technician corrects their own submission inside the window."""
        return self._run(MODE_AMEND, request, editor_id)

    def admin_edit_completion(self, request: CompletionRequest,
                              editor_id: int) -> CompletionResult:
        """Admin or coordinator rewrites a closed order without limits."""
        return self._run(MODE_ADMIN, request, editor_id)

    # ── Shared script ───────────────────────────────────────────

    def _precheck(self, mode: str, request: CompletionRequest,
                  editor_id: int) -> Order:
        errors = validate_completion_request(request)
        if errors:
            raise BadRequestError("Invalid completion payload", errors)

        with self.db.get_connection() as conn:
            editor = require_user(conn, editor_id)
            order = require_order(conn, request.order_id)

        if mode == MODE_ADMIN:
            if not editor.is_privileged:
                raise ForbiddenError(
                    "Only administrators and coordinators can edit "
                    "completed orders"
                )
        elif order.technician_id != editor_id:
            raise ForbiddenError(
                f"Order {order.order_number} is not assigned to you"
            )

        if mode == MODE_COMPLETE and not order.is_open:
            raise BadRequestError(
                f"Order {order.order_number} is already {order.status}"
            )

        if mode != MODE_ADMIN and request.status == "COMPLETED" \
                and order.order_type in Config.WORK_CODE_REQUIRED_TYPES \
                and not request.work_codes:
            raise BadRequestError(
                f"{order.order_type.title()} orders need at least one "
                f"work code"
            )

        if mode == MODE_AMEND:
            self.amend_policy.check(order, editor_id, self._clock())
        return order

    def _run(self, mode: str, request: CompletionRequest,
             editor_id: int) -> CompletionResult:
        self._precheck(mode, request, editor_id)
        try:
            with self.db.get_connection(immediate=True) as conn:
                warnings = self._apply(conn, mode, request, editor_id)
        except FieldCrmError:
            raise
        except Exception as e:
            logger.exception(
                f"{mode} of order {request.order_id} failed unexpectedly"
            )
            raise InternalError(
                f"Could not save order {request.order_id}"
            ) from e

        logger.info(
            f"{mode} order {request.order_id} -> {request.status} by "
            f"user {editor_id} ({len(warnings)} warning(s))"
        )
        return CompletionResult(success=True, warnings=warnings)

    def _apply(self, conn, mode: str, request: CompletionRequest,
               editor_id: int) -> list[str]:
        order = require_order(conn, request.order_id)
        if request.expected_version is not None \
                and order.version != request.expected_version:
            raise ConflictError(
                f"Order {order.order_number} was changed by someone else "
                f"(version {order.version}, expected "
                f"{request.expected_version})"
            )
        if mode == MODE_COMPLETE and not order.is_open:
            raise BadRequestError(
                f"Order {order.order_number} is already {order.status}"
            )

        ctx = ReconcileContext(
            order_id=order.id,
            editor_id=editor_id,
            technician_id=order.technician_id,
            mode=mode,
        )
        completed = request.status == "COMPLETED"
        warnings = []

        # Order row
        completed_at = order.completed_at
        if mode == MODE_COMPLETE or completed_at is None:
            completed_at = self._clock().astimezone(timezone.utc).isoformat(
                timespec="microseconds"
            )
        conn.execute(
            "UPDATE orders SET status = ?, notes = ?, failure_reason = ?, "
            "completed_at = ?, version = version + 1 WHERE id = ?",
            (request.status, request.notes,
             None if completed else request.failure_reason,
             completed_at, order.id),
        )

        # Settlement entries
        conn.execute(
            "DELETE FROM order_settlement_entries WHERE order_id = ?",
            (order.id,),
        )
        if completed:
            for wc in request.work_codes:
                conn.execute(
                    "INSERT INTO order_settlement_entries "
                    "(order_id, work_code, quantity) VALUES (?, ?, ?)",
                    (order.id, wc.code.strip(), wc.quantity),
                )

        warnings.extend(
            reconcile_materials(conn, ctx, request.used_materials)
        )
        desired = list(request.equipment_ids)
        if completed:
            desired += stock_extra_device_ids(conn, ctx, request.services)
        reconcile_equipment(conn, ctx, desired)
        warnings.extend(
            sync_collected_devices(conn, ctx, request.collected_devices)
        )

        if completed:
            replace_services(conn, order.id, request.services)
        else:
            delete_services(conn, order.id)

        append_history(
            conn, order.id, editor_id, order.status, request.status,
            notes=f"[{mode}] {request.notes}" if request.notes else f"[{mode}]",
        )
        return warnings
