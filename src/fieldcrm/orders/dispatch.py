"""Order creation, editing and the attempt chain.

A logical job is identified by its order number plus address. Each visit
is its own row; a new visit after a failed one links back to it through
``previous_order_id`` and increments ``attempt_number``.
"""

import logging
from typing import Optional

from fieldcrm.database.connection import DatabaseConnection
from fieldcrm.database.lookups import require_order, require_user
from fieldcrm.errors import (
    ActiveOrderExistsError,
    BadRequestError,
    FieldCrmError,
    OrderAlreadyCompletedError,
)
from fieldcrm.io.validators import validate_order_input, validate_order_row
from fieldcrm.orders.history import append_history
from fieldcrm.orders.payloads import ImportSummary, OrderInput
from fieldcrm.utils.formatters import cell_text, normalize_key
from fieldcrm.utils.geocode import Geocoder, NominatimGeocoder

logger = logging.getLogger(__name__)


# ── Attempt chain ───────────────────────────────────────────────

def find_open_attempt(conn, number_key: str,
                      exclude_id: Optional[int] = None) -> Optional[int]:
    row = conn.execute(
        "SELECT id FROM orders WHERE order_number_key = ? "
        "  AND status IN ('PENDING', 'ASSIGNED') AND id != ? "
        "ORDER BY id DESC LIMIT 1",
        (number_key, exclude_id or 0),
    ).fetchone()
    return row["id"] if row else None


def find_completed_attempt(conn, number_key: str) -> Optional[int]:
    row = conn.execute(
        "SELECT id FROM orders WHERE order_number_key = ? "
        "  AND status = 'COMPLETED' "
        "ORDER BY id DESC LIMIT 1",
        (number_key,),
    ).fetchone()
    return row["id"] if row else None


def find_previous_attempt(conn, number_key: str, city_key: str,
                          street_key: str,
                          before_id: Optional[int] = None
                          ) -> tuple[int, Optional[int]]:
    """Return ``(attempt_number, previous_order_id)`` for a new row.

    Only failed visits at the same address continue a chain.
    """
    sql = (
        "SELECT id, attempt_number FROM orders "
        "WHERE order_number_key = ? AND city_key = ? AND street_key = ? "
        "  AND status = 'NOT_COMPLETED'"
    )
    params = [number_key, city_key, street_key]
    if before_id is not None:
        sql += " AND id < ?"
        params.append(before_id)
    row = conn.execute(
        sql + " ORDER BY attempt_number DESC, id DESC LIMIT 1", tuple(params)
    ).fetchone()
    if row is None:
        return 1, None
    return row["attempt_number"] + 1, row["id"]


def resolve_attempt(conn, number_key: str, city_key: str,
                    street_key: str) -> tuple[int, Optional[int]]:
    """Decide where a newly created order sits in its chain."""
    open_id = find_open_attempt(conn, number_key)
    if open_id is not None:
        raise ActiveOrderExistsError(
            f"Order {number_key} already has an active attempt "
            f"(order {open_id})"
        )
    done_id = find_completed_attempt(conn, number_key)
    if done_id is not None:
        raise OrderAlreadyCompletedError(
            f"Order {number_key} was already completed (order {done_id})"
        )
    return find_previous_attempt(conn, number_key, city_key, street_key)


def _keys(data: OrderInput) -> tuple[str, str, str]:
    return (
        normalize_key(data.order_number),
        normalize_key(data.city),
        normalize_key(data.street),
    )


def _row_to_input(row: dict) -> OrderInput:
    tech = cell_text(row.get("technician_id"))
    return OrderInput(
        order_number=cell_text(row.get("order_number")),
        order_type=cell_text(row.get("order_type")).upper(),
        city=cell_text(row.get("city")),
        street=cell_text(row.get("street")),
        operator=cell_text(row.get("operator")) or None,
        client_id=cell_text(row.get("client_id")) or None,
        postal_code=cell_text(row.get("postal_code")) or None,
        scheduled_date=cell_text(row.get("scheduled_date")) or None,
        time_slot=cell_text(row.get("time_slot")) or None,
        technician_id=int(tech) if tech else None,
        notes=cell_text(row.get("notes")) or None,
    )


class OrderDispatchService:
    """Creates and edits order rows; geocodes them after commit."""

    def __init__(self, db: DatabaseConnection,
                 geocoder: Optional[Geocoder] = None):
        self.db = db
        self.geocoder = geocoder if geocoder is not None else NominatimGeocoder()

    # ── Create ──────────────────────────────────────────────────

    def create_order(self, data: OrderInput, actor_id: Optional[int]) -> int:
        errors = validate_order_input(data)
        if errors:
            raise BadRequestError("Invalid order", errors)
        number_key, city_key, street_key = _keys(data)

        with self.db.get_connection(immediate=True) as conn:
            if data.technician_id is not None:
                require_user(conn, data.technician_id)
            attempt, previous_id = resolve_attempt(
                conn, number_key, city_key, street_key
            )
            status = "ASSIGNED" if data.technician_id else "PENDING"
            cursor = conn.execute(
                "INSERT INTO orders "
                "(order_number, order_number_key, order_type, operator, "
                " client_id, city, city_key, street, street_key, postal_code, "
                " scheduled_date, time_slot, status, technician_id, notes, "
                " attempt_number, previous_order_id) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (data.order_number.strip(), number_key,
                 data.order_type.upper(), data.operator, data.client_id,
                 data.city.strip(), city_key, data.street.strip(), street_key,
                 data.postal_code, data.scheduled_date, data.time_slot,
                 status, data.technician_id, data.notes,
                 attempt, previous_id),
            )
            order_id = cursor.lastrowid
            append_history(conn, order_id, actor_id, None, status,
                           "Order created")

        if attempt > 1:
            logger.info(
                f"Order {data.order_number} attempt {attempt} "
                f"follows order {previous_id}"
            )
        self._geocode(order_id, data.street, data.city)
        return order_id

    # ── Edit ────────────────────────────────────────────────────

    def edit_order(self, order_id: int, data: OrderInput,
                   actor_id: Optional[int]):
        errors = validate_order_input(data)
        if errors:
            raise BadRequestError("Invalid order", errors)
        number_key, city_key, street_key = _keys(data)

        with self.db.get_connection(immediate=True) as conn:
            order = require_order(conn, order_id)
            number_changed = number_key != order.order_number_key
            if order.is_open or number_changed:
                clash = find_open_attempt(conn, number_key,
                                          exclude_id=order_id)
                if clash is not None:
                    raise ActiveOrderExistsError(
                        f"Order {data.order_number} already has an active "
                        f"attempt (order {clash})"
                    )
            if number_changed:
                done_id = find_completed_attempt(conn, number_key)
                if done_id is not None:
                    raise OrderAlreadyCompletedError(
                        f"Order {data.order_number} was already completed "
                        f"(order {done_id})"
                    )
            if data.technician_id is not None:
                require_user(conn, data.technician_id)

            address_changed = (city_key, street_key) != (
                order.city_key, order.street_key
            )
            attempt, previous_id = order.attempt_number, order.previous_order_id
            if address_changed or number_changed:
                attempt, previous_id = find_previous_attempt(
                    conn, number_key, city_key, street_key, before_id=order_id
                )

            status = order.status
            if order.is_open:
                status = "ASSIGNED" if data.technician_id else "PENDING"

            conn.execute(
                "UPDATE orders SET order_number = ?, order_number_key = ?, "
                "order_type = ?, operator = ?, client_id = ?, city = ?, "
                "city_key = ?, street = ?, street_key = ?, postal_code = ?, "
                "scheduled_date = ?, time_slot = ?, status = ?, "
                "technician_id = ?, notes = ?, attempt_number = ?, "
                "previous_order_id = ?, version = version + 1 WHERE id = ?",
                (data.order_number.strip(), number_key,
                 data.order_type.upper(), data.operator, data.client_id,
                 data.city.strip(), city_key, data.street.strip(), street_key,
                 data.postal_code, data.scheduled_date, data.time_slot,
                 status, data.technician_id, data.notes,
                 attempt, previous_id, order_id),
            )
            if address_changed:
                conn.execute(
                    "UPDATE orders SET lat = NULL, lng = NULL WHERE id = ?",
                    (order_id,),
                )
            if status != order.status:
                append_history(conn, order_id, actor_id, order.status,
                               status, "Order edited")

        if address_changed:
            self._geocode(order_id, data.street, data.city)

    def assign_technician(self, order_id: int,
                          technician_id: Optional[int],
                          actor_id: Optional[int]):
        """Assign or unassign (``None``) the technician of an open order."""
        with self.db.get_connection() as conn:
            order = require_order(conn, order_id)
            if not order.is_open:
                raise BadRequestError(
                    f"Order {order.order_number} is closed and cannot be "
                    f"reassigned"
                )
            if technician_id is not None:
                require_user(conn, technician_id)
            status = "ASSIGNED" if technician_id else "PENDING"
            conn.execute(
                "UPDATE orders SET technician_id = ?, status = ?, "
                "version = version + 1 WHERE id = ?",
                (technician_id, status, order_id),
            )
            if status != order.status:
                append_history(conn, order_id, actor_id, order.status,
                               status, "Technician changed")

        if order.lat is None or order.lng is None:
            self._geocode(order_id, order.street, order.city)

    def delete_order(self, order_id: int):
        with self.db.get_connection() as conn:
            order = require_order(conn, order_id)
            if not order.is_open:
                raise BadRequestError(
                    f"Order {order.order_number} is {order.status} and "
                    f"cannot be deleted"
                )
            conn.execute("DELETE FROM orders WHERE id = ?", (order_id,))
        logger.info(f"Deleted order {order.order_number} (id {order_id})")

    # ── Bulk import ─────────────────────────────────────────────

    def bulk_import_orders(self, rows: list[dict],
                           actor_id: Optional[int]) -> ImportSummary:
        """Create orders row by row; each row commits on its own."""
        summary = ImportSummary()
        for row_num, row in enumerate(rows, start=1):
            try:
                errors = validate_order_row(row, row_num)
                if errors:
                    summary.errors += 1
                    summary.error_messages.extend(errors)
                    continue
                self.create_order(_row_to_input(row), actor_id)
            except ActiveOrderExistsError:
                summary.skipped_active += 1
            except OrderAlreadyCompletedError:
                summary.skipped_completed += 1
            except FieldCrmError as e:
                summary.errors += 1
                summary.error_messages.append(f"Row {row_num}: {e.message}")
            except Exception as e:
                logger.exception(f"Import row {row_num} failed")
                summary.errors += 1
                summary.error_messages.append(f"Row {row_num}: {e}")
            else:
                summary.added += 1

        logger.info(
            f"Import finished: {summary.added} added, "
            f"{summary.skipped_active} active, "
            f"{summary.skipped_completed} completed, {summary.errors} errors"
        )
        return summary

    # ── Geocoding ───────────────────────────────────────────────

    def _geocode(self, order_id: int, street: str, city: str):
        coords = self.geocoder.geocode_address(street, city)
        if coords is None:
            logger.info(f"No coordinates for order {order_id} ({street}, {city})")
            return
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE orders SET lat = ?, lng = ? WHERE id = ?",
                (coords.lat, coords.lng, order_id),
            )
