"""Measured service lines recorded on a completed order."""

from typing import Optional

from fieldcrm.inventory.ledger import find_item_by_serial
from fieldcrm.orders.payloads import ReconcileContext, ServiceLine
from fieldcrm.utils.formatters import normalize_serial


def resolve_device_category(conn, item_id: Optional[int]) -> Optional[str]:
    """Category of an inventory device, or None when unknown."""
    if item_id is None:
        return None
    row = conn.execute(
        "SELECT category FROM inventory_items WHERE id = ?", (item_id,)
    ).fetchone()
    return row["category"] if row else None


def _item_exists(conn, item_id: Optional[int]) -> Optional[int]:
    # Service rows keep the id only while the item still exists
    if item_id is None:
        return None
    row = conn.execute(
        "SELECT id FROM inventory_items WHERE id = ?", (item_id,)
    ).fetchone()
    return item_id if row else None


def stock_extra_device_ids(conn, ctx: ReconcileContext,
                           services: list[ServiceLine]) -> list[int]:
    """Extra devices taken from stock, to be bound to the order.

    Lines without an item id are matched by serial against the
    technician's stock, or against devices already on this order.
    """
    ids = []
    for line in services:
        for extra in line.extra_devices:
            if extra.source != "WAREHOUSE":
                continue
            if extra.item_id is not None:
                ids.append(extra.item_id)
                continue
            serial = normalize_serial(extra.serial_number)
            item = find_item_by_serial(conn, serial) if serial else None
            if item is None or not item.is_device:
                continue
            held = item.status == "ASSIGNED" \
                and item.technician_id is not None \
                and item.technician_id == ctx.technician_id
            bound_here = item.status == "ASSIGNED_TO_ORDER" \
                and item.order_id == ctx.order_id
            if held or bound_here:
                ids.append(item.id)
    return ids


def delete_services(conn, order_id: int):
    conn.execute("DELETE FROM order_services WHERE order_id = ?", (order_id,))


def replace_services(conn, order_id: int, services: list[ServiceLine]):
    """Delete the order's service rows and write the submitted ones.

    The first device's category comes from the warehouse record when it
    was taken from stock, or from the technician's input when it belongs
    to the client. The second device always comes from stock.
    """
    delete_services(conn, order_id)

    for line in services:
        if line.device_source == "CLIENT":
            device_category = (line.device_category or "").upper() or None
            device_id = None
        else:
            device_id = _item_exists(conn, line.device_id)
            device_category = resolve_device_category(conn, device_id)
        device2_id = _item_exists(conn, line.device2_id)

        cursor = conn.execute(
            "INSERT INTO order_services "
            "(order_id, service_type, device_id, device_name, device_serial, "
            " device_category, device_source, device2_id, device2_name, "
            " device2_serial, device2_category, speed_test, us_dbm_down, "
            " us_dbm_up, notes) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (order_id, line.service_type, device_id, line.device_name,
             normalize_serial(line.serial_number), device_category,
             line.device_source, device2_id, line.device2_name,
             normalize_serial(line.serial_number2),
             resolve_device_category(conn, device2_id),
             line.speed_test, line.us_dbm_down, line.us_dbm_up, line.notes),
        )
        service_id = cursor.lastrowid

        for extra in line.extra_devices:
            if extra.source == "WAREHOUSE":
                item_id = _item_exists(conn, extra.item_id)
                category = (
                    resolve_device_category(conn, item_id) or extra.category
                )
            else:
                item_id = None
                category = extra.category
            conn.execute(
                "INSERT INTO order_service_extra_devices "
                "(service_id, item_id, name, serial_number, category, source) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (service_id, item_id, extra.name,
                 normalize_serial(extra.serial_number),
                 category.upper() if category else None, extra.source),
            )
