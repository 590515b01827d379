"""Devices recovered from a client during a visit.

Matching is by normalized serial. All retractions run before any
collection is recorded, so a serial dropped and re-added in the same
submission is handled as a swap and never races itself.
"""

import logging
from typing import Optional

from fieldcrm.database.models import InventoryItem
from fieldcrm.errors import ConflictError, InternalError
from fieldcrm.inventory.ledger import (
    apply_transition,
    create_item,
    find_item_by_serial,
    last_entry_for_order,
    undo_entry,
    update_item_details,
)
from fieldcrm.orders.equipment import link_item, unlink_item
from fieldcrm.orders.payloads import CollectedDevice, ReconcileContext
from fieldcrm.utils.formatters import normalize_serial

logger = logging.getLogger(__name__)


def collected_items(conn, order_id: int) -> list[InventoryItem]:
    rows = conn.execute(
        "SELECT i.* FROM order_equipment_links l "
        "JOIN inventory_items i ON i.id = l.item_id "
        "WHERE l.order_id = ? AND i.item_kind = 'DEVICE' "
        "  AND i.status = 'COLLECTED_FROM_CLIENT' "
        "ORDER BY i.id",
        (order_id,),
    ).fetchall()
    return [InventoryItem(**dict(r)) for r in rows]


def _retract(conn, ctx: ReconcileContext, item: InventoryItem):
    entry = last_entry_for_order(
        conn, item.id, "COLLECTED_FROM_CLIENT", ctx.order_id
    )
    if entry is None:
        raise InternalError(
            f"Device {item.id} is collected on order {ctx.order_id} "
            f"without a matching ledger entry"
        )
    unlink_item(conn, ctx.order_id, item.id)
    restored = undo_entry(conn, entry)
    if restored is None:
        logger.info(f"Retracted synthetic collection of item {item.id}")


def _collect(conn, ctx: ReconcileContext, item: InventoryItem,
             collector_id: int):
    link_item(conn, ctx.order_id, item.id)
    apply_transition(
        conn, item, "COLLECTED_FROM_CLIENT", ctx.editor_id,
        technician_id=collector_id, order_id=ctx.order_id,
        notes="Device picked up from client",
    )


def _new_device(conn, device: CollectedDevice,
                serial: Optional[str]) -> InventoryItem:
    item = InventoryItem(
        item_kind="DEVICE",
        category=(device.category or "OTHER").upper(),
        name=device.name,
        serial_number=serial,
        unit_price=device.unit_price or 0.0,
    )
    create_item(conn, item)
    return item


def sync_collected_devices(conn, ctx: ReconcileContext,
                           devices: list[CollectedDevice]) -> list[str]:
    collector_id = ctx.technician_id or ctx.editor_id
    warnings = []

    by_serial: dict[str, CollectedDevice] = {}
    unserialized = []
    for device in devices:
        serial = normalize_serial(device.serial_number)
        if serial:
            by_serial[serial] = device
        else:
            unserialized.append(device)

    kept = {}
    for item in collected_items(conn, ctx.order_id):
        if item.serial_number and item.serial_number in by_serial:
            kept[item.serial_number] = item
        else:
            _retract(conn, ctx, item)

    for serial, device in by_serial.items():
        category = (device.category or "OTHER").upper()
        if serial in kept:
            item = kept[serial]
            item.name = device.name
            item.category = category
            update_item_details(conn, item)
            continue

        existing = find_item_by_serial(conn, serial)
        if existing is None:
            _collect(conn, ctx, _new_device(conn, device, serial),
                     collector_id)
            continue

        if not existing.is_device:
            raise ConflictError(f"Serial {serial} belongs to a material lot")
        if existing.status == "ASSIGNED_TO_ORDER" \
                and existing.order_id == ctx.order_id:
            raise ConflictError(
                f"Device {serial} is installed on this order and cannot "
                f"also be collected from the client"
            )
        if existing.status == "ASSIGNED_TO_ORDER":
            warnings.append(
                f"Device {serial} was installed on order "
                f"{existing.order_id}; recorded as collected here"
            )
        existing.name = device.name
        existing.category = category
        update_item_details(conn, existing)
        _collect(conn, ctx, existing, collector_id)

    for device in unserialized:
        _collect(conn, ctx, _new_device(conn, device, None), collector_id)

    return warnings
