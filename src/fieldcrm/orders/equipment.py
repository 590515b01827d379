"""Equipment delta reconciliation for an order.

Compares the devices currently bound to an order with the submitted set,
validates every addition before writing anything, rolls removed devices
back through the ledger and binds the additions.
"""

import logging
from dataclasses import dataclass, field

from fieldcrm.config import Config
from fieldcrm.database.models import InventoryItem
from fieldcrm.errors import ConflictError, InternalError, NotFoundError
from fieldcrm.inventory.ledger import (
    apply_transition,
    get_items,
    last_entry_for_order,
    undo_entry,
)
from fieldcrm.orders.payloads import ReconcileContext

logger = logging.getLogger(__name__)


@dataclass
class EquipmentDelta:
    added: list[int] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)


def bound_device_ids(conn, order_id: int) -> set[int]:
    """Devices linked to the order and currently bound to it."""
    rows = conn.execute(
        "SELECT i.id FROM order_equipment_links l "
        "JOIN inventory_items i ON i.id = l.item_id "
        "WHERE l.order_id = ? AND i.item_kind = 'DEVICE' "
        "  AND i.status = 'ASSIGNED_TO_ORDER' AND i.order_id = ?",
        (order_id, order_id),
    ).fetchall()
    return {r["id"] for r in rows}


def link_item(conn, order_id: int, item_id: int):
    conn.execute(
        "INSERT OR IGNORE INTO order_equipment_links (order_id, item_id) "
        "VALUES (?, ?)",
        (order_id, item_id),
    )


def unlink_item(conn, order_id: int, item_id: int):
    conn.execute(
        "DELETE FROM order_equipment_links WHERE order_id = ? AND item_id = ?",
        (order_id, item_id),
    )


def _is_eligible(item: InventoryItem, ctx: ReconcileContext) -> bool:
    if not item.is_device:
        return False
    if ctx.is_admin:
        return True
    if item.status == "ASSIGNED" and item.technician_id is not None \
            and item.technician_id == ctx.technician_id:
        return True
    if item.status in ("ASSIGNED_TO_ORDER", "COLLECTED_FROM_CLIENT"):
        return True
    return item.category == Config.CATCH_ALL_DEVICE_CATEGORY


def validate_additions(conn, ctx: ReconcileContext,
                       added: list[int]) -> dict[int, InventoryItem]:
    """Check every added id; raise before any write on the first class
    of problem found."""
    found = get_items(conn, added)
    missing = [i for i in added if i not in found]
    if missing:
        raise NotFoundError(
            f"Devices not found: {', '.join(map(str, missing))}"
        )

    bound_elsewhere = [
        found[i] for i in added
        if found[i].status == "ASSIGNED_TO_ORDER"
        and found[i].order_id is not None
        and found[i].order_id != ctx.order_id
    ]
    if bound_elsewhere:
        raise ConflictError(
            "Some devices are already bound to another order",
            [f"{i.display_name} (id {i.id}) is on order {i.order_id}"
             for i in bound_elsewhere],
        )

    invalid = [found[i] for i in added if not _is_eligible(found[i], ctx)]
    if invalid:
        raise ConflictError(
            "Some devices cannot be installed on this order",
            [f"{i.display_name} (id {i.id}): status {i.status}, "
             f"held by {i.custodian}" for i in invalid],
        )
    return found


def _roll_back_binding(conn, ctx: ReconcileContext, item_id: int):
    entry = last_entry_for_order(
        conn, item_id, "ASSIGNED_TO_ORDER", ctx.order_id
    )
    if entry is None:
        raise InternalError(
            f"Device {item_id} is bound to order {ctx.order_id} "
            f"without a matching ledger entry"
        )
    unlink_item(conn, ctx.order_id, item_id)
    restored = undo_entry(conn, entry)
    if restored is None:
        return
    # A device collected on this same order keeps its traceability link
    if restored.status == "COLLECTED_FROM_CLIENT" and last_entry_for_order(
            conn, item_id, "COLLECTED_FROM_CLIENT", ctx.order_id):
        link_item(conn, ctx.order_id, item_id)


def reconcile_equipment(conn, ctx: ReconcileContext,
                        desired_ids: list[int]) -> EquipmentDelta:
    previous = bound_device_ids(conn, ctx.order_id)
    desired = list(dict.fromkeys(desired_ids))
    delta = EquipmentDelta(
        added=[i for i in desired if i not in previous],
        removed=sorted(previous - set(desired)),
    )

    items = validate_additions(conn, ctx, delta.added)

    for item_id in delta.removed:
        _roll_back_binding(conn, ctx, item_id)

    for item_id in delta.added:
        item = items[item_id]
        link_item(conn, ctx.order_id, item_id)
        apply_transition(
            conn, item, "ASSIGNED_TO_ORDER", ctx.editor_id,
            order_id=ctx.order_id,
            technician_id=ctx.technician_id,
            notes=f"Installed on order {ctx.order_id} ({ctx.mode})",
        )

    if delta.added or delta.removed:
        logger.info(
            f"Order {ctx.order_id} equipment: +{delta.added} "
            f"-{delta.removed}"
        )
    return delta
