"""Material usage reconciliation.

The technician's lot of each material moves by the difference between
the old and new usage on the order. Going below zero is allowed and is
reported back as a deficit warning.
"""

import logging

from fieldcrm.inventory.ledger import apply_transition
from fieldcrm.inventory.stock import (
    get_material_definition,
    get_technician_lot,
    new_lot,
)
from fieldcrm.orders.payloads import ReconcileContext, UsedMaterial
from fieldcrm.utils.formatters import format_quantity

logger = logging.getLogger(__name__)


def merge_usage(used: list[UsedMaterial]) -> dict[int, float]:
    """Sum duplicate material ids, dropping zero totals."""
    merged: dict[int, float] = {}
    for entry in used:
        merged[entry.material_id] = (
            merged.get(entry.material_id, 0) + entry.quantity
        )
    return {k: v for k, v in merged.items() if v > 0}


def current_usage(conn, order_id: int) -> dict[int, float]:
    rows = conn.execute(
        "SELECT material_definition_id, SUM(quantity) AS qty "
        "FROM order_material_usage WHERE order_id = ? "
        "GROUP BY material_definition_id",
        (order_id,),
    ).fetchall()
    return {r["material_definition_id"]: r["qty"] for r in rows}


def _rewrite_usage(conn, order_id: int, usage: dict[int, float]):
    conn.execute(
        "DELETE FROM order_material_usage WHERE order_id = ?", (order_id,)
    )
    for material_id, qty in usage.items():
        conn.execute(
            "INSERT INTO order_material_usage "
            "(order_id, material_definition_id, quantity) VALUES (?, ?, ?)",
            (order_id, material_id, qty),
        )


def reconcile_materials(conn, ctx: ReconcileContext,
                        used: list[UsedMaterial]) -> list[str]:
    """Apply usage deltas to technician stock; return deficit warnings."""
    new_usage = merge_usage(used)
    old_usage = current_usage(conn, ctx.order_id)

    definitions = {
        mid: get_material_definition(conn, mid)
        for mid in sorted(set(old_usage) | set(new_usage))
    }
    warnings = []

    if ctx.technician_id is None:
        _rewrite_usage(conn, ctx.order_id, new_usage)
        if new_usage or old_usage:
            warnings.append(
                "No technician is assigned to this order; material usage "
                "was saved without adjusting stock"
            )
        return warnings

    for material_id, material in definitions.items():
        delta = new_usage.get(material_id, 0) - old_usage.get(material_id, 0)
        if delta == 0:
            continue

        lot = get_technician_lot(conn, ctx.technician_id, material_id)
        if lot is None:
            lot = new_lot(conn, material)

        if delta > 0:
            apply_transition(
                conn, lot, "ASSIGNED_TO_ORDER", ctx.editor_id,
                technician_id=ctx.technician_id, order_id=ctx.order_id,
                quantity=-delta,
                notes=f"Used on order {ctx.order_id}",
            )
        else:
            apply_transition(
                conn, lot, "RETURNED_TO_TECHNICIAN", ctx.editor_id,
                technician_id=ctx.technician_id, order_id=ctx.order_id,
                quantity=-delta,
                notes=f"Usage reduced on order {ctx.order_id}",
            )

        if lot.quantity < 0:
            warnings.append(
                f"Material deficit: {material.name} balance for technician "
                f"{ctx.technician_id} is {format_quantity(lot.quantity)}"
            )
            logger.warning(
                f"Technician {ctx.technician_id} deficit on material "
                f"{material_id}: {lot.quantity}"
            )

    _rewrite_usage(conn, ctx.order_id, new_usage)
    return warnings
