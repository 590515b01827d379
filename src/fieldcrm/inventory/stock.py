"""Material lot lookups.

A warehouse location holds one lot per material definition, and so does
each technician. Lots are created lazily; the first ledger entry written
against a new lot decides who holds it.
"""

from typing import Optional

from fieldcrm.database.models import InventoryItem, MaterialDefinition
from fieldcrm.errors import NotFoundError
from fieldcrm.inventory.ledger import create_item


def get_material_definition(conn, material_id: int) -> MaterialDefinition:
    row = conn.execute(
        "SELECT * FROM material_definitions WHERE id = ?", (material_id,)
    ).fetchone()
    if not row:
        raise NotFoundError(f"Material definition {material_id} not found")
    return MaterialDefinition(**dict(row))


def get_technician_lot(conn, technician_id: int,
                       material_id: int) -> Optional[InventoryItem]:
    row = conn.execute(
        "SELECT * FROM inventory_items "
        "WHERE item_kind = 'MATERIAL' AND material_definition_id = ? "
        "  AND technician_id = ? "
        "ORDER BY id LIMIT 1",
        (material_id, technician_id),
    ).fetchone()
    return InventoryItem(**dict(row)) if row else None


def get_location_lot(conn, location_id: int,
                     material_id: int) -> Optional[InventoryItem]:
    row = conn.execute(
        "SELECT * FROM inventory_items "
        "WHERE item_kind = 'MATERIAL' AND material_definition_id = ? "
        "  AND location_id = ? "
        "ORDER BY id LIMIT 1",
        (material_id, location_id),
    ).fetchone()
    return InventoryItem(**dict(row)) if row else None


def new_lot(conn, material: MaterialDefinition) -> InventoryItem:
    """Insert an empty lot row; its first transition sets the holder."""
    lot = InventoryItem(
        item_kind="MATERIAL",
        name=material.name,
        material_definition_id=material.id,
        unit_price=material.unit_price,
    )
    create_item(conn, lot)
    return lot


def technician_balance(conn, technician_id: int, material_id: int) -> float:
    lot = get_technician_lot(conn, technician_id, material_id)
    return lot.quantity if lot else 0
