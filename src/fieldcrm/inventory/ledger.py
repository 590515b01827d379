"""Inventory ledger and the item state projection built from it.

Every custody change is one row in ``inventory_ledger``. The status and
custody columns of ``inventory_items`` are a cache of ``replay()`` over
that item's entries, and are written only by ``apply_transition`` and
``undo_entry`` in this module.

All functions take an open sqlite3 connection so callers can compose
them inside a single transaction.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from fieldcrm.database.models import InventoryItem, LedgerEntry
from fieldcrm.errors import InternalError, NotFoundError
from fieldcrm.utils.constants import LEDGER_ACTIONS
from fieldcrm.utils.formatters import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemState:
    status: str
    technician_id: Optional[int] = None
    location_id: Optional[int] = None
    order_id: Optional[int] = None
    quantity: float = 1


# ── Item reads ──────────────────────────────────────────────────

def get_item(conn, item_id: int) -> Optional[InventoryItem]:
    row = conn.execute(
        "SELECT * FROM inventory_items WHERE id = ?", (item_id,)
    ).fetchone()
    return InventoryItem(**dict(row)) if row else None


def require_item(conn, item_id: int) -> InventoryItem:
    item = get_item(conn, item_id)
    if item is None:
        raise NotFoundError(f"Inventory item {item_id} not found")
    return item


def get_items(conn, item_ids: Iterable[int]) -> dict[int, InventoryItem]:
    ids = sorted(set(item_ids))
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    rows = conn.execute(
        f"SELECT * FROM inventory_items WHERE id IN ({placeholders})",
        tuple(ids),
    ).fetchall()
    return {r["id"]: InventoryItem(**dict(r)) for r in rows}


def find_item_by_serial(conn, serial: str) -> Optional[InventoryItem]:
    row = conn.execute(
        "SELECT * FROM inventory_items WHERE serial_number = ?", (serial,)
    ).fetchone()
    return InventoryItem(**dict(row)) if row else None


def create_item(conn, item: InventoryItem) -> int:
    """Insert a bare item row.

    The row has no custody until its first ``apply_transition`` call,
    which must happen in the same transaction.
    """
    cursor = conn.execute(
        "INSERT INTO inventory_items "
        "(item_kind, category, name, serial_number, material_definition_id, "
        " quantity, unit_price, status) "
        "VALUES (?, ?, ?, ?, ?, 0, ?, 'AVAILABLE')",
        (item.item_kind, item.category, item.name, item.serial_number,
         item.material_definition_id, item.unit_price),
    )
    item.id = cursor.lastrowid
    item.quantity = 0
    return item.id


def update_item_details(conn, item: InventoryItem):
    """Update descriptive fields only; custody is never touched here."""
    conn.execute(
        "UPDATE inventory_items SET name = ?, category = ?, unit_price = ? "
        "WHERE id = ?",
        (item.name, item.category, item.unit_price, item.id),
    )


# ── Ledger reads ────────────────────────────────────────────────

def get_ledger(conn, item_id: int) -> list[LedgerEntry]:
    """All entries for one item in replay order."""
    rows = conn.execute(
        "SELECT * FROM inventory_ledger WHERE item_id = ? "
        "ORDER BY performed_at, id",
        (item_id,),
    ).fetchall()
    return [LedgerEntry(**dict(r)) for r in rows]


def last_entry_before(conn, item_id: int, timestamp: str,
                      excluding: Optional[int] = None
                      ) -> Optional[LedgerEntry]:
    """The entry immediately preceding ``timestamp`` in replay order.

    When ``excluding`` names an entry at that same timestamp, entries
    sharing the timestamp but written earlier still count as preceding.
    """
    if excluding is None:
        row = conn.execute(
            "SELECT * FROM inventory_ledger "
            "WHERE item_id = ? AND performed_at < ? "
            "ORDER BY performed_at DESC, id DESC LIMIT 1",
            (item_id, timestamp),
        ).fetchone()
    else:
        row = conn.execute(
            "SELECT * FROM inventory_ledger "
            "WHERE item_id = ? AND id != ? "
            "  AND (performed_at < ? OR (performed_at = ? AND id < ?)) "
            "ORDER BY performed_at DESC, id DESC LIMIT 1",
            (item_id, excluding, timestamp, timestamp, excluding),
        ).fetchone()
    return LedgerEntry(**dict(row)) if row else None


def last_entry_for_order(conn, item_id: int, action: str,
                         order_id: int) -> Optional[LedgerEntry]:
    row = conn.execute(
        "SELECT * FROM inventory_ledger "
        "WHERE item_id = ? AND action = ? AND target_order_id = ? "
        "ORDER BY performed_at DESC, id DESC LIMIT 1",
        (item_id, action, order_id),
    ).fetchone()
    return LedgerEntry(**dict(row)) if row else None


# ── State machine ───────────────────────────────────────────────

def _device_state(entry: LedgerEntry,
                  current: Optional[ItemState]) -> ItemState:
    action = entry.action
    if action == "RETURNED" and current is not None \
            and current.status == "COLLECTED_FROM_CLIENT":
        # Client hardware waits at the warehouse for the operator
        return ItemState("RETURNED", location_id=entry.target_location_id)
    if action in ("RECEIVED", "RETURNED"):
        return ItemState("AVAILABLE", location_id=entry.target_location_id)
    if action in ("ISSUED", "RETURNED_TO_TECHNICIAN"):
        return ItemState("ASSIGNED", technician_id=entry.target_technician_id)
    if action == "ASSIGNED_TO_ORDER":
        return ItemState("ASSIGNED_TO_ORDER", order_id=entry.target_order_id)
    if action == "COLLECTED_FROM_CLIENT":
        return ItemState(
            "COLLECTED_FROM_CLIENT", technician_id=entry.target_technician_id
        )
    if action == "RETURNED_TO_OPERATOR":
        return ItemState("RETURNED_TO_OPERATOR")
    if action == "TRANSFER":
        if entry.target_technician_id is not None:
            return ItemState(
                "ASSIGNED", technician_id=entry.target_technician_id
            )
        return ItemState("TRANSFER", location_id=entry.target_location_id)
    raise ValueError(f"Unknown ledger action: {action}")


def _material_state(entry: LedgerEntry,
                    current: Optional[ItemState]) -> ItemState:
    delta = entry.quantity or 0
    if current is None:
        # The first entry fixes which lot this is
        if entry.target_technician_id is not None:
            return ItemState(
                "ASSIGNED", technician_id=entry.target_technician_id,
                quantity=delta,
            )
        return ItemState(
            "AVAILABLE", location_id=entry.target_location_id,
            quantity=delta,
        )
    return ItemState(
        current.status,
        technician_id=current.technician_id,
        location_id=current.location_id,
        quantity=current.quantity + delta,
    )


def next_state(item_kind: str, entry: LedgerEntry,
               current: Optional[ItemState]) -> ItemState:
    """Resulting state after one ledger entry."""
    if item_kind == "MATERIAL":
        return _material_state(entry, current)
    return _device_state(entry, current)


def replay(entries: Iterable[LedgerEntry],
           item_kind: str = "DEVICE") -> Optional[ItemState]:
    """Fold ordered entries into the item's current state."""
    state = None
    for entry in entries:
        state = next_state(item_kind, entry, state)
    return state


def state_of(item: InventoryItem) -> ItemState:
    return ItemState(
        item.status,
        technician_id=item.technician_id,
        location_id=item.location_id,
        order_id=item.order_id,
        quantity=item.quantity,
    )


def _write_projection(conn, item: InventoryItem, state: ItemState):
    conn.execute(
        "UPDATE inventory_items SET status = ?, technician_id = ?, "
        "location_id = ?, order_id = ?, quantity = ? WHERE id = ?",
        (state.status, state.technician_id, state.location_id,
         state.order_id, state.quantity, item.id),
    )
    item.status = state.status
    item.technician_id = state.technician_id
    item.location_id = state.location_id
    item.order_id = state.order_id
    item.quantity = state.quantity


def apply_transition(conn, item: InventoryItem, action: str,
                     actor: Optional[int], *,
                     technician_id: Optional[int] = None,
                     order_id: Optional[int] = None,
                     location_id: Optional[int] = None,
                     quantity: Optional[float] = None,
                     notes: Optional[str] = None) -> LedgerEntry:
    """Record one transition and move the item to its resulting state.

    ``item`` is updated in place. For materials ``quantity`` is the
    signed change to the lot.
    """
    if action not in LEDGER_ACTIONS:
        raise ValueError(f"Unknown ledger action: {action}")
    if item.id is None:
        raise ValueError("Cannot transition an unsaved item")
    if action == "TRANSFER" and technician_id is None and location_id is None:
        raise ValueError("TRANSFER needs a target technician or location")

    entry = LedgerEntry(
        item_id=item.id,
        action=action,
        performed_by=actor,
        performed_at=utc_now_iso(),
        target_technician_id=technician_id,
        target_order_id=order_id,
        target_location_id=location_id,
        quantity=quantity if item.item_kind == "MATERIAL" else None,
        notes=notes,
    )
    has_history = conn.execute(
        "SELECT 1 FROM inventory_ledger WHERE item_id = ? LIMIT 1",
        (item.id,),
    ).fetchone()
    # Read the stored row; the caller's copy may be stale
    current = state_of(require_item(conn, item.id)) if has_history else None

    cursor = conn.execute(
        "INSERT INTO inventory_ledger "
        "(item_id, action, performed_by, performed_at, target_technician_id, "
        " target_order_id, target_location_id, quantity, notes) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (entry.item_id, entry.action, entry.performed_by, entry.performed_at,
         entry.target_technician_id, entry.target_order_id,
         entry.target_location_id, entry.quantity, entry.notes),
    )
    entry.id = cursor.lastrowid

    _write_projection(conn, item, next_state(item.item_kind, entry, current))
    logger.debug(
        f"Item {item.id} {action} -> {item.status} ({item.custodian})"
    )
    return entry


def undo_entry(conn, entry: LedgerEntry) -> Optional[InventoryItem]:
    """Remove one mis-recorded entry and rebuild the item from the rest.

    This is the only deletion of a single ledger row. Returns the
    restored item, or None when no history was left and the item was
    purged with it.
    """
    item = require_item(conn, entry.item_id)
    prior = last_entry_before(
        conn, entry.item_id, entry.performed_at, excluding=entry.id
    )
    deleted = conn.execute(
        "DELETE FROM inventory_ledger WHERE id = ?", (entry.id,)
    ).rowcount
    if deleted != 1:
        raise InternalError(
            f"Ledger entry {entry.id} for item {entry.item_id} vanished "
            f"during rollback"
        )

    remaining = get_ledger(conn, entry.item_id)
    if not remaining:
        purge_item(conn, entry.item_id)
        logger.info(
            f"Item {entry.item_id} had no history before {entry.action}; "
            f"purged"
        )
        return None

    _write_projection(conn, item, replay(remaining, item.item_kind))
    logger.info(
        f"Undid {entry.action} on item {item.id}; restored from "
        f"{prior.action if prior else 'later history'} to {item.status}"
    )
    return item


def purge_item(conn, item_id: int):
    """Hard-delete an item with its ledger and order links."""
    conn.execute("DELETE FROM order_equipment_links WHERE item_id = ?",
                 (item_id,))
    conn.execute("DELETE FROM inventory_ledger WHERE item_id = ?",
                 (item_id,))
    conn.execute("DELETE FROM inventory_items WHERE id = ?", (item_id,))


def verify_projection(conn, item_id: int) -> bool:
    """True when the stored state equals a fresh replay of the ledger."""
    item = require_item(conn, item_id)
    replayed = replay(get_ledger(conn, item_id), item.item_kind)
    if replayed is None:
        return False
    return replayed == state_of(item)
