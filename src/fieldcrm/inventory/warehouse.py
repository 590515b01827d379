"""Warehouse operations: intake, issue, returns and transfers.

Each public method is one transaction. Devices are validated as a batch
before the first write so a bad id never leaves half a batch moved.
"""

import logging
from typing import Optional

from fieldcrm.database.connection import DatabaseConnection
from fieldcrm.database.lookups import require_location, require_user
from fieldcrm.database.models import InventoryItem
from fieldcrm.errors import BadRequestError, ConflictError, NotFoundError
from fieldcrm.inventory.ledger import (
    apply_transition,
    create_item,
    find_item_by_serial,
    get_items,
)
from fieldcrm.inventory.stock import (
    get_location_lot,
    get_material_definition,
    get_technician_lot,
    new_lot,
)
from fieldcrm.utils.constants import DEVICE_CATEGORIES
from fieldcrm.utils.formatters import format_quantity, normalize_serial

logger = logging.getLogger(__name__)


def _load_devices(conn, item_ids: list[int],
                  allowed: dict) -> list[InventoryItem]:
    """Fetch devices and check each against ``allowed``.

    ``allowed`` maps an accepted status to a predicate on the item, or
    None to accept any item in that status.
    """
    if not item_ids:
        raise BadRequestError("No items given")
    found = get_items(conn, item_ids)
    missing = [i for i in item_ids if i not in found]
    if missing:
        raise NotFoundError(
            f"Inventory items not found: {', '.join(map(str, missing))}"
        )

    problems = []
    for item_id in dict.fromkeys(item_ids):
        item = found[item_id]
        if not item.is_device:
            problems.append(f"{item.display_name}: not a device")
            continue
        check = allowed.get(item.status, False)
        if check is False or (check is not None and not check(item)):
            problems.append(
                f"{item.display_name}: status {item.status}, "
                f"held by {item.custodian}"
            )
    if problems:
        raise ConflictError("Items cannot be moved", problems)
    return [found[i] for i in dict.fromkeys(item_ids)]


class WarehouseService:
    """Moves stock between warehouse locations and technicians."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Intake ──────────────────────────────────────────────────

    def receive_device(self, name: str, category: str,
                       serial_number: str, location_id: int,
                       actor_id: int, unit_price: float = 0.0,
                       notes: Optional[str] = None) -> int:
        """Register a new device at a warehouse location."""
        serial = normalize_serial(serial_number)
        if not serial:
            raise BadRequestError("Serial number is required for devices")
        category = (category or "OTHER").upper()
        if category not in DEVICE_CATEGORIES:
            raise BadRequestError(f"Unknown device category: {category}")

        with self.db.get_connection() as conn:
            require_location(conn, location_id)
            if find_item_by_serial(conn, serial):
                raise ConflictError(f"Serial {serial} is already registered")
            item = InventoryItem(
                item_kind="DEVICE", category=category, name=name,
                serial_number=serial, unit_price=unit_price,
            )
            create_item(conn, item)
            apply_transition(conn, item, "RECEIVED", actor_id,
                             location_id=location_id, notes=notes)
            logger.info(f"Received device {serial} at location {location_id}")
            return item.id

    def receive_material(self, material_id: int, location_id: int,
                         quantity: float, actor_id: int,
                         notes: Optional[str] = None) -> int:
        """Add stock to the location's lot of a material."""
        if quantity <= 0:
            raise BadRequestError("Quantity must be greater than zero")
        with self.db.get_connection() as conn:
            require_location(conn, location_id)
            material = get_material_definition(conn, material_id)
            lot = get_location_lot(conn, location_id, material_id)
            if lot is None:
                lot = new_lot(conn, material)
            apply_transition(conn, lot, "RECEIVED", actor_id,
                             location_id=location_id, quantity=quantity,
                             notes=notes)
            logger.info(
                f"Received {format_quantity(quantity)} x {material.name} "
                f"at location {location_id}"
            )
            return lot.id

    # ── Issue to technicians ────────────────────────────────────

    def issue_devices(self, item_ids: list[int], technician_id: int,
                      actor_id: int, notes: Optional[str] = None):
        with self.db.get_connection() as conn:
            require_user(conn, technician_id)
            devices = _load_devices(conn, item_ids, {"AVAILABLE": None})
            for item in devices:
                apply_transition(conn, item, "ISSUED", actor_id,
                                 technician_id=technician_id, notes=notes)
            logger.info(
                f"Issued {len(devices)} device(s) to technician "
                f"{technician_id}"
            )

    def issue_material(self, material_id: int, location_id: int,
                       technician_id: int, quantity: float,
                       actor_id: int, notes: Optional[str] = None):
        if quantity <= 0:
            raise BadRequestError("Quantity must be greater than zero")
        with self.db.get_connection() as conn:
            require_user(conn, technician_id)
            material = get_material_definition(conn, material_id)
            source = get_location_lot(conn, location_id, material_id)
            available = source.quantity if source else 0
            if available < quantity:
                raise BadRequestError(
                    f"Insufficient stock of {material.name}: have "
                    f"{format_quantity(available)}, need "
                    f"{format_quantity(quantity)}"
                )
            apply_transition(conn, source, "ISSUED", actor_id,
                             technician_id=technician_id,
                             quantity=-quantity, notes=notes)
            lot = get_technician_lot(conn, technician_id, material_id)
            if lot is None:
                lot = new_lot(conn, material)
            apply_transition(conn, lot, "ISSUED", actor_id,
                             technician_id=technician_id,
                             quantity=quantity, notes=notes)

    # ── Returns ─────────────────────────────────────────────────

    def return_devices(self, item_ids: list[int], location_id: int,
                       actor_id: int, notes: Optional[str] = None):
        """Take devices back from technicians.

        Stock devices become available again; client-collected devices
        wait in RETURNED until they go back to the operator.
        """
        with self.db.get_connection() as conn:
            require_location(conn, location_id)
            devices = _load_devices(conn, item_ids, {
                "ASSIGNED": None,
                "COLLECTED_FROM_CLIENT": None,
            })
            for item in devices:
                apply_transition(conn, item, "RETURNED", actor_id,
                                 location_id=location_id, notes=notes)

    def return_material(self, technician_id: int, material_id: int,
                        location_id: int, quantity: float,
                        actor_id: int, notes: Optional[str] = None):
        if quantity <= 0:
            raise BadRequestError("Quantity must be greater than zero")
        with self.db.get_connection() as conn:
            require_location(conn, location_id)
            material = get_material_definition(conn, material_id)
            lot = get_technician_lot(conn, technician_id, material_id)
            held = lot.quantity if lot else 0
            if held < quantity:
                raise BadRequestError(
                    f"Technician {technician_id} holds only "
                    f"{format_quantity(held)} of {material.name}"
                )
            apply_transition(conn, lot, "RETURNED", actor_id,
                             location_id=location_id, quantity=-quantity,
                             notes=notes)
            target = get_location_lot(conn, location_id, material_id)
            if target is None:
                target = new_lot(conn, material)
            apply_transition(conn, target, "RETURNED", actor_id,
                             location_id=location_id, quantity=quantity,
                             notes=notes)

    def return_to_operator(self, item_ids: list[int], actor_id: int,
                           notes: Optional[str] = None):
        """Ship devices back to the operator. This is terminal."""
        with self.db.get_connection() as conn:
            devices = _load_devices(conn, item_ids, {
                "AVAILABLE": None,
                "RETURNED": None,
                "COLLECTED_FROM_CLIENT": None,
            })
            for item in devices:
                apply_transition(conn, item, "RETURNED_TO_OPERATOR",
                                 actor_id, notes=notes)

    def return_material_to_operator(self, location_id: int,
                                    material_id: int, quantity: float,
                                    actor_id: int,
                                    notes: Optional[str] = None):
        if quantity <= 0:
            raise BadRequestError("Quantity must be greater than zero")
        with self.db.get_connection() as conn:
            lot = get_location_lot(conn, location_id, material_id)
            if lot is None or lot.quantity < quantity:
                raise BadRequestError("Invalid material quantity")
            apply_transition(conn, lot, "RETURNED_TO_OPERATOR", actor_id,
                             quantity=-quantity, notes=notes)

    # ── Transfers ───────────────────────────────────────────────

    def transfer_to_technician(self, item_ids: list[int],
                               from_technician_id: int,
                               to_technician_id: int, actor_id: int,
                               notes: Optional[str] = None):
        """Hand devices from one technician to another."""
        if from_technician_id == to_technician_id:
            raise BadRequestError("Cannot transfer to the same technician")
        with self.db.get_connection() as conn:
            require_user(conn, to_technician_id)
            devices = _load_devices(conn, item_ids, {
                "ASSIGNED": lambda i: i.technician_id == from_technician_id,
            })
            for item in devices:
                apply_transition(conn, item, "TRANSFER", actor_id,
                                 technician_id=to_technician_id, notes=notes)

    def transfer_to_location(self, item_ids: list[int],
                             to_location_id: int, actor_id: int,
                             notes: Optional[str] = None):
        """Send available devices to another location; in transit until
        received there."""
        with self.db.get_connection() as conn:
            require_location(conn, to_location_id)
            devices = _load_devices(conn, item_ids, {
                "AVAILABLE": lambda i: i.location_id != to_location_id,
            })
            for item in devices:
                apply_transition(conn, item, "TRANSFER", actor_id,
                                 location_id=to_location_id, notes=notes)

    def receive_location_transfer(self, item_ids: list[int],
                                  location_id: int, actor_id: int):
        with self.db.get_connection() as conn:
            devices = _load_devices(conn, item_ids, {
                "TRANSFER": lambda i: i.location_id == location_id,
            })
            for item in devices:
                apply_transition(conn, item, "RECEIVED", actor_id,
                                 location_id=location_id,
                                 notes="Location transfer received")
