"""Repository layer: catalog CRUD and read-side queries.

Custody changes never go through here; they belong to the inventory
ledger and the order engines.
"""

from typing import Optional

from fieldcrm.utils.formatters import normalize_key, normalize_serial

from .connection import DatabaseConnection
from .models import (
    InventoryItem,
    LedgerEntry,
    MaterialDefinition,
    MaterialUsage,
    Order,
    OrderHistory,
    OrderService,
    OrderServiceExtraDevice,
    SettlementEntry,
    User,
    WarehouseLocation,
)


class Repository:
    """Provides catalog maintenance and lookups for the application."""

    def __init__(self, db: DatabaseConnection):
        self.db = db

    # ── Users ────────────────────────────────────────────────────

    def create_user(self, user: User) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO users (username, display_name, role, is_active) "
                "VALUES (?, ?, ?, ?)",
                (user.username, user.display_name, user.role, user.is_active),
            )
            return cursor.lastrowid

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        rows = self.db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        return User(**dict(rows[0])) if rows else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        rows = self.db.execute(
            "SELECT * FROM users WHERE username = ?", (username,)
        )
        return User(**dict(rows[0])) if rows else None

    def get_all_users(self, active_only: bool = True) -> list[User]:
        sql = "SELECT * FROM users"
        if active_only:
            sql += " WHERE is_active = 1"
        rows = self.db.execute(sql + " ORDER BY display_name")
        return [User(**dict(r)) for r in rows]

    def get_technicians(self) -> list[User]:
        rows = self.db.execute(
            "SELECT * FROM users WHERE role = 'technician' AND is_active = 1 "
            "ORDER BY display_name"
        )
        return [User(**dict(r)) for r in rows]

    def update_user(self, user: User):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE users SET username = ?, display_name = ?, role = ?, "
                "is_active = ? WHERE id = ?",
                (user.username, user.display_name, user.role,
                 user.is_active, user.id),
            )

    def deactivate_user(self, user_id: int):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE users SET is_active = 0 WHERE id = ?", (user_id,)
            )

    # ── Warehouse locations ──────────────────────────────────────

    def create_location(self, location: WarehouseLocation) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO warehouse_locations (name, address) "
                "VALUES (?, ?)",
                (location.name, location.address),
            )
            return cursor.lastrowid

    def get_all_locations(self) -> list[WarehouseLocation]:
        rows = self.db.execute(
            "SELECT * FROM warehouse_locations ORDER BY name"
        )
        return [WarehouseLocation(**dict(r)) for r in rows]

    def get_location_by_id(self, location_id: int
                           ) -> Optional[WarehouseLocation]:
        rows = self.db.execute(
            "SELECT * FROM warehouse_locations WHERE id = ?", (location_id,)
        )
        return WarehouseLocation(**dict(rows[0])) if rows else None

    # ── Material catalog ─────────────────────────────────────────

    def create_material(self, material: MaterialDefinition) -> int:
        with self.db.get_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO material_definitions (name, unit, unit_price) "
                "VALUES (?, ?, ?)",
                (material.name, material.unit, material.unit_price),
            )
            return cursor.lastrowid

    def get_all_materials(self) -> list[MaterialDefinition]:
        rows = self.db.execute(
            "SELECT * FROM material_definitions ORDER BY name"
        )
        return [MaterialDefinition(**dict(r)) for r in rows]

    def get_material_by_id(self, material_id: int
                           ) -> Optional[MaterialDefinition]:
        rows = self.db.execute(
            "SELECT * FROM material_definitions WHERE id = ?", (material_id,)
        )
        return MaterialDefinition(**dict(rows[0])) if rows else None

    def update_material(self, material: MaterialDefinition):
        with self.db.get_connection() as conn:
            conn.execute(
                "UPDATE material_definitions SET name = ?, unit = ?, "
                "unit_price = ? WHERE id = ?",
                (material.name, material.unit, material.unit_price,
                 material.id),
            )

    # ── Inventory ────────────────────────────────────────────────

    def get_item_by_id(self, item_id: int) -> Optional[InventoryItem]:
        rows = self.db.execute(
            "SELECT * FROM inventory_items WHERE id = ?", (item_id,)
        )
        return InventoryItem(**dict(rows[0])) if rows else None

    def get_item_by_serial(self, serial: str) -> Optional[InventoryItem]:
        rows = self.db.execute(
            "SELECT * FROM inventory_items WHERE serial_number = ?",
            (normalize_serial(serial),),
        )
        return InventoryItem(**dict(rows[0])) if rows else None

    def get_items_by_status(self, status: str) -> list[InventoryItem]:
        rows = self.db.execute(
            "SELECT * FROM inventory_items WHERE status = ? ORDER BY id",
            (status,),
        )
        return [InventoryItem(**dict(r)) for r in rows]

    def get_technician_stock(self, technician_id: int) -> list[InventoryItem]:
        """Devices and material lots a technician currently holds."""
        rows = self.db.execute(
            "SELECT * FROM inventory_items WHERE technician_id = ? "
            "ORDER BY item_kind, name",
            (technician_id,),
        )
        return [InventoryItem(**dict(r)) for r in rows]

    def get_location_stock(self, location_id: int) -> list[InventoryItem]:
        rows = self.db.execute(
            "SELECT * FROM inventory_items WHERE location_id = ? "
            "ORDER BY item_kind, name",
            (location_id,),
        )
        return [InventoryItem(**dict(r)) for r in rows]

    def get_item_ledger(self, item_id: int) -> list[LedgerEntry]:
        rows = self.db.execute(
            "SELECT * FROM inventory_ledger WHERE item_id = ? "
            "ORDER BY performed_at, id",
            (item_id,),
        )
        return [LedgerEntry(**dict(r)) for r in rows]

    # ── Orders ───────────────────────────────────────────────────

    _ORDERS_SELECT = """
        SELECT o.*,
               COALESCE(u.display_name, '') AS technician_name
        FROM orders o
        LEFT JOIN users u ON o.technician_id = u.id
    """

    def get_order_by_id(self, order_id: int) -> Optional[Order]:
        rows = self.db.execute(
            f"{self._ORDERS_SELECT} WHERE o.id = ?", (order_id,)
        )
        return Order(**dict(rows[0])) if rows else None

    def get_orders_by_number(self, order_number: str) -> list[Order]:
        """Every attempt for an order number, oldest first."""
        rows = self.db.execute(
            f"{self._ORDERS_SELECT} WHERE o.order_number_key = ? "
            "ORDER BY o.attempt_number, o.id",
            (normalize_key(order_number),),
        )
        return [Order(**dict(r)) for r in rows]

    def get_orders(self, status: Optional[str] = None,
                   technician_id: Optional[int] = None) -> list[Order]:
        clauses, params = [], []
        if status:
            clauses.append("o.status = ?")
            params.append(status)
        if technician_id is not None:
            clauses.append("o.technician_id = ?")
            params.append(technician_id)
        sql = self._ORDERS_SELECT
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        rows = self.db.execute(
            sql + " ORDER BY o.scheduled_date, o.id", tuple(params)
        )
        return [Order(**dict(r)) for r in rows]

    def get_order_equipment(self, order_id: int) -> list[InventoryItem]:
        """Every linked device, installed or collected."""
        rows = self.db.execute(
            "SELECT i.* FROM order_equipment_links l "
            "JOIN inventory_items i ON i.id = l.item_id "
            "WHERE l.order_id = ? ORDER BY i.id",
            (order_id,),
        )
        return [InventoryItem(**dict(r)) for r in rows]

    def get_order_material_usage(self, order_id: int) -> list[MaterialUsage]:
        rows = self.db.execute(
            "SELECT u.*, m.name AS material_name "
            "FROM order_material_usage u "
            "JOIN material_definitions m ON m.id = u.material_definition_id "
            "WHERE u.order_id = ? ORDER BY m.name",
            (order_id,),
        )
        return [MaterialUsage(**dict(r)) for r in rows]

    def get_order_settlements(self, order_id: int) -> list[SettlementEntry]:
        rows = self.db.execute(
            "SELECT * FROM order_settlement_entries WHERE order_id = ? "
            "ORDER BY id",
            (order_id,),
        )
        return [SettlementEntry(**dict(r)) for r in rows]

    def get_order_services(self, order_id: int) -> list[OrderService]:
        rows = self.db.execute(
            "SELECT * FROM order_services WHERE order_id = ? ORDER BY id",
            (order_id,),
        )
        return [OrderService(**dict(r)) for r in rows]

    def get_service_extra_devices(self, service_id: int
                                  ) -> list[OrderServiceExtraDevice]:
        rows = self.db.execute(
            "SELECT * FROM order_service_extra_devices WHERE service_id = ? "
            "ORDER BY id",
            (service_id,),
        )
        return [OrderServiceExtraDevice(**dict(r)) for r in rows]

    def get_order_history(self, order_id: int) -> list[OrderHistory]:
        rows = self.db.execute(
            "SELECT * FROM order_history WHERE order_id = ? "
            "ORDER BY changed_at, id",
            (order_id,),
        )
        return [OrderHistory(**dict(r)) for r in rows]
