"""Connection-level row lookups used inside engine transactions."""

from fieldcrm.database.models import Order, User, WarehouseLocation
from fieldcrm.errors import NotFoundError


def require_user(conn, user_id: int) -> User:
    row = conn.execute(
        "SELECT * FROM users WHERE id = ?", (user_id,)
    ).fetchone()
    if not row:
        raise NotFoundError(f"User {user_id} not found")
    return User(**dict(row))


def require_location(conn, location_id: int) -> WarehouseLocation:
    row = conn.execute(
        "SELECT * FROM warehouse_locations WHERE id = ?", (location_id,)
    ).fetchone()
    if not row:
        raise NotFoundError(f"Warehouse location {location_id} not found")
    return WarehouseLocation(**dict(row))


def require_order(conn, order_id: int) -> Order:
    row = conn.execute(
        "SELECT * FROM orders WHERE id = ?", (order_id,)
    ).fetchone()
    if not row:
        raise NotFoundError(f"Order {order_id} not found")
    return Order(**dict(row))
