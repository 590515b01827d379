"""Order status audit trail."""

from typing import Optional

from fieldcrm.utils.formatters import utc_now_iso


def append_history(conn, order_id: int, changed_by: Optional[int],
                   status_before: Optional[str], status_after: str,
                   notes: Optional[str] = None) -> int:
    cursor = conn.execute(
        "INSERT INTO order_history "
        "(order_id, changed_by, status_before, status_after, notes, "
        " changed_at) VALUES (?, ?, ?, ?, ?, ?)",
        (order_id, changed_by, status_before, status_after, notes,
         utc_now_iso()),
    )
    return cursor.lastrowid
