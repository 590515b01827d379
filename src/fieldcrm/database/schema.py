"""Database schema definition and initialization."""

SCHEMA_VERSION = 2

# Each statement is a separate string to avoid executescript issues
_SCHEMA_STATEMENTS = [
    """CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Users (technicians, coordinators, admins)
    """CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT NOT NULL UNIQUE,
        display_name TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'technician'
            CHECK (role IN ('admin', 'coordinator', 'technician')),
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Warehouse locations
    """CREATE TABLE IF NOT EXISTS warehouse_locations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        address TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Material catalog
    """CREATE TABLE IF NOT EXISTS material_definitions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        unit TEXT NOT NULL DEFAULT 'PIECE',
        unit_price REAL NOT NULL DEFAULT 0.0 CHECK (unit_price >= 0),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )""",

    # Inventory items: the current-state projection of the ledger.
    # Only inventory.ledger writes status/custody columns.
    """CREATE TABLE IF NOT EXISTS inventory_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_kind TEXT NOT NULL CHECK (item_kind IN ('DEVICE', 'MATERIAL')),
        category TEXT,
        name TEXT NOT NULL,
        serial_number TEXT UNIQUE,
        material_definition_id INTEGER,
        quantity REAL NOT NULL DEFAULT 1,
        unit_price REAL NOT NULL DEFAULT 0.0,
        status TEXT NOT NULL DEFAULT 'AVAILABLE',
        technician_id INTEGER,
        location_id INTEGER,
        order_id INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (material_definition_id)
            REFERENCES material_definitions(id) ON DELETE RESTRICT,
        FOREIGN KEY (technician_id) REFERENCES users(id) ON DELETE SET NULL,
        FOREIGN KEY (location_id)
            REFERENCES warehouse_locations(id) ON DELETE SET NULL,
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE SET NULL
    )""",

    # Append-only inventory history
    """CREATE TABLE IF NOT EXISTS inventory_ledger (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id INTEGER NOT NULL,
        action TEXT NOT NULL CHECK (action IN (
            'RECEIVED', 'ISSUED', 'ASSIGNED_TO_ORDER',
            'COLLECTED_FROM_CLIENT', 'RETURNED', 'RETURNED_TO_TECHNICIAN',
            'RETURNED_TO_OPERATOR', 'TRANSFER'
        )),
        performed_by INTEGER,
        performed_at TEXT NOT NULL,
        target_technician_id INTEGER,
        target_order_id INTEGER,
        target_location_id INTEGER,
        quantity REAL,
        notes TEXT,
        FOREIGN KEY (item_id) REFERENCES inventory_items(id) ON DELETE CASCADE,
        FOREIGN KEY (performed_by) REFERENCES users(id) ON DELETE SET NULL
    )""",

    # Orders (one row per attempt)
    """CREATE TABLE IF NOT EXISTS orders (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_number TEXT NOT NULL,
        order_number_key TEXT NOT NULL,
        order_type TEXT NOT NULL
            CHECK (order_type IN ('INSTALLATION', 'SERVICE', 'OUTAGE')),
        operator TEXT,
        client_id TEXT,
        city TEXT NOT NULL,
        city_key TEXT NOT NULL,
        street TEXT NOT NULL,
        street_key TEXT NOT NULL,
        postal_code TEXT,
        scheduled_date TEXT,
        time_slot TEXT,
        status TEXT NOT NULL DEFAULT 'PENDING'
            CHECK (status IN ('PENDING', 'ASSIGNED', 'COMPLETED',
                              'NOT_COMPLETED')),
        technician_id INTEGER,
        notes TEXT,
        failure_reason TEXT,
        completed_at TEXT,
        lat REAL,
        lng REAL,
        attempt_number INTEGER NOT NULL DEFAULT 1 CHECK (attempt_number >= 1),
        previous_order_id INTEGER,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (technician_id) REFERENCES users(id) ON DELETE SET NULL,
        FOREIGN KEY (previous_order_id) REFERENCES orders(id) ON DELETE SET NULL
    )""",

    # Order status audit trail
    """CREATE TABLE IF NOT EXISTS order_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        changed_by INTEGER,
        status_before TEXT,
        status_after TEXT NOT NULL,
        notes TEXT,
        changed_at TEXT NOT NULL,
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE,
        FOREIGN KEY (changed_by) REFERENCES users(id) ON DELETE SET NULL
    )""",

    """CREATE TABLE IF NOT EXISTS order_equipment_links (
        order_id INTEGER NOT NULL,
        item_id INTEGER NOT NULL,
        linked_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (order_id, item_id),
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE,
        FOREIGN KEY (item_id) REFERENCES inventory_items(id) ON DELETE CASCADE
    )""",

    """CREATE TABLE IF NOT EXISTS order_material_usage (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        material_definition_id INTEGER NOT NULL,
        quantity REAL NOT NULL CHECK (quantity > 0),
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE,
        FOREIGN KEY (material_definition_id)
            REFERENCES material_definitions(id) ON DELETE RESTRICT
    )""",

    """CREATE TABLE IF NOT EXISTS order_settlement_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        work_code TEXT NOT NULL,
        quantity REAL NOT NULL DEFAULT 1 CHECK (quantity > 0),
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE
    )""",

    """CREATE TABLE IF NOT EXISTS order_services (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        order_id INTEGER NOT NULL,
        service_type TEXT NOT NULL,
        device_id INTEGER,
        device_name TEXT,
        device_serial TEXT,
        device_category TEXT,
        device_source TEXT,
        device2_id INTEGER,
        device2_name TEXT,
        device2_serial TEXT,
        device2_category TEXT,
        speed_test TEXT,
        us_dbm_down REAL,
        us_dbm_up REAL,
        notes TEXT,
        FOREIGN KEY (order_id) REFERENCES orders(id) ON DELETE CASCADE,
        FOREIGN KEY (device_id) REFERENCES inventory_items(id) ON DELETE SET NULL,
        FOREIGN KEY (device2_id) REFERENCES inventory_items(id) ON DELETE SET NULL
    )""",

    """CREATE TABLE IF NOT EXISTS order_service_extra_devices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        service_id INTEGER NOT NULL,
        item_id INTEGER,
        name TEXT,
        serial_number TEXT,
        category TEXT,
        source TEXT NOT NULL DEFAULT 'WAREHOUSE',
        FOREIGN KEY (service_id) REFERENCES order_services(id) ON DELETE CASCADE,
        FOREIGN KEY (item_id) REFERENCES inventory_items(id) ON DELETE SET NULL
    )""",

    # Indexes
    "CREATE INDEX IF NOT EXISTS idx_items_status ON inventory_items(status)",
    "CREATE INDEX IF NOT EXISTS idx_items_technician ON inventory_items(technician_id)",
    "CREATE INDEX IF NOT EXISTS idx_items_order ON inventory_items(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_items_material ON inventory_items(material_definition_id)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_item ON inventory_ledger(item_id, performed_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_order ON inventory_ledger(target_order_id)",
    "CREATE INDEX IF NOT EXISTS idx_orders_number ON orders(order_number_key)",
    "CREATE INDEX IF NOT EXISTS idx_orders_address ON orders(order_number_key, city_key, street_key)",
    "CREATE INDEX IF NOT EXISTS idx_orders_technician ON orders(technician_id)",
    "CREATE INDEX IF NOT EXISTS idx_order_history_order ON order_history(order_id)",
    "CREATE INDEX IF NOT EXISTS idx_equipment_links_item ON order_equipment_links(item_id)",
    "CREATE INDEX IF NOT EXISTS idx_material_usage_order ON order_material_usage(order_id)",

    # Triggers
    """CREATE TRIGGER IF NOT EXISTS update_inventory_items_timestamp
    AFTER UPDATE ON inventory_items
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE inventory_items SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    """CREATE TRIGGER IF NOT EXISTS update_orders_timestamp
    AFTER UPDATE ON orders
    WHEN NEW.updated_at = OLD.updated_at BEGIN
        UPDATE orders SET updated_at = CURRENT_TIMESTAMP
        WHERE id = NEW.id;
    END""",

    # Record schema version
    f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})",
]


# ── Migration from v1 → v2 ──────────────────────────────────────
_MIGRATION_V2_STATEMENTS = [
    # Optimistic lock for concurrent completion edits
    "ALTER TABLE orders ADD COLUMN version INTEGER NOT NULL DEFAULT 1",
    # Location target on ledger entries
    "ALTER TABLE inventory_ledger ADD COLUMN target_location_id INTEGER",
    "INSERT OR REPLACE INTO schema_version (version) VALUES (2)",
]


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    table = conn.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name = 'schema_version'"
    ).fetchone()
    if not table:
        return 0
    row = conn.execute(
        "SELECT MAX(version) as v FROM schema_version"
    ).fetchone()
    return row["v"] if row and row["v"] else 0


def _migrate_v1_to_v2(conn):
    """Upgrade schema from v1 to v2."""
    for stmt in _MIGRATION_V2_STATEMENTS:
        conn.execute(stmt)


def initialize_database(db_connection):
    """Create all tables, indexes and triggers.

    On a fresh database, creates the full schema directly.
    On an existing database, applies migrations incrementally.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)

        if version == 0:
            for stmt in _SCHEMA_STATEMENTS:
                conn.execute(stmt)
        elif version < SCHEMA_VERSION:
            if version < 2:
                _migrate_v1_to_v2(conn)
