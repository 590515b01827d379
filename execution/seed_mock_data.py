"""Seed the database with realistic mock data for development and demos.

Creates:
  - 1 admin, 1 coordinator and 3 technicians
  - 2 warehouse locations
  - 4 material definitions with stock at the main warehouse
  - 12 devices, most of them issued to technicians
  - 6 orders across Gdańsk, Gdynia and Sopot, one of them completed

Run:
    python -m execution.seed_mock_data          (from project root)
    python execution/seed_mock_data.py          (direct)

WARNING: This script INSERTS data; run against a fresh DB to avoid
duplicates. Delete data/fieldcrm.db first for a clean start. Geocoding
is switched off while seeding so no network calls are made.
"""

import os
import sys

# Ensure project src is on the path
_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(_ROOT, "src"))

from fieldcrm.config import Config
from fieldcrm.database.connection import DatabaseConnection
from fieldcrm.database.models import (
    MaterialDefinition,
    User,
    WarehouseLocation,
)
from fieldcrm.database.repository import Repository
from fieldcrm.database.schema import initialize_database
from fieldcrm.inventory.warehouse import WarehouseService
from fieldcrm.logging_config import configure_logging
from fieldcrm.orders.completion import OrderCompletionService
from fieldcrm.orders.dispatch import OrderDispatchService
from fieldcrm.orders.payloads import (
    CompletionRequest,
    OrderInput,
    UsedMaterial,
    WorkCode,
)


def seed(db: DatabaseConnection):
    """Populate the database with mock data."""
    repo = Repository(db)
    warehouse = WarehouseService(db)
    dispatch = OrderDispatchService(db)
    completion = OrderCompletionService(db)

    # ── 1. Users ──────────────────────────────────────────────────
    print("Creating users...")
    users = [
        ("admin", "Anna Kowalska", "admin"),
        ("dispatch", "Marek Nowak", "coordinator"),
        ("tomek", "Tomasz Wiśniewski", "technician"),
        ("piotr", "Piotr Zieliński", "technician"),
        ("kasia", "Katarzyna Lewandowska", "technician"),
    ]
    user_ids = {}
    for username, display, role in users:
        user_ids[username] = repo.create_user(
            User(username=username, display_name=display, role=role)
        )
    print(f"  → {len(users)} users created")
    admin_id = user_ids["admin"]
    technicians = ["tomek", "piotr", "kasia"]

    # ── 2. Locations ──────────────────────────────────────────────
    main_id = repo.create_location(
        WarehouseLocation(name="Magazyn Gdańsk", address="Grunwaldzka 100")
    )
    repo.create_location(
        WarehouseLocation(name="Magazyn Gdynia", address="Morska 12")
    )
    print("  → 2 warehouse locations created")

    # ── 3. Materials ──────────────────────────────────────────────
    materials = [
        ("Kabel koncentryczny RG6", "METER", 1.2, 500),
        ("Złącze F", "PIECE", 0.5, 300),
        ("Patchcord światłowodowy SC/APC", "PIECE", 6.0, 80),
        ("Uchwyt kablowy", "PACK", 4.0, 40),
    ]
    material_ids = []
    for name, unit, price, stock in materials:
        mid = repo.create_material(
            MaterialDefinition(name=name, unit=unit, unit_price=price)
        )
        material_ids.append(mid)
        warehouse.receive_material(mid, main_id, stock, admin_id)
        for tech in technicians:
            warehouse.issue_material(
                mid, main_id, user_ids[tech], stock // 10, admin_id
            )
    print(f"  → {len(materials)} materials stocked and issued")

    # ── 4. Devices ────────────────────────────────────────────────
    devices = [
        ("Technicolor CGA2121", "MODEM"),
        ("Arris TG2492", "MODEM"),
        ("Horizon HD", "DECODER"),
        ("Huawei HG8245", "ONT"),
    ]
    issued = {tech: [] for tech in technicians}
    count = 0
    for i, (name, category) in enumerate(devices * 3):
        serial = f"SN{category[:3]}{1000 + i}"
        item_id = warehouse.receive_device(
            name, category, serial, main_id, admin_id
        )
        count += 1
        tech = technicians[i % len(technicians)]
        if i < 9:
            warehouse.issue_devices([item_id], user_ids[tech], admin_id)
            issued[tech].append(item_id)
    print(f"  → {count} devices received, 9 issued")

    # ── 5. Orders ─────────────────────────────────────────────────
    orders = [
        ("ZL/24/0001", "INSTALLATION", "Gdańsk", "ul. Długa 1", "tomek"),
        ("ZL/24/0002", "SERVICE", "Gdańsk", "Piwna 15/3", "tomek"),
        ("ZL/24/0003", "INSTALLATION", "Gdynia", "Świętojańska 40", "piotr"),
        ("ZL/24/0004", "OUTAGE", "Sopot", "Monte Cassino 8", "piotr"),
        ("ZL/24/0005", "INSTALLATION", "Sopot", "Haffnera 3", "kasia"),
        ("ZL/24/0006", "SERVICE", "Gdynia", "al. Zwycięstwa 96", None),
    ]
    order_ids = {}
    for number, order_type, city, street, tech in orders:
        order_ids[number] = dispatch.create_order(
            OrderInput(
                order_number=number, order_type=order_type, city=city,
                street=street, operator="VECTRA",
                technician_id=user_ids[tech] if tech else None,
            ),
            admin_id,
        )
    print(f"  → {len(orders)} orders created")

    result = completion.complete_order(
        CompletionRequest(
            order_id=order_ids["ZL/24/0001"],
            status="COMPLETED",
            notes="Instalacja internetu i telewizji",
            work_codes=[WorkCode("INST-NET"), WorkCode("INST-TV")],
            equipment_ids=issued["tomek"][:2],
            used_materials=[
                UsedMaterial(material_ids[0], 15),
                UsedMaterial(material_ids[1], 4),
            ],
        ),
        user_ids["tomek"],
    )
    print(f"  → 1 order completed ({len(result.warnings)} warning(s))")

    # ── Done ──────────────────────────────────────────────────────
    print("\n✓ Mock data seeded successfully!")
    print(f"  Users: {len(users)}")
    print(f"  Materials: {len(materials)}")
    print(f"  Devices: {count}")
    print(f"  Orders: {len(orders)}")


def main():
    configure_logging(verbose=False)
    db_path = Config.DATABASE_PATH
    print(f"Database: {db_path}")

    # Confirm if DB exists
    if os.path.exists(db_path):
        resp = input("Database already exists. Seed anyway? (y/N): ").strip().lower()
        if resp != "y":
            print("Aborted.")
            return

    Config.GEOCODING_DISABLED = True
    db = DatabaseConnection(db_path)
    initialize_database(db)
    seed(db)


if __name__ == "__main__":
    main()
