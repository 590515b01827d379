"""E2E test fixtures: a stocked warehouse with one technician's van."""

from dataclasses import dataclass

import pytest

from fieldcrm.database.models import MaterialDefinition


@dataclass
class Depot:
    cable_id: int
    connector_id: int
    d1: int
    d2: int
    d3: int
    spare: int


@pytest.fixture
def depot(repo, warehouse, location, tech, admin):
    """Two materials and four modems; D1-D3 issued to the technician."""
    cable = repo.create_material(
        MaterialDefinition(name="Kabel RG6", unit="METER", unit_price=1.2)
    )
    connector = repo.create_material(
        MaterialDefinition(name="Złącze F", unit="PIECE", unit_price=0.5)
    )
    for mid, qty in ((cable, 200), (connector, 50)):
        warehouse.receive_material(mid, location.id, qty, admin.id)
    warehouse.issue_material(cable, location.id, tech.id, 30, admin.id)
    warehouse.issue_material(connector, location.id, tech.id, 10, admin.id)

    ids = [
        warehouse.receive_device("Arris TG2492", "MODEM", f"D{n}",
                                 location.id, admin.id)
        for n in range(1, 5)
    ]
    warehouse.issue_devices(ids[:3], tech.id, admin.id)
    return Depot(cable, connector, *ids)
