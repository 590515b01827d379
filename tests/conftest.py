"""Shared test fixtures."""

import pytest

from fieldcrm.database.connection import DatabaseConnection
from fieldcrm.database.models import MaterialDefinition, User, WarehouseLocation
from fieldcrm.database.repository import Repository
from fieldcrm.database.schema import initialize_database
from fieldcrm.inventory.warehouse import WarehouseService
from fieldcrm.orders.completion import OrderCompletionService
from fieldcrm.orders.dispatch import OrderDispatchService
from fieldcrm.orders.payloads import OrderInput
from fieldcrm.utils.geocode import LatLng


class FakeGeocoder:
    """Records lookups and answers with a fixed point (or nothing)."""

    def __init__(self, result=LatLng(54.3520, 18.6466)):
        self.result = result
        self.calls = []

    def geocode_address(self, street, city):
        self.calls.append((street, city))
        return self.result


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


def _user(repo, username, role):
    user = User(username=username, display_name=username.title(), role=role)
    user.id = repo.create_user(user)
    return user


@pytest.fixture
def admin(repo):
    return _user(repo, "admin", "admin")


@pytest.fixture
def coordinator(repo):
    return _user(repo, "dispatch", "coordinator")


@pytest.fixture
def tech(repo):
    return _user(repo, "tomek", "technician")


@pytest.fixture
def tech2(repo):
    return _user(repo, "piotr", "technician")


@pytest.fixture
def location(repo):
    loc = WarehouseLocation(name="Magazyn Gdańsk", address="Grunwaldzka 100")
    loc.id = repo.create_location(loc)
    return loc


@pytest.fixture
def material(repo):
    mat = MaterialDefinition(name="Kabel RG6", unit="METER", unit_price=1.2)
    mat.id = repo.create_material(mat)
    return mat


@pytest.fixture
def warehouse(db):
    return WarehouseService(db)


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def dispatch(db, geocoder):
    return OrderDispatchService(db, geocoder=geocoder)


@pytest.fixture
def completion(db):
    return OrderCompletionService(db)


@pytest.fixture
def make_device(warehouse, location, admin):
    """Receive a device and optionally issue it to a technician."""
    counter = iter(range(1, 10_000))

    def _make(technician=None, category="MODEM", serial=None):
        serial = serial or f"SN{next(counter):05d}"
        item_id = warehouse.receive_device(
            f"{category.title()} device", category, serial,
            location.id, admin.id,
        )
        if technician is not None:
            warehouse.issue_devices([item_id], technician.id, admin.id)
        return item_id

    return _make


@pytest.fixture
def make_order(dispatch, admin):
    """Create an order, assigned to ``technician`` when given."""
    counter = iter(range(1, 10_000))

    def _make(technician=None, order_type="INSTALLATION",
              number=None, city="Gdańsk", street="Długa 1"):
        number = number or f"ZL/{next(counter):04d}"
        return dispatch.create_order(
            OrderInput(
                order_number=number, order_type=order_type,
                city=city, street=street,
                technician_id=technician.id if technician else None,
            ),
            admin.id,
        )

    return _make
