"""Tests for model helper properties."""

from fieldcrm.database.models import InventoryItem, Order, User


class TestUser:
    def test_technician_not_privileged(self):
        assert not User(role="technician").is_privileged

    def test_admin_and_coordinator_privileged(self):
        assert User(role="admin").is_privileged
        assert User(role="coordinator").is_privileged


class TestInventoryItem:
    def test_custodian_prefers_order(self):
        item = InventoryItem(order_id=7, technician_id=3)
        assert item.custodian == "order 7"

    def test_custodian_location(self):
        assert InventoryItem(location_id=2).custodian == "location 2"

    def test_custodian_none(self):
        assert InventoryItem().custodian == "none"

    def test_display_name_with_serial(self):
        item = InventoryItem(name="Modem", serial_number="ABC")
        assert item.display_name == "Modem (ABC)"

    def test_display_name_falls_back_to_id(self):
        assert InventoryItem(id=5, name="").display_name == "Item #5"

    def test_material_is_not_device(self):
        assert not InventoryItem(item_kind="MATERIAL").is_device


class TestOrder:
    def test_open_statuses(self):
        assert Order(status="PENDING").is_open
        assert Order(status="ASSIGNED").is_open
        assert not Order(status="COMPLETED").is_open
        assert not Order(status="NOT_COMPLETED").is_open

    def test_address(self):
        assert Order(street="Długa 1", city="Gdańsk").address == "Długa 1, Gdańsk"
