"""Tests for devices collected from clients."""

import pytest

from fieldcrm.errors import ConflictError
from fieldcrm.orders.payloads import CollectedDevice, CompletionRequest


@pytest.fixture
def order_id(make_order, tech):
    return make_order(technician=tech, order_type="OUTAGE")


def _submit(completion, order_id, editor, devices, mode="complete",
            equipment=()):
    request = CompletionRequest(
        order_id=order_id, status="COMPLETED",
        collected_devices=devices, equipment_ids=list(equipment),
    )
    method = {
        "complete": completion.complete_order,
        "amend": completion.amend_completion,
        "admin": completion.admin_edit_completion,
    }[mode]
    return method(request, editor.id)


def _modem(serial="CL-1", name="Client modem"):
    return CollectedDevice(name=name, category="modem", serial_number=serial)


class TestNewDevices:
    def test_unknown_serial_creates_item(self, repo, completion, order_id,
                                         tech):
        _submit(completion, order_id, tech, [_modem(" cl-1 ")])
        item = repo.get_item_by_serial("CL-1")
        assert item.status == "COLLECTED_FROM_CLIENT"
        assert item.technician_id == tech.id
        assert item.category == "MODEM"
        assert [i.id for i in repo.get_order_equipment(order_id)] == [item.id]

    def test_ledger_entry_points_at_order(self, repo, completion, order_id,
                                          tech):
        _submit(completion, order_id, tech, [_modem()])
        entries = repo.get_item_ledger(repo.get_item_by_serial("CL-1").id)
        assert len(entries) == 1
        assert entries[0].action == "COLLECTED_FROM_CLIENT"
        assert entries[0].target_order_id == order_id

    def test_unserialized_device(self, repo, completion, order_id, tech):
        _submit(completion, order_id, tech, [
            CollectedDevice(name="Splitter", serial_number=""),
        ])
        [item] = repo.get_order_equipment(order_id)
        assert item.serial_number is None
        assert item.category == "OTHER"

    def test_collector_falls_back_to_editor(self, repo, completion,
                                            make_order, admin):
        unassigned = make_order(order_type="OUTAGE")
        _submit(completion, unassigned, admin, [_modem()], mode="admin")
        assert repo.get_item_by_serial("CL-1").technician_id == admin.id


class TestAmendments:
    def test_dropped_synthetic_device_purged(self, repo, completion,
                                             order_id, tech):
        _submit(completion, order_id, tech, [_modem()])
        item_id = repo.get_item_by_serial("CL-1").id
        _submit(completion, order_id, tech, [], mode="amend")
        assert repo.get_item_by_id(item_id) is None
        assert repo.get_order_equipment(order_id) == []

    def test_kept_serial_updates_details_only(self, repo, completion,
                                              order_id, tech):
        _submit(completion, order_id, tech, [_modem()])
        item_id = repo.get_item_by_serial("CL-1").id
        _submit(completion, order_id, tech,
                [_modem(name="Technicolor TC7200")], mode="amend")
        item = repo.get_item_by_id(item_id)
        assert item.name == "Technicolor TC7200"
        assert len(repo.get_item_ledger(item_id)) == 1

    def test_unserialized_replaced_on_amend(self, repo, completion,
                                            order_id, tech):
        devices = [CollectedDevice(name="Splitter")]
        _submit(completion, order_id, tech, devices)
        _submit(completion, order_id, tech, devices, mode="amend")
        assert len(repo.get_order_equipment(order_id)) == 1

    def test_serial_swap(self, repo, completion, order_id, tech):
        _submit(completion, order_id, tech, [_modem("A-1")])
        _submit(completion, order_id, tech, [_modem("B-2")], mode="amend")
        assert repo.get_item_by_serial("A-1") is None
        assert repo.get_item_by_serial("B-2").status == \
            "COLLECTED_FROM_CLIENT"


class TestExistingSerials:
    def test_known_stock_device_collected(self, repo, completion, order_id,
                                          make_device, tech, warehouse,
                                          admin):
        item_id = make_device(serial="KNOWN-1")
        warehouse.return_to_operator([item_id], admin.id)
        _submit(completion, order_id, tech, [_modem("KNOWN-1")])
        assert repo.get_item_by_id(item_id).status == "COLLECTED_FROM_CLIENT"

    def test_retract_restores_previous_state(self, repo, completion,
                                             order_id, make_device, tech,
                                             warehouse, admin):
        item_id = make_device(serial="KNOWN-1")
        warehouse.return_to_operator([item_id], admin.id)
        _submit(completion, order_id, tech, [_modem("KNOWN-1")])
        _submit(completion, order_id, tech, [], mode="amend")
        item = repo.get_item_by_id(item_id)
        assert item.status == "RETURNED_TO_OPERATOR"
        assert item.name == "Client modem"

    def test_device_installed_elsewhere_warns(self, repo, completion,
                                              make_order, order_id,
                                              make_device, tech):
        item_id = make_device(technician=tech, serial="MOVED-1")
        other = make_order(technician=tech, order_type="SERVICE")
        _submit(completion, other, tech, [], equipment=[item_id])

        result = _submit(completion, order_id, tech, [_modem("MOVED-1")])
        assert "MOVED-1" in result.warnings[0]
        assert repo.get_item_by_id(item_id).status == "COLLECTED_FROM_CLIENT"

    def test_same_order_install_and_collect_conflicts(self, completion,
                                                      order_id, make_device,
                                                      tech):
        item_id = make_device(technician=tech, serial="BOTH-1")
        with pytest.raises(ConflictError, match="installed on this order"):
            _submit(completion, order_id, tech, [_modem("BOTH-1")],
                    equipment=[item_id])

    def test_material_serial_refused(self, db, completion, order_id, tech,
                                     material):
        with db.get_connection() as conn:
            conn.execute(
                "INSERT INTO inventory_items "
                "(item_kind, name, serial_number, material_definition_id) "
                "VALUES ('MATERIAL', 'Cable', 'LOT-1', ?)",
                (material.id,),
            )
        with pytest.raises(ConflictError, match="material"):
            _submit(completion, order_id, tech, [_modem("LOT-1")])
