"""Tests for material usage reconciliation."""

import pytest

from fieldcrm.errors import NotFoundError
from fieldcrm.inventory.stock import technician_balance
from fieldcrm.orders.materials import merge_usage
from fieldcrm.orders.payloads import CompletionRequest, UsedMaterial


@pytest.fixture
def stocked(warehouse, material, location, tech, admin):
    """Technician holds 10 units of the material."""
    warehouse.receive_material(material.id, location.id, 100, admin.id)
    warehouse.issue_material(material.id, location.id, tech.id, 10, admin.id)
    return material


@pytest.fixture
def order_id(make_order, tech):
    return make_order(technician=tech, order_type="SERVICE")


def _balance(db, tech, material):
    with db.get_connection() as conn:
        return technician_balance(conn, tech.id, material.id)


def _submit(completion, order_id, editor, used, amend=False):
    request = CompletionRequest(
        order_id=order_id, status="COMPLETED",
        used_materials=[UsedMaterial(mid, qty) for mid, qty in used],
    )
    if amend:
        return completion.amend_completion(request, editor.id)
    return completion.complete_order(request, editor.id)


class TestMergeUsage:
    def test_duplicates_summed(self):
        merged = merge_usage([UsedMaterial(1, 2), UsedMaterial(1, 3),
                              UsedMaterial(2, 1)])
        assert merged == {1: 5, 2: 1}

    def test_empty(self):
        assert merge_usage([]) == {}


class TestUsageDelta:
    def test_usage_deducted(self, db, repo, completion, order_id, stocked,
                            tech):
        result = _submit(completion, order_id, tech, [(stocked.id, 4)])
        assert result.warnings == []
        assert _balance(db, tech, stocked) == 6
        usage = repo.get_order_material_usage(order_id)
        assert [(u.material_name, u.quantity) for u in usage] == [
            ("Kabel RG6", 4)
        ]

    def test_lowering_usage_returns_difference(self, db, completion,
                                               order_id, stocked, tech):
        _submit(completion, order_id, tech, [(stocked.id, 4)])
        _submit(completion, order_id, tech, [(stocked.id, 1)], amend=True)
        assert _balance(db, tech, stocked) == 9

    def test_raising_usage_takes_difference(self, db, completion, order_id,
                                            stocked, tech):
        _submit(completion, order_id, tech, [(stocked.id, 4)])
        _submit(completion, order_id, tech, [(stocked.id, 7)], amend=True)
        assert _balance(db, tech, stocked) == 3

    def test_dropping_material_restores_all(self, db, repo, completion,
                                            order_id, stocked, tech):
        _submit(completion, order_id, tech, [(stocked.id, 4)])
        _submit(completion, order_id, tech, [], amend=True)
        assert _balance(db, tech, stocked) == 10
        assert repo.get_order_material_usage(order_id) == []

    def test_duplicate_lines_merged(self, db, completion, order_id, stocked,
                                    tech):
        _submit(completion, order_id, tech,
                [(stocked.id, 2), (stocked.id, 3)])
        assert _balance(db, tech, stocked) == 5

    def test_unchanged_usage_writes_no_entries(self, db, repo, completion,
                                               order_id, stocked, tech):
        _submit(completion, order_id, tech, [(stocked.id, 4)])
        with db.get_connection() as conn:
            count = conn.execute(
                "SELECT COUNT(*) AS n FROM inventory_ledger"
            ).fetchone()["n"]
        _submit(completion, order_id, tech, [(stocked.id, 4)], amend=True)
        with db.get_connection() as conn:
            assert conn.execute(
                "SELECT COUNT(*) AS n FROM inventory_ledger"
            ).fetchone()["n"] == count


class TestDeficit:
    def test_overuse_allowed_with_warning(self, db, completion, order_id,
                                          stocked, tech):
        result = _submit(completion, order_id, tech, [(stocked.id, 12)])
        assert result.success
        assert _balance(db, tech, stocked) == -2
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("Material deficit")
        assert "-2" in result.warnings[0]

    def test_technician_without_lot(self, db, completion, order_id,
                                    material, tech):
        result = _submit(completion, order_id, tech, [(material.id, 3)])
        assert _balance(db, tech, material) == -3
        assert "Kabel RG6" in result.warnings[0]

    def test_deficit_logged(self, completion, order_id, material, tech,
                            caplog):
        with caplog.at_level("WARNING", logger="fieldcrm.orders.materials"):
            _submit(completion, order_id, tech, [(material.id, 1)])
        assert "deficit" in caplog.text


class TestEdgeCases:
    def test_unknown_material(self, completion, order_id, tech):
        with pytest.raises(NotFoundError, match="Material definition 77"):
            _submit(completion, order_id, tech, [(77, 1)])

    def test_no_technician_saves_usage_only(self, db, repo, completion,
                                            make_order, stocked, admin,
                                            tech):
        unassigned = make_order(order_type="SERVICE")
        request = CompletionRequest(
            order_id=unassigned, status="COMPLETED",
            used_materials=[UsedMaterial(stocked.id, 2)],
        )
        result = completion.admin_edit_completion(request, admin.id)
        assert "No technician" in result.warnings[0]
        assert _balance(db, tech, stocked) == 10
        assert len(repo.get_order_material_usage(unassigned)) == 1

    def test_not_completed_still_reconciles(self, db, completion, order_id,
                                            stocked, tech):
        completion.complete_order(
            CompletionRequest(
                order_id=order_id, status="NOT_COMPLETED",
                failure_reason="No access",
                used_materials=[UsedMaterial(stocked.id, 1)],
            ),
            tech.id,
        )
        assert _balance(db, tech, stocked) == 9
