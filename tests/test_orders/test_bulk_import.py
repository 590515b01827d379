"""Tests for bulk order import."""

from fieldcrm.orders.payloads import CompletionRequest


def _row(number, **kw):
    row = {"order_number": number, "order_type": "service",
           "city": "Gdynia", "street": "Morska 5"}
    row.update(kw)
    return row


class TestBulkImport:
    def test_all_rows_added(self, repo, dispatch, admin, tech):
        summary = dispatch.bulk_import_orders(
            [_row("A"), _row("B", technician_id=str(tech.id))], admin.id
        )
        assert summary.added == 2
        assert summary.errors == 0
        assert repo.get_orders_by_number("B")[0].technician_id == tech.id

    def test_invalid_rows_counted_with_row_numbers(self, dispatch, admin):
        summary = dispatch.bulk_import_orders(
            [_row("A"), _row("", city=""), _row("C", technician_id="abc")],
            admin.id,
        )
        assert summary.added == 1
        assert summary.errors == 2
        assert summary.error_messages[0].startswith("Row 2:")
        assert any(m.startswith("Row 3:") for m in summary.error_messages)

    def test_active_duplicates_skipped(self, dispatch, admin):
        dispatch.bulk_import_orders([_row("A")], admin.id)
        summary = dispatch.bulk_import_orders(
            [_row("a"), _row("B"), _row("B")], admin.id
        )
        assert summary.added == 1
        assert summary.skipped_active == 2

    def test_completed_orders_skipped(self, repo, dispatch, completion,
                                      admin, tech):
        dispatch.bulk_import_orders(
            [_row("DONE", technician_id=tech.id)], admin.id
        )
        order_id = repo.get_orders_by_number("DONE")[0].id
        completion.complete_order(
            CompletionRequest(order_id=order_id, status="COMPLETED"), tech.id
        )
        summary = dispatch.bulk_import_orders([_row("DONE")], admin.id)
        assert summary.skipped_completed == 1
        assert summary.added == 0

    def test_unknown_technician_is_row_error(self, dispatch, admin):
        summary = dispatch.bulk_import_orders(
            [_row("A", technician_id=999)], admin.id
        )
        assert summary.errors == 1
        assert "User 999" in summary.error_messages[0]

    def test_rows_commit_independently(self, repo, dispatch, admin):
        dispatch.bulk_import_orders(
            [_row("A"), _row("B", technician_id=999), _row("C")], admin.id
        )
        assert len(repo.get_orders()) == 2

    def test_failed_attempt_reimported_as_next_attempt(self, repo, dispatch,
                                                       completion, admin,
                                                       tech):
        dispatch.bulk_import_orders(
            [_row("RETRY", technician_id=tech.id)], admin.id
        )
        first = repo.get_orders_by_number("RETRY")[0]
        completion.complete_order(
            CompletionRequest(order_id=first.id, status="NOT_COMPLETED"),
            tech.id,
        )
        summary = dispatch.bulk_import_orders([_row("RETRY")], admin.id)
        assert summary.added == 1
        second = repo.get_orders_by_number("RETRY")[-1]
        assert second.attempt_number == 2
        assert second.previous_order_id == first.id

    def test_numeric_cells_are_read_as_text(self, repo, dispatch, admin):
        summary = dispatch.bulk_import_orders(
            [_row(12345), _row(67890.0, street=12), _row("B")], admin.id
        )
        assert summary.added == 3
        assert summary.errors == 0
        assert repo.get_orders_by_number("12345")[0].order_number == "12345"
        assert repo.get_orders_by_number("67890")[0].street == "12"

    def test_unreadable_row_does_not_stop_the_batch(self, repo, dispatch,
                                                   admin):
        summary = dispatch.bulk_import_orders(
            [_row("A"), None, _row("B")], admin.id
        )
        assert summary.added == 2
        assert summary.errors == 1
        assert summary.error_messages[0].startswith("Row 2:")
        assert len(repo.get_orders()) == 2
