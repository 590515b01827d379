"""Structural validation for order imports and completion payloads.

Every validator returns a list of error strings; an empty list means
the input is acceptable.
"""

from fieldcrm.orders.payloads import CompletionRequest, OrderInput
from fieldcrm.utils.constants import (
    COMPLETION_STATUSES,
    DEVICE_CATEGORIES,
    DEVICE_SOURCES,
    ORDER_TYPES,
    SERVICE_TYPES,
)
from fieldcrm.utils.formatters import cell_text, normalize_serial


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _order_field_errors(row: dict) -> list[str]:
    errors = []

    number = cell_text(row.get("order_number"))
    if not number:
        errors.append("order_number is required")
    elif len(number) > 64:
        errors.append("order_number exceeds 64 chars")

    order_type = cell_text(row.get("order_type")).upper()
    if order_type not in ORDER_TYPES:
        errors.append(
            f"order_type must be one of {', '.join(ORDER_TYPES)}"
        )

    if not cell_text(row.get("city")):
        errors.append("city is required")
    if not cell_text(row.get("street")):
        errors.append("street is required")

    tech = row.get("technician_id")
    if tech not in (None, ""):
        try:
            if int(tech) <= 0:
                errors.append("technician_id must be positive")
        except (ValueError, TypeError):
            errors.append("technician_id must be an integer")

    return errors


def validate_order_row(row: dict, row_num: int) -> list[str]:
    """Validate a single row of order import data."""
    return [f"Row {row_num}: {e}" for e in _order_field_errors(row)]


def validate_order_input(data: OrderInput) -> list[str]:
    return _order_field_errors({
        "order_number": data.order_number,
        "order_type": data.order_type,
        "city": data.city,
        "street": data.street,
        "technician_id": data.technician_id,
    })


def validate_completion_request(request: CompletionRequest) -> list[str]:
    """Check enums, required fields and minimum quantities."""
    errors = []

    if request.status not in COMPLETION_STATUSES:
        errors.append(
            f"status must be one of {', '.join(COMPLETION_STATUSES)}"
        )

    for i, wc in enumerate(request.work_codes, 1):
        if not (wc.code or "").strip():
            errors.append(f"Work code {i}: code is required")
        if not _is_number(wc.quantity) or wc.quantity < 1:
            errors.append(f"Work code {i}: quantity must be at least 1")

    for item_id in request.equipment_ids:
        if not isinstance(item_id, int) or isinstance(item_id, bool):
            errors.append(f"Equipment id {item_id!r} is not an integer")

    for i, m in enumerate(request.used_materials, 1):
        if not isinstance(m.material_id, int):
            errors.append(f"Material {i}: material_id must be an integer")
        if not _is_number(m.quantity) or m.quantity <= 0:
            errors.append(f"Material {i}: quantity must be greater than 0")

    seen_serials = set()
    for i, d in enumerate(request.collected_devices, 1):
        if not (d.name or "").strip():
            errors.append(f"Collected device {i}: name is required")
        if (d.category or "OTHER").upper() not in DEVICE_CATEGORIES:
            errors.append(
                f"Collected device {i}: unknown category {d.category}"
            )
        serial = normalize_serial(d.serial_number)
        if serial:
            if serial in seen_serials:
                errors.append(
                    f"Collected device {i}: duplicate serial {serial}"
                )
            seen_serials.add(serial)

    for i, s in enumerate(request.services, 1):
        if s.service_type not in SERVICE_TYPES:
            errors.append(f"Service {i}: unknown type {s.service_type}")
        if s.device_source is not None and s.device_source not in DEVICE_SOURCES:
            errors.append(
                f"Service {i}: device_source must be one of "
                f"{', '.join(DEVICE_SOURCES)}"
            )
        if s.device_source == "CLIENT" and s.device_category and \
                s.device_category.upper() not in DEVICE_CATEGORIES:
            errors.append(
                f"Service {i}: unknown device category {s.device_category}"
            )
        for j, extra in enumerate(s.extra_devices, 1):
            if extra.source not in DEVICE_SOURCES:
                errors.append(
                    f"Service {i} extra device {j}: source must be one of "
                    f"{', '.join(DEVICE_SOURCES)}"
                )

    if request.expected_version is not None and (
            not isinstance(request.expected_version, int)
            or request.expected_version < 1):
        errors.append("expected_version must be a positive integer")

    return errors
