"""Data models for the database layer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class User:
    id: Optional[int] = None
    username: str = ""
    display_name: str = ""
    role: str = "technician"  # admin, coordinator, technician
    is_active: int = 1
    created_at: Optional[datetime] = None

    @property
    def is_privileged(self) -> bool:
        return self.role in ("admin", "coordinator")


@dataclass
class WarehouseLocation:
    id: Optional[int] = None
    name: str = ""
    address: str = ""
    created_at: Optional[datetime] = None


@dataclass
class MaterialDefinition:
    id: Optional[int] = None
    name: str = ""
    unit: str = "PIECE"
    unit_price: float = 0.0
    created_at: Optional[datetime] = None


@dataclass
class InventoryItem:
    id: Optional[int] = None
    item_kind: str = "DEVICE"  # DEVICE or MATERIAL
    category: Optional[str] = None
    name: str = ""
    serial_number: Optional[str] = None
    material_definition_id: Optional[int] = None
    quantity: float = 1
    unit_price: float = 0.0
    status: str = "AVAILABLE"
    technician_id: Optional[int] = None
    location_id: Optional[int] = None
    order_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_device(self) -> bool:
        return self.item_kind == "DEVICE"

    @property
    def custodian(self) -> str:
        """Human-readable holder, for error messages and logs."""
        if self.order_id is not None:
            return f"order {self.order_id}"
        if self.technician_id is not None:
            return f"technician {self.technician_id}"
        if self.location_id is not None:
            return f"location {self.location_id}"
        return "none"

    @property
    def display_name(self) -> str:
        if self.serial_number:
            return f"{self.name} ({self.serial_number})"
        return self.name or f"Item #{self.id}"


@dataclass
class LedgerEntry:
    id: Optional[int] = None
    item_id: int = 0
    action: str = ""
    performed_by: Optional[int] = None
    performed_at: str = ""  # ISO-8601, microsecond precision
    target_technician_id: Optional[int] = None
    target_order_id: Optional[int] = None
    target_location_id: Optional[int] = None
    quantity: Optional[float] = None
    notes: Optional[str] = None


@dataclass
class Order:
    id: Optional[int] = None
    order_number: str = ""
    order_number_key: str = ""
    order_type: str = "INSTALLATION"
    operator: Optional[str] = None
    client_id: Optional[str] = None
    city: str = ""
    city_key: str = ""
    street: str = ""
    street_key: str = ""
    postal_code: Optional[str] = None
    scheduled_date: Optional[str] = None
    time_slot: Optional[str] = None
    status: str = "PENDING"
    technician_id: Optional[int] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    completed_at: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    attempt_number: int = 1
    previous_order_id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Joined fields (not stored directly)
    technician_name: str = field(default="", repr=False)

    @property
    def is_open(self) -> bool:
        return self.status in ("PENDING", "ASSIGNED")

    @property
    def address(self) -> str:
        return f"{self.street}, {self.city}"


@dataclass
class OrderHistory:
    id: Optional[int] = None
    order_id: int = 0
    changed_by: Optional[int] = None
    status_before: Optional[str] = None
    status_after: str = ""
    notes: Optional[str] = None
    changed_at: str = ""


@dataclass
class MaterialUsage:
    id: Optional[int] = None
    order_id: int = 0
    material_definition_id: int = 0
    quantity: float = 0
    # Joined fields (not stored directly)
    material_name: str = field(default="", repr=False)


@dataclass
class SettlementEntry:
    id: Optional[int] = None
    order_id: int = 0
    work_code: str = ""
    quantity: float = 1


@dataclass
class OrderService:
    id: Optional[int] = None
    order_id: int = 0
    service_type: str = ""
    device_id: Optional[int] = None
    device_name: Optional[str] = None
    device_serial: Optional[str] = None
    device_category: Optional[str] = None
    device_source: Optional[str] = None
    device2_id: Optional[int] = None
    device2_name: Optional[str] = None
    device2_serial: Optional[str] = None
    device2_category: Optional[str] = None
    speed_test: Optional[str] = None
    us_dbm_down: Optional[float] = None
    us_dbm_up: Optional[float] = None
    notes: Optional[str] = None


@dataclass
class OrderServiceExtraDevice:
    id: Optional[int] = None
    service_id: int = 0
    item_id: Optional[int] = None
    name: Optional[str] = None
    serial_number: Optional[str] = None
    category: Optional[str] = None
    source: str = "WAREHOUSE"
