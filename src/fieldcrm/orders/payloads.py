"""Request and result types for order completion and creation."""

from dataclasses import asdict, dataclass, field
from typing import Optional

from fieldcrm.utils.constants import MODE_ADMIN


@dataclass
class WorkCode:
    code: str
    quantity: float = 1


@dataclass
class UsedMaterial:
    material_id: int
    quantity: float


@dataclass
class CollectedDevice:
    name: str
    category: str = "OTHER"
    serial_number: Optional[str] = None
    unit_price: float = 0.0


@dataclass
class ExtraDevice:
    source: str = "WAREHOUSE"  # WAREHOUSE or CLIENT
    item_id: Optional[int] = None
    name: Optional[str] = None
    serial_number: Optional[str] = None
    category: Optional[str] = None


@dataclass
class ServiceLine:
    service_type: str
    device_id: Optional[int] = None
    device_source: Optional[str] = None
    device_name: Optional[str] = None
    device_category: Optional[str] = None  # used only for CLIENT devices
    serial_number: Optional[str] = None
    device2_id: Optional[int] = None
    device2_name: Optional[str] = None
    serial_number2: Optional[str] = None
    speed_test: Optional[str] = None
    us_dbm_down: Optional[float] = None
    us_dbm_up: Optional[float] = None
    notes: Optional[str] = None
    extra_devices: list[ExtraDevice] = field(default_factory=list)


@dataclass
class CompletionRequest:
    order_id: int
    status: str
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    work_codes: list[WorkCode] = field(default_factory=list)
    equipment_ids: list[int] = field(default_factory=list)
    used_materials: list[UsedMaterial] = field(default_factory=list)
    collected_devices: list[CollectedDevice] = field(default_factory=list)
    services: list[ServiceLine] = field(default_factory=list)
    expected_version: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CompletionRequest":
        """Build a request from plain decoded JSON."""
        services = []
        for s in data.get("services") or []:
            s = dict(s)
            extras = [ExtraDevice(**e) for e in s.pop("extra_devices", None) or []]
            services.append(ServiceLine(**s, extra_devices=extras))
        return cls(
            order_id=data["order_id"],
            status=data["status"],
            notes=data.get("notes"),
            failure_reason=data.get("failure_reason"),
            work_codes=[WorkCode(**w) for w in data.get("work_codes") or []],
            equipment_ids=list(data.get("equipment_ids") or []),
            used_materials=[
                UsedMaterial(**m) for m in data.get("used_materials") or []
            ],
            collected_devices=[
                CollectedDevice(**d) for d in data.get("collected_devices") or []
            ],
            services=services,
            expected_version=data.get("expected_version"),
        )


@dataclass
class CompletionResult:
    success: bool = True
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ReconcileContext:
    """Who is changing which order, and under which rules."""

    order_id: int
    editor_id: int
    technician_id: Optional[int]
    mode: str

    @property
    def is_admin(self) -> bool:
        return self.mode == MODE_ADMIN


@dataclass
class OrderInput:
    order_number: str
    order_type: str
    city: str
    street: str
    operator: Optional[str] = None
    client_id: Optional[str] = None
    postal_code: Optional[str] = None
    scheduled_date: Optional[str] = None
    time_slot: Optional[str] = None
    technician_id: Optional[int] = None
    notes: Optional[str] = None


@dataclass
class ImportSummary:
    added: int = 0
    skipped_active: int = 0
    skipped_completed: int = 0
    errors: int = 0
    error_messages: list[str] = field(default_factory=list)
