"""Application-wide constants."""

APP_NAME = "FieldCRM"
APP_VERSION = "1.0.0"

# User roles
USER_ROLES = ["admin", "coordinator", "technician"]

# Roles allowed to rewrite a closed order
PRIVILEGED_ROLES = ["admin", "coordinator"]

# ── Orders ───────────────────────────────────────────────────────
ORDER_TYPES = ["INSTALLATION", "SERVICE", "OUTAGE"]

ORDER_STATUSES = ["PENDING", "ASSIGNED", "COMPLETED", "NOT_COMPLETED"]

# Only one row per order number may be in one of these at a time
OPEN_ORDER_STATUSES = ["PENDING", "ASSIGNED"]

# Statuses a completion request may set
COMPLETION_STATUSES = ["COMPLETED", "NOT_COMPLETED"]

TIME_SLOTS = [
    "08:00-10:00",
    "10:00-12:00",
    "12:00-14:00",
    "14:00-16:00",
    "16:00-18:00",
    "18:00-20:00",
]

# ── Inventory ────────────────────────────────────────────────────
ITEM_KINDS = ["DEVICE", "MATERIAL"]

DEVICE_CATEGORIES = [
    "MODEM",
    "DECODER",
    "ONT",
    "ROUTER",
    "AMPLIFIER",
    "NETWORK_DEVICE",
    "OTHER",
]

ITEM_STATUSES = [
    "AVAILABLE",
    "ASSIGNED",
    "ASSIGNED_TO_ORDER",
    "COLLECTED_FROM_CLIENT",
    "RETURNED",
    "RETURNED_TO_TECHNICIAN",
    "RETURNED_TO_OPERATOR",
    "TRANSFER",
]

LEDGER_ACTIONS = [
    "RECEIVED",
    "ISSUED",
    "ASSIGNED_TO_ORDER",
    "COLLECTED_FROM_CLIENT",
    "RETURNED",
    "RETURNED_TO_TECHNICIAN",
    "RETURNED_TO_OPERATOR",
    "TRANSFER",
]

MATERIAL_UNITS = ["PIECE", "METER", "ROLL", "PACK"]

# ── Services ─────────────────────────────────────────────────────
SERVICE_TYPES = ["INTERNET", "TV", "PHONE", "NET_TV", "NET_PHONE", "TRIPLE"]

DEVICE_SOURCES = ["WAREHOUSE", "CLIENT"]

# Order edit modes
MODE_COMPLETE = "COMPLETE"
MODE_AMEND = "AMEND"
MODE_ADMIN = "ADMIN"
EDIT_MODES = [MODE_COMPLETE, MODE_AMEND, MODE_ADMIN]
