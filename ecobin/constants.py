# ecobin/constants.py
from __future__ import annotations

# =========================================================
# Roles
# =========================================================
ROLES = {
    "resident": "Resident",
    "collector": "Collector",
    "operator": "Operator",
    "admin": "Admin",
    "super_admin": "Super Admin",
}

ADMIN_ROLES = {"admin", "super_admin"}
STAFF_ROLES = {"operator", "admin", "super_admin"}

# =========================================================
# Bins
# =========================================================
BIN_TYPES = ("general", "recyclable", "organic", "hazardous")
DEFAULT_BIN_TYPE = "general"

BIN_CAPACITY_BY_TYPE = {
    "hazardous": 80,
    "organic": 100,
}
DEFAULT_BIN_CAPACITY = 120

# =========================================================
# Pickups
# =========================================================
WASTE_TYPES = ("bulk", "hazardous", "electronic", "construction", "organic", "recyclable", "other")
QUANTITY_UNITS = ("kg", "items", "bags", "cubic meters")
TIME_SLOTS = ("morning", "afternoon", "evening")
PICKUP_PRIORITIES = ("low", "normal", "high", "urgent")
PICKUP_OUTCOMES = ("collected", "empty", "damaged")

# =========================================================
# Payments
# =========================================================
PAYMENT_TYPES = ("service-charge", "penalty", "installation-fee", "maintenance-fee")
PAYMENT_METHODS = ("credit-card", "debit-card", "bank-transfer", "mobile-payment", "cash")
VERIFYING_PAYMENT_TYPES = ("installation-fee", "service-charge")

# =========================================================
# Notifications
# =========================================================
NOTIFICATION_TYPES = {
    "bin-request-approved",
    "bin-request-rejected",
    "bin-request-cancelled",
    "delivery-assigned",
    "bin-delivered",
    "pickup-scheduled",
    "pickup-completed",
    "bin-damaged",
    "payment-received",
    "general",
}
NOTIFICATION_PRIORITIES = ("low", "medium", "high", "urgent")
NOTIFICATION_CHANNELS = ("in-app", "email", "sms", "push")
