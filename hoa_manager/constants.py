ROLE_ADMIN = "admin"
ROLE_RESIDENT = "resident"

PROFILE_ROLES = (ROLE_ADMIN, ROLE_RESIDENT)

MAINTENANCE_CATEGORIES = ("landscaping", "pool", "security", "repairs", "utilities", "cleaning", "other")
MAINTENANCE_STATUSES = ("pending", "in_progress", "completed", "cancelled")
MAINTENANCE_PRIORITIES = ("low", "medium", "high", "urgent")
RECURRENCE_INTERVALS = ("monthly", "quarterly", "annually")
DOCUMENT_TYPES = ("invoice", "receipt", "estimate", "photo", "other")

TRANSACTION_TYPES = ("income", "expense")
INCOME_CATEGORIES = (
    "hoa_fees",
    "fines",
    "facility_rental",
    "late_fees",
    "special_assessments",
    "other_income",
)
EXPENSE_CATEGORIES = (
    "repairs",
    "utilities",
    "insurance",
    "maintenance_contract",
    "landscaping",
    "pool_maintenance",
    "security",
    "administrative",
    "other_expense",
)
PAYMENT_METHODS = ("cash", "check", "credit_card", "bank_transfer", "online")

PAYMENT_TYPES = ("monthly_dues", "special_assessment", "fine", "other")
PAYMENT_STATUSES = ("pending", "paid", "overdue", "cancelled")

ANNOUNCEMENT_PRIORITIES = ("normal", "important", "urgent")

NOTIFICATION_TYPES = ("payment_reminder", "maintenance_update", "announcement", "system")

# Maps a notification type to the preference flag that gates it.
NOTIFICATION_PREFERENCE_FIELDS = {
    "payment_reminder": "payment_reminders",
    "maintenance_update": "maintenance_updates",
    "announcement": "announcements",
    "system": "system_notifications",
}

PAYMENT_TYPE_INCOME_CATEGORY = {
    "monthly_dues": "hoa_fees",
    "special_assessment": "special_assessments",
    "fine": "fines",
    "other": "other_income",
}

MAINTENANCE_EXPENSE_CATEGORY = {
    "landscaping": "landscaping",
    "pool": "pool_maintenance",
    "security": "security",
    "repairs": "repairs",
    "utilities": "utilities",
    "cleaning": "maintenance_contract",
    "other": "other_expense",
}

REPORT_RANGE_DAYS = (30, 90, 180, 365)
STATEMENT_PERIODS = ("current", "ytd")

