from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, condecimal, model_validator

ProfileRole = Literal["admin", "resident"]
MaintenanceCategory = Literal["landscaping", "pool", "security", "repairs", "utilities", "cleaning", "other"]
MaintenanceStatus = Literal["pending", "in_progress", "completed", "cancelled"]
MaintenancePriority = Literal["low", "medium", "high", "urgent"]
RecurrenceInterval = Literal["monthly", "quarterly", "annually"]
DocumentType = Literal["invoice", "receipt", "estimate", "photo", "other"]
TransactionType = Literal["income", "expense"]
PaymentMethod = Literal["cash", "check", "credit_card", "bank_transfer", "online"]
PaymentType = Literal["monthly_dues", "special_assessment", "fine", "other"]
PaymentStatus = Literal["pending", "paid", "overdue", "cancelled"]
AnnouncementPriority = Literal["normal", "important", "urgent"]
NotificationType = Literal["payment_reminder", "maintenance_update", "announcement", "system"]

Money = condecimal(max_digits=10, decimal_places=2, gt=0)
NonNegativeMoney = condecimal(max_digits=10, decimal_places=2, ge=0)


class PartialUpdate(BaseModel):
    """PATCH body: omitted fields stay untouched, ``non_nullable`` fields may not be sent as null."""

    non_nullable: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_explicit_nulls(self):
        nulled = [name for name in self.non_nullable if name in self.model_fields_set and getattr(self, name) is None]
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self


# --- Auth / profiles ---


class Token(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    role: Optional[str] = None
    expires_in: Optional[int] = None
    refresh_expires_in: Optional[int] = None


class TokenRefreshRequest(BaseModel):
    refresh_token: str


class ProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: EmailStr
    full_name: str
    role: ProfileRole
    phone: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class ProfileSelfUpdate(PartialUpdate):
    non_nullable = ("full_name",)

    full_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=6)
    new_password: str = Field(min_length=8)


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str = Field(min_length=1)
    password: str = Field(min_length=8)
    role: ProfileRole = "resident"
    phone: Optional[str] = None


class ProfileRoleUpdate(BaseModel):
    role: ProfileRole


# --- Properties ---


class PropertyBase(BaseModel):
    unit_number: str = Field(min_length=1)
    address: str = Field(min_length=1)
    owner_id: Optional[int] = None
    square_footage: Optional[int] = Field(default=None, gt=0)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[condecimal(max_digits=3, decimal_places=1, ge=0)] = None


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(PartialUpdate):
    non_nullable = ("unit_number", "address")

    unit_number: Optional[str] = Field(default=None, min_length=1)
    address: Optional[str] = Field(default=None, min_length=1)
    owner_id: Optional[int] = None
    square_footage: Optional[int] = Field(default=None, gt=0)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[condecimal(max_digits=3, decimal_places=1, ge=0)] = None


class PropertyRead(PropertyBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PropertyImportResult(BaseModel):
    created: int
    skipped: int
    skipped_units: List[str] = []


# --- Maintenance ---


class MaintenanceRequestCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: MaintenanceCategory
    priority: MaintenancePriority = "medium"
    property_id: Optional[int] = None
    assigned_vendor: Optional[str] = None
    estimated_cost: Optional[NonNegativeMoney] = None
    scheduled_date: Optional[date] = None
    is_recurring: bool = False
    recurrence_interval: Optional[RecurrenceInterval] = None

    @model_validator(mode="after")
    def _check_recurrence(self):
        if self.is_recurring and not self.recurrence_interval:
            raise ValueError("Recurring requests require a recurrence interval.")
        return self


class MaintenanceRequestUpdate(PartialUpdate):
    non_nullable = ("title", "category", "priority", "status", "is_recurring")

    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    category: Optional[MaintenanceCategory] = None
    priority: Optional[MaintenancePriority] = None
    property_id: Optional[int] = None
    status: Optional[MaintenanceStatus] = None
    assigned_vendor: Optional[str] = None
    estimated_cost: Optional[NonNegativeMoney] = None
    actual_cost: Optional[NonNegativeMoney] = None
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    is_recurring: Optional[bool] = None
    recurrence_interval: Optional[RecurrenceInterval] = None


class MaintenanceStatusUpdate(BaseModel):
    status: MaintenanceStatus
    completed_date: Optional[date] = None
    actual_cost: Optional[NonNegativeMoney] = None


class MaintenanceRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    category: str
    status: str
    priority: str
    assigned_vendor: Optional[str] = None
    requested_by: Optional[int] = None
    requester_name: Optional[str] = None
    property_id: Optional[int] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    scheduled_date: Optional[date] = None
    completed_date: Optional[date] = None
    is_recurring: bool
    recurrence_interval: Optional[str] = None
    parent_request_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class MaintenanceDocumentCreate(BaseModel):
    document_type: DocumentType
    file_url: str = Field(min_length=1)
    file_name: str = Field(min_length=1)


class MaintenanceDocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    maintenance_request_id: int
    document_type: str
    file_url: str
    file_name: str
    uploaded_by: Optional[int] = None
    created_at: datetime


# --- Transactions ---


class TransactionCreate(BaseModel):
    type: TransactionType
    category: str
    amount: Money
    description: Optional[str] = None
    transaction_date: date = Field(default_factory=date.today)
    property_id: Optional[int] = None
    maintenance_request_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    reference_number: Optional[str] = None


class TransactionUpdate(PartialUpdate):
    non_nullable = ("type", "category", "amount", "transaction_date")

    type: Optional[TransactionType] = None
    category: Optional[str] = None
    amount: Optional[Money] = None
    description: Optional[str] = None
    transaction_date: Optional[date] = None
    property_id: Optional[int] = None
    maintenance_request_id: Optional[int] = None
    payment_method: Optional[PaymentMethod] = None
    reference_number: Optional[str] = None


class TransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    category: str
    amount: Decimal
    description: Optional[str] = None
    transaction_date: date
    property_id: Optional[int] = None
    maintenance_request_id: Optional[int] = None
    payment_id: Optional[int] = None
    payment_method: Optional[str] = None
    reference_number: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime


class TransactionList(BaseModel):
    items: List[TransactionRead]
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal


# --- Payments ---


class PaymentCreate(BaseModel):
    property_id: int
    amount: Money
    payment_type: PaymentType = "monthly_dues"
    due_date: date
    notes: Optional[str] = None


class PaymentUpdate(PartialUpdate):
    non_nullable = ("amount", "payment_type", "due_date")

    amount: Optional[Money] = None
    payment_type: Optional[PaymentType] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[date] = None
    transaction_id: Optional[str] = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    property_id: int
    unit_number: Optional[str] = None
    amount: Decimal
    payment_type: str
    payment_date: Optional[date] = None
    due_date: date
    status: str
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
    is_overdue: bool = False
    created_at: datetime


class PaymentList(BaseModel):
    items: List[PaymentRead]
    total_outstanding: Decimal
    total_paid: Decimal


class CheckoutSessionResponse(BaseModel):
    session_id: str
    checkout_url: str


# --- Announcements ---


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1)
    content: str = Field(min_length=1)
    priority: AnnouncementPriority = "normal"


class AnnouncementUpdate(PartialUpdate):
    non_nullable = ("title", "content", "priority")

    title: Optional[str] = Field(default=None, min_length=1)
    content: Optional[str] = Field(default=None, min_length=1)
    priority: Optional[AnnouncementPriority] = None


class AnnouncementRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    priority: str
    published_by: Optional[int] = None
    publisher_name: Optional[str] = None
    published_at: datetime
    created_at: datetime


# --- Notifications ---


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    title: str
    message: str
    type: str
    is_read: bool
    related_id: Optional[int] = None
    link_url: Optional[str] = None
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationBroadcast(BaseModel):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    type: NotificationType = "system"
    link_url: Optional[str] = None
    related_id: Optional[int] = None
    user_ids: List[int] = []
    roles: List[ProfileRole] = []

    @model_validator(mode="after")
    def _require_audience(self):
        if not self.user_ids and not self.roles:
            raise ValueError("Provide at least one recipient id or role.")
        return self


class UnreadCount(BaseModel):
    count: int


class NotificationPreferenceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    payment_reminders: bool
    maintenance_updates: bool
    announcements: bool
    system_notifications: bool
    email_notifications: bool
    push_notifications: bool
    updated_at: datetime


class NotificationPreferenceUpdate(PartialUpdate):
    non_nullable = (
        "payment_reminders",
        "maintenance_updates",
        "announcements",
        "system_notifications",
        "email_notifications",
        "push_notifications",
    )

    payment_reminders: Optional[bool] = None
    maintenance_updates: Optional[bool] = None
    announcements: Optional[bool] = None
    system_notifications: Optional[bool] = None
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None


# --- Reports ---


class ReportSummary(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    net_income: Decimal
    income_count: int
    expense_count: int
    transaction_count: int


class MonthlyRollup(BaseModel):
    month: str
    label: str
    income: Decimal
    expenses: Decimal
    net: Decimal


class CategoryBreakdown(BaseModel):
    category: str
    display_name: str
    amount: Decimal
    count: int
    percentage: float


class FinancialReport(BaseModel):
    days: int
    start_date: date
    end_date: date
    summary: ReportSummary
    monthly: List[MonthlyRollup]
    income_categories: List[CategoryBreakdown]
    expense_categories: List[CategoryBreakdown]
    average_income: Decimal
    average_expense: Decimal


class BalanceSheet(BaseModel):
    period: str
    start_date: date
    as_of: date
    cash: Decimal
    accounts_receivable: Decimal
    total_assets: Decimal
    accounts_payable: Decimal
    total_liabilities: Decimal
    retained_earnings: Decimal
    total_equity: Decimal


class StatementLine(BaseModel):
    category: str
    amount: Decimal


class IncomeStatement(BaseModel):
    period: str
    start_date: date
    end_date: date
    revenue: List[StatementLine]
    total_revenue: Decimal
    expenses: List[StatementLine]
    total_expenses: Decimal
    net_income: Decimal


# --- Dashboard ---


class DashboardSummary(BaseModel):
    greeting_name: str
    role: str
    total_income: Decimal
    total_expenses: Decimal
    balance: Decimal
    pending_payments_total: Decimal
    pending_maintenance: int
    in_progress_maintenance: int
    recent_transactions: List[TransactionRead]
    recent_maintenance: List[MaintenanceRequestRead]


# --- Audit ---


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: datetime
    actor_user_id: Optional[int] = None
    action: str
    target_entity_type: Optional[str] = None
    target_entity_id: Optional[str] = None
    before: Optional[str] = None
    after: Optional[str] = None


class AuditLogList(BaseModel):
    items: List[AuditLogRead]
    total: int


class SystemHealth(BaseModel):
    status: str
    database: str
    details: Dict[str, Any] = {}
