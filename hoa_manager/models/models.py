from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import ROLE_ADMIN, ROLE_RESIDENT


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    last_sign_in_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    profile = orm_relationship("Profile", back_populates="user", uselist=False, cascade="all, delete-orphan")
    audit_logs = orm_relationship("AuditLog", back_populates="actor")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_RESIDENT, index=True)
    phone = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("User", back_populates="profile")
    properties = orm_relationship("Property", back_populates="owner")
    notifications = orm_relationship("Notification", back_populates="user", cascade="all, delete-orphan")
    notification_preferences = orm_relationship(
        "NotificationPreference",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_active(self) -> bool:
        return self.user.is_active if self.user is not None else True

    def has_any_role(self, *role_names: str) -> bool:
        return self.role in set(role_names)


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    unit_number = Column(String, unique=True, nullable=False)
    address = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    square_footage = Column(Integer, nullable=True)
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Numeric(3, 1), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = orm_relationship("Profile", back_populates="properties")
    payments = orm_relationship("Payment", back_populates="property_record", cascade="all, delete-orphan")
    maintenance_requests = orm_relationship("MaintenanceRequest", back_populates="property_record")

    @property
    def owner_name(self) -> Optional[str]:
        return self.owner.full_name if self.owner is not None else None


class MaintenanceRequest(Base):
    __tablename__ = "maintenance_requests"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    priority = Column(String, nullable=False, default="medium")
    assigned_vendor = Column(String, nullable=True)
    requested_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="SET NULL"), nullable=True)
    estimated_cost = Column(Numeric(10, 2), nullable=True)
    actual_cost = Column(Numeric(10, 2), nullable=True)
    scheduled_date = Column(Date, nullable=True)
    completed_date = Column(Date, nullable=True)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurrence_interval = Column(String, nullable=True)
    parent_request_id = Column(Integer, ForeignKey("maintenance_requests.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    requester = orm_relationship("Profile", foreign_keys=[requested_by])
    property_record = orm_relationship("Property", back_populates="maintenance_requests")
    documents = orm_relationship(
        "MaintenanceDocument",
        back_populates="maintenance_request",
        cascade="all, delete-orphan",
    )
    transactions = orm_relationship("Transaction", back_populates="maintenance_request")

    @property
    def requester_name(self) -> Optional[str]:
        return self.requester.full_name if self.requester is not None else None


class MaintenanceDocument(Base):
    __tablename__ = "maintenance_documents"

    id = Column(Integer, primary_key=True, index=True)
    maintenance_request_id = Column(
        Integer,
        ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type = Column(String, nullable=False)
    file_url = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    uploaded_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    maintenance_request = orm_relationship("MaintenanceRequest", back_populates="documents")
    uploader = orm_relationship("Profile", foreign_keys=[uploaded_by])


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False, index=True)  # income|expense
    category = Column(String, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    description = Column(Text, nullable=True)
    transaction_date = Column(Date, nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="SET NULL"), nullable=True)
    maintenance_request_id = Column(
        Integer,
        ForeignKey("maintenance_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    payment_id = Column(Integer, ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, unique=True)
    payment_method = Column(String, nullable=True)
    reference_number = Column(String, nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    property_record = orm_relationship("Property")
    maintenance_request = orm_relationship("MaintenanceRequest", back_populates="transactions")
    payment = orm_relationship("Payment", back_populates="ledger_transaction")
    creator = orm_relationship("Profile", foreign_keys=[created_by])


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_type = Column(String, nullable=False)
    payment_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    payment_method = Column(String, nullable=True)
    transaction_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    property_record = orm_relationship("Property", back_populates="payments")
    ledger_transaction = orm_relationship("Transaction", back_populates="payment", uselist=False)

    @property
    def unit_number(self) -> Optional[str]:
        return self.property_record.unit_number if self.property_record is not None else None

    @property
    def is_overdue(self) -> bool:
        return self.status == "pending" and self.due_date is not None and self.due_date < date.today()


class Announcement(Base):
    __tablename__ = "announcements"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    priority = Column(String, nullable=False, default="normal")
    published_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    published_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    publisher = orm_relationship("Profile", foreign_keys=[published_by])

    @property
    def publisher_name(self) -> Optional[str]:
        return self.publisher.full_name if self.publisher is not None else None


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    related_id = Column(Integer, nullable=True)
    link_url = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read_at = Column(DateTime, nullable=True)

    user = orm_relationship("Profile", back_populates="notifications")


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"
    __table_args__ = (UniqueConstraint("user_id", name="uq_notification_preferences_user"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    payment_reminders = Column(Boolean, default=True, nullable=False)
    maintenance_updates = Column(Boolean, default=True, nullable=False)
    announcements = Column(Boolean, default=True, nullable=False)
    system_notifications = Column(Boolean, default=True, nullable=False)
    email_notifications = Column(Boolean, default=False, nullable=False)
    push_notifications = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user = orm_relationship("Profile", back_populates="notification_preferences")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    actor_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)

    actor = orm_relationship("User", back_populates="audit_logs")
