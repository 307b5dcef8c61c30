"""
Compliance Tracker - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, JSON, ForeignKey, Boolean,
    UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS FOR COMPLIANCE / TODO SYSTEM
# =============================================================================

class SubmissionStatus(str, Enum):
    """Lifecycle status of a compliance submission."""
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    PENDING = "PENDING"
    OBSOLETE = "OBSOLETE"
    USER_DISMISSED = "USER_DISMISSED"
    USER_DEFERRED = "USER_DEFERRED"


class TodoPriority(str, Enum):
    """To-do priority, lowest to highest."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TodoStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class TodoItemType(str, Enum):
    """TASK items are user-created; FLAGGED_ITEM items come from the renewal engine."""
    TASK = "TASK"
    FLAGGED_ITEM = "FLAGGED_ITEM"


class UserDB(Base):
    """User account."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    submissions = relationship("ComplianceSubmissionDB", back_populates="user", cascade="all, delete-orphan")
    todos = relationship("TodoItemDB", back_populates="user", cascade="all, delete-orphan")
    nexus_analyses = relationship("NexusDataDB", back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# REFERENCE DATA
# =============================================================================

class ComplianceAccountTypeDB(Base):
    """
    Known registration type for a jurisdiction.

    required_fields holds a JSON-encoded list of submission field names
    (camelCase, as the client form uses them), e.g. '["entityName", "filingDate"]'.
    """
    __tablename__ = "compliance_account_types"
    __table_args__ = (UniqueConstraint("name", "state", name="uq_account_type_name_state"),)

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    state = Column(String(2), nullable=False, index=True)
    state_agency = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    required_fields = Column(Text, nullable=True)
    default_duration = Column(String(10), nullable=True)  # Months
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = relationship("ComplianceSubmissionDB", back_populates="account_type")


class StateResourceDB(Base):
    """Guidance content keyed by state + compliance type."""
    __tablename__ = "state_resources"

    id = Column(String(36), primary_key=True)  # UUID
    state = Column(String(2), nullable=False, index=True)
    compliance_type = Column(String(255), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False)
    required_documents = Column(Text, nullable=True)
    filing_frequency = Column(String(255), nullable=True)
    fees = Column(String(255), nullable=True)
    portal_link = Column(String(1000), nullable=True)
    additional_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# USER-OWNED DATA
# =============================================================================

class ComplianceSubmissionDB(Base):
    """
    A tracked compliance obligation (registration, license, filing).

    At most one non-OBSOLETE submission per (state, compliance_type, entity_name)
    is allowed. That is checked at creation time by the compliance service,
    not by a table constraint.
    """
    __tablename__ = "compliance_submissions"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_type_id = Column(
        String(36), ForeignKey("compliance_account_types.id", ondelete="SET NULL"), nullable=True
    )

    compliance_type = Column(String(255), nullable=False)
    state = Column(String(2), nullable=False, index=True)
    state_agency = Column(String(255), nullable=True)
    entity_name = Column(String(255), nullable=True)
    registration_number = Column(String(255), nullable=True)

    submitted_on = Column(Date, nullable=True)
    filing_date = Column(Date, nullable=True)
    expiration_date = Column(Date, nullable=True)
    duration = Column(String(10), nullable=True)  # Months, free text from the form

    status = Column(SQLEnum(SubmissionStatus), default=SubmissionStatus.ACTIVE, nullable=False)
    defer_duration = Column(Integer, nullable=True)  # Days, set while USER_DEFERRED

    filing_storage_link = Column(String(1000), nullable=True)
    compliance_page_link = Column(String(1000), nullable=True)
    password_manager_link = Column(String(1000), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="submissions")
    account_type = relationship("ComplianceAccountTypeDB", back_populates="submissions")
    todos = relationship("TodoItemDB", back_populates="related_submission")


class TodoItemDB(Base):
    """User task or system-generated renewal reminder."""
    __tablename__ = "todo_items"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    related_submission_id = Column(
        String(36), ForeignKey("compliance_submissions.id", ondelete="SET NULL"), nullable=True, index=True
    )

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(SQLEnum(TodoPriority), default=TodoPriority.MEDIUM, nullable=False)
    status = Column(SQLEnum(TodoStatus), default=TodoStatus.PENDING, nullable=False)
    item_type = Column(SQLEnum(TodoItemType), default=TodoItemType.TASK, nullable=False)

    due_date = Column(Date, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)
    deferred_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("UserDB", back_populates="todos")
    related_submission = relationship("ComplianceSubmissionDB", back_populates="todos")


class NexusDataDB(Base):
    """Persisted nexus analysis of an uploaded payroll/census file."""
    __tablename__ = "nexus_data"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    file_name = Column(String(500), nullable=False)
    file_type = Column(String(50), default="unknown")
    upload_date = Column(DateTime, default=datetime.utcnow)

    analysis_results = Column(JSON)
    recommendations = Column(JSON)
    processed = Column(Boolean, default=False)

    # Relationships
    user = relationship("UserDB", back_populates="nexus_analyses")
