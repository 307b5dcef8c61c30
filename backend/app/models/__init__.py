"""Compliance Tracker - Data Models"""
from .db_models import (
    # Enums
    SubmissionStatus, TodoPriority, TodoStatus, TodoItemType,
    # Tables
    UserDB, ComplianceAccountTypeDB, StateResourceDB,
    ComplianceSubmissionDB, TodoItemDB, NexusDataDB,
)

__all__ = [
    "SubmissionStatus", "TodoPriority", "TodoStatus", "TodoItemType",
    "UserDB", "ComplianceAccountTypeDB", "StateResourceDB",
    "ComplianceSubmissionDB", "TodoItemDB", "NexusDataDB",
]
