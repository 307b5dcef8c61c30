"""
Compliance Submission Service

Creation, update and renewal of compliance submissions.

AUTHORITY MODEL:
- USER-AUTHORIZED: create, update, delete, renew
- SYSTEM-ENFORCED: one non-OBSOLETE submission per (state, compliance type, entity)

The uniqueness rule is checked here, on create and update, rather than by a
table constraint: OBSOLETE history rows share the same triple.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import (
    ComplianceSubmissionDB, ComplianceAccountTypeDB, TodoItemDB,
    SubmissionStatus, TodoStatus,
)

logger = logging.getLogger(__name__)


class DuplicateSubmissionError(Exception):
    """A non-OBSOLETE submission already exists for the same triple."""

    def __init__(self, existing: ComplianceSubmissionDB):
        self.existing = existing
        super().__init__(
            f"An active submission already exists for {existing.compliance_type} / "
            f"{existing.entity_name or 'no entity'} in {existing.state}"
        )


class SubmissionNotFoundError(Exception):
    pass


# Columns copied from the superseded submission when renewing
RENEWAL_CARRY_OVER = [
    "account_type_id",
    "compliance_type",
    "state",
    "state_agency",
    "entity_name",
    "registration_number",
    "duration",
    "filing_storage_link",
    "compliance_page_link",
    "password_manager_link",
]

# Columns whose change can collide with another submission
UNIQUENESS_FIELDS = {"state", "compliance_type", "entity_name", "status"}


class ComplianceService:
    """Service for compliance submission management."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_submission(self, user_id: str, submission_id: str) -> ComplianceSubmissionDB:
        submission = self.db.query(ComplianceSubmissionDB).filter(
            ComplianceSubmissionDB.id == submission_id,
            ComplianceSubmissionDB.user_id == user_id,
        ).first()
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    def list_submissions(
        self,
        user_id: str,
        status: Optional[SubmissionStatus] = None,
        state: Optional[str] = None,
        compliance_type: Optional[str] = None,
        hide_obsolete: bool = True,
    ) -> List[ComplianceSubmissionDB]:
        query = self.db.query(ComplianceSubmissionDB).filter(ComplianceSubmissionDB.user_id == user_id)

        if status is not None:
            query = query.filter(ComplianceSubmissionDB.status == status)
        elif hide_obsolete:
            query = query.filter(ComplianceSubmissionDB.status != SubmissionStatus.OBSOLETE)

        if state:
            query = query.filter(ComplianceSubmissionDB.state == state.upper())
        if compliance_type:
            query = query.filter(ComplianceSubmissionDB.compliance_type.ilike(f"%{compliance_type}%"))

        return query.order_by(ComplianceSubmissionDB.expiration_date.asc()).all()

    def get_expiring(self, user_id: str, now: datetime, days_ahead: int = 30) -> List[ComplianceSubmissionDB]:
        """ACTIVE submissions whose expiration date falls in [today, today + days_ahead]."""
        today = now.date()
        return self.db.query(ComplianceSubmissionDB).filter(
            ComplianceSubmissionDB.user_id == user_id,
            ComplianceSubmissionDB.status == SubmissionStatus.ACTIVE,
            ComplianceSubmissionDB.expiration_date >= today,
            ComplianceSubmissionDB.expiration_date <= today + timedelta(days=days_ahead),
        ).order_by(ComplianceSubmissionDB.expiration_date.asc()).all()

    def find_conflicting(
        self,
        user_id: str,
        state: str,
        compliance_type: str,
        entity_name: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> Optional[ComplianceSubmissionDB]:
        """Existing non-OBSOLETE submission with the same (state, type, entity) triple."""
        query = self.db.query(ComplianceSubmissionDB).filter(
            ComplianceSubmissionDB.user_id == user_id,
            ComplianceSubmissionDB.state == state,
            ComplianceSubmissionDB.compliance_type == compliance_type,
            ComplianceSubmissionDB.status != SubmissionStatus.OBSOLETE,
        )
        if entity_name:
            query = query.filter(ComplianceSubmissionDB.entity_name == entity_name)
        else:
            query = query.filter(
                (ComplianceSubmissionDB.entity_name.is_(None)) | (ComplianceSubmissionDB.entity_name == "")
            )
        if exclude_id:
            query = query.filter(ComplianceSubmissionDB.id != exclude_id)
        return query.first()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def create_submission(
        self,
        user_id: str,
        fields: Dict[str, Any],
        commit: bool = True,
        supersedes_id: Optional[str] = None,
    ) -> ComplianceSubmissionDB:
        """
        Create a submission.

        Raises DuplicateSubmissionError when the triple is already taken by a
        non-OBSOLETE submission. Creating an OBSOLETE record is always allowed.
        """
        fields = dict(fields)
        fields["state"] = fields["state"].upper()
        fields.setdefault("status", SubmissionStatus.ACTIVE)

        if fields["status"] != SubmissionStatus.OBSOLETE:
            existing = self.find_conflicting(
                user_id,
                fields["state"],
                fields["compliance_type"],
                fields.get("entity_name"),
                exclude_id=supersedes_id,
            )
            if existing is not None:
                raise DuplicateSubmissionError(existing)

        self._check_account_type(fields.get("account_type_id"))

        submission = ComplianceSubmissionDB(id=str(uuid4()), user_id=user_id, **fields)
        self.db.add(submission)

        if commit:
            self.db.commit()
            self.db.refresh(submission)

        logger.info(f"Submission created: {submission.compliance_type} / {submission.state} for user {user_id}")
        return submission

    def update_submission(
        self,
        user_id: str,
        submission_id: str,
        fields: Dict[str, Any],
    ) -> ComplianceSubmissionDB:
        """
        Partial update. Only keys present in `fields` are written.

        Changing any part of the triple, or the status, re-checks uniqueness
        against the user's other non-OBSOLETE submissions.
        """
        submission = self.get_submission(user_id, submission_id)

        if "state" in fields and fields["state"]:
            fields["state"] = fields["state"].upper()

        if UNIQUENESS_FIELDS.intersection(fields):
            resulting = {key: fields.get(key, getattr(submission, key)) for key in UNIQUENESS_FIELDS}
            if resulting["status"] != SubmissionStatus.OBSOLETE:
                existing = self.find_conflicting(
                    user_id,
                    resulting["state"],
                    resulting["compliance_type"],
                    resulting["entity_name"],
                    exclude_id=submission.id,
                )
                if existing is not None:
                    raise DuplicateSubmissionError(existing)

        if "account_type_id" in fields:
            self._check_account_type(fields["account_type_id"])

        for key, value in fields.items():
            setattr(submission, key, value)

        self.db.commit()
        self.db.refresh(submission)
        return submission

    def delete_submission(self, user_id: str, submission_id: str) -> None:
        submission = self.get_submission(user_id, submission_id)
        self.db.delete(submission)
        self.db.commit()

    def renew_submission(
        self,
        user_id: str,
        submission_id: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Renew a submission.

        Creates the new submission (carrying over identity fields from the old
        one unless overridden), marks the old one OBSOLETE, and completes every
        open to-do that references the old one. Single commit.
        """
        old = self.get_submission(user_id, submission_id)

        new_fields = {column: getattr(old, column) for column in RENEWAL_CARRY_OVER}
        new_fields.update({k: v for k, v in fields.items() if v is not None})
        new_fields["status"] = SubmissionStatus.ACTIVE

        new_submission = self.create_submission(user_id, new_fields, commit=False, supersedes_id=old.id)
        old.status = SubmissionStatus.OBSOLETE

        completed = self.db.query(TodoItemDB).filter(
            TodoItemDB.user_id == user_id,
            TodoItemDB.related_submission_id == old.id,
            TodoItemDB.status != TodoStatus.COMPLETED,
        ).all()
        for todo in completed:
            todo.status = TodoStatus.COMPLETED

        self.db.commit()
        self.db.refresh(new_submission)

        logger.info(
            f"Submission {old.id} renewed as {new_submission.id}; "
            f"{len(completed)} reminder(s) completed"
        )
        return {
            "submission": new_submission,
            "obsoleted_id": old.id,
            "completed_todo_ids": [t.id for t in completed],
        }

    def _check_account_type(self, account_type_id: Optional[str]) -> None:
        if not account_type_id:
            return
        exists = self.db.query(ComplianceAccountTypeDB.id).filter(
            ComplianceAccountTypeDB.id == account_type_id
        ).first()
        if exists is None:
            raise ValueError(f"Unknown account type: {account_type_id}")
