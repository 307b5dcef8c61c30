"""
Compliance Tracker - Compliance Submissions Router

Account-type catalog, submission CRUD, expiring list and the renew flow.
All endpoints require authentication.
"""
from datetime import date
from typing import List, Optional
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB, ComplianceAccountTypeDB, ComplianceSubmissionDB, SubmissionStatus
from ..auth import get_current_user
from ..services.compliance import (
    ComplianceService,
    DuplicateSubmissionError,
    SubmissionNotFoundError,
    visible_fields,
    parse_required_fields,
    build_prefill,
)
from ..services.renewals.clock import get_clock
from ..services.renewals.renewal_engine import compute_due_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/compliance", tags=["compliance"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

def _validate_state_code(v):
    if v is not None:
        if not re.match(r'^[A-Za-z]{2}$', v):
            raise ValueError('State must be a 2-letter code')
        return v.upper()
    return v


class AccountTypeResponse(BaseModel):
    id: str
    name: str
    state: str
    state_agency: str
    description: Optional[str] = None
    required_fields: List[str] = []
    default_duration: Optional[str] = None
    is_active: bool = True


class AccountTypeFormResponse(BaseModel):
    account_type_id: str
    visible_fields: List[str]
    prefill: dict


class SubmissionCreateRequest(BaseModel):
    compliance_type: str
    state: str
    state_agency: Optional[str] = None
    account_type_id: Optional[str] = None
    entity_name: Optional[str] = None
    registration_number: Optional[str] = None
    submitted_on: Optional[date] = None
    filing_date: Optional[date] = None
    expiration_date: Optional[date] = None
    duration: Optional[str] = None
    status: SubmissionStatus = SubmissionStatus.ACTIVE
    filing_storage_link: Optional[str] = None
    compliance_page_link: Optional[str] = None
    password_manager_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        return _validate_state_code(v)


class SubmissionUpdateRequest(BaseModel):
    """All fields optional - only provided fields are updated."""
    compliance_type: Optional[str] = None
    state: Optional[str] = None
    state_agency: Optional[str] = None
    account_type_id: Optional[str] = None
    entity_name: Optional[str] = None
    registration_number: Optional[str] = None
    submitted_on: Optional[date] = None
    filing_date: Optional[date] = None
    expiration_date: Optional[date] = None
    duration: Optional[str] = None
    status: Optional[SubmissionStatus] = None
    filing_storage_link: Optional[str] = None
    compliance_page_link: Optional[str] = None
    password_manager_link: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('compliance_type', 'state', 'status')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('Field cannot be null')
        return v

    @field_validator('state')
    @classmethod
    def validate_state(cls, v):
        return _validate_state_code(v)


class RenewRequest(BaseModel):
    """Fields for the new submission. Anything omitted is carried over."""
    registration_number: Optional[str] = None
    entity_name: Optional[str] = None
    submitted_on: Optional[date] = None
    filing_date: Optional[date] = None
    expiration_date: Optional[date] = None
    duration: Optional[str] = None
    filing_storage_link: Optional[str] = None
    notes: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: str
    compliance_type: str
    state: str
    state_agency: Optional[str] = None
    account_type_id: Optional[str] = None
    account_type_name: Optional[str] = None
    entity_name: Optional[str] = None
    registration_number: Optional[str] = None
    submitted_on: Optional[str] = None
    filing_date: Optional[str] = None
    expiration_date: Optional[str] = None
    duration: Optional[str] = None
    renewal_due_date: Optional[str] = None
    status: str
    defer_duration: Optional[int] = None
    filing_storage_link: Optional[str] = None
    compliance_page_link: Optional[str] = None
    password_manager_link: Optional[str] = None
    notes: Optional[str] = None


class RenewResponse(BaseModel):
    submission: SubmissionResponse
    obsoleted_id: str
    completed_todo_ids: List[str]


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# HELPERS
# =============================================================================

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_account_type(account_type: ComplianceAccountTypeDB) -> AccountTypeResponse:
    return AccountTypeResponse(
        id=account_type.id,
        name=account_type.name,
        state=account_type.state,
        state_agency=account_type.state_agency,
        description=account_type.description,
        required_fields=parse_required_fields(account_type.required_fields) or [],
        default_duration=account_type.default_duration,
        is_active=bool(account_type.is_active),
    )


def serialize_submission(submission: ComplianceSubmissionDB) -> SubmissionResponse:
    return SubmissionResponse(
        id=submission.id,
        compliance_type=submission.compliance_type,
        state=submission.state,
        state_agency=submission.state_agency,
        account_type_id=submission.account_type_id,
        account_type_name=submission.account_type.name if submission.account_type else None,
        entity_name=submission.entity_name,
        registration_number=submission.registration_number,
        submitted_on=_iso(submission.submitted_on),
        filing_date=_iso(submission.filing_date),
        expiration_date=_iso(submission.expiration_date),
        duration=submission.duration,
        renewal_due_date=_iso(compute_due_date(submission)),
        status=submission.status.value,
        defer_duration=submission.defer_duration,
        filing_storage_link=submission.filing_storage_link,
        compliance_page_link=submission.compliance_page_link,
        password_manager_link=submission.password_manager_link,
        notes=submission.notes,
    )


def _duplicate_exception(e: DuplicateSubmissionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": str(e), "existing_submission_id": e.existing.id},
    )


# =============================================================================
# ACCOUNT TYPE ENDPOINTS
# =============================================================================

@router.get("/account-types", response_model=List[AccountTypeResponse])
async def list_account_types(
    state: Optional[str] = None,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List active compliance account types, optionally for one state.
    """
    query = db.query(ComplianceAccountTypeDB).filter(ComplianceAccountTypeDB.is_active.is_(True))
    if state:
        query = query.filter(ComplianceAccountTypeDB.state == state.upper())

    account_types = query.order_by(ComplianceAccountTypeDB.state.asc(), ComplianceAccountTypeDB.name.asc()).all()
    return [serialize_account_type(t) for t in account_types]


@router.get("/account-types/{account_type_id}/form", response_model=AccountTypeFormResponse)
async def get_account_type_form(
    account_type_id: str,
    filing_date: Optional[date] = None,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Visible form fields and default values for a new submission of this type.
    """
    account_type = db.query(ComplianceAccountTypeDB).filter(
        ComplianceAccountTypeDB.id == account_type_id
    ).first()
    if account_type is None:
        raise HTTPException(status_code=404, detail="Account type not found")

    return AccountTypeFormResponse(
        account_type_id=account_type.id,
        visible_fields=visible_fields(account_type),
        prefill=build_prefill(account_type, filing_date),
    )


# =============================================================================
# SUBMISSION ENDPOINTS
# =============================================================================

@router.get("", response_model=List[SubmissionResponse])
async def list_submissions(
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    state: Optional[str] = None,
    compliance_type: Optional[str] = None,
    hide_obsolete: bool = True,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    List the current user's submissions, soonest expiration first.
    """
    service = ComplianceService(db)
    submissions = service.list_submissions(
        current_user.id,
        status=status_filter,
        state=state,
        compliance_type=compliance_type,
        hide_obsolete=hide_obsolete,
    )
    return [serialize_submission(s) for s in submissions]


@router.get("/expiring", response_model=List[SubmissionResponse])
async def list_expiring_submissions(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    ACTIVE submissions expiring within the next 30 days (for alerts).
    """
    service = ComplianceService(db)
    return [serialize_submission(s) for s in service.get_expiring(current_user.id, clock.now())]


@router.post("", response_model=SubmissionResponse, status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: SubmissionCreateRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a compliance submission.
    Rejected with 409 if a non-obsolete submission exists for the same state, type and entity.
    """
    service = ComplianceService(db)
    try:
        submission = service.create_submission(current_user.id, request.model_dump())
    except DuplicateSubmissionError as e:
        raise _duplicate_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return serialize_submission(submission)


@router.put("/{submission_id}", response_model=SubmissionResponse)
async def update_submission(
    submission_id: str,
    request: SubmissionUpdateRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Update a submission. Only provided fields are written.
    """
    service = ComplianceService(db)
    try:
        submission = service.update_submission(
            current_user.id, submission_id, request.model_dump(exclude_unset=True)
        )
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except DuplicateSubmissionError as e:
        raise _duplicate_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return serialize_submission(submission)


@router.delete("/{submission_id}", response_model=MessageResponse)
async def delete_submission(
    submission_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = ComplianceService(db)
    try:
        service.delete_submission(current_user.id, submission_id)
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")

    logger.info(f"Submission {submission_id} deleted by {current_user.email}")
    return MessageResponse(message="Submission deleted successfully")


@router.post("/{submission_id}/renew", response_model=RenewResponse, status_code=status.HTTP_201_CREATED)
async def renew_submission(
    submission_id: str,
    request: RenewRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Renew a submission.

    Creates the replacement submission, marks this one OBSOLETE and completes
    its open renewal reminders.
    """
    service = ComplianceService(db)
    try:
        result = service.renew_submission(current_user.id, submission_id, request.model_dump())
    except SubmissionNotFoundError:
        raise HTTPException(status_code=404, detail="Submission not found")
    except DuplicateSubmissionError as e:
        db.rollback()
        raise _duplicate_exception(e)

    return RenewResponse(
        submission=serialize_submission(result["submission"]),
        obsoleted_id=result["obsoleted_id"],
        completed_todo_ids=result["completed_todo_ids"],
    )
