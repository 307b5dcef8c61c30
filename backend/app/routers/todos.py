"""
Compliance Tracker - To-Do Router

User tasks, system-generated renewal reminders (flagged items), the
complete / dismiss / defer actions, and the renewal sync run on session start.
All endpoints require authentication.
"""
from datetime import date
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import (
    UserDB, ComplianceSubmissionDB, TodoItemDB, TodoPriority, TodoStatus, TodoItemType,
)
from ..auth import get_current_user
from ..services.renewals import (
    RenewalEngine,
    FlaggedItemDisposition,
    DispositionError,
    SubmissionStore,
    TodoStore,
)
from ..services.renewals.clock import get_clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/todos", tags=["todos"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class TodoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: TodoPriority = TodoPriority.MEDIUM
    due_date: Optional[date] = None
    related_submission_id: Optional[str] = None
    item_type: TodoItemType = TodoItemType.TASK


class TodoUpdateRequest(BaseModel):
    """All fields optional - only provided fields are updated."""
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TodoPriority] = None
    status: Optional[TodoStatus] = None
    due_date: Optional[date] = None

    @field_validator('title', 'priority', 'status')
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError('Field cannot be null')
        return v


class DeferRequest(BaseModel):
    days: int = Field(..., ge=1)


class TodoResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    priority: str
    status: str
    item_type: str
    due_date: Optional[str] = None
    dismissed_at: Optional[str] = None
    deferred_until: Optional[str] = None
    related_submission_id: Optional[str] = None
    related_submission_status: Optional[str] = None
    created_at: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


# =============================================================================
# HELPERS
# =============================================================================

# TASK before FLAGGED_ITEM, PENDING before COMPLETED, most urgent first
_ITEM_TYPE_RANK = {TodoItemType.TASK: 0, TodoItemType.FLAGGED_ITEM: 1}
_STATUS_RANK = {TodoStatus.PENDING: 0, TodoStatus.COMPLETED: 1}
_PRIORITY_RANK = {
    TodoPriority.URGENT: 0,
    TodoPriority.HIGH: 1,
    TodoPriority.MEDIUM: 2,
    TodoPriority.LOW: 3,
}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def todo_sort_key(todo: TodoItemDB):
    return (
        _ITEM_TYPE_RANK.get(todo.item_type, 9),
        _STATUS_RANK.get(todo.status, 9),
        _PRIORITY_RANK.get(todo.priority, 9),
        todo.due_date is None,
        todo.due_date or date.max,
    )


def is_visible(todo: TodoItemDB, now) -> bool:
    """Dismissed items are hidden; deferred items are hidden until deferred_until passes."""
    if todo.dismissed_at is not None:
        return False
    return todo.deferred_until is None or todo.deferred_until <= now


def serialize_todo(todo: TodoItemDB) -> TodoResponse:
    return TodoResponse(
        id=todo.id,
        title=todo.title,
        description=todo.description,
        priority=todo.priority.value,
        status=todo.status.value,
        item_type=todo.item_type.value,
        due_date=_iso(todo.due_date),
        dismissed_at=_iso(todo.dismissed_at),
        deferred_until=_iso(todo.deferred_until),
        related_submission_id=todo.related_submission_id,
        related_submission_status=(
            todo.related_submission.status.value if todo.related_submission else None
        ),
        created_at=_iso(todo.created_at),
    )


def _get_owned_todo(db: Session, user: UserDB, todo_id: str) -> TodoItemDB:
    todo = db.query(TodoItemDB).filter(
        TodoItemDB.id == todo_id,
        TodoItemDB.user_id == user.id,
    ).first()
    if todo is None:
        raise HTTPException(status_code=404, detail="Todo not found")
    return todo


# =============================================================================
# TODO ENDPOINTS
# =============================================================================

@router.get("", response_model=List[TodoResponse])
async def list_todos(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    List the user's visible to-dos: tasks first, then flagged items.
    """
    now = clock.now()
    todos = db.query(TodoItemDB).filter(TodoItemDB.user_id == current_user.id).all()
    visible = sorted((t for t in todos if is_visible(t, now)), key=todo_sort_key)
    return [serialize_todo(t) for t in visible]


@router.post("", response_model=TodoResponse, status_code=status.HTTP_201_CREATED)
async def create_todo(
    request: TodoCreateRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Create a user task. Flagged items are only created by the renewal sync.
    """
    if request.item_type != TodoItemType.TASK:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Flagged items are generated by the system and cannot be created manually"
        )

    if request.related_submission_id:
        owned = db.query(ComplianceSubmissionDB.id).filter(
            ComplianceSubmissionDB.id == request.related_submission_id,
            ComplianceSubmissionDB.user_id == current_user.id,
        ).first()
        if owned is None:
            raise HTTPException(status_code=404, detail="Submission not found")

    todo = TodoStore(db).create_todo(
        user_id=current_user.id,
        title=request.title,
        description=request.description,
        priority=request.priority,
        status=TodoStatus.PENDING,
        item_type=TodoItemType.TASK,
        due_date=request.due_date,
        related_submission_id=request.related_submission_id,
    )
    return serialize_todo(todo)


@router.put("/{todo_id}", response_model=TodoResponse)
async def update_todo(
    todo_id: str,
    request: TodoUpdateRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    todo = _get_owned_todo(db, current_user, todo_id)
    updated = TodoStore(db).update_todo(todo.id, **request.model_dump(exclude_unset=True))
    return serialize_todo(updated)


@router.delete("/{todo_id}", response_model=MessageResponse)
async def delete_todo(
    todo_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    todo = _get_owned_todo(db, current_user, todo_id)
    db.delete(todo)
    db.commit()
    return MessageResponse(message="Todo deleted successfully")


# =============================================================================
# FLAGGED-ITEM DISPOSITION
# =============================================================================

def _disposition(db: Session, clock) -> FlaggedItemDisposition:
    return FlaggedItemDisposition(SubmissionStore(db), TodoStore(db), clock=clock)


@router.post("/{todo_id}/complete", response_model=TodoResponse)
async def complete_todo(
    todo_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    todo = _get_owned_todo(db, current_user, todo_id)
    return serialize_todo(_disposition(db, clock).complete(todo))


@router.post("/{todo_id}/dismiss", response_model=dict)
async def dismiss_todo(
    todo_id: str,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Dismiss a flagged item. Its submission becomes USER_DISMISSED and is no
    longer flagged for renewal.
    """
    todo = _get_owned_todo(db, current_user, todo_id)
    try:
        return _disposition(db, clock).dismiss(todo)
    except DispositionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{todo_id}/defer", response_model=dict)
async def defer_todo(
    todo_id: str,
    request: DeferRequest,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Defer a flagged item for N days. Its submission is USER_DEFERRED until the
    next renewal sync after the deferral elapses.
    """
    todo = _get_owned_todo(db, current_user, todo_id)
    try:
        return _disposition(db, clock).defer(todo, request.days)
    except DispositionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


# =============================================================================
# RENEWAL SYNC (SYSTEM)
# =============================================================================

@router.post("/sync-renewals", response_model=dict)
async def sync_renewals(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Run the renewal engine for the current user.

    Called by the client on session start. Reactivates elapsed deferrals and
    creates renewal reminders for submissions due in the next 30 days.
    """
    engine = RenewalEngine(SubmissionStore(db), TodoStore(db), clock=clock)
    try:
        return engine.run(current_user.id)
    except SQLAlchemyError:
        logger.exception(f"Renewal sync aborted for user {current_user.id}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to sync renewals")


@router.get("/upcoming-renewals", response_model=dict)
async def upcoming_renewals(
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    """
    Read-only view of ACTIVE submissions due in the renewal window.
    """
    engine = RenewalEngine(SubmissionStore(db), TodoStore(db), clock=clock)
    upcoming = engine.get_upcoming_renewals(current_user.id)
    return {
        "window_days": engine.window_days,
        "count": len(upcoming),
        "renewals": upcoming,
    }
