"""
Flagged-Item Disposition

AUTHORITY: USER
User actions on renewal reminders. Each action updates the to-do and, for
dismiss/defer, the submission it points at, keeping the renewal engine's
invariants intact:
- Dismissed submissions leave ACTIVE, so the engine stops flagging them
- Deferred submissions come back to ACTIVE once the engine sees the
  deferred-until instant has passed
"""
import logging
from datetime import timedelta
from typing import Any, Dict

from ...models.db_models import (
    TodoItemDB, SubmissionStatus, TodoStatus, TodoItemType,
)
from .clock import SystemClock

logger = logging.getLogger(__name__)


MIN_DEFER_DAYS = 1


class DispositionError(ValueError):
    """Raised when an action is not valid for the given to-do."""


class FlaggedItemDisposition:
    """Complete / dismiss / defer actions on to-do items."""

    def __init__(self, submission_store, todo_store, clock=None):
        self.submissions = submission_store
        self.todos = todo_store
        self.clock = clock or SystemClock()

    def complete(self, todo: TodoItemDB) -> TodoItemDB:
        """Mark a to-do COMPLETED. Valid for tasks and flagged items alike."""
        return self.todos.update_todo(todo.id, status=TodoStatus.COMPLETED)

    def dismiss(self, todo: TodoItemDB) -> Dict[str, Any]:
        """Hide a flagged item and mark its submission USER_DISMISSED."""
        self._require_open_flagged(todo)

        now = self.clock.now()
        updated = self.todos.update_todo(todo.id, dismissed_at=now)
        self.submissions.update_submission(
            todo.related_submission_id,
            status=SubmissionStatus.USER_DISMISSED,
        )

        logger.info(f"Flagged item {todo.id} dismissed (submission {todo.related_submission_id})")
        return {
            "todo_id": updated.id,
            "submission_id": todo.related_submission_id,
            "dismissed_at": now.isoformat(),
            "submission_status": SubmissionStatus.USER_DISMISSED.value,
        }

    def defer(self, todo: TodoItemDB, days: int) -> Dict[str, Any]:
        """Hide a flagged item for `days` days and mark its submission USER_DEFERRED."""
        self._require_open_flagged(todo)
        if days is None or days < MIN_DEFER_DAYS:
            raise DispositionError(f"Defer duration must be at least {MIN_DEFER_DAYS} day")

        deferred_until = self.clock.now() + timedelta(days=days)
        updated = self.todos.update_todo(todo.id, deferred_until=deferred_until)
        self.submissions.update_submission(
            todo.related_submission_id,
            status=SubmissionStatus.USER_DEFERRED,
            defer_duration=days,
        )

        logger.info(f"Flagged item {todo.id} deferred {days} days until {deferred_until.isoformat()}")
        return {
            "todo_id": updated.id,
            "submission_id": todo.related_submission_id,
            "deferred_until": deferred_until.isoformat(),
            "defer_duration": days,
            "submission_status": SubmissionStatus.USER_DEFERRED.value,
        }

    def _require_open_flagged(self, todo: TodoItemDB) -> None:
        """Dismiss/defer apply only to an open flagged item whose submission is still current."""
        if todo.item_type != TodoItemType.FLAGGED_ITEM or not todo.related_submission_id:
            raise DispositionError("Only flagged items linked to a submission can be dismissed or deferred")
        if todo.status == TodoStatus.COMPLETED:
            raise DispositionError("Completed items cannot be dismissed or deferred")

        submission = self.submissions.get_submission(todo.related_submission_id)
        if submission is None:
            raise DispositionError("The submission for this item no longer exists")
        if submission.status == SubmissionStatus.OBSOLETE:
            raise DispositionError("The submission for this item has been renewed")
