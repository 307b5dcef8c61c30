"""
Renewal Engine

AUTHORITY: SYSTEM
Keeps a user's to-do list in sync with the compliance submissions that are
coming up for renewal. Runs once per session start, for one user at a time.

Key behaviors:
- Reactivate USER_DEFERRED submissions whose deferral window has elapsed
- Compute each ACTIVE submission's renewal due date (expiration date, or
  filing date + duration in months)
- Flag submissions due within the next 30 days with a FLAGGED_ITEM to-do
- Never create a second open reminder for a submission

Per-item write failures are logged and skipped. The next run re-derives
everything from the stores, so a missed reminder is retried then.
"""
import logging
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Iterable, Set, Tuple

from dateutil.relativedelta import relativedelta

from ...models.db_models import (
    ComplianceSubmissionDB, TodoItemDB,
    SubmissionStatus, TodoStatus, TodoPriority, TodoItemType,
)
from .clock import SystemClock

logger = logging.getLogger(__name__)


# =============================================================================
# RENEWAL CONFIGURATION
# =============================================================================

RENEWAL_WINDOW_DAYS = 30  # Look-ahead for reminder creation, inclusive

# (max days until due, priority) - first match wins
PRIORITY_THRESHOLDS = [
    (7, TodoPriority.URGENT),
    (14, TodoPriority.HIGH),
]
DEFAULT_PRIORITY = TodoPriority.MEDIUM

GENERIC_ENTITY_NAME = "your business"
GENERIC_AGENCY_NAME = "the issuing agency"


# =============================================================================
# PURE HELPERS
# =============================================================================

def parse_duration_months(duration: Any) -> Optional[int]:
    """Whole-month duration, or None if the value is missing or not an integer."""
    if duration is None:
        return None
    try:
        return int(str(duration).strip())
    except ValueError:
        return None


def compute_due_date(submission: ComplianceSubmissionDB) -> Optional[date]:
    """
    Renewal due date for a submission.

    Expiration date wins. Otherwise filing date advanced by the duration in
    months (day clamped to the end of the target month). None when neither
    can be computed, including a duration that overflows the calendar.
    """
    if submission.expiration_date:
        return _as_date(submission.expiration_date)

    months = parse_duration_months(submission.duration)
    if submission.filing_date and months is not None:
        return add_months(_as_date(submission.filing_date), months)

    return None


def add_months(start: date, months: int) -> Optional[date]:
    """start + months, or None when the result falls outside the date range."""
    try:
        return start + relativedelta(months=months)
    except (ValueError, OverflowError):
        return None


def days_until(due_date: date, today: date) -> int:
    """Whole days from today to due_date. Calendar dates, so already the ceiling."""
    return (due_date - today).days


def get_priority(days_remaining: int) -> TodoPriority:
    """URGENT within a week, HIGH within two, MEDIUM beyond."""
    for max_days, priority in PRIORITY_THRESHOLDS:
        if days_remaining <= max_days:
            return priority
    return DEFAULT_PRIORITY


def is_within_window(due_date: date, today: date, window_days: int = RENEWAL_WINDOW_DAYS) -> bool:
    return 0 <= days_until(due_date, today) <= window_days


def build_reminder_title(submission: ComplianceSubmissionDB) -> str:
    return f"Renew {submission.compliance_type} - {submission.state}"


def build_reminder_description(submission: ComplianceSubmissionDB) -> str:
    entity = submission.entity_name or GENERIC_ENTITY_NAME
    agency = submission.state_agency or GENERIC_AGENCY_NAME
    return (
        f"Your {submission.compliance_type} for {entity} in {submission.state} "
        f"expires soon. Renew with {agency}."
    )


def index_open_todos(todos: Iterable[TodoItemDB]) -> Dict[str, TodoItemDB]:
    """Map submission id -> a to-do referencing it that is not COMPLETED."""
    index = {}
    for todo in todos:
        if todo.related_submission_id and todo.status != TodoStatus.COMPLETED:
            index.setdefault(todo.related_submission_id, todo)
    return index


def index_deferred_todos(todos: Iterable[TodoItemDB]) -> Dict[str, TodoItemDB]:
    """Map submission id -> its to-do with the latest deferred_until."""
    index = {}
    for todo in todos:
        if not todo.related_submission_id or todo.deferred_until is None:
            continue
        current = index.get(todo.related_submission_id)
        if current is None or todo.deferred_until > current.deferred_until:
            index[todo.related_submission_id] = todo
    return index


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


# =============================================================================
# RENEWAL ENGINE
# =============================================================================

class RenewalEngine:
    """
    Synchronizes flagged renewal reminders for one user.

    Core Responsibilities:
    - Defer reconciliation (Step A)
    - Due-date computation and window filtering (Steps B, C)
    - Dedup against open to-dos (Step D)
    - Reminder creation with derived priority (Step E)
    """

    def __init__(self, submission_store, todo_store, clock=None, window_days: int = RENEWAL_WINDOW_DAYS):
        self.submissions = submission_store
        self.todos = todo_store
        self.clock = clock or SystemClock()
        self.window_days = window_days

    def run(self, user_id: str) -> Dict[str, Any]:
        """
        Run one renewal sync for a user.

        Read failures propagate and abort the run. Write failures for a single
        submission are logged, recorded under "errors" and skipped.
        """
        now = self.clock.now()
        today = now.date()

        submissions = list(self.submissions.list_submissions(user_id))
        todos = list(self.todos.list_todos(user_id))

        errors: List[Dict[str, Any]] = []

        reactivated, retired_todo_ids = self.reconcile_deferrals(submissions, todos, now, errors)

        open_todos = index_open_todos(t for t in todos if t.id not in retired_todo_ids)

        created = []
        skipped = []

        for submission in submissions:
            status = SubmissionStatus.ACTIVE if submission.id in reactivated else submission.status
            if status != SubmissionStatus.ACTIVE:
                continue

            due_date = compute_due_date(submission)
            if due_date is None:
                skipped.append({"submission_id": submission.id, "reason": "no_due_date"})
                continue

            if not is_within_window(due_date, today, self.window_days):
                continue

            if submission.id in open_todos:
                skipped.append({"submission_id": submission.id, "reason": "open_reminder_exists"})
                continue

            try:
                todo = self.create_reminder(user_id, submission, due_date, today)
            except Exception as e:
                logger.exception(f"Failed to create renewal reminder for submission {submission.id}")
                errors.append({"submission_id": submission.id, "step": "create_reminder", "error": str(e)})
                continue

            open_todos[submission.id] = todo
            created.append({
                "todo_id": todo.id,
                "submission_id": submission.id,
                "due_date": due_date.isoformat(),
                "priority": get_priority(days_until(due_date, today)).value,
            })

        logger.info(
            f"Renewal sync for user {user_id}: {len(reactivated)} reactivated, "
            f"{len(created)} created, {len(errors)} errors"
        )

        return {
            "run_date": now.isoformat(),
            "reactivated": len(reactivated),
            "created": len(created),
            "skipped": len(skipped),
            "errors": len(errors),
            "details": {
                "reactivated": sorted(reactivated),
                "created": created,
                "skipped": skipped,
                "errors": errors,
            },
        }

    # =========================================================================
    # STEP A - DEFER RECONCILIATION
    # =========================================================================

    def reconcile_deferrals(
        self,
        submissions: List[ComplianceSubmissionDB],
        todos: List[TodoItemDB],
        now: datetime,
        errors: List[Dict[str, Any]],
    ) -> Tuple[Set[str], Set[str]]:
        """
        Reactivate deferred submissions whose deferred-until instant has passed.

        The elapsed deferred to-do is retired first (COMPLETED), then the
        submission goes back to ACTIVE with its defer duration cleared. If the
        submission update fails, the retired to-do still carries deferred_until,
        so the next run picks the submission up again.

        Returns (reactivated submission ids, retired to-do ids).
        """
        deferred = index_deferred_todos(todos)
        reactivated: Set[str] = set()
        retired: Set[str] = set()

        for submission in submissions:
            if submission.status != SubmissionStatus.USER_DEFERRED or submission.defer_duration is None:
                continue

            todo = deferred.get(submission.id)
            if todo is None or now < todo.deferred_until:
                continue

            try:
                if todo.status != TodoStatus.COMPLETED:
                    self.todos.update_todo(todo.id, status=TodoStatus.COMPLETED)
                    retired.add(todo.id)
                self.submissions.update_submission(
                    submission.id,
                    status=SubmissionStatus.ACTIVE,
                    defer_duration=None,
                )
            except Exception as e:
                logger.exception(f"Failed to reactivate deferred submission {submission.id}")
                errors.append({"submission_id": submission.id, "step": "reconcile_deferral", "error": str(e)})
                continue

            reactivated.add(submission.id)

        return reactivated, retired

    # =========================================================================
    # STEP E - CREATION
    # =========================================================================

    def create_reminder(
        self,
        user_id: str,
        submission: ComplianceSubmissionDB,
        due_date: date,
        today: date,
    ) -> TodoItemDB:
        """Create the FLAGGED_ITEM reminder for a submission."""
        return self.todos.create_todo(
            user_id=user_id,
            title=build_reminder_title(submission),
            description=build_reminder_description(submission),
            priority=get_priority(days_until(due_date, today)),
            status=TodoStatus.PENDING,
            item_type=TodoItemType.FLAGGED_ITEM,
            due_date=due_date,
            related_submission_id=submission.id,
        )

    def get_upcoming_renewals(self, user_id: str) -> List[Dict[str, Any]]:
        """ACTIVE submissions due inside the window, soonest first. Read-only."""
        today = self.clock.today()
        upcoming = []

        for submission in self.submissions.list_submissions(user_id):
            if submission.status != SubmissionStatus.ACTIVE:
                continue
            due_date = compute_due_date(submission)
            if due_date is None or not is_within_window(due_date, today, self.window_days):
                continue
            remaining = days_until(due_date, today)
            upcoming.append({
                "submission_id": submission.id,
                "compliance_type": submission.compliance_type,
                "state": submission.state,
                "due_date": due_date.isoformat(),
                "days_remaining": remaining,
                "priority": get_priority(remaining).value,
            })

        return sorted(upcoming, key=lambda item: item["due_date"])
