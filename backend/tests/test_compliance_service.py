"""
Tests for the compliance submission service and the SQLAlchemy stores.

Runs against an in-memory SQLite database.

Covers:
1. One non-OBSOLETE submission per (state, compliance type, entity), on create and update
2. The renew flow (new submission, old OBSOLETE, reminders completed)
3. Listing / expiring queries
4. Renewal engine end-to-end over the real stores
"""
import json
import pytest
from datetime import date, datetime, timedelta
from uuid import uuid4

from sqlalchemy.orm import sessionmaker

from app.database import init_db, make_engine
from app.models.db_models import (
    UserDB, ComplianceAccountTypeDB, ComplianceSubmissionDB, TodoItemDB,
    SubmissionStatus, TodoStatus, TodoItemType, TodoPriority,
)
from app.services.compliance import (
    ComplianceService,
    DuplicateSubmissionError,
    SubmissionNotFoundError,
)
from app.services.renewals import (
    RenewalEngine,
    FlaggedItemDisposition,
    DispositionError,
    FixedClock,
    SubmissionStore,
    TodoStore,
    StoreError,
)


USER_ID = "user-1"
OTHER_USER_ID = "user-2"
NOW = datetime(2024, 12, 20, 9, 30, 0)
TODAY = NOW.date()


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db():
    engine = make_engine("sqlite://")
    init_db(engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    session.add(UserDB(id=USER_ID, email="owner@example.com", password_hash="x"))
    session.add(UserDB(id=OTHER_USER_ID, email="other@example.com", password_hash="x"))
    session.commit()

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def service(db):
    return ComplianceService(db)


@pytest.fixture
def account_type(db):
    account_type = ComplianceAccountTypeDB(
        id=str(uuid4()),
        name="Sales and Use Tax Permit",
        state="CA",
        state_agency="CDTFA",
        required_fields=json.dumps(["entityName", "registrationNumber"]),
        default_duration="12",
    )
    db.add(account_type)
    db.commit()
    return account_type


def submission_fields(**overrides):
    fields = {
        "compliance_type": "Sales and Use Tax Permit",
        "state": "CA",
        "state_agency": "CDTFA",
        "entity_name": "Acme LLC",
        "registration_number": "SR-100",
        "filing_date": date(2024, 1, 1),
        "duration": "12",
    }
    fields.update(overrides)
    return fields


# =============================================================================
# TEST: UNIQUENESS
# =============================================================================

class TestSubmissionUniqueness:

    def test_second_submission_for_same_triple_is_rejected(self, service):
        first = service.create_submission(USER_ID, submission_fields())

        with pytest.raises(DuplicateSubmissionError) as exc:
            service.create_submission(USER_ID, submission_fields(state="ca"))

        assert exc.value.existing.id == first.id

    def test_state_is_upper_cased(self, service):
        submission = service.create_submission(USER_ID, submission_fields(state="tx"))
        assert submission.state == "TX"

    def test_different_entity_is_allowed(self, service):
        service.create_submission(USER_ID, submission_fields())
        other = service.create_submission(USER_ID, submission_fields(entity_name="Acme Holdings Inc"))
        assert other.entity_name == "Acme Holdings Inc"

    def test_missing_and_blank_entity_conflict(self, service):
        service.create_submission(USER_ID, submission_fields(entity_name=None))

        with pytest.raises(DuplicateSubmissionError):
            service.create_submission(USER_ID, submission_fields(entity_name=""))

    def test_obsolete_records_do_not_conflict(self, service):
        old = service.create_submission(USER_ID, submission_fields())
        service.update_submission(USER_ID, old.id, {"status": SubmissionStatus.OBSOLETE})

        replacement = service.create_submission(USER_ID, submission_fields())
        history = service.create_submission(USER_ID, submission_fields(status=SubmissionStatus.OBSOLETE))

        assert replacement.status == SubmissionStatus.ACTIVE
        assert history.status == SubmissionStatus.OBSOLETE

    def test_other_users_do_not_conflict(self, service):
        service.create_submission(USER_ID, submission_fields())
        theirs = service.create_submission(OTHER_USER_ID, submission_fields())
        assert theirs.user_id == OTHER_USER_ID

    def test_unknown_account_type_is_rejected(self, service):
        with pytest.raises(ValueError):
            service.create_submission(USER_ID, submission_fields(account_type_id="missing"))

    def test_known_account_type_is_linked(self, service, account_type):
        submission = service.create_submission(USER_ID, submission_fields(account_type_id=account_type.id))
        assert submission.account_type.name == "Sales and Use Tax Permit"

    def test_update_into_taken_triple_is_rejected(self, db, service):
        first = service.create_submission(USER_ID, submission_fields())
        second = service.create_submission(USER_ID, submission_fields(state="NY"))

        with pytest.raises(DuplicateSubmissionError) as exc:
            service.update_submission(USER_ID, second.id, {"state": "ca"})

        assert exc.value.existing.id == first.id
        db.refresh(second)
        assert second.state == "NY"

    def test_reactivating_superseded_submission_is_rejected(self, db, service):
        old = service.create_submission(USER_ID, submission_fields())
        new = service.renew_submission(USER_ID, old.id, {"expiration_date": date(2026, 1, 1)})["submission"]

        with pytest.raises(DuplicateSubmissionError) as exc:
            service.update_submission(USER_ID, old.id, {"status": SubmissionStatus.ACTIVE})

        assert exc.value.existing.id == new.id
        db.refresh(old)
        assert old.status == SubmissionStatus.OBSOLETE

    def test_update_keeping_own_triple_is_allowed(self, service):
        submission = service.create_submission(USER_ID, submission_fields())

        updated = service.update_submission(
            USER_ID,
            submission.id,
            {"state": "CA", "status": SubmissionStatus.PENDING, "notes": "Filed online"},
        )

        assert updated.status == SubmissionStatus.PENDING
        assert updated.notes == "Filed online"



# =============================================================================
# TEST: QUERIES
# =============================================================================

class TestSubmissionQueries:

    def test_list_hides_obsolete_by_default(self, service):
        active = service.create_submission(USER_ID, submission_fields())
        service.create_submission(USER_ID, submission_fields(status=SubmissionStatus.OBSOLETE))

        assert [s.id for s in service.list_submissions(USER_ID)] == [active.id]
        assert len(service.list_submissions(USER_ID, hide_obsolete=False)) == 2

    def test_list_filters_by_status_and_state(self, service):
        service.create_submission(USER_ID, submission_fields())
        pending = service.create_submission(
            USER_ID, submission_fields(state="NY", status=SubmissionStatus.PENDING)
        )

        assert [s.id for s in service.list_submissions(USER_ID, status=SubmissionStatus.PENDING)] == [pending.id]
        assert [s.id for s in service.list_submissions(USER_ID, state="ny")] == [pending.id]

    def test_get_expiring_returns_active_within_30_days(self, service):
        soon = service.create_submission(
            USER_ID, submission_fields(expiration_date=TODAY + timedelta(days=10))
        )
        service.create_submission(
            USER_ID, submission_fields(state="NY", expiration_date=TODAY + timedelta(days=45))
        )
        service.create_submission(
            USER_ID, submission_fields(state="TX", expiration_date=TODAY - timedelta(days=1))
        )

        assert [s.id for s in service.get_expiring(USER_ID, NOW)] == [soon.id]

    def test_get_submission_is_scoped_to_owner(self, service):
        submission = service.create_submission(USER_ID, submission_fields())

        with pytest.raises(SubmissionNotFoundError):
            service.get_submission(OTHER_USER_ID, submission.id)

    def test_delete_submission(self, service):
        submission = service.create_submission(USER_ID, submission_fields())
        service.delete_submission(USER_ID, submission.id)

        with pytest.raises(SubmissionNotFoundError):
            service.get_submission(USER_ID, submission.id)


# =============================================================================
# TEST: RENEW FLOW
# =============================================================================

class TestRenewFlow:

    def _flag(self, db, submission):
        todo = TodoItemDB(
            id=str(uuid4()),
            user_id=USER_ID,
            title=f"Renew {submission.compliance_type} - {submission.state}",
            priority=TodoPriority.HIGH,
            status=TodoStatus.PENDING,
            item_type=TodoItemType.FLAGGED_ITEM,
            related_submission_id=submission.id,
        )
        db.add(todo)
        db.commit()
        return todo

    def test_renew_replaces_submission_and_completes_reminders(self, db, service):
        old = service.create_submission(USER_ID, submission_fields(expiration_date=date(2025, 1, 1)))
        reminder = self._flag(db, old)

        result = service.renew_submission(
            USER_ID, old.id, {"expiration_date": date(2026, 1, 1), "registration_number": None}
        )

        new = result["submission"]
        assert new.id != old.id
        assert new.status == SubmissionStatus.ACTIVE
        assert new.expiration_date == date(2026, 1, 1)
        assert new.registration_number == "SR-100"
        assert new.entity_name == "Acme LLC"

        db.refresh(old)
        db.refresh(reminder)
        assert old.status == SubmissionStatus.OBSOLETE
        assert reminder.status == TodoStatus.COMPLETED
        assert result["obsoleted_id"] == old.id
        assert result["completed_todo_ids"] == [reminder.id]

    def test_renewed_submission_is_not_reflagged(self, db, service):
        old = service.create_submission(USER_ID, submission_fields(expiration_date=TODAY + timedelta(days=5)))
        self._flag(db, old)

        service.renew_submission(USER_ID, old.id, {"expiration_date": TODAY + timedelta(days=365)})

        engine = RenewalEngine(SubmissionStore(db), TodoStore(db), clock=FixedClock(NOW))
        assert engine.run(USER_ID)["created"] == 0

    def test_renew_missing_submission(self, service):
        with pytest.raises(SubmissionNotFoundError):
            service.renew_submission(USER_ID, "missing", {})


# =============================================================================
# TEST: ENGINE OVER THE REAL STORES
# =============================================================================

class TestEngineWithStores:

    def test_run_persists_one_reminder_and_is_idempotent(self, db, service):
        submission = service.create_submission(USER_ID, submission_fields())
        engine = RenewalEngine(SubmissionStore(db), TodoStore(db), clock=FixedClock(NOW))

        first = engine.run(USER_ID)
        second = engine.run(USER_ID)

        todos = db.query(TodoItemDB).filter(TodoItemDB.related_submission_id == submission.id).all()
        assert first["created"] == 1
        assert second["created"] == 0
        assert len(todos) == 1
        assert todos[0].title == "Renew Sales and Use Tax Permit - CA"
        assert todos[0].due_date == date(2025, 1, 1)
        assert todos[0].priority == TodoPriority.HIGH

    def test_defer_then_reactivate(self, db, service):
        submission = service.create_submission(
            USER_ID, submission_fields(expiration_date=TODAY + timedelta(days=20))
        )
        clock = FixedClock(NOW)
        submissions, todos = SubmissionStore(db), TodoStore(db)
        engine = RenewalEngine(submissions, todos, clock=clock)
        engine.run(USER_ID)
        [reminder] = todos.list_todos(USER_ID)

        FlaggedItemDisposition(submissions, todos, clock=clock).defer(reminder, 3)
        db.refresh(submission)
        assert submission.status == SubmissionStatus.USER_DEFERRED
        assert submission.defer_duration == 3

        clock.advance(days=3)
        result = engine.run(USER_ID)

        db.refresh(submission)
        assert result["reactivated"] == 1
        assert result["created"] == 1
        assert submission.status == SubmissionStatus.ACTIVE
        assert submission.defer_duration is None
        open_items = [t for t in todos.list_todos(USER_ID) if t.status != TodoStatus.COMPLETED]
        assert len(open_items) == 1
        assert open_items[0].id != reminder.id

    def test_update_missing_records_raise_store_error(self, db):
        with pytest.raises(StoreError):
            SubmissionStore(db).update_submission("missing", status=SubmissionStatus.ACTIVE)
        with pytest.raises(StoreError):
            TodoStore(db).update_todo("missing", status=TodoStatus.COMPLETED)

    def test_renewed_reminder_cannot_be_deferred(self, db, service):
        old = service.create_submission(
            USER_ID, submission_fields(expiration_date=TODAY + timedelta(days=20))
        )
        clock = FixedClock(NOW)
        submissions, todos = SubmissionStore(db), TodoStore(db)
        engine = RenewalEngine(submissions, todos, clock=clock)
        engine.run(USER_ID)
        [reminder] = todos.list_todos(USER_ID)

        service.renew_submission(USER_ID, old.id, {"expiration_date": TODAY + timedelta(days=365)})
        db.refresh(reminder)

        disposition = FlaggedItemDisposition(submissions, todos, clock=clock)
        with pytest.raises(DispositionError):
            disposition.defer(reminder, 1)
        with pytest.raises(DispositionError):
            disposition.dismiss(reminder)

        clock.advance(days=2)
        engine.run(USER_ID)

        current = service.list_submissions(USER_ID)
        assert len(current) == 1
        assert current[0].id != old.id
        db.refresh(old)
        db.refresh(reminder)
        assert old.status == SubmissionStatus.OBSOLETE
        assert reminder.deferred_until is None
