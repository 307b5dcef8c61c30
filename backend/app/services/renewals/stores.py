"""
Submission / To-Do stores used by the renewal engine.

Thin SQLAlchemy wrappers. Each write is its own commit so a failure on one
item is rolled back without losing the writes already made for others.
"""
import logging
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import ComplianceSubmissionDB, TodoItemDB

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a store cannot find the record it was asked to write."""


class SubmissionStore:
    def __init__(self, db_session: Session):
        self.db = db_session

    def list_submissions(self, user_id: str) -> List[ComplianceSubmissionDB]:
        return self.db.query(ComplianceSubmissionDB).filter(
            ComplianceSubmissionDB.user_id == user_id
        ).all()

    def get_submission(self, submission_id: str) -> Optional[ComplianceSubmissionDB]:
        return self.db.query(ComplianceSubmissionDB).filter(
            ComplianceSubmissionDB.id == submission_id
        ).first()

    def update_submission(self, submission_id: str, **fields) -> ComplianceSubmissionDB:
        submission = self.get_submission(submission_id)
        if submission is None:
            raise StoreError(f"Submission {submission_id} not found")

        for key, value in fields.items():
            setattr(submission, key, value)
        _commit(self.db)
        return submission


class TodoStore:
    def __init__(self, db_session: Session):
        self.db = db_session

    def list_todos(self, user_id: str) -> List[TodoItemDB]:
        return self.db.query(TodoItemDB).filter(TodoItemDB.user_id == user_id).all()

    def create_todo(self, **fields) -> TodoItemDB:
        todo = TodoItemDB(id=str(uuid4()), **fields)
        self.db.add(todo)
        _commit(self.db)
        return todo

    def update_todo(self, todo_id: str, **fields) -> TodoItemDB:
        todo = self.db.query(TodoItemDB).filter(TodoItemDB.id == todo_id).first()
        if todo is None:
            raise StoreError(f"Todo {todo_id} not found")

        for key, value in fields.items():
            setattr(todo, key, value)
        _commit(self.db)
        return todo


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
