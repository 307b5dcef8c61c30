"""
Renewal Services

Date-driven renewal reminders for compliance submissions:
- RenewalEngine: defer reconciliation + flagged to-do creation
- FlaggedItemDisposition: complete / dismiss / defer user actions
- SubmissionStore / TodoStore: SQLAlchemy-backed stores the engine writes through
"""

from .clock import SystemClock, FixedClock
from .stores import SubmissionStore, TodoStore, StoreError
from .renewal_engine import RenewalEngine, compute_due_date, get_priority
from .disposition import FlaggedItemDisposition, DispositionError

__all__ = [
    'SystemClock',
    'FixedClock',
    'SubmissionStore',
    'TodoStore',
    'StoreError',
    'RenewalEngine',
    'compute_due_date',
    'get_priority',
    'FlaggedItemDisposition',
    'DispositionError',
]
