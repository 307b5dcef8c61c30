"""
Compliance Services

Submission lifecycle (create / update / renew) and account-type driven
form field visibility.
"""

from .submission_service import (
    ComplianceService,
    DuplicateSubmissionError,
    SubmissionNotFoundError,
)
from .form_fields import (
    visible_fields,
    should_show_field,
    parse_required_fields,
    build_prefill,
)

__all__ = [
    'ComplianceService',
    'DuplicateSubmissionError',
    'SubmissionNotFoundError',
    'visible_fields',
    'should_show_field',
    'parse_required_fields',
    'build_prefill',
]
