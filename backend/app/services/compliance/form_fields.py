"""
Dynamic submission form fields.

An account type's required_fields column is a JSON list of form field names.
The submission form shows a fixed core set plus whatever the account type
lists. No account type, or an unreadable list, shows every field.
"""
import json
from datetime import date
from typing import Any, Dict, List, Optional

from ...models.db_models import ComplianceAccountTypeDB, SubmissionStatus
from ..renewals.renewal_engine import add_months, parse_duration_months

# Form field names, in display order
ALL_FORM_FIELDS = [
    "state",
    "stateAgency",
    "complianceAccountTypeId",
    "complianceType",
    "entityName",
    "registrationNumber",
    "submittedOn",
    "filingDate",
    "expirationDate",
    "duration",
    "status",
    "filingStorageLink",
    "compliancePageLink",
    "passwordManagerLink",
    "notes",
]

ALWAYS_SHOWN_FIELDS = {
    "state",
    "complianceAccountTypeId",
    "complianceType",
    "stateAgency",
    "status",
    "filingStorageLink",
    "filingDate",
}

# Form field name -> submission column
FIELD_TO_COLUMN = {
    "state": "state",
    "stateAgency": "state_agency",
    "complianceAccountTypeId": "account_type_id",
    "complianceType": "compliance_type",
    "entityName": "entity_name",
    "registrationNumber": "registration_number",
    "submittedOn": "submitted_on",
    "filingDate": "filing_date",
    "expirationDate": "expiration_date",
    "duration": "duration",
    "status": "status",
    "filingStorageLink": "filing_storage_link",
    "compliancePageLink": "compliance_page_link",
    "passwordManagerLink": "password_manager_link",
    "notes": "notes",
}


def parse_required_fields(raw: Optional[str]) -> Optional[List[str]]:
    """Decode the JSON list. None when missing or not a list of strings."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return None
    return value


def should_show_field(field_name: str, account_type: Optional[ComplianceAccountTypeDB]) -> bool:
    if account_type is None:
        return True

    required = parse_required_fields(account_type.required_fields)
    if required is None:
        return True

    return field_name in ALWAYS_SHOWN_FIELDS or field_name in required


def visible_fields(account_type: Optional[ComplianceAccountTypeDB]) -> List[str]:
    return [f for f in ALL_FORM_FIELDS if should_show_field(f, account_type)]


def build_prefill(
    account_type: ComplianceAccountTypeDB,
    filing_date: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Default form values for a new submission of this account type.

    When a filing date is given and the default duration is a positive whole
    number of months, a suggested expiration date is included too.
    """
    prefill: Dict[str, Any] = {
        "state": account_type.state,
        "stateAgency": account_type.state_agency,
        "complianceAccountTypeId": account_type.id,
        "complianceType": account_type.name,
        "duration": account_type.default_duration,
        "status": SubmissionStatus.ACTIVE.value,
    }

    if filing_date is not None:
        prefill["filingDate"] = filing_date.isoformat()
        months = parse_duration_months(account_type.default_duration)
        expiration = add_months(filing_date, months) if months and months > 0 else None
        if expiration is not None:
            prefill["expirationDate"] = expiration.isoformat()

    return prefill
