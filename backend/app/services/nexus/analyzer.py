"""
Nexus Analyzer

Scans an uploaded payroll or census export for two-letter state codes and
turns each state found into a registration recommendation. A single linear
pass over the file's lines; no column mapping is attempted.
"""
import re
from collections import Counter
from datetime import datetime
from typing import Dict, List, Any, Optional

STATE_CODES = [
    'AL', 'AK', 'AZ', 'AR', 'CA', 'CO', 'CT', 'DE', 'FL', 'GA',
    'HI', 'ID', 'IL', 'IN', 'IA', 'KS', 'KY', 'LA', 'ME', 'MD',
    'MA', 'MI', 'MN', 'MS', 'MO', 'MT', 'NE', 'NV', 'NH', 'NJ',
    'NM', 'NY', 'NC', 'ND', 'OH', 'OK', 'OR', 'PA', 'RI', 'SC',
    'SD', 'TN', 'TX', 'UT', 'VT', 'VA', 'WA', 'WV', 'WI', 'WY',
]
_STATE_SET = set(STATE_CODES)

# Standalone uppercase pairs only, so "CALIFORNIA" or "TXN123" do not count
_TOKEN = re.compile(r'(?<![A-Za-z])([A-Z]{2})(?![A-Za-z])')

VALID_FILE_TYPES = {"payroll", "census"}


def normalize_file_type(file_type: Optional[str]) -> str:
    if file_type and file_type.lower() in VALID_FILE_TYPES:
        return file_type.lower()
    return "unknown"


def decode_upload(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


def analyze_nexus(file_content: str, file_type: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Find the states referenced in a payroll/census export.

    The first non-empty line is treated as a header and not counted as a
    record. States are reported in first-seen order with per-state line counts.
    """
    lines = [line for line in file_content.splitlines() if line.strip()]
    counts: Counter = Counter()
    order: List[str] = []

    for line in lines:
        seen_on_line = []
        for match in _TOKEN.findall(line):
            if match in _STATE_SET and match not in seen_on_line:
                seen_on_line.append(match)
        for state in seen_on_line:
            if state not in counts:
                order.append(state)
            counts[state] += 1

    return {
        "fileType": file_type,
        "totalRecords": max(len(lines) - 1, 0),
        "statesIdentified": order,
        "stateCounts": {state: counts[state] for state in order},
        "analysisDate": (now or datetime.utcnow()).isoformat(),
    }


def generate_recommendations(analysis_results: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One MEDIUM-priority review recommendation per identified state."""
    file_type = analysis_results.get("fileType", "unknown")
    return [
        {
            "state": state,
            "action": "Review state compliance requirements",
            "priority": "MEDIUM",
            "description": (
                f"Based on {file_type} data, you may need to register with {state} state agencies."
            ),
        }
        for state in analysis_results.get("statesIdentified", [])
    ]
