"""Nexus determination from uploaded payroll/census files."""
from .analyzer import (
    STATE_CODES,
    analyze_nexus,
    generate_recommendations,
    normalize_file_type,
    decode_upload,
)

__all__ = [
    "STATE_CODES",
    "analyze_nexus",
    "generate_recommendations",
    "normalize_file_type",
    "decode_upload",
]
