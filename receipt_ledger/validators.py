"""
Receipt Ledger - Data Validation

PURPOSE: Data validation and business rule enforcement
SCOPE: Input validation for draft edits and master-data additions
DEPENDENCIES: typing, datetime
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import EDITABLE_FIELDS, DatasetKind

_DATE_PATTERN = re.compile(r'^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$')


def validate_date(value: str) -> Tuple[bool, List[str]]:
    """Accept YYYY-MM-DD or YYYY/MM/DD (single-digit month/day allowed)."""
    errors = []
    match = _DATE_PATTERN.match(value.strip()) if value else None
    if not match:
        errors.append("Date must be in YYYY-MM-DD format")
    else:
        try:
            datetime(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError:
            errors.append(f"Date {value} does not exist")
    return len(errors) == 0, errors


def validate_amount(value: str) -> Tuple[bool, List[str]]:
    """Amount must be a non-negative whole number of yen."""
    errors = []
    text = (value or '').strip().replace(',', '')
    if not text.isdigit():
        errors.append("Amount must be a non-negative integer")
    return len(errors) == 0, errors


def validate_master_name(name: str) -> Tuple[bool, List[str]]:
    """Validate a master-data display name."""
    errors = []

    if not name or not name.strip():
        errors.append("Name is required")
    elif len(name.strip()) > 100:
        errors.append("Name must be 100 characters or less")

    return len(errors) == 0, errors


def validate_master_item(kind: DatasetKind, name: str, type_name: Optional[str]) -> Tuple[bool, List[str]]:
    """Validate an add-request before it reaches the queue."""
    _, errors = validate_master_name(name)
    if kind == DatasetKind.PAYMENT_TYPE and not (type_name or '').strip():
        errors.append("Payment methods require a type name")
    return len(errors) == 0, errors


def parse_edit_value(field: str, raw: Any) -> Any:
    """Convert a raw edit value into the typed value stored on the draft.

    Raises ValidationError without side effects when the value is rejected.
    """
    if field not in EDITABLE_FIELDS:
        raise ValidationError(f"Field '{field}' cannot be edited")

    text = '' if raw is None else str(raw).strip()

    if field == 'date':
        is_valid, errors = validate_date(text)
        if not is_valid:
            raise ValidationError("Invalid date", errors)
        return text

    if field == 'amount':
        is_valid, errors = validate_amount(text)
        if not is_valid:
            raise ValidationError("Invalid amount", errors)
        return int(text.replace(',', ''))

    if field == 'group_id':
        # Clearing the group is allowed
        if text == '':
            return None
        if not text.isdigit():
            raise ValidationError("Invalid group", ["Group ID must be an integer"])
        return int(text)

    if field in ('category_id', 'user_id'):
        if not text.isdigit():
            raise ValidationError(f"Invalid {field}", [f"{field} must be an integer"])
        return int(text)

    return text


def sanitize_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Sanitize form data by stripping whitespace."""
    sanitized = {}

    for key, value in form_data.items():
        if isinstance(value, str):
            sanitized[key] = value.strip()
        else:
            sanitized[key] = value

    return sanitized
