"""Input validation for account IDs, external IDs and role ARNs.

All functions are total: they return booleans (or None) and never raise.
"""

import re
from typing import Optional

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$", re.ASCII)
EXTERNAL_ID_PATTERN = re.compile(r"^[a-zA-Z0-9\-_]{2,1224}$", re.ASCII)
ROLE_ARN_PATTERN = re.compile(r"^arn:aws:iam::\d{12}:role/[\w+=,.@-]+$", re.ASCII)
ROLE_ARN_ACCOUNT_PATTERN = re.compile(r"^arn:aws:iam::(\d{12}):role/", re.ASCII)


def validate_account_id(account_id: str) -> bool:
    """Check that the trimmed value is exactly 12 digits."""
    if not isinstance(account_id, str):
        return False
    return ACCOUNT_ID_PATTERN.fullmatch(account_id.strip()) is not None


def validate_external_id(external_id: str) -> bool:
    """Check the trimmed value is 2-1224 characters of letters, digits, '-' or '_'."""
    if not isinstance(external_id, str):
        return False
    return EXTERNAL_ID_PATTERN.fullmatch(external_id.strip()) is not None


def sanitize_external_id(external_id: str) -> str:
    return external_id.strip()


def validate_role_arn(role_arn: str) -> bool:
    """Check the value looks like arn:aws:iam::<12 digits>:role/<name>."""
    if not isinstance(role_arn, str):
        return False
    return ROLE_ARN_PATTERN.fullmatch(role_arn) is not None


def extract_account_id_from_arn(role_arn: str) -> Optional[str]:
    """Return the account ID segment of a role ARN, or None when absent."""
    if not isinstance(role_arn, str):
        return None
    match = ROLE_ARN_ACCOUNT_PATTERN.match(role_arn)
    return match.group(1) if match else None
