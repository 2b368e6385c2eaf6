"""
Input Validation - field checks for marketplace inputs.

Each validator returns (is_valid, error_message) so callers can collect
every field violation before rejecting a request.
"""

import re
from typing import Any, List, Tuple

# =============================================================================
# Constants
# =============================================================================

# Hex-encoded 64-byte secp256k1 public key
ACCOUNT_ID_PATTERN = re.compile(r"^[0-9a-f]{128}$")

MIN_TITLE_LENGTH = 3
MAX_TITLE_LENGTH = 100
MIN_DESCRIPTION_LENGTH = 10
MAX_DESCRIPTION_LENGTH = 5000
MAX_TAGS = 10
MAX_TAG_LENGTH = 32
MAX_REPORT_DESCRIPTION = 1000
MAX_DISPLAY_NAME = 50

MIN_AMOUNT = 0
MAX_AMOUNT = 2**63 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(amount: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a strictly positive currency amount."""
    return validate_integer(amount, name, 1, MAX_AMOUNT)


def validate_string(
    value: Any,
    name: str,
    min_length: int = 0,
    max_length: int = MAX_DESCRIPTION_LENGTH,
) -> Tuple[bool, str]:
    """Validate string length after trimming."""
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    length = len(value.strip())
    if length < min_length:
        return False, f"{name} must be at least {min_length} characters"
    if length > max_length:
        return False, f"{name} must be at most {max_length} characters"

    return True, ""


def validate_account_id(account_id: Any) -> Tuple[bool, str]:
    """Validate a hex-encoded public key account identifier."""
    if not isinstance(account_id, str):
        return False, f"account_id must be str, got {type(account_id).__name__}"
    if not ACCOUNT_ID_PATTERN.match(account_id):
        return False, "account_id must be a 128-character lowercase hex public key"
    return True, ""


def validate_tags(tags: Any) -> Tuple[bool, str]:
    """Validate a tag list."""
    if not isinstance(tags, (list, tuple)):
        return False, f"tags must be a list, got {type(tags).__name__}"
    if len(tags) > MAX_TAGS:
        return False, f"at most {MAX_TAGS} tags allowed, got {len(tags)}"
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            return False, "tags must be non-empty strings"
        if len(tag) > MAX_TAG_LENGTH:
            return False, f"tag exceeds max length {MAX_TAG_LENGTH}"
    return True, ""


def normalize_tags(tags: List[str]) -> List[str]:
    """Lowercase, trim and de-duplicate tags, keeping first-seen order."""
    seen: List[str] = []
    for tag in tags:
        clean = tag.strip().lower()
        if clean and clean not in seen:
            seen.append(clean)
    return seen


def validate_schedule(
    start_time: int,
    end_time: int,
    now: int,
    min_duration: int,
) -> List[Tuple[str, str]]:
    """
    Validate an auction schedule.

    Returns:
        List of (field, message) violations; empty when valid
    """
    problems = []
    if start_time <= now:
        problems.append(("start_time", "Start time must be in the future"))
    if end_time <= start_time:
        problems.append(("end_time", "End time must be after start time"))
    elif end_time - start_time < min_duration:
        problems.append(("end_time", f"Auction must last at least {min_duration // 60} minutes"))
    return problems


def collect(*checks: Tuple[str, Tuple[bool, str]]) -> List[Tuple[str, str]]:
    """
    Gather failing validator results as (field, message) pairs.

    Usage:
        collect(("amount", validate_amount(x)), ("title", validate_string(t, "title")))
    """
    problems = []
    for field_name, (ok, message) in checks:
        if not ok:
            problems.append((field_name, message))
    return problems

