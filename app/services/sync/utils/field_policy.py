"""Field write policy shared by every upsert.

Sync-owned fields (external ids, upstream classification, computed
references) are always written. Every other field is "protect-once": it is
written on create, and on update only while the stored value is still blank.
"""
from typing import Any

# Values that count as "not filled in yet"
_BLANK_STRINGS = {"", "0"}


def is_blank(value: Any) -> bool:
    """
    True for values a human has not filled in.

    Examples:
        >>> is_blank(None), is_blank(""), is_blank("0"), is_blank(0)
        (True, True, True, True)
        >>> is_blank("78"), is_blank(False), is_blank([])
        (False, False, True)
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return value.strip() in _BLANK_STRINGS
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (list, dict, tuple, set)):
        return len(value) == 0
    return False


def protect_once(current: Any, candidate: Any, is_update: bool) -> tuple[bool, Any]:
    """
    Decide whether a protect-once field gets written.

    Args:
        current: Value stored locally
        candidate: Value derived from upstream
        is_update: False when the record is being created

    Returns:
        (write, value) - value is the candidate when write is True,
        otherwise the untouched current value

    Examples:
        >>> protect_once(None, "TVL", is_update=True)
        (True, 'TVL')
        >>> protect_once("TVL-manual", "TVL", is_update=True)
        (False, 'TVL-manual')
        >>> protect_once(None, None, is_update=False)
        (False, None)
    """
    if candidate is None:
        return False, current
    if not is_update or is_blank(current):
        return True, candidate
    return False, current


def apply_protected(record: Any, field: str, candidate: Any, is_update: bool) -> bool:
    """Apply protect_once to an attribute of ``record``; returns True if written."""
    write, value = protect_once(getattr(record, field), candidate, is_update)
    if write and getattr(record, field) != value:
        setattr(record, field, value)
    return write


def apply_if_not_none(record: Any, field: str, candidate: Any) -> bool:
    """Write a sync-owned field whenever upstream supplied a value."""
    if candidate is None:
        return False
    if getattr(record, field) != candidate:
        setattr(record, field, candidate)
    return True
