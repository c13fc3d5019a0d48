"""
Helpers shared by the service layer
"""
from typing import Any, Dict, Iterable, Mapping, Optional

from security_api.core.clock import utcnow


def apply_changes(
    instance: Any,
    changes: Mapping[str, Any],
    allowed: Iterable[str],
    updated_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Apply a partial update to an ORM instance.

    Keys missing from ``changes`` or mapped to None keep their current value.
    Only fields listed in ``allowed`` are touched.

    Returns:
        Mapping of field -> new value for the fields that actually changed
    """
    applied = {}
    for field in allowed:
        value = changes.get(field)
        if value is None or getattr(instance, field) == value:
            continue
        setattr(instance, field, value)
        applied[field] = value

    if applied:
        instance.updated_at = utcnow()
        if updated_by is not None:
            instance.updated_by = updated_by
    return applied


def snapshot(instance: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Plain-dict view of an ORM instance, used for audit before/after states."""
    return {field: getattr(instance, field) for field in fields}


LIKE_ESCAPE = "\\"


def contains_pattern(term: str) -> str:
    """
    Lowercased LIKE pattern matching ``term`` as a literal substring.

    Use with ``.like(pattern, escape=LIKE_ESCAPE)``.
    """
    escaped = (
        term.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"
