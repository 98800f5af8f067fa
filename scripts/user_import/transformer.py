"""Map a CSV record onto a PingOne user payload."""

from __future__ import annotations

from typing import Any, Mapping, Optional

# (csv column, dotted payload path)
ATTRIBUTE_MAPPINGS: tuple[tuple[str, str], ...] = (
    ("username", "username"),
    ("email", "email"),
    ("primaryPhone", "primaryPhone"),
    ("mobilePhone", "mobilePhone"),
    ("name.honorificPrefix", "name.honorificPrefix"),
    ("name.given", "name.given"),
    ("name.middle", "name.middle"),
    ("name.family", "name.family"),
    ("name.honorificSuffix", "name.honorificSuffix"),
    ("name.formatted", "name.formatted"),
)

PASSWORD_COLUMN = "password"
ENABLED_COLUMN = "enabled"

SUPPORTED_HEADERS: tuple[str, ...] = tuple(
    column for column, _ in ATTRIBUTE_MAPPINGS
) + (PASSWORD_COLUMN, ENABLED_COLUMN)


def _cell(fields: Mapping[str, Optional[str]], headers: frozenset[str], column: str) -> Optional[str]:
    """Trimmed cell value, or None when the column is absent or blank."""
    if column not in headers:
        return None
    value = fields.get(column)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _set_path(payload: dict[str, Any], path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = payload
    for part in parents:
        node = node.setdefault(part, {})
    node[leaf] = value


def parse_enabled(value: Optional[str]) -> bool:
    """Blank means enabled; otherwise only a case-insensitive 'true' is."""
    if value is None or not value.strip():
        return True
    return value.strip().lower() == "true"


def build_user_payload(
    fields: Mapping[str, Optional[str]],
    headers: frozenset[str],
    population_id: str,
    force_password_change: bool = False,
) -> dict[str, Any]:
    """Build the create-user body for one record.

    Only columns present in ``headers`` are consulted, and blank cells are
    left out of the payload entirely. Nested objects (``name``) appear only
    when at least one of their attributes has a value.
    """
    payload: dict[str, Any] = {}
    for column, path in ATTRIBUTE_MAPPINGS:
        value = _cell(fields, headers, column)
        if value is not None:
            _set_path(payload, path, value)

    payload["population"] = {"id": population_id}

    password = _cell(fields, headers, PASSWORD_COLUMN)
    if password is not None:
        payload["password"] = {"value": password}
        if force_password_change:
            payload["password"]["forceChange"] = True

    if ENABLED_COLUMN in headers:
        payload["enabled"] = parse_enabled(fields.get(ENABLED_COLUMN))
    else:
        # no enabled column: users are created enabled
        payload["enabled"] = True

    return payload


def redact_payload(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of ``payload`` safe to log: the password value is masked."""
    safe = dict(payload)
    if isinstance(safe.get("password"), Mapping):
        safe["password"] = {**safe["password"], "value": "********"}
    return safe
