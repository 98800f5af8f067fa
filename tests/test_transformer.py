"""CSV record to PingOne user payload."""

from __future__ import annotations

import pytest

from scripts.user_import.transformer import (
    SUPPORTED_HEADERS,
    build_user_payload,
    parse_enabled,
    redact_payload,
)


def _payload(fields, force=False, headers=None):
    headers = frozenset(fields) if headers is None else frozenset(headers)
    return build_user_payload(fields, headers, "pop-1", force_password_change=force)


def test_full_record():
    payload = _payload({
        "username": "ada",
        "email": "ada@example.com",
        "primaryPhone": "+1 555 0100",
        "mobilePhone": "+1 555 0101",
        "name.honorificPrefix": "Dr",
        "name.given": "Ada",
        "name.middle": "King",
        "name.family": "Lovelace",
        "name.honorificSuffix": "FRS",
        "name.formatted": "Dr Ada King Lovelace",
        "password": "S3cret!",
        "enabled": "true",
    })

    assert payload == {
        "username": "ada",
        "email": "ada@example.com",
        "primaryPhone": "+1 555 0100",
        "mobilePhone": "+1 555 0101",
        "name": {
            "honorificPrefix": "Dr",
            "given": "Ada",
            "middle": "King",
            "family": "Lovelace",
            "honorificSuffix": "FRS",
            "formatted": "Dr Ada King Lovelace",
        },
        "population": {"id": "pop-1"},
        "password": {"value": "S3cret!"},
        "enabled": True,
    }


def test_blank_and_absent_columns_are_omitted():
    payload = _payload({"username": "ada", "email": "  ", "name.given": ""})

    assert payload == {"username": "ada", "population": {"id": "pop-1"}, "enabled": True}


def test_values_are_trimmed():
    payload = _payload({"username": "  ada ", "name.family": " Lovelace\t"})

    assert payload["username"] == "ada"
    assert payload["name"] == {"family": "Lovelace"}


def test_columns_outside_header_are_ignored():
    payload = _payload({"username": "ada", "email": "ada@example.com"}, headers=["username"])

    assert "email" not in payload


def test_unknown_columns_are_ignored():
    payload = _payload({"username": "ada", "department": "R&D"})

    assert "department" not in payload


def test_password_force_change():
    payload = _payload({"username": "ada", "password": "pw"}, force=True)

    assert payload["password"] == {"value": "pw", "forceChange": True}


def test_blank_password_never_sent_even_when_forcing_change():
    payload = _payload({"username": "ada", "password": "   "}, force=True)

    assert "password" not in payload


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, True),
        ("", True),
        ("   ", True),
        ("true", True),
        ("TRUE", True),
        (" True ", True),
        ("false", False),
        ("no", False),
        ("1", False),
    ],
)
def test_parse_enabled(raw, expected):
    assert parse_enabled(raw) is expected


def test_enabled_defaults_true_without_column():
    assert _payload({"username": "ada"})["enabled"] is True


def test_enabled_false():
    assert _payload({"username": "ada", "enabled": "False"})["enabled"] is False


def test_redact_payload_masks_password_only():
    payload = _payload({"username": "ada", "password": "pw"}, force=True)

    safe = redact_payload(payload)

    assert safe["password"] == {"value": "********", "forceChange": True}
    assert safe["username"] == "ada"
    assert payload["password"]["value"] == "pw"


def test_supported_headers_cover_every_mapped_column():
    assert SUPPORTED_HEADERS[:2] == ("username", "email")
    assert "password" in SUPPORTED_HEADERS
    assert "enabled" in SUPPORTED_HEADERS
    assert "name.formatted" in SUPPORTED_HEADERS
