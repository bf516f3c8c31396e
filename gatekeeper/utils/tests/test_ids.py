"""Tests for application ids and short codes"""

import re
import uuid

import pytest

from gatekeeper.utils.ids import new_application_id, normalize_code, parse_application_id, short_code

def test_new_ids_are_unique_uuids():
    ids = {new_application_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(parse_application_id(value) == value for value in ids)

def test_parse_application_id_canonicalises():
    value = uuid.uuid4()
    assert parse_application_id(value) == str(value)
    assert parse_application_id(str(value).upper()) == str(value)
    assert parse_application_id(f"  {value}  ") == str(value)

@pytest.mark.parametrize("value", ["", "ABCDEF", "not-a-uuid", None, 42])
def test_parse_application_id_rejects_non_uuids(value):
    assert parse_application_id(value) is None

def test_short_code_is_stable_hex():
    application_id = new_application_id()
    code = short_code(application_id)

    assert re.fullmatch(r"[0-9A-F]{6}", code)
    assert short_code(application_id) == code
    assert short_code(application_id.upper()) == code

def test_short_code_known_value():
    # sha256("00000000-0000-0000-0000-000000000000")
    assert short_code("00000000-0000-0000-0000-000000000000") == "12B937"

@pytest.mark.parametrize("raw,expected", [
    ("abcdef", "ABCDEF"),
    ("#ab12cd", "AB12CD"),
    (" ab 12 cd ", "AB12CD"),
    ("AB-12-CD", "AB12CD"),
])
def test_normalize_code(raw, expected):
    assert normalize_code(raw) == expected

@pytest.mark.parametrize("raw", [None, "", "abc", "abcdefa", "zzzzzz"])
def test_normalize_code_rejects_partial_codes(raw):
    assert normalize_code(raw) == ""
