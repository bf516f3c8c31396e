"""Application identifiers and the short codes moderators type"""

import hashlib
import re
import uuid
from typing import Optional, Union

from gatekeeper.utils.constants import REVIEW_SETTINGS

CODE_LENGTH = REVIEW_SETTINGS['SHORT_CODE_LENGTH']
_NON_HEX = re.compile(r'[^0-9A-F]')

def new_application_id() -> str:
    """Generate a fresh application id"""
    return str(uuid.uuid4())

def parse_application_id(value: Union[str, uuid.UUID]) -> Optional[str]:
    """Return the canonical UUID string, or None if value is not a UUID"""
    if isinstance(value, uuid.UUID):
        return str(value)
    try:
        return str(uuid.UUID(str(value).strip()))
    except (ValueError, AttributeError):
        return None

def short_code(application_id: str) -> str:
    """Derive the display code for an application.

    One-way and stable: the same id always gives the same code. Codes can
    collide, so they are only ever looked up inside one guild and resolved
    back to the application id before anything is changed.
    """
    canonical = parse_application_id(application_id) or str(application_id)
    digest = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
    return digest[:CODE_LENGTH].upper()

def normalize_code(raw: Optional[str]) -> str:
    """Clean user input ("#ab12 cd", "ab12cd") into an uppercase hex code.

    Returns an empty string when the input does not contain a full code.
    """
    cleaned = _NON_HEX.sub('', str(raw or '').upper())
    if len(cleaned) != CODE_LENGTH:
        return ''
    return cleaned
