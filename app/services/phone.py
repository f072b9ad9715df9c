import re

from app.config import DEFAULT_COUNTRY_CODE

# Canonical storage format: "+<country code> <subscriber number>"
PHONE_PATTERN = re.compile(r"^\+(\d{1,4}) (\d{4,14})$")
_SEPARATORS = re.compile(r"[\s\-().]")

def normalize_phone(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Best-effort conversion of user input to the canonical phone format.

    Input that cannot be mapped is returned stripped but otherwise unchanged,
    so lookups on it simply miss.
    """
    value = raw.strip()
    if PHONE_PATTERN.match(value):
        return value

    compact = _SEPARATORS.sub("", value)
    prefix = f"+{country_code}"
    if compact.startswith(prefix) and compact[len(prefix):].isdigit():
        return f"{prefix} {compact[len(prefix):]}"
    if compact.isdigit():
        return f"{prefix} {compact}"
    return value

def is_canonical_phone(phone: str) -> bool:
    return PHONE_PATTERN.match(phone) is not None

def to_e164(phone: str) -> str:
    return _SEPARATORS.sub("", phone)
