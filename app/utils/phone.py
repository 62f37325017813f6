"""
Phone number validation and formatting utilities.

Numbers are normalized into the SMS gateway's international format for
Nigerian mobiles: 13 digits, ``234`` country code, no leading ``+``.
"""
import re
from typing import Dict, Optional


COUNTRY_CODE = "234"
TRUNK_PREFIX = "0"
SUBSCRIBER_LENGTH = 10
NORMALIZED_LENGTH = len(COUNTRY_CODE) + SUBSCRIBER_LENGTH
MOBILE_PREFIXES = ("7", "8", "9")


class PhoneValidationError(Exception):
    """Exception raised for phone validation errors."""

    def __init__(self, message: str, details: Optional[Dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


def cleanup_phone_number(raw: str) -> str:
    """
    Strip everything but digits from a raw phone number.

    Full-width/Unicode digits are converted to ASCII first, so values pasted
    from spreadsheets still clean up correctly.

    Args:
        raw (str): The raw phone number input.

    Returns:
        str: Digits only, possibly empty.
    """
    if not isinstance(raw, str):
        return ""

    raw = raw.translate(str.maketrans('０１２３４５６７８９', '0123456789'))
    return re.sub(r'\D', '', raw)


def normalize_phone_number(raw: str) -> Optional[str]:
    """
    Canonicalize a local or international number into gateway format.

    - ``08031234567``    -> ``2348031234567`` (trunk ``0`` replaced)
    - ``+2348031234567`` -> ``2348031234567``
    - ``8031234567``     -> ``2348031234567`` (bare subscriber number)

    Args:
        raw: Number as entered by a user

    Returns:
        str: 13-digit number starting with ``234``, or None if the result is
        not a Nigerian mobile number.
    """
    cleaned = cleanup_phone_number(raw)
    if not cleaned:
        return None

    if cleaned.startswith(TRUNK_PREFIX):
        normalized = COUNTRY_CODE + cleaned[len(TRUNK_PREFIX):]
    elif cleaned.startswith(COUNTRY_CODE):
        normalized = cleaned
    elif len(cleaned) == SUBSCRIBER_LENGTH:
        normalized = COUNTRY_CODE + cleaned
    else:
        normalized = cleaned

    if len(normalized) != NORMALIZED_LENGTH:
        return None
    if normalized[len(COUNTRY_CODE)] not in MOBILE_PREFIXES:
        return None

    return normalized


def format_phone(number: str) -> str:
    """
    Format a phone number for the gateway.

    Args:
        number: Phone number to format

    Returns:
        str: Normalized phone number

    Raises:
        PhoneValidationError: If the phone number is invalid
    """
    formatted = normalize_phone_number(number)
    if formatted is None:
        raise PhoneValidationError("invalid phone number format", {"number": number})
    return formatted
