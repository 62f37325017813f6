# app/utils/ids.py

from enum import Enum
from uuid import uuid4

class IDPrefix(str, Enum):
    SMS_RECORD = "sms"

def generate_prefixed_id(prefix: IDPrefix) -> str:
    """
    Generate a UUID string with an entity prefix.

    Returns:
        str: A prefixed UUID string like 'sms-xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx'
    """
    return f"{prefix.value}-{uuid4()}"
