"""Shared validation utilities"""

import re
import uuid
from typing import Any, Optional

MAX_INSTANCE_NAME_LENGTH = 100
MAX_MESSAGE_TEXT_LENGTH = 50_000

# Characters that have no business in an instance name
_SHELL_METACHARACTERS = re.compile(r"[;&|`$<>\\]")


def is_valid_instance_name(value: str) -> bool:
    return len(value) <= MAX_INSTANCE_NAME_LENGTH and not _SHELL_METACHARACTERS.search(value)


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError):
        return False


def digits_only(value: Optional[str]) -> str:
    """Strip everything but digits from a phone number"""
    if not value:
        return ""
    return re.sub(r"\D", "", str(value))


def strip_jid(remote_jid: str) -> str:
    """
    Reduce a WhatsApp JID to the bare number the gateway expects.

    5511999999999@s.whatsapp.net -> 5511999999999
    """
    if remote_jid and "@" in remote_jid:
        return remote_jid.split("@")[0]
    return remote_jid


def validate_webhook_payload(payload: Any) -> list[str]:
    """
    Validate an inbound gateway payload.

    Returns:
        List of error messages (empty when the payload is acceptable)
    """
    if not isinstance(payload, dict):
        return ["Payload must be a JSON object"]

    errors = []

    instance_name = payload.get("instanceName")
    if instance_name is not None:
        if not isinstance(instance_name, str):
            errors.append("instanceName must be a string")
        elif len(instance_name) > MAX_INSTANCE_NAME_LENGTH:
            errors.append(f"instanceName exceeds {MAX_INSTANCE_NAME_LENGTH} characters")
        elif not is_valid_instance_name(instance_name):
            errors.append("instanceName contains invalid characters")

    message = payload.get("message")
    if isinstance(message, dict):
        text = message.get("text")
        if isinstance(text, str) and len(text) > MAX_MESSAGE_TEXT_LENGTH:
            errors.append(f"message text exceeds {MAX_MESSAGE_TEXT_LENGTH} characters")

    return errors
