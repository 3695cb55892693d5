"""Shared helpers for the action-based integration endpoints"""

import logging
from typing import Any

from fastapi import Request

logger = logging.getLogger(__name__)


class ActionError(Exception):
    """Raised for integration API errors, rendered as {"error": message}"""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def read_action_body(request: Request) -> dict[str, Any]:
    """Parse the JSON body of an action request and require user_id"""
    try:
        body = await request.json()
    except ValueError as e:
        raise ActionError("Invalid JSON body") from e

    if not isinstance(body, dict):
        raise ActionError("Invalid JSON body")

    if not body.get("user_id"):
        raise ActionError("Missing required field: user_id")

    return body


def require_fields(data: dict[str, Any], *fields: str) -> None:
    """Raise ActionError naming the first missing field"""
    for field in fields:
        if data.get(field) in (None, ""):
            raise ActionError(f"Missing required field: {field}")
