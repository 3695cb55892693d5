"""
API key authentication for the integration endpoints
Automations (n8n, AI agents, cron) authenticate with the x-api-key header
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, Request

from . import config
from .shared.actions import ActionError

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid or missing API Key"


def is_valid_api_key(provided: Optional[str]) -> bool:
    """Constant-time comparison against SCHEDULING_API_KEY"""
    expected = config.SCHEDULING_API_KEY
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_api_key(request: Request, x_api_key: Optional[str] = Header(None)):
    """FastAPI dependency rejecting calls without a valid x-api-key"""
    if not config.SCHEDULING_API_KEY:
        logger.error("❌ SCHEDULING_API_KEY not configured - rejecting integration call")
        raise ActionError(UNAUTHORIZED_MESSAGE, status_code=401)

    if not is_valid_api_key(x_api_key):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"🚫 Invalid API key on {request.url.path} from {client_ip}")
        raise ActionError(UNAUTHORIZED_MESSAGE, status_code=401)
