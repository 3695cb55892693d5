"""
WhatsApp Gateway Service
Thin client for the Uazapi REST gateway: per-instance calls use the token header,
instance creation uses the admin token
"""

import logging
from typing import Any, Optional

import httpx

from .. import config
from ..shared import outbound
from ..shared.validators import strip_jid

logger = logging.getLogger(__name__)

MEDIA_MESSAGE_TYPES = {"image", "audio", "video", "document"}


class GatewayError(Exception):
    """Raised when the gateway rejects or fails a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _headers(token: Optional[str] = None, admin: bool = False) -> dict[str, str]:
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    if admin:
        headers["admintoken"] = config.UAZAPI_ADMIN_TOKEN or ""
    else:
        headers["token"] = token or ""
    return headers


async def _request(
    method: str,
    path: str,
    token: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
    admin: bool = False,
) -> Any:
    url = f"{config.UAZAPI_BASE_URL}{path}"

    try:
        async with outbound.client(timeout=config.UAZAPI_TIMEOUT_SECONDS) as client:
            response = await client.request(method, url, headers=_headers(token, admin), json=payload)
    except httpx.TimeoutException as e:
        logger.error(f"❌ Gateway timeout on {path}")
        raise GatewayError(f"Gateway timeout on {path}") from e
    except httpx.HTTPError as e:
        logger.error(f"❌ Gateway request to {path} failed: {str(e)}")
        raise GatewayError(f"Gateway request failed: {str(e)}") from e

    if response.status_code >= 400:
        logger.error(f"❌ Gateway error {response.status_code} on {path}: {response.text[:300]}")
        raise GatewayError(f"Gateway error on {path}: {response.text[:300]}", response.status_code)

    try:
        return response.json()
    except ValueError:
        return {}


async def _post(token: str, path: str, payload: dict[str, Any]) -> Any:
    return await _request("POST", path, token, payload)


def _first_item(data: Any) -> dict:
    """The gateway answers some calls with a one-element list"""
    if isinstance(data, list):
        data = data[0] if data else {}
    return data if isinstance(data, dict) else {}


def normalize_status(value: Any, connected: Optional[bool] = None) -> str:
    """Gateway connection state -> connected, connecting or disconnected"""
    if not value and connected is not None:
        value = "connected" if connected else "disconnected"
    if value in ("connected", "open"):
        return "connected"
    if value == "connecting":
        return "connecting"
    return "disconnected"


# ============================================================================
# INSTANCE LIFECYCLE
# ============================================================================


async def create_instance(name: str) -> dict:
    """
    Create an instance on the gateway (admin token).

    Returns:
        {"name", "token", "status", "qrcode"} from the gateway answer
    """
    if not config.UAZAPI_ADMIN_TOKEN:
        raise GatewayError("UAZAPI_ADMIN_TOKEN not configured")

    answer = await _request("POST", "/instance/init", payload={"name": name, "systemName": "apilocal"}, admin=True)
    data = _first_item(answer)
    instance = data.get("instance") if isinstance(data.get("instance"), dict) else {}
    token = data.get("token") or instance.get("token")
    if not token:
        raise GatewayError("Gateway returned no token for the new instance")

    logger.info(f"✅ Gateway instance {name} created")
    return {
        "name": data.get("name") or instance.get("name") or name,
        "token": token,
        "status": normalize_status(instance.get("status")),
        "qrcode": data.get("qrcode") or data.get("qr") or data.get("base64") or instance.get("qrcode"),
    }


async def connect_instance(token: str, phone: Optional[str] = None) -> dict:
    """
    Start pairing. With a phone number the gateway answers with a pair code,
    without one it answers with a QR code.
    """
    payload = {"phone": phone} if phone else {}
    data = _first_item(await _request("POST", "/instance/connect", token, payload))
    instance = data.get("instance") if isinstance(data.get("instance"), dict) else {}

    return {
        "status": normalize_status(instance.get("status") or "connecting"),
        "pair_code": instance.get("paircode") or None,
        "qrcode": instance.get("qrcode") or None,
    }


async def instance_status(token: str) -> dict:
    """Connection state and WhatsApp profile of an instance"""
    data = _first_item(await _request("GET", "/instance/status", token))
    instance = data.get("instance") if isinstance(data.get("instance"), dict) else {}
    status = data.get("status") if isinstance(data.get("status"), dict) else {}

    return {
        "status": normalize_status(instance.get("status"), status.get("connected")),
        "profile_name": instance.get("profileName"),
        "profile_pic_url": instance.get("profilePicUrl"),
    }


async def delete_instance(token: str) -> None:
    await _request("DELETE", "/instance", token)
    logger.info("🗑️ Gateway instance deleted")


async def set_webhook(token: str, url: str) -> dict:
    """Point the instance's message and connection events at url, skipping our own API sends"""
    payload = {
        "enabled": True,
        "url": url,
        "events": ["messages", "connection"],
        "excludeMessages": ["wasSentByApi"],
    }
    return await _request("POST", "/webhook", token, payload)


async def send_text(
    token: str, number: str, text: str, reply_id: Optional[str] = None, forward: bool = False
) -> dict:
    """Send a text message"""
    payload: dict[str, Any] = {"number": strip_jid(number), "text": text}
    if reply_id:
        payload["replyid"] = reply_id
    if forward:
        payload["forward"] = True

    logger.info(f"📤 Sending text to {payload['number']}")
    return await _post(token, "/send/text", payload)


async def send_media(
    token: str,
    number: str,
    media_type: str,
    file: str,
    caption: Optional[str] = None,
    forward: bool = False,
) -> dict:
    """Send a media message - audio goes out as a voice note (ptt)"""
    payload: dict[str, Any] = {
        "number": strip_jid(number),
        "type": "ptt" if media_type == "audio" else media_type,
        "file": file,
    }
    if caption:
        payload["caption"] = caption
    if forward:
        payload["forward"] = True

    logger.info(f"📤 Sending {payload['type']} to {payload['number']}")
    return await _post(token, "/send/media", payload)


async def download_media(token: str, message_id: str) -> Optional[str]:
    """
    Ask the gateway for a download link of a received media message.
    Returns None when the media is unavailable.
    """
    try:
        data = await _post(
            token, "/message/download", {"id": message_id, "return_base64": False, "return_link": True}
        )
    except GatewayError as e:
        logger.warning(f"⚠️ Media download failed for {message_id}: {str(e)}")
        return None

    data = _first_item(data)
    link = data.get("fileURL") or data.get("url")
    if not link:
        logger.warning(f"⚠️ Gateway returned no media link for {message_id}")
    return link


def gateway_message_id(response: Any) -> Optional[str]:
    """Extract the gateway's id for a sent message"""
    if not isinstance(response, dict):
        return None
    return response.get("messageid") or response.get("id")
