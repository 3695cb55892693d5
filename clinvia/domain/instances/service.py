"""Instance service - WhatsApp number lifecycle on the gateway"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ... import config
from ...models import TeamMember
from ...models_messaging import Instance
from ...services import whatsapp_gateway
from .repository import InstanceRepository
from .schemas import InstanceCreate

logger = logging.getLogger(__name__)

DUPLICATE_NAME_MESSAGE = "Instâncias precisam ter nomes únicos para evitar conflitos e esse nome já foi usado."


def webhook_target() -> str:
    return f"{config.PUBLIC_API_URL}/webhooks/message"


def _gateway_failure(e: whatsapp_gateway.GatewayError) -> HTTPException:
    return HTTPException(status_code=502, detail=str(e))


class InstanceService:
    """Service layer for gateway instances"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InstanceRepository()

    def get_owned(self, instance_id: str, agent: Optional[TeamMember]) -> Instance:
        """Agents only see their account's instances; automations see any"""
        instance = self.repo.get(self.db, instance_id)
        if not instance or (agent and instance.user_id != agent.user_id):
            raise HTTPException(status_code=404, detail="Instance not found")
        return instance

    def list_instances(self, user_id: str) -> list[Instance]:
        return self.repo.list_for_user(self.db, user_id)

    async def create(self, user_id: str, data: InstanceCreate) -> Instance:
        """Create on the gateway, store the token and point the gateway webhook at this API"""
        if self.repo.get_by_name(self.db, data.name):
            raise HTTPException(status_code=409, detail=DUPLICATE_NAME_MESSAGE)

        try:
            created = await whatsapp_gateway.create_instance(data.name)
        except whatsapp_gateway.GatewayError as e:
            raise _gateway_failure(e) from e

        instance = self.repo.add(
            self.db,
            Instance(
                user_id=user_id,
                name=created["name"],
                instance_name=created["name"],
                apikey=created["token"],
                server_url=config.UAZAPI_BASE_URL,
                status=created["status"],
                qr_code=created["qrcode"],
            ),
        )
        logger.info(f"✅ Instance {instance.instance_name} created for user {user_id}")

        await self.register_webhook(instance, strict=False)
        return instance

    async def connect(self, instance: Instance, phone: Optional[str]) -> Instance:
        try:
            result = await whatsapp_gateway.connect_instance(instance.apikey, phone)
        except whatsapp_gateway.GatewayError as e:
            raise _gateway_failure(e) from e

        instance.status = result["status"]
        instance.pair_code = result["pair_code"]
        instance.qr_code = result["qrcode"]
        if phone:
            instance.phone_number = phone
        logger.info(f"🔗 Instance {instance.instance_name} pairing, status={instance.status}")
        return self.repo.save(self.db, instance)

    async def refresh_status(self, instance: Instance) -> Instance:
        """Pull the connection state and profile from the gateway"""
        try:
            result = await whatsapp_gateway.instance_status(instance.apikey)
        except whatsapp_gateway.GatewayError as e:
            raise _gateway_failure(e) from e

        if instance.status != result["status"]:
            logger.info(f"📶 Instance {instance.instance_name}: {instance.status} -> {result['status']}")
        instance.status = result["status"]
        if result["profile_name"]:
            instance.profile_name = result["profile_name"]
        if result["profile_pic_url"]:
            instance.profile_pic_url = result["profile_pic_url"]
        if instance.status == "connected":
            instance.qr_code = None
            instance.pair_code = None
        return self.repo.save(self.db, instance)

    async def register_webhook(self, instance: Instance, strict: bool = True) -> dict:
        """Subscribe the instance's message and connection events; with strict=False failures are only logged"""
        try:
            response = await whatsapp_gateway.set_webhook(instance.apikey, webhook_target())
        except whatsapp_gateway.GatewayError as e:
            if strict:
                raise _gateway_failure(e) from e
            logger.error(f"❌ Webhook registration failed for {instance.instance_name}: {e}")
            return {"success": False, "error": str(e)}

        logger.info(f"🪝 Webhook registered for {instance.instance_name}")
        return {"success": True, "url": webhook_target(), "data": response}

    async def delete(self, instance: Instance) -> None:
        """Remove from the gateway (failures logged) and from the database"""
        try:
            await whatsapp_gateway.delete_instance(instance.apikey)
        except whatsapp_gateway.GatewayError as e:
            logger.error(f"❌ Gateway delete failed for {instance.instance_name}, deleting locally: {e}")

        self.repo.delete(self.db, instance)
        logger.info(f"🗑️ Instance {instance.instance_name} deleted")
