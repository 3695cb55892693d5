"""CRM integration router"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...api_key import require_api_key
from ...database import get_db
from ...shared.actions import ActionError, read_action_body
from .service import CrmService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Integration - CRM"], dependencies=[Depends(require_api_key)])


def get_crm_service(db: Session = Depends(get_db)) -> CrmService:
    return CrmService(db)


@router.post("/api-crm")
async def crm_api(request: Request, service: CrmService = Depends(get_crm_service)):
    """Actions: get_deal, update_stage, create_deal"""
    body = await read_action_body(request)
    action = body.get("action")
    user_id = body["user_id"]

    logger.info(f"📊 CRM API action={action} user={user_id}")

    if action == "get_deal":
        return service.get_deals(user_id, body.get("contact_id"))
    if action == "update_stage":
        return service.update_stage(user_id, body.get("deal_id"), body.get("stage_id"))
    if action == "create_deal":
        return service.create_deal(user_id, body.get("deal_data"))

    raise ActionError("Invalid action")
