"""Contacts integration router"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...api_key import require_api_key
from ...database import get_db
from ...shared.actions import ActionError, read_action_body
from .service import ContactService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Integration - Contacts"], dependencies=[Depends(require_api_key)])


def get_contact_service(db: Session = Depends(get_db)) -> ContactService:
    """Dependency injection for ContactService"""
    return ContactService(db)


@router.post("/api-contacts")
async def contacts_api(request: Request, service: ContactService = Depends(get_contact_service)):
    """Actions: get_contact, create_contact, update_contact"""
    body = await read_action_body(request)
    action = body.get("action")
    user_id = body["user_id"]

    logger.info(f"📇 Contacts API action={action} user={user_id}")

    if action == "get_contact":
        return service.get_contact(user_id, body.get("phone_number"))
    if action == "create_contact":
        return service.create_contact(user_id, body.get("contact_data"))
    if action == "update_contact":
        return service.update_contact(user_id, body.get("contact_data"), body.get("phone_number"))

    raise ActionError("Invalid action")
