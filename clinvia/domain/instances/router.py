"""
Instance routes
Panel management of WhatsApp numbers: create, pair, status, webhook and delete
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_panel_caller, resolve_tenant_id
from ...database import get_db
from .schemas import InstanceConnect, InstanceCreate, InstanceResponse
from .service import InstanceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/instances", tags=["Instances"])


def get_instance_service(db: Session = Depends(get_db)) -> InstanceService:
    return InstanceService(db)


@router.get("", response_model=list[InstanceResponse])
async def list_instances(
    user_id: Optional[str] = None,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    return service.list_instances(resolve_tenant_id(caller, user_id))


@router.post("", response_model=InstanceResponse, status_code=201)
async def create_instance(
    data: InstanceCreate,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    """Create a gateway instance; the name is lowercased and must be unique"""
    user_id = resolve_tenant_id(caller, data.user_id)
    return await service.create(user_id, data)


@router.post("/{instance_id}/connect", response_model=InstanceResponse)
async def connect_instance(
    instance_id: str,
    data: InstanceConnect,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    """Pair by phone number (pair code) or, without one, by QR code"""
    instance = service.get_owned(instance_id, caller["agent"])
    return await service.connect(instance, data.phone)


@router.get("/{instance_id}/status", response_model=InstanceResponse)
async def instance_status(
    instance_id: str,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    instance = service.get_owned(instance_id, caller["agent"])
    return await service.refresh_status(instance)


@router.post("/{instance_id}/webhook")
async def set_instance_webhook(
    instance_id: str,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    instance = service.get_owned(instance_id, caller["agent"])
    return await service.register_webhook(instance)


@router.delete("/{instance_id}")
async def delete_instance(
    instance_id: str,
    caller: dict = Depends(get_panel_caller),
    service: InstanceService = Depends(get_instance_service),
):
    instance = service.get_owned(instance_id, caller["agent"])
    await service.delete(instance)
    return {"success": True}
