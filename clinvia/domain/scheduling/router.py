"""Scheduling integration router - Appointments, availability and the professional/service catalog"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...api_key import require_api_key
from ...database import get_db
from ...shared.actions import ActionError, read_action_body
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Integration - Scheduling"], dependencies=[Depends(require_api_key)])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


@router.post("/api-scheduling")
async def scheduling_api(request: Request, service: SchedulingService = Depends(get_scheduling_service)):
    """
    Actions: check_availability, check_availability_by_service, create_appointment,
    fetch_appointments, reschedule_appointment, cancel_appointment
    """
    body = await read_action_body(request)
    action = body.get("action")
    user_id = body["user_id"]

    logger.info(f"📅 Scheduling API action={action} user={user_id}")

    if action == "check_availability":
        return service.check_availability(user_id, body.get("date"), body.get("duration"))
    if action == "check_availability_by_service":
        return service.check_availability_by_service(user_id, body.get("date"), body.get("service_name"))
    if action == "create_appointment":
        return await service.create_appointment(user_id, body.get("appointment_data"))
    if action == "fetch_appointments":
        return service.fetch_appointments(user_id, body.get("contact_id"))
    if action == "reschedule_appointment":
        return await service.reschedule_appointment(
            user_id, body.get("appointment_id"), body.get("new_date"), body.get("new_time")
        )
    if action == "cancel_appointment":
        return await service.cancel_appointment(user_id, body.get("appointment_id"))

    raise ActionError("Invalid action")


@router.post("/check-availability")
async def check_availability(request: Request, service: SchedulingService = Depends(get_scheduling_service)):
    """Free slots for one day. user_id is optional when professional_id identifies the tenant."""
    try:
        body = await request.json()
    except ValueError as e:
        raise ActionError("Invalid JSON body") from e
    if not isinstance(body, dict):
        raise ActionError("Invalid JSON body")

    return service.available_slots(
        body.get("date"),
        professional_id=body.get("professional_id"),
        service_id=body.get("service_id"),
        user_id=body.get("user_id"),
    )


@router.post("/api-professionals")
async def professionals_api(request: Request, service: SchedulingService = Depends(get_scheduling_service)):
    """Actions: list_all, by_service, by_name"""
    body = await read_action_body(request)
    action = body.get("action")
    user_id = body["user_id"]

    if action == "list_all":
        return service.list_professionals(user_id)
    if action == "by_service":
        return service.professionals_by_service(user_id, body.get("service_name"))
    if action == "by_name":
        return service.professionals_by_name(user_id, body.get("name"))

    raise ActionError("Invalid action. Use: list_all, by_service, by_name")


@router.post("/api-services")
async def services_api(request: Request, service: SchedulingService = Depends(get_scheduling_service)):
    """Bookable services of the tenant (products are excluded)"""
    body = await read_action_body(request)
    return service.list_services(body["user_id"])
