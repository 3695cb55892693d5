"""Scheduling domain schemas"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.timezones import parse_date, parse_time


class AppointmentData(BaseModel):
    """appointment_data accepted by create_appointment; date and start_time are tenant-local"""

    model_config = ConfigDict(extra="ignore")

    professional_id: Optional[str] = None
    contact_id: Optional[str] = None
    service_id: Optional[str] = None
    date: str
    start_time: str
    duration: int = 60
    price: Optional[float] = None
    description: Optional[str] = None

    @field_validator("date")
    @classmethod
    def validate_date(cls, v):
        parse_date(v)
        return v.strip()

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        parse_time(v)
        return v.strip()

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, v):
        if v <= 0:
            raise ValueError("duration must be positive")
        return v

    @field_validator("price")
    @classmethod
    def validate_price(cls, v):
        if v is not None and v < 0:
            raise ValueError("price must not be negative")
        return v
