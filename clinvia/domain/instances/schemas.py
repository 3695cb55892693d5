"""Instance domain schemas"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...shared.validators import MAX_INSTANCE_NAME_LENGTH, is_valid_instance_name


def sanitize_instance_name(value: str) -> str:
    """'Clínica Centro ' -> 'clínica-centro' (lowercase, single hyphens, trimmed)"""
    name = re.sub(r"\s+", "-", value.strip().lower())
    return re.sub(r"-+", "-", name).strip("-")


class InstanceCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., max_length=MAX_INSTANCE_NAME_LENGTH)
    user_id: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        name = sanitize_instance_name(v)
        if not name:
            raise ValueError("Nome da instância inválido")
        if not is_valid_instance_name(name):
            raise ValueError("Instance name contains invalid characters")
        return name


class InstanceConnect(BaseModel):
    model_config = ConfigDict(extra="ignore")

    phone: Optional[str] = Field(None, max_length=30)


class InstanceResponse(BaseModel):
    """Instance as shown in the panel (the gateway token stays server side)"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: Optional[str] = None
    name: str
    instance_name: Optional[str] = None
    status: Optional[str] = None
    qr_code: Optional[str] = None
    pair_code: Optional[str] = None
    phone_number: Optional[str] = None
    profile_name: Optional[str] = None
    profile_pic_url: Optional[str] = None
    webhook_url: Optional[str] = None
