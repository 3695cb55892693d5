"""CRM domain schemas"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class DealData(BaseModel):
    """deal_data accepted by create_deal"""

    model_config = ConfigDict(extra="ignore")

    funnel_id: str
    stage_id: Optional[str] = None
    contact_id: Optional[str] = None
    product_service_id: Optional[str] = None
    assigned_professional_id: Optional[str] = None
    responsible_id: Optional[str] = None
    title: Optional[str] = None
    name: Optional[str] = None  # Older automations send "name" instead of "title"
    description: Optional[str] = None
    value: Optional[float] = None
    quantity: Optional[int] = None
    priority: Optional[str] = None

    @field_validator("value")
    @classmethod
    def validate_value(cls, v):
        if v is not None and v < 0:
            raise ValueError("value must not be negative")
        return v
