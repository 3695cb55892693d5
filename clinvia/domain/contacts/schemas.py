"""Contact domain schemas - Pydantic models for validation"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class ContactData(BaseModel):
    """Fields an integration may set on a contact (unknown keys are ignored)"""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    number: Optional[str] = None
    push_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    company: Optional[str] = None
    instance_id: Optional[str] = None
    profile_pic_url: Optional[str] = None
    channel: Optional[str] = None
    patient: Optional[bool] = None
    ia_on: Optional[bool] = None
    custom_attributes: Optional[dict[str, Any]] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        if v:
            return v.strip().lower()
        return v

    def updates(self) -> dict[str, Any]:
        """Explicitly provided fields, without the id"""
        return self.model_dump(exclude_unset=True, exclude={"id"})
