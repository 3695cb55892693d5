"""Contact service - Lookups and writes for automations"""

import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...shared.actions import ActionError
from ...shared.serialization import to_dict
from ...shared.validators import digits_only
from .repository import ContactRepository
from .schemas import ContactData

logger = logging.getLogger(__name__)


def _parse_contact_data(raw: Any) -> ContactData:
    if not isinstance(raw, dict):
        raise ActionError("Missing contact_data")
    try:
        return ContactData.model_validate(raw)
    except ValidationError as e:
        raise ActionError(f"Invalid contact_data: {e.errors()[0]['msg']}") from e


class ContactService:
    """Service layer for contact business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ContactRepository()

    def get_contact(self, user_id: str, phone_number: Optional[str]) -> Optional[dict]:
        digits = digits_only(phone_number)
        if not digits:
            raise ActionError("Missing phone_number")

        contact = self.repo.find_by_number_prefix(self.db, user_id, digits)
        return to_dict(contact) if contact else None

    def create_contact(self, user_id: str, raw_data: Any) -> dict:
        data = _parse_contact_data(raw_data)
        values = data.updates()
        if not values.get("number"):
            raise ActionError("Missing number in contact_data")

        contact = self.repo.create(self.db, user_id, **values)
        logger.info(f"✅ Contact {contact.id} created for user {user_id}")
        return to_dict(contact)

    def update_contact(self, user_id: str, raw_data: Any, phone_number: Optional[str] = None) -> dict:
        data = _parse_contact_data(raw_data)

        if data.id:
            contact = self.repo.get_by_id(self.db, data.id, user_id)
        elif digits_only(phone_number):
            contact = self.repo.find_by_number_prefix(self.db, user_id, digits_only(phone_number))
        else:
            raise ActionError("Missing id in contact_data or phone_number to identify contact")

        if not contact:
            raise ActionError("Contact not found")

        contact = self.repo.update(self.db, contact, **data.updates())
        logger.info(f"✏️ Contact {contact.id} updated")
        return to_dict(contact)
