"""CRM service - Deal lookups and pipeline moves for automations"""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...shared.actions import ActionError
from ...shared.serialization import to_dict
from ...shared.timezones import utcnow
from .repository import CrmRepository
from .schemas import DealData

logger = logging.getLogger(__name__)


class CrmService:
    """Service layer for CRM business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = CrmRepository()

    def get_deals(self, user_id: str, contact_id: str) -> list[dict]:
        if not contact_id:
            raise ActionError("Missing contact_id")

        deals = self.repo.get_deals_for_contact(self.db, user_id, contact_id)
        return [{**to_dict(d), "stage_name": d.stage.name if d.stage else None} for d in deals]

    def update_stage(self, user_id: str, deal_id: str, stage_id: str) -> dict:
        if not deal_id or not stage_id:
            raise ActionError("Missing deal_id or stage_id")

        deal = self.repo.get_deal(self.db, deal_id, user_id)
        if not deal:
            raise ActionError("Deal not found")

        stage = self.repo.get_stage(self.db, stage_id, user_id)
        if not stage or stage.funnel_id != deal.funnel_id:
            raise ActionError("Stage does not belong to the deal's funnel")

        if deal.stage_id != stage.id:
            logger.info(f"➡️ Deal {deal.id} moved to stage '{stage.name}'")
            deal.stage_id = stage.id
            deal.stage_changed_at = utcnow()

        deal = self.repo.save(self.db, deal)
        return {**to_dict(deal), "stage_name": stage.name}

    def create_deal(self, user_id: str, raw_data: Any) -> dict:
        if not isinstance(raw_data, dict):
            raise ActionError("Missing deal_data")
        try:
            data = DealData.model_validate(raw_data)
        except ValidationError as e:
            error = e.errors()[0]
            field = ".".join(str(p) for p in error["loc"])
            raise ActionError(f"Invalid deal_data.{field}: {error['msg']}") from e

        if not self.repo.get_funnel(self.db, data.funnel_id, user_id):
            raise ActionError("Funnel not found", status_code=404)
        if data.contact_id and not self.repo.get_contact(self.db, data.contact_id, user_id):
            raise ActionError("Contact not found", status_code=404)

        if data.stage_id:
            stage = self.repo.get_stage(self.db, data.stage_id, user_id)
            if not stage or stage.funnel_id != data.funnel_id:
                raise ActionError("Stage does not belong to the funnel")
        else:
            stage = self.repo.get_first_stage(self.db, data.funnel_id)
            if not stage:
                raise ActionError("Funnel has no stages")

        values = data.model_dump(exclude={"name", "stage_id"}, exclude_none=True)
        values["title"] = data.title or data.name or "Nova oportunidade"

        deal = self.repo.create_deal(
            self.db, user_id, stage_id=stage.id, stage_changed_at=utcnow(), **values
        )
        logger.info(f"✅ Deal {deal.id} created in stage '{stage.name}'")
        return {**to_dict(deal), "stage_name": stage.name}
