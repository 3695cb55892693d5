"""CRM repository - Database operations for funnels, stages and deals"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import Contact, CrmDeal, CrmFunnel, CrmStage


class CrmRepository:
    """Repository for CRM database operations"""

    @staticmethod
    def get_deals_for_contact(db: Session, user_id: str, contact_id: str) -> list[CrmDeal]:
        return (
            db.query(CrmDeal)
            .options(joinedload(CrmDeal.stage))
            .filter(CrmDeal.user_id == user_id, CrmDeal.contact_id == contact_id)
            .order_by(CrmDeal.created_at.desc())
            .all()
        )

    @staticmethod
    def get_deal(db: Session, deal_id: str, user_id: str) -> Optional[CrmDeal]:
        return db.query(CrmDeal).filter(CrmDeal.id == deal_id, CrmDeal.user_id == user_id).first()

    @staticmethod
    def get_funnel(db: Session, funnel_id: str, user_id: str) -> Optional[CrmFunnel]:
        return db.query(CrmFunnel).filter(CrmFunnel.id == funnel_id, CrmFunnel.user_id == user_id).first()

    @staticmethod
    def get_stage(db: Session, stage_id: str, user_id: str) -> Optional[CrmStage]:
        """Stages are owned through their funnel"""
        return (
            db.query(CrmStage)
            .join(CrmFunnel, CrmFunnel.id == CrmStage.funnel_id)
            .filter(CrmStage.id == stage_id, CrmFunnel.user_id == user_id)
            .first()
        )

    @staticmethod
    def get_contact(db: Session, contact_id: str, user_id: str) -> Optional[Contact]:
        return db.query(Contact).filter(Contact.id == contact_id, Contact.user_id == user_id).first()

    @staticmethod
    def get_first_stage(db: Session, funnel_id: str) -> Optional[CrmStage]:
        """Lowest-position stage of a funnel"""
        return (
            db.query(CrmStage)
            .filter(CrmStage.funnel_id == funnel_id)
            .order_by(CrmStage.position.asc())
            .first()
        )

    @staticmethod
    def create_deal(db: Session, user_id: str, **deal_data) -> CrmDeal:
        deal = CrmDeal(user_id=user_id, **deal_data)
        db.add(deal)
        db.commit()
        db.refresh(deal)
        return deal

    @staticmethod
    def save(db: Session, deal: CrmDeal) -> CrmDeal:
        db.commit()
        db.refresh(deal)
        return deal
