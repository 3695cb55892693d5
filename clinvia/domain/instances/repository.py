"""Instance repository - Database operations for gateway instances"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Contact
from ...models_messaging import Conversation, Group, Instance


class InstanceRepository:
    """Repository for instance database operations"""

    @staticmethod
    def get(db: Session, instance_id: str) -> Optional[Instance]:
        return db.query(Instance).filter(Instance.id == instance_id).first()

    @staticmethod
    def get_by_name(db: Session, instance_name: str) -> Optional[Instance]:
        return db.query(Instance).filter(Instance.instance_name == instance_name).first()

    @staticmethod
    def list_for_user(db: Session, user_id: str) -> list[Instance]:
        return db.query(Instance).filter(Instance.user_id == user_id).order_by(Instance.created_at.asc()).all()

    @staticmethod
    def add(db: Session, instance: Instance) -> Instance:
        db.add(instance)
        db.commit()
        db.refresh(instance)
        return instance

    @staticmethod
    def save(db: Session, instance: Instance) -> Instance:
        db.commit()
        db.refresh(instance)
        return instance

    @staticmethod
    def delete(db: Session, instance: Instance) -> None:
        """Delete the instance; its contacts, groups and conversations stay, detached"""
        for model in (Conversation, Contact, Group):
            db.query(model).filter(model.instance_id == instance.id).update(
                {model.instance_id: None}, synchronize_session=False
            )
        db.delete(instance)
        db.commit()
