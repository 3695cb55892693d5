"""Contact repository - Database operations for contacts"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Contact


class ContactRepository:
    """Repository for contact database operations"""

    @staticmethod
    def find_by_number_prefix(db: Session, user_id: str, digits: str) -> Optional[Contact]:
        """First contact whose JID starts with the digits (5511...@s.whatsapp.net)"""
        return (
            db.query(Contact)
            .filter(Contact.user_id == user_id, Contact.number.like(f"{digits}%"))
            .order_by(Contact.created_at.asc())
            .first()
        )

    @staticmethod
    def get_by_id(db: Session, contact_id: str, user_id: str) -> Optional[Contact]:
        return db.query(Contact).filter(Contact.id == contact_id, Contact.user_id == user_id).first()

    @staticmethod
    def create(db: Session, user_id: str, **contact_data) -> Contact:
        contact = Contact(user_id=user_id, **contact_data)
        db.add(contact)
        db.commit()
        db.refresh(contact)
        return contact

    @staticmethod
    def update(db: Session, contact: Contact, **updates) -> Contact:
        for key, value in updates.items():
            setattr(contact, key, value)
        db.commit()
        db.refresh(contact)
        return contact
