"""
Financial Tracking Models
Revenues, expenses and their categories
"""
from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.sql import func

from .database import Base
from .models import generate_uuid


class RevenueCategory(Base):
    __tablename__ = "revenue_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Revenue(Base):
    __tablename__ = "revenues"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("revenue_categories.id"), nullable=True)
    product_service_id = Column(String(36), ForeignKey("products_services.id"), nullable=True)
    professional_id = Column(String(36), ForeignKey("professionals.id"), nullable=True)
    contact_id = Column(String(36), ForeignKey("contacts.id"), nullable=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=True)
    item = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)
    # pix, credit_card, debit_card, bank_transfer, cash, boleto, other
    payment_method = Column(String(30), default="other")
    due_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    status = Column(String(20), default="pending")  # paid, pending, overdue, cancelled
    is_recurring = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    category_id = Column(String(36), ForeignKey("expense_categories.id"), nullable=True)
    item = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Float, nullable=False)
    payment_method = Column(String(30), default="other")
    due_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    status = Column(String(20), default="pending")  # paid, pending, overdue, cancelled
    is_recurring = Column(Boolean, default=False)
    # Set on commission expenses generated from an appointment revenue
    commission_revenue_id = Column(String(36), ForeignKey("revenues.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
