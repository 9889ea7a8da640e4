"""Expense and expense category models."""

import uuid

from sqlalchemy import Column, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from propertyledger.database import Base
from propertyledger.models.mixins import SoftDeleteMixin, TimestampMixin


class ExpenseCategory(Base, TimestampMixin):
    """Global expense category (Schedule E line items); not tenant-scoped."""

    __tablename__ = "expense_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)


class Expense(Base, TimestampMixin, SoftDeleteMixin):
    """Expense booked against a property, optionally backed by a receipt."""

    __tablename__ = "expenses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False, index=True)
    description = Column(String(500), nullable=True)
    receipt_id = Column(String(36), ForeignKey("receipts.id"), nullable=True, index=True)
    # Work orders live outside this service; the id is stored as an opaque reference
    work_order_id = Column(String(36), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Relationships
    property = relationship("Property")
    category = relationship("ExpenseCategory")
