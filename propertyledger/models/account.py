"""Account model (the tenant boundary)."""

from sqlalchemy import Column, Integer, String

from propertyledger.database import Base
from propertyledger.models.mixins import TimestampMixin


class Account(Base, TimestampMixin):
    """Account that owns users, properties, receipts and expenses."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
