"""Property model (read-only collaborator for the receipt pipeline)."""

from sqlalchemy import Column, ForeignKey, Integer, String

from propertyledger.database import Base
from propertyledger.models.mixins import SoftDeleteMixin, TimestampMixin


class Property(Base, TimestampMixin, SoftDeleteMixin):
    """A rental property that expenses are booked against."""

    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
