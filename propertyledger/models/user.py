"""User model."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from propertyledger.database import Base
from propertyledger.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """User model for authentication; always belongs to exactly one account."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)

    # Relationships
    account = relationship("Account", backref="users")
