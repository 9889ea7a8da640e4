"""Receipt model for captured receipt images awaiting conversion to expenses."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import relationship

from propertyledger.database import Base


class Receipt(Base):
    """A receipt file stored in object storage.

    ``processed_at`` is null while the receipt sits in the unprocessed queue and
    is stamped once an expense has been created from it. Receipts are hard
    deleted, so there is no soft-delete column.
    """

    __tablename__ = "receipts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    storage_key = Column(String(512), nullable=False)
    thumbnail_storage_key = Column(String(512), nullable=True)
    original_file_name = Column(String(255), nullable=False)
    content_type = Column(String(100), nullable=False)
    file_size_bytes = Column(BigInteger, nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    # Plain column: expenses.receipt_id already points the other way
    expense_id = Column(String(36), nullable=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Python-side default keeps sub-second ordering for the newest-first queue
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
    processed_at = Column(DateTime(timezone=True), nullable=True, index=True)

    # Relationships
    property = relationship("Property")
