"""Celery task for receipt thumbnail generation."""

import logging

from propertyledger.celery_app import app as celery_app
from propertyledger.database import SessionLocal
from propertyledger.models.receipt import Receipt
from propertyledger.services.storage import get_storage_service
from propertyledger.services.thumbnails import ThumbnailService

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.generate_receipt_thumbnail")
def generate_receipt_thumbnail(receipt_id: str, thumbnail_key: str) -> dict:
    """Render a receipt thumbnail and record its key on the receipt.

    Args:
        receipt_id: ID of the Receipt record
        thumbnail_key: Storage key the thumbnail is written to

    Returns:
        Dict with processing results
    """
    db = SessionLocal()
    try:
        receipt = db.query(Receipt).filter(Receipt.id == receipt_id).first()
        if not receipt:
            logger.error(f"Receipt {receipt_id} not found")
            return {"error": "Receipt not found"}

        service = ThumbnailService(get_storage_service())
        stored_key = service.generate_for(receipt.storage_key, thumbnail_key)
        if stored_key is None:
            return {"receipt_id": receipt_id, "thumbnail_storage_key": None}

        receipt.thumbnail_storage_key = stored_key
        db.commit()

        logger.info(f"Thumbnail recorded for receipt {receipt_id}")
        return {"receipt_id": receipt_id, "thumbnail_storage_key": stored_key}

    except Exception as e:
        logger.error(f"Error generating thumbnail for receipt {receipt_id}: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
