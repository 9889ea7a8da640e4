"""Thumbnail rendering for uploaded images."""

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from propertyledger.config import get_settings
from propertyledger.services.storage import StorageError, StorageService, mask_storage_key

logger = logging.getLogger(__name__)


def render_thumbnail(image_bytes: bytes, max_width: int, max_height: int) -> bytes:
    """Render a JPEG thumbnail that fits within max_width x max_height.

    Aspect ratio is preserved and EXIF orientation is applied so phone photos
    come out upright.
    """
    with Image.open(io.BytesIO(image_bytes)) as image:
        image = ImageOps.exif_transpose(image)
        if image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        image.thumbnail((max_width, max_height))

        output = io.BytesIO()
        image.save(output, format="JPEG", quality=85)
        return output.getvalue()


class ThumbnailService:
    """Downloads an original, renders a thumbnail and stores it next to it."""

    def __init__(self, storage: StorageService) -> None:
        settings = get_settings()
        self.storage = storage
        self.max_width = settings.thumbnail_max_width
        self.max_height = settings.thumbnail_max_height

    def generate_for(self, storage_key: str, thumbnail_key: str) -> str | None:
        """Generate and upload a thumbnail, best-effort.

        Returns:
            The thumbnail key, or None when any step failed.
        """
        try:
            logger.info(f"Generating thumbnail for {mask_storage_key(storage_key)}")
            original = self.storage.get_object_bytes(storage_key)
            logger.debug(f"Downloaded original file: {len(original)} bytes")

            thumbnail = render_thumbnail(original, self.max_width, self.max_height)
            self.storage.put_object_bytes(thumbnail_key, thumbnail, "image/jpeg")
        except (StorageError, UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning(
                f"Failed to generate thumbnail for {mask_storage_key(storage_key)}, "
                f"continuing without thumbnail: {e}"
            )
            return None

        logger.info(f"Thumbnail generated and uploaded: {mask_storage_key(thumbnail_key)}")
        return thumbnail_key
