"""Upload constraints shared by the API and the client upload coordinator."""

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024  # 10 MiB

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/tiff",
    }
)

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
}


class UploadValidationError(ValueError):
    """Raised when a file cannot be uploaded (bad type, bad size, missing name)."""


def is_allowed_content_type(content_type: str | None) -> bool:
    """Check a MIME type against the allowed image set (case-insensitive)."""
    return bool(content_type) and content_type.lower() in ALLOWED_CONTENT_TYPES


def validate_upload(
    content_type: str | None,
    file_size_bytes: int,
    file_name: str | None = None,
    *,
    require_file_name: bool = False,
) -> None:
    """Validate an upload request before any storage work happens.

    Raises:
        UploadValidationError: describing the first violated constraint.
    """
    if file_size_bytes <= 0:
        raise UploadValidationError("File size must be greater than zero.")

    if file_size_bytes > MAX_FILE_SIZE_BYTES:
        raise UploadValidationError(
            f"File size {file_size_bytes} bytes exceeds maximum allowed size of "
            f"{MAX_FILE_SIZE_BYTES} bytes (10 MB)."
        )

    if not content_type or not content_type.strip():
        raise UploadValidationError("Content type is required.")

    if not is_allowed_content_type(content_type):
        allowed = ", ".join(sorted(ALLOWED_CONTENT_TYPES))
        raise UploadValidationError(
            f"Content type '{content_type}' is not allowed. Allowed types: {allowed}"
        )

    if require_file_name and (not file_name or not file_name.strip()):
        raise UploadValidationError("Original file name is required.")


def extension_for_content_type(content_type: str) -> str:
    """Get the file extension used in storage keys for a content type."""
    try:
        return _EXTENSIONS[content_type.lower()]
    except (AttributeError, KeyError) as e:
        raise UploadValidationError(f"Unsupported content type: {content_type}") from e
