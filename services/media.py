import io
import uuid
from pathlib import Path
from typing import Optional
from PIL import Image, UnidentifiedImageError
import logging

from core.config import settings
from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

CONFIRMATIONS_SUBDIR = "delivery_confirmations"
MAX_IMAGE_DIMENSION = 1600
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/png", "image/webp"}

class ConfirmationPhoto:
    """An uploaded delivery confirmation image, read fully into memory."""

    def __init__(self, content: bytes, filename: Optional[str] = None, content_type: Optional[str] = None):
        self.content = content
        self.filename = filename
        self.content_type = content_type

def validate_image(photo: ConfirmationPhoto) -> None:
    if not photo.content:
        raise ValidationError("Delivery confirmation image is empty", field="delivery_image")

    if len(photo.content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"File size too large. Maximum size allowed is {settings.MAX_UPLOAD_SIZE // (1024 * 1024)}MB",
            field="delivery_image"
        )

    if photo.filename:
        file_ext = Path(photo.filename).suffix.lower()
        if file_ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"Invalid file type. Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
                field="delivery_image"
            )

    if photo.content_type and photo.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"Invalid content type. Allowed types: {', '.join(sorted(ALLOWED_MIME_TYPES))}",
            field="delivery_image"
        )

def save_confirmation_photo(photo: ConfirmationPhoto, order_id: str) -> str:
    """Re-encode the image as JPEG under the upload dir and return its URL path."""
    validate_image(photo)

    target_dir = Path(settings.UPLOAD_DIR) / CONFIRMATIONS_SUBDIR
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"{order_id}_{uuid.uuid4().hex}.jpg"
    file_path = target_dir / filename

    try:
        with Image.open(io.BytesIO(photo.content)) as img:
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.thumbnail((MAX_IMAGE_DIMENSION, MAX_IMAGE_DIMENSION), Image.Resampling.LANCZOS)
            img.save(file_path, format="JPEG", quality=85, optimize=True)
    except (UnidentifiedImageError, OSError) as e:
        if file_path.exists():
            file_path.unlink()
        logger.warning(f"Rejected confirmation image for order {order_id}: {str(e)}")
        raise ValidationError("Uploaded file is not a valid image", field="delivery_image")

    logger.info(f"Stored confirmation image for order {order_id} at {file_path}")
    return f"/uploads/{CONFIRMATIONS_SUBDIR}/{filename}"

def remove_stored_photo(url: Optional[str]) -> None:
    """Delete a stored confirmation image, used when its transaction rolls back."""
    if not url:
        return
    relative = url.removeprefix("/uploads/")
    path = Path(settings.UPLOAD_DIR) / relative
    if path.exists():
        path.unlink()
