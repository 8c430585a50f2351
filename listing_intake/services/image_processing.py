import io

from PIL import Image, ImageOps, UnidentifiedImageError

from listing_intake.logging_config import get_logger

logger = get_logger("image_processing")

DEFAULT_MAX_EDGE = 1600
DEFAULT_JPEG_QUALITY = 85


def normalize_image(data: bytes, max_edge: int = DEFAULT_MAX_EDGE, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Auto-orient, bound the longest edge and re-encode as JPEG.

    Undecodable input is returned unchanged so the upload can still proceed.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            if image.mode != "RGB":
                image = image.convert("RGB")
            image.thumbnail((max_edge, max_edge), Image.LANCZOS)
            output = io.BytesIO()
            image.save(output, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning(f"Image normalization skipped: {exc}")
        return data

    normalized = output.getvalue()
    logger.debug(
        "Image normalized",
        extra={"context": {"original_bytes": len(data), "normalized_bytes": len(normalized)}},
    )
    return normalized
