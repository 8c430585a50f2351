from typing import Optional

from listing_intake.logging_config import get_logger
from listing_intake.services.dedup_store import DedupStore
from listing_intake.services.image_processing import normalize_image
from listing_intake.services.media_uploader import MediaUploader
from listing_intake.services.whatsapp_service import WhatsAppService

logger = get_logger("photo_service")


class PhotoCollector:
    """Accept one photo of a burst: dedup, normalize, upload, then count it."""

    def __init__(
        self,
        dedup: DedupStore,
        messenger: WhatsAppService,
        uploader: MediaUploader,
        max_edge: int = 1600,
        jpeg_quality: int = 85,
    ):
        self.dedup = dedup
        self.messenger = messenger
        self.uploader = uploader
        self.max_edge = max_edge
        self.jpeg_quality = jpeg_quality

    async def accept(self, phone: str, media_id: str) -> Optional[int]:
        """Return the new pending-photo count, or None when ``media_id`` was already claimed.

        Download, upload and append failures propagate; the claim stays taken
        so a redelivery of the same media is still dropped.
        """
        if not await self.dedup.claim(phone, media_id):
            logger.info("Duplicate photo dropped", extra={"context": {"phone": phone, "media_id": media_id}})
            return None

        raw = await self.messenger.download_media(media_id)
        data = normalize_image(raw, max_edge=self.max_edge, quality=self.jpeg_quality)
        file_id = await self.uploader.upload(data, f"wa_{media_id}.jpg", "image/jpeg")
        count = await self.dedup.append(phone, file_id)

        logger.info(
            "Photo accepted",
            extra={"context": {"phone": phone, "media_id": media_id, "file_id": file_id, "count": count}},
        )
        return count
