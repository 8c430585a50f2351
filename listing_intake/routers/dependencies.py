"""FastAPI dependency builders wiring the dispatcher's collaborators from settings."""

from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from listing_intake.config import settings
from listing_intake.database import get_db
from listing_intake.services.commerce_client import CommerceClient
from listing_intake.services.dedup_store import DedupStore, get_redis
from listing_intake.services.dispatcher import ConversationDispatcher
from listing_intake.services.extraction_service import FieldExtractor
from listing_intake.services.llm import OpenAIProvider
from listing_intake.services.media_uploader import MediaUploader, PollPolicy
from listing_intake.services.whatsapp_service import WhatsAppService


def get_dedup_store() -> DedupStore:
    client = get_redis(settings.redis_url, settings.dedup_socket_timeout_seconds)
    return DedupStore(client, ttl_seconds=settings.dedup_ttl_seconds)


def get_messenger() -> WhatsAppService:
    return WhatsAppService(
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
        api_version=settings.whatsapp_api_version,
        timeout=settings.http_timeout_seconds,
    )


def get_commerce_client() -> CommerceClient:
    return CommerceClient(
        store_domain=settings.commerce_store_domain,
        access_token=settings.commerce_access_token,
        api_version=settings.commerce_api_version,
        timeout=settings.http_timeout_seconds,
    )


def get_uploader(commerce: CommerceClient = Depends(get_commerce_client)) -> MediaUploader:
    policy = PollPolicy(
        max_attempts=settings.upload_poll_max_attempts,
        initial_delay=settings.upload_poll_initial_delay_seconds,
        max_delay=settings.upload_poll_max_delay_seconds,
        factor=settings.upload_poll_backoff_factor,
    )
    return MediaUploader(commerce, poll_policy=policy, max_restarts=settings.upload_max_restarts)


def get_extractor() -> Optional[FieldExtractor]:
    if not settings.openai_api_key:
        return None
    provider = OpenAIProvider(
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        timeout_seconds=settings.http_timeout_seconds,
    )
    return FieldExtractor(provider)


def get_dispatcher(
    db: Session = Depends(get_db),
    dedup: DedupStore = Depends(get_dedup_store),
    messenger: WhatsAppService = Depends(get_messenger),
    commerce: CommerceClient = Depends(get_commerce_client),
    uploader: MediaUploader = Depends(get_uploader),
    extractor: Optional[FieldExtractor] = Depends(get_extractor),
) -> ConversationDispatcher:
    return ConversationDispatcher(
        db,
        dedup=dedup,
        messenger=messenger,
        uploader=uploader,
        commerce=commerce,
        extractor=extractor,
        config=settings,
    )
