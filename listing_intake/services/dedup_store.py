"""Redis-backed deduplication for webhook deliveries and photo bursts.

Every operation is a single atomic Redis command (``SET NX EX`` or ``RPUSH``),
or a MULTI/EXEC transaction when a read must be paired with a delete, so
concurrent webhook invocations for the same phone number need no in-process
locking.
"""

from typing import Optional

import redis.asyncio as redis_async
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from listing_intake.errors import DedupStoreUnavailable
from listing_intake.logging_config import get_logger
from listing_intake.models import ProcessedMessage

logger = get_logger("dedup_store")

EVENT_PREFIX = "intake:event"
PHOTO_CLAIM_PREFIX = "intake:dedup"
PHOTO_LIST_PREFIX = "intake:photos"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

_redis_client = None
_redis_url = None


def get_redis(redis_url: str, socket_timeout_seconds: float):
    global _redis_client, _redis_url

    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )

    return _redis_client


def event_key(phone: str, message_id: str) -> str:
    return f"{EVENT_PREFIX}:{phone}:{message_id}"


def photo_claim_key(phone: str, media_id: str) -> str:
    return f"{PHOTO_CLAIM_PREFIX}:{phone}:{media_id}"


def photo_list_key(phone: str) -> str:
    return f"{PHOTO_LIST_PREFIX}:{phone}"


class DedupStore:
    def __init__(self, redis_client, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def claim_event(self, phone: str, message_id: str, db: Optional[Session] = None) -> bool:
        """Claim the processed-message marker; False means the event was seen before.

        When Redis is unreachable the marker falls back to the
        ``processed_messages`` table; without a session it fails open.
        """
        try:
            was_set = await self.redis.set(event_key(phone, message_id), "1", ex=self.ttl_seconds, nx=True)
            return bool(was_set)
        except Exception as exc:
            logger.warning(
                "Event dedup redis unavailable, falling back to DB",
                extra={"context": {"phone": phone, "message_id": message_id, "error": str(exc)}},
            )

        if db is None:
            return True
        return claim_event_in_db(db, phone, message_id)

    async def claim(self, phone: str, media_id: str) -> bool:
        """First claim of ``(phone, media_id)`` wins; duplicates get False.

        Fails open: if Redis cannot be reached the photo is treated as new.
        """
        try:
            was_set = await self.redis.set(photo_claim_key(phone, media_id), "1", ex=self.ttl_seconds, nx=True)
        except Exception as exc:
            logger.warning(
                "Photo dedup unavailable, accepting photo without dedup",
                extra={"context": {"phone": phone, "media_id": media_id, "error": str(exc)}},
            )
            return True

        claimed = bool(was_set)
        logger.info(
            "Photo claim checked",
            extra={"context": {"phone": phone, "media_id": media_id, "claimed": claimed}},
        )
        return claimed

    async def append(self, phone: str, media_reference: str) -> int:
        """Append to the pending photo list and return the new exact length."""
        key = photo_list_key(phone)
        try:
            count = await self.redis.rpush(key, media_reference)
            await self.redis.expire(key, self.ttl_seconds)
        except Exception as exc:
            raise DedupStoreUnavailable(f"Could not record photo for {phone}: {exc}") from exc
        return int(count)

    async def photo_count(self, phone: str) -> int:
        try:
            count = await self.redis.llen(photo_list_key(phone))
        except Exception as exc:
            raise DedupStoreUnavailable(f"Could not count photos for {phone}: {exc}") from exc
        return int(count or 0)

    async def photos(self, phone: str) -> list[str]:
        try:
            refs = await self.redis.lrange(photo_list_key(phone), 0, -1)
        except Exception as exc:
            raise DedupStoreUnavailable(f"Could not read photos for {phone}: {exc}") from exc
        return list(refs or [])

    async def take_photos(self, phone: str) -> list[str]:
        """Read and empty the pending photo list in one MULTI/EXEC transaction.

        An ``append`` racing with this lands either in the returned refs or
        in a fresh list, never in between.
        """
        key = photo_list_key(phone)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                refs, _ = await pipe.lrange(key, 0, -1).delete(key).execute()
        except Exception as exc:
            raise DedupStoreUnavailable(f"Could not take photos for {phone}: {exc}") from exc
        return list(refs or [])

    async def clear(self, phone: str, keep_pending: bool = False) -> None:
        """Drop this phone's photo claim markers and, unless kept, the pending photo list."""
        try:
            if not keep_pending:
                await self.redis.delete(photo_list_key(phone))
            claim_keys = [key async for key in self.redis.scan_iter(match=f"{PHOTO_CLAIM_PREFIX}:{phone}:*")]
            if claim_keys:
                await self.redis.delete(*claim_keys)
        except Exception as exc:
            logger.warning(
                "Pending photo cleanup failed",
                extra={"context": {"phone": phone, "error": str(exc)}},
            )

    async def health_check(self) -> bool:
        try:
            await self.redis.set("intake:health", "ok", ex=60)
            value = await self.redis.get("intake:health")
            await self.redis.delete("intake:health")
        except Exception as exc:
            logger.warning(f"Redis health check failed: {exc}")
            return False
        return value == "ok"


def claim_event_in_db(db: Session, phone: str, message_id: str) -> bool:
    try:
        db.add(ProcessedMessage(phone=phone, message_id=message_id))
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info(
            "Duplicate message_id (DB)",
            extra={"context": {"phone": phone, "message_id": message_id}},
        )
        return False
    except Exception as exc:
        db.rollback()
        logger.warning(
            "DB dedup check failed, processing event",
            extra={"context": {"phone": phone, "message_id": message_id, "error": str(exc)}},
        )
    return True
