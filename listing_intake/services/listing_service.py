import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from listing_intake.logging_config import get_logger
from listing_intake.models import ListingDraft
from listing_intake.services.field_rules import REQUIRED_FIELDS, format_price
from listing_intake.services.result import Result

logger = get_logger("listing_service")

STATUS_INCOMPLETE = "incomplete"
STATUS_DRAFT = "draft"
STATUS_ABANDONED = "abandoned"

# Draft columns for the fields that are not stored under their own name.
_COLUMNS = {"price": "price_cents"}


def field_value(draft: ListingDraft, field: str) -> Any:
    return getattr(draft, _COLUMNS.get(field, field), None)


def display_value(draft: ListingDraft, field: str) -> str:
    value = field_value(draft, field)
    if field == "price":
        return format_price(value)
    return "" if value is None else str(value)


def listing_title(draft: ListingDraft) -> str:
    parts = [draft.designer, draft.pieces_included]
    return " ".join(part for part in parts if part) or "Untitled listing"


class ListingDraftStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, phone: str, seller_id: Optional[str] = None) -> ListingDraft:
        draft = ListingDraft(phone=phone, seller_id=seller_id, status=STATUS_INCOMPLETE, photo_refs=[])
        self.db.add(draft)
        self.db.commit()
        logger.info("Listing draft created", extra={"context": {"phone": phone, "listing_id": str(draft.id)}})
        return draft

    def get(self, listing_id: Optional[str]) -> Optional[ListingDraft]:
        if not listing_id:
            return None
        try:
            key = uuid.UUID(str(listing_id))
        except ValueError:
            return None
        return self.db.query(ListingDraft).filter(ListingDraft.id == key).first()

    def set_fields(self, draft: ListingDraft, values: Mapping[str, Any]) -> ListingDraft:
        """Write already-validated field values."""
        for field, value in values.items():
            setattr(draft, _COLUMNS.get(field, field), value)
        self._touch(draft)
        return draft

    def append_notes(self, draft: ListingDraft, text: str) -> ListingDraft:
        text = (text or "").strip()
        if text:
            draft.notes = f"{draft.notes}. {text}" if draft.notes else text
            self._touch(draft)
        return draft

    def missing_fields(self, draft: ListingDraft) -> list[str]:
        """Unfilled required fields, in the fixed collection order."""
        missing = []
        for field in REQUIRED_FIELDS:
            value = field_value(draft, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing

    def attach_photos(self, draft: ListingDraft, refs: list[str]) -> ListingDraft:
        existing = list(draft.photo_refs or [])
        for ref in refs:
            if ref not in existing:
                existing.append(ref)
        draft.photo_refs = existing
        self._touch(draft)
        return draft

    def is_ready(self, draft: ListingDraft, min_photos: int) -> bool:
        return not self.missing_fields(draft) and len(draft.photo_refs or []) >= min_photos

    def mark_ready(self, draft: ListingDraft, min_photos: int) -> Result[ListingDraft]:
        """Advance to ``draft`` only when every required field and enough photos are present."""
        missing = self.missing_fields(draft)
        if missing:
            return Result.failure(f"Missing fields: {', '.join(missing)}", "missing_fields")
        photo_count = len(draft.photo_refs or [])
        if photo_count < min_photos:
            return Result.failure(f"Only {photo_count} of {min_photos} photos", "not_enough_photos")

        draft.status = STATUS_DRAFT
        self._touch(draft)
        logger.info("Listing draft ready", extra={"context": {"listing_id": str(draft.id)}})
        return Result.success(draft)

    def record_external_product(self, draft: ListingDraft, product_id: str) -> ListingDraft:
        draft.external_product_id = product_id
        self._touch(draft)
        return draft

    def abandon(self, draft: ListingDraft) -> ListingDraft:
        if draft.status == STATUS_INCOMPLETE:
            draft.status = STATUS_ABANDONED
            self._touch(draft)
            logger.info("Listing draft abandoned", extra={"context": {"listing_id": str(draft.id)}})
        return draft

    def _touch(self, draft: ListingDraft) -> None:
        draft.updated_at = datetime.now(timezone.utc)
        self.db.commit()


def product_payload(draft: ListingDraft) -> dict[str, Any]:
    """Shape a draft for ``CommerceClient.create_product``."""
    description = draft.description or ""
    if draft.notes:
        description = f"{description}\n\nNotes: {draft.notes}".strip()
    return {
        "title": listing_title(draft),
        "description": description,
        "designer": draft.designer,
        "pieces_included": draft.pieces_included,
        "size": draft.size,
        "condition": draft.condition,
        "price": f"{(draft.price_cents or 0) / 100:.2f}",
    }
