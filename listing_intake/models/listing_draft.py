import uuid

from sqlalchemy import JSON, Column, Integer, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.sql import func

from listing_intake.database import Base


class ListingDraft(Base):
    __tablename__ = "listing_drafts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    phone = Column(Text, nullable=False)
    seller_id = Column(Text)
    status = Column(Text, nullable=False, default="incomplete")  # incomplete, draft, abandoned
    designer = Column(Text)
    pieces_included = Column(Text)
    size = Column(Text)
    condition = Column(Text)
    price_cents = Column(Integer)
    notes = Column(Text)
    description = Column(Text)
    photo_refs = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    external_product_id = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
