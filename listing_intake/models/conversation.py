from sqlalchemy import JSON, Boolean, Column, Text
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP
from sqlalchemy.sql import func

from listing_intake.database import Base


class Conversation(Base):
    __tablename__ = "conversations"

    phone = Column(Text, primary_key=True)  # E.164 without "+", as delivered by the platform
    state = Column(Text, nullable=False, default="new")
    context = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    is_authorized = Column(Boolean, nullable=False, default=False)
    seller_id = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
