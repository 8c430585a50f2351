from sqlalchemy import Column, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from listing_intake.database import Base


class ProcessedMessage(Base):
    __tablename__ = "processed_messages"
    __table_args__ = (UniqueConstraint("phone", "message_id", name="uq_processed_messages_phone_message"),)

    phone = Column(Text, primary_key=True)
    message_id = Column(Text, primary_key=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
