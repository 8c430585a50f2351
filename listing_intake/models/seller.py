import uuid

from sqlalchemy import Column, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.sql import func

from listing_intake.database import Base


class Seller(Base):
    __tablename__ = "sellers"

    id = Column(Text, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(Text, nullable=False, unique=True)
    phone = Column(Text)
    name = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, server_default=func.now())
