import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from listing_intake.logging_config import get_logger
from listing_intake.models import Seller

logger = get_logger("seller_service")

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def is_valid_email(text: Optional[str]) -> bool:
    return bool(_EMAIL.match(normalize_email(text)))


def phones_match(first: Optional[str], second: Optional[str]) -> bool:
    """Compare on the last 10 digits so country-code formatting does not matter."""
    first_digits = re.sub(r"\D", "", first or "")[-10:]
    second_digits = re.sub(r"\D", "", second or "")[-10:]
    return bool(first_digits) and first_digits == second_digits


class SellerDirectory:
    """Registered sellers: lookup, sign-up and phone linking."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, seller_id: Optional[str]) -> Optional[Seller]:
        if not seller_id:
            return None
        return self.db.query(Seller).filter(Seller.id == seller_id).first()

    def find_by_email(self, email: str) -> Optional[Seller]:
        normalized = normalize_email(email)
        if not normalized:
            return None
        return self.db.query(Seller).filter(func.lower(Seller.email) == normalized).first()

    def create(self, email: str, phone: str) -> Seller:
        seller = Seller(email=normalize_email(email), phone=phone)
        self.db.add(seller)
        self.db.commit()
        self.db.refresh(seller)
        logger.info("Seller created", extra={"context": {"seller_id": seller.id, "phone": phone}})
        return seller

    def link_phone(self, seller: Seller, phone: str) -> Seller:
        if not seller.phone:
            seller.phone = phone
            self.db.commit()
            logger.info("Seller phone linked", extra={"context": {"seller_id": seller.id, "phone": phone}})
        return seller
