from listing_intake.models.conversation import Conversation
from listing_intake.models.listing_draft import ListingDraft
from listing_intake.models.processed_message import ProcessedMessage
from listing_intake.models.seller import Seller

__all__ = [
    "Conversation",
    "ListingDraft",
    "ProcessedMessage",
    "Seller",
]
