from listing_intake.services.conversation_service import ConversationStore
from listing_intake.services.dedup_store import DedupStore
from listing_intake.services.dispatcher import ConversationDispatcher, DispatchOutcome, Transition
from listing_intake.services.listing_service import ListingDraftStore
from listing_intake.services.media_uploader import MediaUploader, PollPolicy
from listing_intake.services.result import Result
from listing_intake.services.seller_service import SellerDirectory
from listing_intake.services.state_machine import (
    ConversationState,
    InvalidTransitionError,
    can_transition,
    transition,
)
from listing_intake.services.whatsapp_service import WhatsAppService

__all__ = [
    "ConversationDispatcher",
    "ConversationState",
    "ConversationStore",
    "DedupStore",
    "DispatchOutcome",
    "InvalidTransitionError",
    "ListingDraftStore",
    "MediaUploader",
    "PollPolicy",
    "Result",
    "SellerDirectory",
    "Transition",
    "WhatsAppService",
    "can_transition",
    "transition",
]
