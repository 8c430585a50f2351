from listing_intake.schemas.outbound import (
    ButtonMessage,
    FlowMessage,
    ListMessage,
    ListSection,
    OutboundMessage,
    ReplyOption,
    TextMessage,
)
from listing_intake.schemas.webhook import EventKind, InboundEvent, WebhookAck, WebhookEnvelope

__all__ = [
    "ButtonMessage",
    "EventKind",
    "FlowMessage",
    "InboundEvent",
    "ListMessage",
    "ListSection",
    "OutboundMessage",
    "ReplyOption",
    "TextMessage",
    "WebhookAck",
    "WebhookEnvelope",
]
