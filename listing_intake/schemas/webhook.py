import json
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class TextBody(BaseModel):
    body: str = ""


class ReplySelection(BaseModel):
    id: str
    title: Optional[str] = None


class FlowReply(BaseModel):
    response_json: Optional[str] = None
    body: Optional[str] = None
    name: Optional[str] = None


class Interactive(BaseModel):
    type: str
    button_reply: Optional[ReplySelection] = None
    list_reply: Optional[ReplySelection] = None
    nfm_reply: Optional[FlowReply] = None


class MediaRef(BaseModel):
    id: str
    mime_type: Optional[str] = None
    caption: Optional[str] = None


class ButtonPayload(BaseModel):
    payload: Optional[str] = None
    text: Optional[str] = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_: str = Field(validation_alias=AliasChoices("from", "from_"))
    type: str = "text"
    timestamp: Optional[str] = None
    text: Optional[TextBody] = None
    interactive: Optional[Interactive] = None
    button: Optional[ButtonPayload] = None
    image: Optional[MediaRef] = None
    audio: Optional[MediaRef] = None


class ChangeValue(BaseModel):
    messaging_product: Optional[str] = None
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class Change(BaseModel):
    field: Optional[str] = None
    value: ChangeValue = Field(default_factory=ChangeValue)


class Entry(BaseModel):
    id: Optional[str] = None
    changes: list[Change] = Field(default_factory=list)


class WebhookEnvelope(BaseModel):
    object: Optional[str] = None
    entry: list[Entry] = Field(default_factory=list)

    def messages(self) -> list[WhatsAppMessage]:
        return [message for entry in self.entry for change in entry.changes for message in change.value.messages]


class EventKind(str, Enum):
    TEXT = "text"
    BUTTON = "button"
    LIST = "list"
    IMAGE = "image"
    AUDIO = "audio"
    FLOW_COMPLETE = "flow_complete"
    UNSUPPORTED = "unsupported"


class InboundEvent(BaseModel):
    """Platform-neutral inbound event handed to the dispatcher."""

    phone: str
    inbound_message_id: str
    kind: EventKind
    text: str = ""
    control_id: Optional[str] = None
    media_id: Optional[str] = None
    mime_type: Optional[str] = None
    form_data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_whatsapp(cls, message: WhatsAppMessage) -> "InboundEvent":
        base = {"phone": message.from_, "inbound_message_id": message.id}

        if message.type == "text" and message.text:
            return cls(kind=EventKind.TEXT, text=message.text.body.strip(), **base)

        if message.type == "interactive" and message.interactive:
            interactive = message.interactive
            if interactive.button_reply:
                return cls(
                    kind=EventKind.BUTTON,
                    text=(interactive.button_reply.title or "").strip(),
                    control_id=interactive.button_reply.id,
                    **base,
                )
            if interactive.list_reply:
                return cls(
                    kind=EventKind.LIST,
                    text=(interactive.list_reply.title or "").strip(),
                    control_id=interactive.list_reply.id,
                    **base,
                )
            if interactive.nfm_reply:
                return cls(kind=EventKind.FLOW_COMPLETE, form_data=_parse_flow_response(interactive.nfm_reply), **base)

        if message.type == "button" and message.button:
            return cls(
                kind=EventKind.BUTTON,
                text=(message.button.text or "").strip(),
                control_id=message.button.payload,
                **base,
            )

        if message.type == "image" and message.image:
            return cls(
                kind=EventKind.IMAGE,
                media_id=message.image.id,
                mime_type=message.image.mime_type,
                text=(message.image.caption or "").strip(),
                **base,
            )

        if message.type == "audio" and message.audio:
            return cls(kind=EventKind.AUDIO, media_id=message.audio.id, mime_type=message.audio.mime_type, **base)

        return cls(kind=EventKind.UNSUPPORTED, **base)


def _parse_flow_response(reply: FlowReply) -> dict[str, Any]:
    if not reply.response_json:
        return {}
    try:
        data = json.loads(reply.response_json)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


class WebhookAck(BaseModel):
    status: str
    processed: int = 0
