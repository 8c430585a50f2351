from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class ReplyOption(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class ListSection(BaseModel):
    title: str
    rows: list[ReplyOption]


class TextMessage(BaseModel):
    kind: Literal["text"] = "text"
    body: str


class ButtonMessage(BaseModel):
    kind: Literal["button"] = "button"
    body: str
    options: list[ReplyOption] = Field(default_factory=list)


class ListMessage(BaseModel):
    kind: Literal["list"] = "list"
    body: str
    button: str = "Select"
    sections: list[ListSection] = Field(default_factory=list)


class FlowMessage(BaseModel):
    kind: Literal["flow"] = "flow"
    body: str
    flow_id: str
    flow_token: str
    cta: str = "Open form"
    screen: Optional[str] = None


OutboundMessage = Union[TextMessage, ButtonMessage, ListMessage, FlowMessage]
