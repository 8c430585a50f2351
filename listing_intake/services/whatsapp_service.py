from typing import Optional

import httpx

from listing_intake.errors import MediaDownloadError, MessengerError
from listing_intake.logging_config import get_logger
from listing_intake.schemas.outbound import (
    ButtonMessage,
    FlowMessage,
    ListMessage,
    OutboundMessage,
    TextMessage,
)

logger = get_logger("whatsapp_service")

MAX_BUTTONS = 3
BUTTON_TITLE_LIMIT = 20
LIST_BUTTON_LIMIT = 20
LIST_ROW_TITLE_LIMIT = 24
LIST_ROW_DESCRIPTION_LIMIT = 72
LIST_SECTION_TITLE_LIMIT = 24
LIST_MAX_ROWS = 10
INTERACTIVE_BODY_LIMIT = 1024
TEXT_BODY_LIMIT = 4096


def truncate(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"


class WhatsAppService:
    """Outbound messages and media downloads via the WhatsApp Cloud API."""

    BASE_URL = "https://graph.facebook.com/{version}"

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_version: str = "v18.0",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.base_url = self.BASE_URL.format(version=api_version)
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def _post_message(self, payload: dict) -> dict:
        url = f"{self.base_url}/{self.phone_number_id}/messages"
        body = {"messaging_product": "whatsapp", "recipient_type": "individual", **payload}
        try:
            async with self._client() as client:
                response = await client.post(url, json=body, headers=self._headers)
        except httpx.HTTPError as exc:
            raise MessengerError(f"WhatsApp API unreachable: {exc}") from exc

        if response.status_code >= 400:
            detail = _error_message(response)
            raise MessengerError(f"WhatsApp API error: {detail}", status_code=response.status_code)
        return response.json()

    async def send(self, phone: str, message: OutboundMessage) -> dict:
        if isinstance(message, ButtonMessage):
            return await self.send_buttons(phone, message)
        if isinstance(message, ListMessage):
            return await self.send_list(phone, message)
        if isinstance(message, FlowMessage):
            return await self.send_flow(phone, message)
        return await self.send_text(phone, message)

    async def send_text(self, phone: str, message: TextMessage) -> dict:
        payload = build_text_payload(phone, message)
        result = await self._post_message(payload)
        logger.debug(f"Text sent to {phone}")
        return result

    async def send_buttons(self, phone: str, message: ButtonMessage) -> dict:
        return await self._post_message(build_button_payload(phone, message))

    async def send_list(self, phone: str, message: ListMessage) -> dict:
        return await self._post_message(build_list_payload(phone, message))

    async def send_flow(self, phone: str, message: FlowMessage) -> dict:
        return await self._post_message(build_flow_payload(phone, message))

    async def get_media_url(self, media_id: str) -> str:
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/{media_id}", headers=self._headers)
        except httpx.HTTPError as exc:
            raise MediaDownloadError(f"Media lookup failed for {media_id}: {exc}") from exc
        if response.status_code >= 400:
            raise MediaDownloadError(f"Media lookup failed for {media_id}: {response.status_code}")
        url = response.json().get("url")
        if not url:
            raise MediaDownloadError(f"No URL for media {media_id}")
        return url

    async def download_media(self, media_id: str) -> bytes:
        url = await self.get_media_url(media_id)
        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise MediaDownloadError(f"Media download failed for {media_id}: {exc}") from exc
        if response.status_code >= 400:
            raise MediaDownloadError(f"Media download failed for {media_id}: {response.status_code}")
        return response.content


def build_text_payload(phone: str, message: TextMessage) -> dict:
    return {"to": phone, "type": "text", "text": {"body": truncate(message.body, TEXT_BODY_LIMIT)}}


def build_button_payload(phone: str, message: ButtonMessage) -> dict:
    buttons = [
        {"type": "reply", "reply": {"id": option.id, "title": truncate(option.title, BUTTON_TITLE_LIMIT)}}
        for option in message.options[:MAX_BUTTONS]
    ]
    if len(message.options) > MAX_BUTTONS:
        logger.warning(
            "Dropping extra reply buttons",
            extra={"context": {"phone": phone, "count": len(message.options)}},
        )
    return {
        "to": phone,
        "type": "interactive",
        "interactive": {
            "type": "button",
            "body": {"text": truncate(message.body, INTERACTIVE_BODY_LIMIT)},
            "action": {"buttons": buttons},
        },
    }


def build_list_payload(phone: str, message: ListMessage) -> dict:
    sections = []
    remaining = LIST_MAX_ROWS
    for section in message.sections:
        if remaining <= 0:
            break
        rows = []
        for option in section.rows[:remaining]:
            row = {"id": option.id, "title": truncate(option.title, LIST_ROW_TITLE_LIMIT)}
            if option.description:
                row["description"] = truncate(option.description, LIST_ROW_DESCRIPTION_LIMIT)
            rows.append(row)
        remaining -= len(rows)
        sections.append({"title": truncate(section.title, LIST_SECTION_TITLE_LIMIT), "rows": rows})

    return {
        "to": phone,
        "type": "interactive",
        "interactive": {
            "type": "list",
            "body": {"text": truncate(message.body, INTERACTIVE_BODY_LIMIT)},
            "action": {"button": truncate(message.button, LIST_BUTTON_LIMIT), "sections": sections},
        },
    }


def build_flow_payload(phone: str, message: FlowMessage) -> dict:
    parameters = {
        "flow_message_version": "3",
        "flow_token": message.flow_token,
        "flow_id": message.flow_id,
        "flow_cta": truncate(message.cta, BUTTON_TITLE_LIMIT),
        "flow_action": "navigate",
    }
    if message.screen:
        parameters["flow_action_payload"] = {"screen": message.screen}
    return {
        "to": phone,
        "type": "interactive",
        "interactive": {
            "type": "flow",
            "body": {"text": truncate(message.body, INTERACTIVE_BODY_LIMIT)},
            "action": {"name": "flow", "parameters": parameters},
        },
    }


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"{response.status_code} {response.text[:200]}"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return f"{response.status_code} {error['message']}"
    return str(response.status_code)
