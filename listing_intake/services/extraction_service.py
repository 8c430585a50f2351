"""Best-effort field extraction and voice-note transcription.

Whatever comes back is advisory: the dispatcher re-validates every value with
``field_rules`` exactly as if the user had typed it.
"""

import asyncio
import json
import re
from typing import Optional

from listing_intake.errors import ExtractionError
from listing_intake.logging_config import get_logger
from listing_intake.services.field_rules import REQUIRED_FIELDS
from listing_intake.services.llm import LLMProvider

logger = get_logger("extraction_service")

EXTRACTION_PROMPT = """You extract product details from descriptions of Pakistani designer clothing.
Return a JSON object with these keys (use null if not mentioned):
- designer: brand name (e.g. "Sana Safinaz", "Maria B", "Elan")
- pieces_included: "Kurta", "2-piece" or "3-piece"
- size: size mentioned (e.g. "S", "M", "L", "XL", "Unstitched")
- condition: item condition (e.g. "New with tags", "Like new", "Good", "Fair")
- price: asking price in USD, number only
- notes: flaws or special details, if any
Only return valid JSON, no other text."""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_extraction(content: Optional[str]) -> dict[str, str]:
    """Read the model's JSON reply into ``{field: raw string}``; junk yields {}."""
    content = (content or "").strip()
    if not content:
        return {}

    payload = None
    try:
        payload = json.loads(content)
    except ValueError:
        match = _JSON_OBJECT.search(content)
        if match:
            try:
                payload = json.loads(match.group(0))
            except ValueError:
                payload = None

    if not isinstance(payload, dict):
        return {}

    extracted = {}
    for field in (*REQUIRED_FIELDS, "notes"):
        value = payload.get(field)
        if value is None or isinstance(value, bool):
            continue
        text = str(value).strip()
        if text and text.lower() not in ("null", "none", "n/a"):
            extracted[field] = text
    return extracted


class FieldExtractor:
    def __init__(self, provider: LLMProvider, model: Optional[str] = None):
        self.provider = provider
        self.model = model

    async def extract(self, text: str) -> dict[str, str]:
        """Suggest raw field values for ``text``; never raises."""
        if not (text or "").strip():
            return {}
        messages = [
            {"role": "system", "content": EXTRACTION_PROMPT},
            {"role": "user", "content": text},
        ]
        try:
            response = await asyncio.to_thread(self.provider.generate, messages, self.model, 0.1, 500, True)
        except ExtractionError as exc:
            logger.warning(f"Field extraction failed: {exc}")
            return {}

        extracted = parse_extraction(response.content)
        logger.info("Fields extracted", extra={"context": {"fields": sorted(extracted)}})
        return extracted

    async def transcribe(self, audio_bytes: bytes, mime_type: Optional[str] = None) -> Optional[str]:
        """Transcribe a voice note. Returns None on failure."""
        try:
            transcript = await asyncio.to_thread(
                lambda: self.provider.transcribe_audio(
                    audio_bytes=audio_bytes,
                    filename=_audio_filename(mime_type),
                    mime_type=mime_type,
                )
            )
        except ExtractionError as exc:
            logger.warning(f"Audio transcription failed: {exc}")
            return None
        cleaned = (transcript or "").strip()
        return cleaned or None


def _audio_filename(mime_type: Optional[str]) -> str:
    subtype = (mime_type or "audio/ogg").split(";", 1)[0].split("/")[-1].strip() or "ogg"
    return f"voice.{subtype}"
