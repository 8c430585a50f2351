from listing_intake.services.llm.base import LLMProvider, LLMResponse
from listing_intake.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "OpenAIProvider"]
