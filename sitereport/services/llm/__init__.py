from sitereport.services.llm.base import Extractor, ProviderError, Transcriber
from sitereport.services.llm.openai_provider import OpenAIProvider

__all__ = ["Extractor", "OpenAIProvider", "ProviderError", "Transcriber"]
