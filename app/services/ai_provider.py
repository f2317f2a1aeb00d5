# app/services/ai_provider.py
import logging
from typing import Optional

from app.core.config import settings
from app.services.ai_service import RemoteAIService
from app.services.gemini_text_service import GeminiTextService

logger = logging.getLogger("app.services.ai_provider")  # Logger for this module

_ai_service: Optional[RemoteAIService] = None # Shared by every controller of this process

def build_ai_service(provider: Optional[str] = None) -> RemoteAIService:
    provider_name = (provider or settings.AI_TEXT_PROVIDER).lower()
    if provider_name == "gemini":
        logger.info("Using Gemini for memory checks, AI ideas and trip summaries.")
        return GeminiTextService()
    if provider_name != "backend":
        logger.warning(f"Unknown AI_TEXT_PROVIDER '{provider_name}'. Falling back to the remote backend.")
    return RemoteAIService()

def get_ai_service() -> RemoteAIService:
    global _ai_service
    if _ai_service is None:
        _ai_service = build_ai_service()
    return _ai_service

async def close_ai_service():
    global _ai_service
    if _ai_service is not None:
        await _ai_service.aclose()
        _ai_service = None
