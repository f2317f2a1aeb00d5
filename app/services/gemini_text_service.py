# app/services/gemini_text_service.py
import json
import logging
from typing import Any, Dict, List, Optional

import google.generativeai as genai

from app.core.config import settings
from app.core.errors import RemoteServiceError, ServiceUnreachableError
from app.services.ai_service import RemoteAIService

logger = logging.getLogger("app.services.gemini_text_service")  # Logger for this module

MEMORY_JUDGE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "correct": {"type": "BOOLEAN", "description": "True if every recalled item matches the actual item at the same position."},
        "reason": {"type": "STRING", "description": "A brief explanation for the decision."}
    },
    "required": ["correct", "reason"]
}

AI_IDEA_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "idea": {"type": "STRING", "description": "One short item (a few words) to add to the scene."}
    },
    "required": ["idea"]
}


class GeminiTextService(RemoteAIService):
    """
    Answers the three text calls (memory check, AI idea, trip summary) with
    Gemini directly. Image rendering and the online authority still go to the
    remote backend.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model_name = model_name or settings.GEMINI_MODEL_NAME
        self._model = None

    def _get_model(self):
        if self._model is not None:
            return self._model
        if not self.api_key or self.api_key == "YOUR_GEMINI_API_KEY_HERE":
            logger.error("GEMINI_API_KEY is not configured. Cannot use the Gemini text provider.")
            raise ServiceUnreachableError("Gemini API key not configured")
        try:
            genai.configure(api_key=self.api_key)
            self._model = genai.GenerativeModel(self.model_name)
        except Exception as e:
            logger.exception(f"Error configuring Gemini client: {e}")
            raise ServiceUnreachableError(f"Gemini client configuration error: {e}") from e
        return self._model

    async def _generate(self, prompt: str, response_schema: Optional[Dict[str, Any]] = None) -> str:
        model = self._get_model()
        generation_config = None
        if response_schema:
            generation_config = {"response_mime_type": "application/json", "response_schema": response_schema}
        try:
            response = await model.generate_content_async(prompt, generation_config=generation_config)
            return response.text
        except Exception as e:
            logger.exception(f"Gemini call failed: {e}")
            raise ServiceUnreachableError(f"Gemini processing error: {e}") from e

    async def _generate_json(self, prompt: str, response_schema: Dict[str, Any]) -> Dict[str, Any]:
        text = await self._generate(prompt, response_schema)
        try:
            result = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding JSON from Gemini: {e}. Response: {text!r}")
            raise ServiceUnreachableError(f"JSON decode error: {e}") from e
        if not isinstance(result, dict):
            raise ServiceUnreachableError("Gemini returned an unexpected JSON shape.")
        return result

    async def validate_memory(self, recalled_items: List[str], actual_items: List[str]) -> bool:
        recalled_block = "\n".join(f"{i + 1}. {item}" for i, item in enumerate(recalled_items))
        actual_block = "\n".join(f"{i + 1}. {item}" for i, item in enumerate(actual_items))
        prompt = f"""
You are the judge of a memory game. A player had to recall a list of items in the exact order they were added.
Compare the recalled list with the actual list position by position.
Be forgiving about spelling mistakes, plurals, articles and obvious paraphrases ("red umbrella" vs "an umbrella that is red"),
but the order must be the same and no item may be missing or replaced by a different thing.

Actual items:
{actual_block}

Recalled items:
{recalled_block}
"""
        judgment = await self._generate_json(prompt, MEMORY_JUDGE_SCHEMA)
        correct = judgment.get("correct")
        if not isinstance(correct, bool):
            logger.error(f"Gemini memory judgment had no boolean 'correct': {judgment!r}")
            raise ServiceUnreachableError("Gemini returned an unreadable memory judgment.")
        logger.info(f"Gemini memory judgment: correct={correct}, reason='{judgment.get('reason')}'")
        return correct

    async def get_ai_idea(self, persona: str, location: str, items: List[str]) -> str:
        items_to_avoid = ", ".join(items) or "nothing yet"
        prompt = f"""
You are playing a memory game as "{persona}". Stay in character.
Everyone is packing for a trip to "{location}" and each turn someone adds one new thing to the scene.
Items already in the scene (do not repeat any of them): {items_to_avoid}

Suggest exactly one new item, a few words at most, that someone like you would bring.
"""
        result = await self._generate_json(prompt, AI_IDEA_SCHEMA)
        idea = str(result.get("idea") or "").strip()
        if not idea:
            raise ServiceUnreachableError("Gemini did not suggest an item.")
        logger.info(f"Gemini AI idea as '{persona}': '{idea}'")
        return idea

    async def get_trip_summary(self, location: str, items: List[str]) -> str:
        prompt = f"""
Write a short, warm travel-journal entry (3 to 5 sentences) about a trip to "{location}".
Mention these things that came along, in this order: {", ".join(items)}.
"""
        summary = (await self._generate(prompt)).strip()
        if not summary:
            raise RemoteServiceError("Gemini returned an empty trip summary.")
        return summary
