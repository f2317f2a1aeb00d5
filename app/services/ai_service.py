# app/services/ai_service.py
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import RequestRejectedError, ServiceUnreachableError
from app.models.enums import GameStatus
from app.models.game import GameSession, ImageResult, OnlineSeat

logger = logging.getLogger("app.services.ai_service")  # Logger for this module


class RemoteAIService:
    """
    Client for the remote backend: image rendering, the AI text calls and the
    online game authority. Every call is a JSON POST.

    Failures come out as one of two errors so callers can tell them apart:
    ServiceUnreachableError when there was no usable response, and
    RequestRejectedError when the backend refused with a reason.
    """

    def __init__(self, base_url: Optional[str] = None, timeout_seconds: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.AI_BACKEND_URL).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds or settings.AI_REQUEST_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(endpoint, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Transport failure calling {endpoint}: {e!r}")
            raise ServiceUnreachableError(f"Could not reach the game server ({e.__class__.__name__}).") from e

        if response.is_error:
            try:
                error_body = response.json()
            except ValueError:
                error_body = None
            message = error_body.get("error") if isinstance(error_body, dict) else None
            message = message or f"Request to backend failed with status: {response.status_code}"
            logger.warning(f"Backend rejected {endpoint} with {response.status_code}: {message}")
            raise RequestRejectedError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Backend returned a non-JSON body for {endpoint}.")
            raise ServiceUnreachableError("The game server sent an unreadable response.") from e
        if not isinstance(data, dict):
            raise ServiceUnreachableError("The game server sent an unreadable response.")
        return data

    @staticmethod
    def _require(data: Dict[str, Any], key: str, endpoint: str) -> Any:
        value = data.get(key)
        if value is None:
            logger.error(f"Backend response for {endpoint} is missing '{key}'.")
            raise ServiceUnreachableError(f"The game server response was missing '{key}'.")
        return value

    @staticmethod
    def _parse_session(raw: Any, endpoint: str) -> GameSession:
        try:
            return GameSession.model_validate(raw)
        except ValidationError as e:
            logger.error(f"Could not parse game state from {endpoint}: {e}")
            raise ServiceUnreachableError("The game server sent an unreadable game state.") from e

    def _parse_image(self, data: Dict[str, Any], endpoint: str) -> ImageResult:
        return ImageResult(
            base64_image=self._require(data, "base64Image", endpoint),
            mime_type=self._require(data, "mimeType", endpoint),
        )

    # --- Scene rendering ---

    async def generate_initial_image(self, destination: str) -> ImageResult:
        data = await self._post("/api/generate-initial-image", {"prompt": destination})
        return self._parse_image(data, "/api/generate-initial-image")

    async def edit_image(self, current_image: str, mime_type: str, item_text: str) -> ImageResult:
        data = await self._post("/api/edit-image", {
            "currentImageBase64": current_image,
            "mimeType": mime_type,
            "itemPrompt": item_text,
        })
        return self._parse_image(data, "/api/edit-image")

    # --- AI text calls ---

    async def get_ai_idea(self, persona: str, location: str, items: List[str]) -> str:
        data = await self._post("/api/get-ai-idea", {"persona": persona, "location": location, "items": items})
        return str(self._require(data, "idea", "/api/get-ai-idea")).strip()

    async def get_trip_summary(self, location: str, items: List[str]) -> str:
        data = await self._post("/api/get-trip-summary", {"location": location, "items": items})
        return str(self._require(data, "summary", "/api/get-trip-summary"))

    async def validate_memory(self, recalled_items: List[str], actual_items: List[str]) -> bool:
        data = await self._post("/api/validate-memory", {"recalledItems": recalled_items, "actualItems": actual_items})
        correct = self._require(data, "correct", "/api/validate-memory")
        if not isinstance(correct, bool):
            raise ServiceUnreachableError("The game server sent an unreadable validation result.")
        return correct

    # --- Online authority ---

    async def create_online_game(self, destination: str, player_name: str) -> OnlineSeat:
        endpoint = "/api/create-online-game"
        data = await self._post(endpoint, {"prompt": destination, "playerName": player_name})
        game_code = str(self._require(data, "gameCode", endpoint))
        session = self._parse_session(self._require(data, "gameState", endpoint), endpoint)
        if not session.game_code:
            session = session.model_copy(update={"game_code": game_code})
        return OnlineSeat(game_code=game_code, player_id=str(self._require(data, "playerId", endpoint)), session=session)

    async def join_online_game(self, game_code: str, player_name: str) -> OnlineSeat:
        endpoint = "/api/join-online-game"
        data = await self._post(endpoint, {"gameCode": game_code, "playerName": player_name})
        session = self._parse_session(self._require(data, "gameState", endpoint), endpoint)
        if not session.game_code:
            session = session.model_copy(update={"game_code": game_code})
        return OnlineSeat(game_code=session.game_code, player_id=str(self._require(data, "playerId", endpoint)), session=session)

    async def get_game_state(self, game_code: str) -> Tuple[GameSession, GameStatus]:
        endpoint = "/api/get-game-state"
        data = await self._post(endpoint, {"gameCode": game_code})
        session = self._parse_session(self._require(data, "gameState", endpoint), endpoint)
        if not session.game_code:
            session = session.model_copy(update={"game_code": game_code})
        try:
            status = GameStatus(data.get("gameStatus") or session.game_status)
        except ValueError as e:
            logger.error(f"Unknown game status from {endpoint}: {data.get('gameStatus')!r}")
            raise ServiceUnreachableError("The game server reported an unknown game status.") from e
        return session, status

    async def start_game(self, game_code: str, player_id: str) -> None:
        await self._post("/api/start-game", {"gameCode": game_code, "playerId": player_id})

    async def submit_turn(self, game_code: str, player_id: str, recalled_items: List[str], new_item: str) -> None:
        await self._post("/api/submit-turn", {
            "gameCode": game_code,
            "playerId": player_id,
            "recalledItems": recalled_items,
            "newItem": new_item,
        })
