# app/services/turn_resolver.py
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.errors import InvalidTurnError, PartialTurnError, RemoteServiceError
from app.models.enums import AddedBy, GameMode
from app.models.game import GameSession, ImageResult, MemoryItem
from app.services.memory_validator import parse_recalled_items, validate_memory

logger = logging.getLogger("app.services.turn_resolver")  # Logger for this module

MEMORY_FAILED_SINGLE_PLAYER = "Your memory failed!"
TIME_UP_REASON = "Time's up!"
SOLO_FINISHED_REASON = "Your creative journey is complete!"

# Fixed cyclic turn order per local hotseat mode
TURN_ORDER: Dict[GameMode, List[AddedBy]] = {
    GameMode.TWO_PLAYER: [AddedBy.PLAYER_1, AddedBy.PLAYER_2],
    GameMode.THREE_PLAYER: [AddedBy.PLAYER_1, AddedBy.PLAYER_2, AddedBy.PLAYER_3],
    GameMode.FOUR_PLAYER: [AddedBy.PLAYER_1, AddedBy.PLAYER_2, AddedBy.PLAYER_3, AddedBy.PLAYER_4],
}

PLAYER_NAMES: Dict[AddedBy, str] = {
    AddedBy.PLAYER_1: "Player 1",
    AddedBy.PLAYER_2: "Player 2",
    AddedBy.PLAYER_3: "Player 3",
    AddedBy.PLAYER_4: "Player 4",
    AddedBy.AI: "AI",
}


class TurnResult:
    """
    Outcome of one resolved turn. `session` is the snapshot to publish; when
    `game_over_reason` is set the memory check failed and `session` is the
    untouched input.
    """
    def __init__(self, session: GameSession, game_over_reason: Optional[str] = None, memory_checked: bool = False):
        self.session = session
        self.game_over_reason = game_over_reason
        self.memory_checked = memory_checked # True when a non-empty list was recalled correctly

    @property
    def is_game_over(self) -> bool:
        return self.game_over_reason is not None


def now_ms() -> int:
    return int(time.time() * 1000)

def next_turn_deadline() -> int:
    return now_ms() + settings.TURN_DURATION_SECONDS * 1000

def next_player(game_mode: GameMode, current: AddedBy) -> AddedBy:
    turn_order = TURN_ORDER[game_mode]
    return turn_order[(turn_order.index(current) + 1) % len(turn_order)]

def memory_failure_reason(session: GameSession) -> str:
    if session.game_mode == GameMode.SINGLE_PLAYER:
        return MEMORY_FAILED_SINGLE_PLAYER
    return f"{PLAYER_NAMES[session.current_player]}'s memory failed!"

def _with_item(session: GameSession, text: str, added_by: AddedBy, image: ImageResult) -> GameSession:
    # New lists every time; published snapshots are never mutated in place
    return session.model_copy(update={
        "items": [*session.items, MemoryItem(text=text, added_by=added_by)],
        "image_history": [*session.image_history, image.base64_image],
        "current_image": image.base64_image,
        "mime_type": image.mime_type,
    })


async def complete_ai_turn(session: GameSession, ai_service) -> GameSession:
    """The AI's half of a SINGLE_PLAYER turn: pick an item, render it, restart the clock."""
    persona = session.ai_persona or settings.DEFAULT_AI_PERSONA
    idea = await ai_service.get_ai_idea(persona, session.base_prompt, session.item_texts())
    logger.info(f"AI ({persona}) adds '{idea}' to the trip to '{session.base_prompt}'.")
    image = await ai_service.edit_image(session.current_image, session.mime_type, idea)
    after_ai = _with_item(session, idea, AddedBy.AI, image)
    return after_ai.model_copy(update={"awaiting_ai_turn": False, "turn_ends_at": next_turn_deadline()})


async def _continue_single_player(session: GameSession, ai_service) -> GameSession:
    try:
        return await complete_ai_turn(session, ai_service)
    except RemoteServiceError as e:
        logger.warning(f"AI step failed after the player's item was added: {e.message}. Keeping the player's item.")
        pending = session.model_copy(update={"awaiting_ai_turn": True, "turn_ends_at": None})
        raise PartialTurnError(pending, e) from e

async def _continue_local_multiplayer(session: GameSession, ai_service) -> GameSession:
    upcoming = next_player(session.game_mode, session.current_player)
    return session.model_copy(update={"current_player": upcoming, "turn_ends_at": next_turn_deadline()})

async def _continue_solo(session: GameSession, ai_service) -> GameSession:
    return session

ContinuationHandler = Callable[[GameSession, object], Awaitable[GameSession]]

_CONTINUATIONS: Dict[GameMode, ContinuationHandler] = {
    GameMode.SINGLE_PLAYER: _continue_single_player,
    GameMode.TWO_PLAYER: _continue_local_multiplayer,
    GameMode.THREE_PLAYER: _continue_local_multiplayer,
    GameMode.FOUR_PLAYER: _continue_local_multiplayer,
    GameMode.SOLO_MODE: _continue_solo,
}


async def resolve_turn(session: GameSession, recalled_text: str, new_item_text: str, ai_service) -> TurnResult:
    """
    Resolves one local turn and returns the next snapshot. Nothing is published
    here: the caller swaps in `TurnResult.session` once this returns.

    Raises RemoteServiceError when a remote call fails (the input session stays
    valid), or PartialTurnError when only the AI half of a SINGLE_PLAYER turn failed.
    """
    continuation = _CONTINUATIONS.get(session.game_mode)
    if continuation is None:
        raise InvalidTurnError(f"Turns in {session.game_mode.value} games are resolved by the game server.")
    new_item = (new_item_text or "").strip()
    if not new_item:
        raise InvalidTurnError("The new item cannot be empty.")
    if session.awaiting_ai_turn:
        raise InvalidTurnError("The AI still has to take its turn.")

    memory_checked = False
    if session.game_mode != GameMode.SOLO_MODE:
        validation = await validate_memory(parse_recalled_items(recalled_text), session.item_texts(), ai_service)
        if not validation.correct:
            reason = memory_failure_reason(session)
            logger.info(f"Memory check failed ({validation.reason}) in {session.game_mode.value}: {reason}")
            return TurnResult(session, game_over_reason=reason)
        memory_checked = not validation.skipped

    image = await ai_service.edit_image(session.current_image, session.mime_type, new_item)
    after_player = _with_item(session, new_item, session.current_player, image)
    next_session = await continuation(after_player, ai_service)
    logger.debug(f"Turn resolved in {session.game_mode.value}: {len(next_session.items)} items, next player {next_session.current_player.value}.")
    return TurnResult(next_session, memory_checked=memory_checked)
