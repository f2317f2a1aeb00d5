# app/services/turn_labels.py
from typing import List, Optional

from app.models.enums import AddedBy, GameMode
from app.models.game import GameSession, MemoryItem
from app.services.turn_resolver import PLAYER_NAMES

_SHORT_TAGS = {
    AddedBy.PLAYER_1: "P1",
    AddedBy.PLAYER_2: "P2",
    AddedBy.PLAYER_3: "P3",
    AddedBy.PLAYER_4: "P4",
    AddedBy.AI: "AI",
}

_JOIN_ORDER = [AddedBy.PLAYER_1, AddedBy.PLAYER_2, AddedBy.PLAYER_3, AddedBy.PLAYER_4]

def item_label(item: MemoryItem, session: GameSession) -> str:
    """Who added an item, as shown next to it in the trip journal."""
    if session.game_mode == GameMode.ONLINE and item.added_by in _JOIN_ORDER:
        index = _JOIN_ORDER.index(item.added_by)
        if index < len(session.players):
            return session.players[index].name
    if item.added_by == AddedBy.PLAYER_1 and session.game_mode in (GameMode.SINGLE_PLAYER, GameMode.SOLO_MODE):
        return "You"
    return _SHORT_TAGS[item.added_by]

def item_labels(session: GameSession) -> List[str]:
    return [item_label(item, session) for item in session.items]

def turn_title(session: GameSession, player_id: Optional[str]) -> str:
    if session.game_mode == GameMode.SOLO_MODE:
        return "Solo Mode"
    if session.game_mode == GameMode.ONLINE:
        if session.current_player_id is not None and session.current_player_id == player_id:
            return "It's Your Turn!"
        current = next((p for p in session.players if p.id == session.current_player_id), None)
        return f"Waiting for {current.name if current else '...'}..."
    if session.game_mode == GameMode.SINGLE_PLAYER:
        return "Your Turn"
    name = PLAYER_NAMES.get(session.current_player)
    return f"{name}'s Turn" if name else "Next Turn"
