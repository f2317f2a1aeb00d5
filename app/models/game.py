# app/models/game.py
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional

from app.models.enums import AddedBy, GameMode, GameState, GameStatus, StartType

class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire (matches the remote backend's JSON)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class MemoryItem(CamelModel):
    text: str
    added_by: AddedBy

class Player(CamelModel):
    id: str
    name: str

class ImageResult(CamelModel):
    base64_image: str
    mime_type: str

class GameSession(CamelModel):
    base_prompt: str
    items: List[MemoryItem] = []
    current_image: str = ""
    mime_type: str = "image/png"
    image_history: List[str] = []
    current_player: AddedBy = AddedBy.PLAYER_1 # Local modes only
    game_mode: GameMode
    ai_persona: Optional[str] = None # SINGLE_PLAYER only
    turn_ends_at: Optional[int] = None # Epoch milliseconds; absent for SOLO_MODE and ONLINE
    awaiting_ai_turn: bool = False # SINGLE_PLAYER: player item committed, AI item still owed

    # Online-only fields, owned by the remote authority
    game_code: Optional[str] = None
    players: List[Player] = []
    host_id: Optional[str] = None
    current_player_id: Optional[str] = None
    game_over_reason: Optional[str] = None
    game_status: Optional[GameStatus] = None

    def item_texts(self) -> List[str]:
        return [item.text for item in self.items]

class StartGameRequest(BaseModel):
    type: StartType
    destination: Optional[str] = None
    game_mode: Optional[GameMode] = None
    ai_persona: Optional[str] = None
    game_code: Optional[str] = None
    player_name: Optional[str] = None

class TurnSubmission(BaseModel):
    recalled_items: str = Field(default="", description="Recalled items, one per line, in the order they were added.")
    new_item: str

class HintRequest(BaseModel):
    recalled_items: str = ""

class CreateControllerRequest(BaseModel):
    sound_enabled: bool = True

class ControllerSettingsUpdate(BaseModel):
    sound_enabled: bool

class SessionView(BaseModel):
    session_id: str
    state: GameState
    session: Optional[GameSession] = None
    player_id: Optional[str] = None
    is_host: bool = False
    is_my_turn: bool = False
    can_start_game: bool = False
    turn_title: Optional[str] = None
    item_labels: List[str] = []
    seconds_left: Optional[int] = None
    is_busy: bool = False
    error: Optional[str] = None
    connection_lost: bool = False
    game_over_reason: Optional[str] = None
    trip_summary: Optional[str] = None
    is_summary_loading: bool = False
    hint: Optional[str] = None
    awaiting_ai_turn: bool = False
    sound_enabled: bool = True

class OnlineSeat(BaseModel):
    """What the authority hands back after create/join: our seat in the game plus its snapshot."""
    game_code: str
    player_id: str
    session: GameSession
