from enum import Enum

class GameState(str, Enum):
    START = "START"
    LOBBY = "LOBBY" # Online games only, waiting for the host to start
    GAME = "GAME"
    GAME_OVER = "GAME_OVER"
    GALLERY = "GALLERY" # Browsing saved trips, outside the play lifecycle

class GameMode(str, Enum):
    SINGLE_PLAYER = "SINGLE_PLAYER" # Player vs AI
    TWO_PLAYER = "TWO_PLAYER" # Local hotseat
    THREE_PLAYER = "THREE_PLAYER" # Local hotseat
    FOUR_PLAYER = "FOUR_PLAYER" # Local hotseat
    SOLO_MODE = "SOLO_MODE" # Untimed, no memory check
    ONLINE = "ONLINE" # Remote authority owns the game

class AddedBy(str, Enum):
    PLAYER_1 = "PLAYER_1"
    PLAYER_2 = "PLAYER_2"
    PLAYER_3 = "PLAYER_3"
    PLAYER_4 = "PLAYER_4"
    AI = "AI"

class GameStatus(str, Enum):
    LOBBY = "lobby"
    ACTIVE = "active"
    FINISHED = "finished"

class StartType(str, Enum):
    LOCAL = "local"
    CREATE_ONLINE = "create_online"
    JOIN_ONLINE = "join_online"

LOCAL_MULTIPLAYER_MODES = (GameMode.TWO_PLAYER, GameMode.THREE_PLAYER, GameMode.FOUR_PLAYER)
# Modes where the local Timer Subsystem enforces turnEndsAt
TIMED_MODES = (GameMode.SINGLE_PLAYER,) + LOCAL_MULTIPLAYER_MODES
