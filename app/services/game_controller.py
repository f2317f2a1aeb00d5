# app/services/game_controller.py
import asyncio
import logging
import math
import random
import uuid
from typing import Callable, Dict, Optional, Set, Tuple

from app.core.config import settings
from app.core.errors import (
    GameFlowError,
    InvalidTransitionError,
    InvalidTurnError,
    LobbyStartError,
    PartialTurnError,
    RemoteServiceError,
    TurnInProgressError,
)
from app.models.enums import GameMode, GameState, GameStatus, TIMED_MODES
from app.models.gallery import TripCreate
from app.models.game import GameSession, SessionView
from app.services import gallery_service
from app.services.game_events import EventLog
from app.services.memory_validator import parse_recalled_items
from app.services.sync_coordinator import SyncCoordinator
from app.services.task_registry import TaskRegistry
from app.services.turn_labels import item_labels, turn_title
from app.services.turn_resolver import (
    SOLO_FINISHED_REASON,
    TIME_UP_REASON,
    TurnResult,
    complete_ai_turn,
    next_turn_deadline,
    now_ms,
    resolve_turn,
)
from app.services.turn_timer import TurnTimer

logger = logging.getLogger("app.services.game_controller")  # Logger for this module

CONNECTION_LOST_MESSAGE = "Lost connection to the game server."
ONLINE_GAME_ENDED_REASON = "The game has ended."

# GAME_OVER -> START and GALLERY -> START only happen through reset()
_ALLOWED_TRANSITIONS: Dict[GameState, Set[GameState]] = {
    GameState.START: {GameState.GAME, GameState.LOBBY, GameState.GALLERY},
    GameState.LOBBY: {GameState.GAME, GameState.GAME_OVER},
    GameState.GAME: {GameState.GAME_OVER},
    GameState.GAME_OVER: set(),
    GameState.GALLERY: set(),
}


class GameController:
    """
    The session state machine for one player-facing client: one hotseat
    device, or one participant of an online game.

    It owns the current GameSession snapshot and replaces it wholesale on every
    change. User actions (start, turn, lobby start, AI retry) are serialised
    through `is_busy`; the poll loop and the turn timer run as tasks in
    `self.tasks` and are (re)started or cancelled after every transition.

    `epoch` increases on every reset. Anything that awaited a remote call
    compares it before publishing, so a late answer never lands on a newer game.
    """

    def __init__(self, ai_service, controller_id: Optional[str] = None, sound_enabled: bool = True, trip_saver: Optional[Callable[[TripCreate], object]] = None):
        self.id = controller_id or uuid.uuid4().hex[:12]
        self.ai_service = ai_service
        self.events = EventLog(sound_enabled=sound_enabled)
        self.trip_saver = trip_saver or gallery_service.save_completed_trip
        self.tasks = TaskRegistry(f"C:{self.id}")
        self.epoch = 0
        self._sync: Optional[SyncCoordinator] = None
        self._timer: Optional[TurnTimer] = None
        self._clear()

    def _clear(self):
        self.state = GameState.START
        self.session: Optional[GameSession] = None
        self.player_id: Optional[str] = None
        self.error: Optional[str] = None
        self.connection_lost = False
        self.game_over_reason: Optional[str] = None
        self.trip_summary: Optional[str] = None
        self.is_summary_loading = False
        self.is_busy = False
        self.hint: Optional[str] = None
        self._hint_turn: Optional[Tuple] = None
        self._awaiting_authority: Optional[Tuple] = None
        self._trip_saved = False
        self._game_over_entries = 0

    # --- Derived state ---

    @property
    def is_host(self) -> bool:
        return bool(self.session and self.player_id and self.session.host_id == self.player_id)

    @property
    def is_my_turn(self) -> bool:
        if self.state != GameState.GAME or self.session is None:
            return False
        if self.session.game_mode == GameMode.ONLINE:
            return self.player_id is not None and self.session.current_player_id == self.player_id
        return True

    @property
    def can_start_game(self) -> bool:
        return (
            self.state == GameState.LOBBY
            and self.is_host
            and settings.MIN_PLAYERS_TO_START <= len(self.session.players) <= settings.MAX_ONLINE_PLAYERS
        )

    @property
    def summary_task(self) -> Optional[asyncio.Task]:
        return self.tasks.get("summary")

    def should_poll(self, game_code: Optional[str] = None) -> bool:
        if self.session is None or not self.session.game_code or self.connection_lost:
            return False
        if game_code is not None and self.session.game_code != game_code:
            return False
        return self.state == GameState.LOBBY or (self.state == GameState.GAME and self.session.game_mode == GameMode.ONLINE)

    def timer_should_run(self) -> bool:
        return (
            self.state == GameState.GAME
            and self.session is not None
            and self.session.game_mode in TIMED_MODES
            and self.session.turn_ends_at is not None
        )

    def timer_applies(self) -> bool:
        # No expiry while the player's submitted turn is still being resolved
        return self.timer_should_run() and not self.is_busy

    def _turn_key(self) -> Tuple:
        return (self.session.current_player, len(self.session.items), self.session.current_player_id)

    @staticmethod
    def _authority_key(session: GameSession) -> Tuple:
        return (session.current_player_id, len(session.items))

    # --- Transitions and background tasks ---

    def _transition(self, new_state: GameState):
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, f"move to {new_state.value}")
        logger.info(f"C:{self.id} - {self.state.value} -> {new_state.value}", extra={"controller_id": self.id})
        self.state = new_state
        if new_state == GameState.GAME_OVER:
            self._on_game_over()
        self._sync_background_tasks()

    def _publish(self, session: GameSession):
        self.session = session
        self._sync_background_tasks()

    def _sync_background_tasks(self):
        if self.should_poll():
            key = (self.session.game_code, self.state)
            if self.tasks.key_for("poll") != key or not self.tasks.is_running("poll"):
                self._stop_polling()
                self._sync = SyncCoordinator(self, self.ai_service, self.session.game_code)
                self.tasks.ensure("poll", key, self._sync.run)
        else:
            self._stop_polling()

        if self.timer_should_run():
            if not self.tasks.is_running("timer"):
                self._timer = TurnTimer(self)
                self.tasks.ensure("timer", self.epoch, self._timer.run)
        else:
            self.tasks.cancel("timer")
            self._timer = None

    def _stop_polling(self):
        if self._sync is not None:
            self._sync.stop()
            self._sync = None
        self.tasks.cancel("poll")

    def _require_state(self, expected: GameState, action: str):
        if self.state != expected:
            raise InvalidTransitionError(self.state, action)

    def _begin_request(self) -> int:
        if self.is_busy:
            raise TurnInProgressError()
        self.is_busy = True
        self.error = None
        return self.epoch

    def _end_request(self, epoch: int):
        if self.epoch == epoch:
            self.is_busy = False

    def _record_error(self, error: RemoteServiceError, epoch: int):
        if self.epoch != epoch:
            return
        self.error = error.message
        logger.error(f"C:{self.id} - Remote call failed: {error.message}", extra={"controller_id": self.id})

    def _end_game(self, reason: str):
        self.game_over_reason = reason
        self.events.emit("game_over", {"reason": reason})
        self._transition(GameState.GAME_OVER)

    # --- Starting a game ---

    async def start_local(self, destination: str, game_mode: GameMode, ai_persona: Optional[str] = None) -> GameSession:
        self._require_state(GameState.START, "start a game")
        if game_mode == GameMode.ONLINE:
            raise GameFlowError("Online games are created or joined, not started locally.")
        destination = (destination or "").strip()
        if not destination:
            raise GameFlowError("A destination is required.")

        epoch = self._begin_request()
        try:
            image = await self.ai_service.generate_initial_image(destination)
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if self.epoch != epoch or self.state != GameState.START:
            logger.info(f"C:{self.id} - Discarding initial image for '{destination}', controller was reset.")
            return None

        session = GameSession(
            base_prompt=destination,
            items=[],
            current_image=image.base64_image,
            mime_type=image.mime_type,
            image_history=[image.base64_image],
            game_mode=game_mode,
            ai_persona=(ai_persona or settings.DEFAULT_AI_PERSONA) if game_mode == GameMode.SINGLE_PLAYER else None,
            turn_ends_at=None if game_mode == GameMode.SOLO_MODE else next_turn_deadline(),
        )
        self.session = session
        self._transition(GameState.GAME)
        logger.info(f"C:{self.id} - Local {game_mode.value} game to '{destination}' started.")
        return session

    @staticmethod
    def _player_name(player_name: Optional[str]) -> str:
        name = (player_name or "").strip()
        return name or f"Player {random.randint(100, 999)}"

    async def create_online(self, destination: str, player_name: Optional[str] = None) -> GameSession:
        self._require_state(GameState.START, "create an online game")
        destination = (destination or "").strip()
        if not destination:
            raise GameFlowError("A destination is required.")

        epoch = self._begin_request()
        try:
            seat = await self.ai_service.create_online_game(destination, self._player_name(player_name))
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if self.epoch != epoch or self.state != GameState.START:
            return None

        self.player_id = seat.player_id
        self.session = seat.session
        self._transition(GameState.LOBBY)
        logger.info(f"G:{seat.game_code} - Created by player {seat.player_id} (controller {self.id}).")
        return seat.session

    async def join_online(self, game_code: str, player_name: Optional[str] = None) -> GameSession:
        self._require_state(GameState.START, "join an online game")
        game_code = (game_code or "").strip().upper()
        if not game_code:
            raise GameFlowError("A game code is required.")

        epoch = self._begin_request()
        try:
            seat = await self.ai_service.join_online_game(game_code, self._player_name(player_name))
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if self.epoch != epoch or self.state != GameState.START:
            return None

        self.player_id = seat.player_id
        self.session = seat.session
        # Late joiners land straight in the running game
        self._transition(GameState.GAME if seat.session.game_status == GameStatus.ACTIVE else GameState.LOBBY)
        logger.info(f"G:{seat.game_code} - Player {seat.player_id} joined (controller {self.id}, status {seat.session.game_status}).")
        return seat.session

    async def start_online_game(self):
        """
        Host-only. Once the authority accepts the start, one poll runs right away
        so the LOBBY -> GAME transition does not wait for the next tick.
        """
        self._require_state(GameState.LOBBY, "start the online game")
        if not self.is_host:
            raise LobbyStartError("Only the host can start the game.")
        if len(self.session.players) < settings.MIN_PLAYERS_TO_START:
            raise LobbyStartError(f"You need at least {settings.MIN_PLAYERS_TO_START} players to start.")
        if len(self.session.players) > settings.MAX_ONLINE_PLAYERS:
            raise LobbyStartError(f"An online game takes at most {settings.MAX_ONLINE_PLAYERS} players.")

        epoch = self._begin_request()
        try:
            await self.ai_service.start_game(self.session.game_code, self.player_id)
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if self.epoch != epoch:
            return
        logger.info(f"G:{self.session.game_code} - Start accepted for host {self.player_id}.")
        if self._sync is not None:
            await self._sync.poll_once()

    # --- Turns ---

    async def submit_turn(self, recalled_text: str, new_item: str) -> Optional[TurnResult]:
        self._require_state(GameState.GAME, "submit a turn")
        new_item = (new_item or "").strip()
        if not new_item:
            raise InvalidTurnError("The new item cannot be empty.")
        if self.is_busy:
            raise TurnInProgressError()

        session = self.session
        if session.game_mode == GameMode.ONLINE:
            await self._submit_online_turn(session, recalled_text, new_item)
            return None
        if session.awaiting_ai_turn:
            raise InvalidTurnError("The AI still has to take its turn. Retry the AI turn first.")

        epoch = self._begin_request()
        try:
            result = await resolve_turn(session, recalled_text, new_item, self.ai_service)
        except PartialTurnError as e:
            if self._is_current(epoch, session):
                self._publish(e.session)
                self._record_error(e.cause, epoch)
            raise e.cause
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)

        if not self._is_current(epoch, session):
            logger.info(f"C:{self.id} - Turn result discarded, the game moved on while it was resolving.")
            return None
        if result.is_game_over:
            self._end_game(result.game_over_reason)
            return result
        if result.memory_checked:
            self.events.emit("memory_correct", {"items": len(session.items)})
        self._publish(result.session)
        self.events.emit("turn_success", {"item": new_item, "items": len(result.session.items)})
        return result

    def _is_current(self, epoch: int, session: GameSession) -> bool:
        return self.epoch == epoch and self.state == GameState.GAME and self.session is session

    async def _submit_online_turn(self, session: GameSession, recalled_text: str, new_item: str):
        if not self.player_id or not session.game_code:
            raise GameFlowError("This controller has no seat in an online game.")
        if session.current_player_id != self.player_id:
            raise InvalidTurnError("It's not your turn.")
        if self._awaiting_authority == self._authority_key(session):
            raise TurnInProgressError("Your turn was sent. Waiting for the game server to confirm it.")

        epoch = self._begin_request()
        try:
            # The authority validates and resolves; the next poll brings the result
            await self.ai_service.submit_turn(session.game_code, self.player_id, parse_recalled_items(recalled_text), new_item)
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if self.epoch != epoch:
            return
        # Held until a snapshot shows the turn moved on
        self._awaiting_authority = self._authority_key(session)
        logger.info(f"G:{session.game_code} - Turn submitted by {self.player_id}: '{new_item}'.")

    async def retry_ai_turn(self) -> GameSession:
        """Completes the AI half of a SINGLE_PLAYER turn whose first attempt failed."""
        self._require_state(GameState.GAME, "retry the AI turn")
        session = self.session
        if not session.awaiting_ai_turn:
            raise InvalidTurnError("The AI does not owe a turn.")

        epoch = self._begin_request()
        try:
            updated = await complete_ai_turn(session, self.ai_service)
        except RemoteServiceError as e:
            self._record_error(e, epoch)
            raise
        finally:
            self._end_request(epoch)
        if not self._is_current(epoch, session):
            return None
        self._publish(updated)
        self.events.emit("turn_success", {"item": updated.items[-1].text, "items": len(updated.items)})
        return updated

    def request_hint(self, recalled_text: str = "") -> str:
        """First letter of the next item not yet recalled. One hint per turn."""
        self._require_state(GameState.GAME, "request a hint")
        session = self.session
        if session.game_mode == GameMode.ONLINE and not self.is_my_turn:
            raise InvalidTurnError("It's not your turn.")
        if not session.items:
            raise InvalidTurnError("There is nothing to recall yet.")
        if self._hint_turn == self._turn_key():
            raise InvalidTurnError("The hint for this turn was already used.")
        next_index = len(parse_recalled_items(recalled_text))
        if next_index >= len(session.items):
            raise InvalidTurnError("You have already recalled every item.")

        self.hint = f"The next item starts with: {session.items[next_index].text[:1].upper()}"
        self._hint_turn = self._turn_key()
        return self.hint

    def finish_trip(self):
        self._require_state(GameState.GAME, "finish the trip")
        if self.session.game_mode != GameMode.SOLO_MODE:
            raise GameFlowError("Only solo trips can be finished early.")
        if self.is_busy:
            raise TurnInProgressError()
        self._end_game(SOLO_FINISHED_REASON)

    def end_turn_on_timeout(self):
        if not self.timer_applies():
            return
        self._end_game(TIME_UP_REASON)

    # --- Online synchronisation callbacks ---

    def apply_remote_snapshot(self, session: GameSession, status: GameStatus) -> bool:
        """Replaces the local session with the authority's. Returns whether polling continues."""
        if self.state not in (GameState.LOBBY, GameState.GAME):
            return False
        if status == GameStatus.FINISHED:
            self.session = session
            self._end_game(session.game_over_reason or ONLINE_GAME_ENDED_REASON)
            return False
        if self._awaiting_authority is not None and self._authority_key(session) != self._awaiting_authority:
            self._awaiting_authority = None
        self._publish(session)
        if status == GameStatus.ACTIVE and self.state == GameState.LOBBY:
            self._transition(GameState.GAME)
        return True

    def on_connection_lost(self, error: RemoteServiceError):
        self.connection_lost = True
        self.error = CONNECTION_LOST_MESSAGE
        self.events.emit("connection_lost", {"detail": error.message})
        self._stop_polling()

    # --- Game over ---

    def _on_game_over(self):
        self._game_over_entries += 1
        self.tasks.ensure("summary", (self.epoch, self._game_over_entries), self._load_trip_summary)

    async def _load_trip_summary(self):
        epoch = self.epoch
        session = self.session
        if session is None:
            return
        self.is_summary_loading = True
        try:
            summary = await self.ai_service.get_trip_summary(session.base_prompt, session.item_texts())
        except RemoteServiceError as e:
            logger.warning(f"C:{self.id} - Failed to generate trip summary: {e.message}")
            summary = settings.TRIP_SUMMARY_FALLBACK
        finally:
            if self.epoch == epoch:
                self.is_summary_loading = False

        if self.epoch != epoch or self.state != GameState.GAME_OVER:
            return
        self.trip_summary = summary
        self._save_trip(session, summary)

    def _save_trip(self, session: GameSession, summary: str):
        if self._trip_saved or not session.items:
            return
        self._trip_saved = True
        self.trip_saver(TripCreate(
            location=session.base_prompt,
            final_image=session.current_image,
            mime_type=session.mime_type,
            items=session.item_texts(),
            summary=summary,
        ))

    # --- Misc user actions ---

    def show_gallery(self):
        self._transition(GameState.GALLERY)

    def reset(self):
        """Back to START from anywhere, dropping the session and every running task."""
        self.epoch += 1
        self._stop_polling()
        self.tasks.cancel_all()
        self._timer = None
        self._clear()
        self.events.clear()
        logger.info(f"C:{self.id} - Reset to START.", extra={"controller_id": self.id})

    def dismiss_error(self):
        if not self.connection_lost: # A lost connection needs a full reset
            self.error = None

    def set_sound_enabled(self, enabled: bool):
        self.events.sound_enabled = enabled

    def seconds_left(self) -> Optional[int]:
        if not self.timer_should_run():
            return None
        return math.ceil(max(0, self.session.turn_ends_at - now_ms()) / 1000)

    def to_view(self) -> SessionView:
        session = self.session
        hint = self.hint if session is not None and self._hint_turn == self._turn_key() else None
        return SessionView(
            session_id=self.id,
            state=self.state,
            session=session,
            player_id=self.player_id,
            is_host=self.is_host,
            is_my_turn=self.is_my_turn,
            can_start_game=self.can_start_game,
            turn_title=turn_title(session, self.player_id) if session is not None and self.state == GameState.GAME else None,
            item_labels=item_labels(session) if session is not None else [],
            seconds_left=self.seconds_left(),
            is_busy=self.is_busy or self._awaiting_authority is not None,
            error=self.error,
            connection_lost=self.connection_lost,
            game_over_reason=self.game_over_reason,
            trip_summary=self.trip_summary,
            is_summary_loading=self.is_summary_loading,
            hint=hint,
            awaiting_ai_turn=bool(session and session.awaiting_ai_turn),
            sound_enabled=self.events.sound_enabled,
        )
