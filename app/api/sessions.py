# app/api/sessions.py
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from app.api import deps
from app.core.config import settings
from app.core.errors import (
    GameFlowError,
    InvalidTransitionError,
    RequestRejectedError,
    ServiceUnreachableError,
    TurnInProgressError,
)
from app.models.enums import GameMode, StartType
from app.models.game import (
    ControllerSettingsUpdate,
    CreateControllerRequest,
    HintRequest,
    SessionView,
    StartGameRequest,
    TurnSubmission,
)
from app.services import session_store
from app.services.game_controller import GameController

logger = logging.getLogger("app.api.sessions")  # Logger for this module
router = APIRouter()

def _http_error(error: Exception) -> HTTPException:
    """Maps a controller or remote failure onto the status code the client sees."""
    if isinstance(error, (InvalidTransitionError, TurnInProgressError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.to_dict())
    if isinstance(error, GameFlowError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())
    if isinstance(error, RequestRejectedError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())
    if isinstance(error, ServiceUnreachableError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.to_dict())
    logger.exception(f"Unexpected error type reached the session API: {error!r}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error.")

_HANDLED_ERRORS = (GameFlowError, RequestRejectedError, ServiceUnreachableError)


@router.post("", response_model=SessionView, status_code=201)
async def create_session(
    request: CreateControllerRequest | None = None,
    ai_service = Depends(deps.get_ai_service),
):
    controller = session_store.create_controller(ai_service, sound_enabled=request.sound_enabled if request else True)
    return controller.to_view()

@router.get("/{session_id}", response_model=SessionView)
async def get_session(controller: GameController = Depends(deps.get_controller)):
    return controller.to_view()

@router.delete("/{session_id}", status_code=204)
async def delete_session(session_id: str):
    if not session_store.remove_controller(session_id):
        raise HTTPException(status_code=404, detail="Session not found.")

@router.post("/{session_id}/start", response_model=SessionView)
async def start_game(request: StartGameRequest, controller: GameController = Depends(deps.get_controller)):
    """Starts a local game, or creates/joins an online one, depending on `type`."""
    try:
        if request.type == StartType.LOCAL:
            if request.game_mode is None:
                raise GameFlowError("A game mode is required for local games.")
            await controller.start_local(request.destination, request.game_mode, request.ai_persona)
        elif request.type == StartType.CREATE_ONLINE:
            await controller.create_online(request.destination, request.player_name)
        else:
            await controller.join_online(request.game_code, request.player_name)
    except _HANDLED_ERRORS as e:
        logger.info(f"C:{controller.id} - Start ({request.type.value}) failed: {e.message}")
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/lobby/start", response_model=SessionView)
async def start_lobby_game(controller: GameController = Depends(deps.get_controller)):
    try:
        await controller.start_online_game()
    except _HANDLED_ERRORS as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/turns", response_model=SessionView)
async def submit_turn(submission: TurnSubmission, controller: GameController = Depends(deps.get_controller)):
    try:
        await controller.submit_turn(submission.recalled_items, submission.new_item)
    except _HANDLED_ERRORS as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/ai-turn/retry", response_model=SessionView)
async def retry_ai_turn(controller: GameController = Depends(deps.get_controller)):
    try:
        await controller.retry_ai_turn()
    except _HANDLED_ERRORS as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/hint", response_model=SessionView)
async def request_hint(request: HintRequest | None = None, controller: GameController = Depends(deps.get_controller)):
    try:
        controller.request_hint(request.recalled_items if request else "")
    except GameFlowError as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/finish", response_model=SessionView)
async def finish_trip(controller: GameController = Depends(deps.get_controller)):
    try:
        controller.finish_trip()
    except GameFlowError as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/reset", response_model=SessionView)
async def reset_session(controller: GameController = Depends(deps.get_controller)):
    controller.reset()
    return controller.to_view()

@router.post("/{session_id}/gallery", response_model=SessionView)
async def show_gallery(controller: GameController = Depends(deps.get_controller)):
    try:
        controller.show_gallery()
    except GameFlowError as e:
        raise _http_error(e)
    return controller.to_view()

@router.post("/{session_id}/error/dismiss", response_model=SessionView)
async def dismiss_error(controller: GameController = Depends(deps.get_controller)):
    controller.dismiss_error()
    return controller.to_view()

@router.patch("/{session_id}/settings", response_model=SessionView)
async def update_settings(update: ControllerSettingsUpdate, controller: GameController = Depends(deps.get_controller)):
    controller.set_sound_enabled(update.sound_enabled)
    return controller.to_view()

@router.get("/{session_id}/events", response_model=List[dict])
async def drain_events(controller: GameController = Depends(deps.get_controller)):
    return [event.to_dict() for event in controller.events.drain()]

@router.get("/personas/available", response_model=List[str])
async def list_personas():
    return settings.AI_PERSONAS

@router.get("/modes/available", response_model=List[str])
async def list_game_modes():
    return [mode.value for mode in GameMode]
