# app/api/deps.py
import logging
from fastapi import HTTPException, status

from app.db.session import SessionLocal
from app.services import ai_provider, session_store
from app.services.game_controller import GameController

logger = logging.getLogger("app.api.deps")  # Logger for this module

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_ai_service():
    return ai_provider.get_ai_service()

def get_controller(session_id: str) -> GameController:
    controller = session_store.get_controller(session_id)
    if controller is None:
        logger.warning(f"Request for unknown session {session_id}.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found.")
    return controller
