# app/services/session_store.py
import logging
from typing import Dict, Optional

from app.services.game_controller import GameController

logger = logging.getLogger("app.services.session_store")  # Logger for this module

# In-memory map of controller_id -> GameController. One entry per connected client.
active_controllers: Dict[str, GameController] = {}

def create_controller(ai_service, sound_enabled: bool = True) -> GameController:
    controller = GameController(ai_service, sound_enabled=sound_enabled)
    active_controllers[controller.id] = controller
    logger.info(f"Controller {controller.id} created. {len(active_controllers)} active.")
    return controller

def get_controller(controller_id: str) -> Optional[GameController]:
    return active_controllers.get(controller_id)

def remove_controller(controller_id: str) -> bool:
    controller = active_controllers.pop(controller_id, None)
    if controller is None:
        return False
    controller.reset() # Cancels its poll, timer and summary tasks
    logger.info(f"Controller {controller_id} removed. {len(active_controllers)} active.")
    return True

def shutdown_all():
    for controller_id in list(active_controllers.keys()):
        remove_controller(controller_id)
