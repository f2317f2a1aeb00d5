# app/services/sync_coordinator.py
import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from app.core.config import settings
from app.core.errors import RemoteServiceError

if TYPE_CHECKING:
    from app.services.game_controller import GameController

logger = logging.getLogger("app.services.sync_coordinator")  # Logger for this module


class SyncCoordinator:
    """
    Polls the online authority for one game code and hands each snapshot to the
    controller, which replaces its whole session and performs any transition.

    Fail-fast: the first transport or parse failure ends the loop and marks the
    controller as disconnected. There is no retry.
    """

    def __init__(self, controller: "GameController", ai_service, game_code: str, interval_seconds: Optional[float] = None):
        self.controller = controller
        self.ai_service = ai_service
        self.game_code = game_code
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.SYNC_POLL_INTERVAL_SECONDS
        self._stopped = False
        self.polls = 0

    @property
    def active(self) -> bool:
        return not self._stopped

    def stop(self):
        if not self._stopped:
            logger.debug(f"G:{self.game_code} - Polling stopped for controller {self.controller.id}.")
        self._stopped = True

    async def poll_once(self) -> bool:
        """One tick. Returns False once polling should end."""
        if self._stopped:
            return False
        if not self.controller.should_poll(self.game_code):
            self.stop()
            return False

        epoch = self.controller.epoch
        self.polls += 1
        try:
            session, status = await self.ai_service.get_game_state(self.game_code)
        except RemoteServiceError as e:
            if self._stopped or self.controller.epoch != epoch:
                return False # Reset or replaced while the request was in flight
            logger.error(f"G:{self.game_code} - Polling error: {e.message}", extra={"controller_id": self.controller.id})
            self.stop()
            self.controller.on_connection_lost(e)
            return False

        if self._stopped or self.controller.epoch != epoch:
            return False
        keep_polling = self.controller.apply_remote_snapshot(session, status)
        if not keep_polling:
            self.stop()
        return keep_polling and not self._stopped

    async def run(self):
        logger.info(f"G:{self.game_code} - Polling every {self.interval_seconds}s for controller {self.controller.id}.")
        while not self._stopped:
            await asyncio.sleep(self.interval_seconds)
            if not await self.poll_once():
                break
