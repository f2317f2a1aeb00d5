# app/services/turn_timer.py
import asyncio
import logging
import math
from typing import TYPE_CHECKING, Optional

from app.core.config import settings
from app.services.turn_resolver import now_ms

if TYPE_CHECKING:
    from app.services.game_controller import GameController

logger = logging.getLogger("app.services.turn_timer")  # Logger for this module


class TurnTimer:
    """
    Deadline checks for the local timed modes. Expiry is found by comparing
    turnEndsAt with the clock on every tick; the timer never edits the session
    itself, it asks the controller to end the game.
    """

    def __init__(
        self,
        controller: "GameController",
        check_interval_seconds: Optional[float] = None,
        warning_interval_seconds: Optional[float] = None,
        warning_threshold_seconds: Optional[int] = None,
    ):
        self.controller = controller
        self.check_interval_seconds = check_interval_seconds or settings.TIMER_CHECK_INTERVAL_SECONDS
        self.warning_interval_seconds = warning_interval_seconds or settings.TIMER_WARNING_CHECK_INTERVAL_SECONDS
        self.warning_threshold_ms = (warning_threshold_seconds or settings.TIMER_WARNING_THRESHOLD_SECONDS) * 1000
        self._warned_deadline: Optional[int] = None # Deadline the warning already fired for

    def remaining_ms(self, current_ms: Optional[int] = None) -> Optional[int]:
        session = self.controller.session
        if session is None or session.turn_ends_at is None:
            return None
        return session.turn_ends_at - (current_ms if current_ms is not None else now_ms())

    def check_expiry(self, current_ms: Optional[int] = None) -> bool:
        """Ends the game with "Time's up!" when the deadline has passed. Returns True if it did."""
        if not self.controller.timer_applies():
            return False
        remaining = self.remaining_ms(current_ms)
        if remaining is None or remaining > 0:
            return False
        logger.info(f"Turn deadline passed {-remaining}ms ago for controller {self.controller.id}.")
        self.controller.end_turn_on_timeout()
        return True

    def check_warning(self, current_ms: Optional[int] = None) -> bool:
        """Signals the final seconds once per deadline. Returns True if it fired."""
        if not self.controller.timer_applies():
            return False
        session = self.controller.session
        remaining = self.remaining_ms(current_ms)
        if remaining is None or remaining <= 0 or remaining > self.warning_threshold_ms:
            return False
        if self._warned_deadline == session.turn_ends_at:
            return False
        self._warned_deadline = session.turn_ends_at
        self.controller.events.emit("timer_warning", {"seconds_left": math.ceil(remaining / 1000)})
        return True

    async def run(self):
        loop = asyncio.get_running_loop()
        next_warning_check = loop.time()
        while self.controller.timer_should_run():
            await asyncio.sleep(self.check_interval_seconds)
            if self.check_expiry():
                break
            if loop.time() >= next_warning_check:
                self.check_warning()
                next_warning_check = loop.time() + self.warning_interval_seconds
