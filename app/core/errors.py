# app/core/errors.py
"""Exceptions shared by the game controller, the turn logic and the remote service clients."""
from typing import Any, Dict, Optional


class MemoryTripError(Exception):
    """Base class for all errors raised by this backend."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.__class__.__name__, "message": self.message}


# --- Remote calls (image service, AI text service, online authority) ---

class RemoteServiceError(MemoryTripError):
    """A call to the remote backend did not produce a usable answer."""


class ServiceUnreachableError(RemoteServiceError):
    """No response at all: network failure, timeout or an unreadable body."""


class RequestRejectedError(RemoteServiceError):
    """The backend answered and refused the request with an explicit reason."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        return payload


# --- Caller errors against the session state machine ---

class GameFlowError(MemoryTripError):
    """The requested action is not allowed right now."""


class InvalidTransitionError(GameFlowError):
    def __init__(self, current_state: Any, action: str):
        self.current_state = current_state
        self.action = action
        state_value = getattr(current_state, "value", current_state)
        super().__init__(f"Cannot {action} while in state {state_value}.")


class InvalidTurnError(GameFlowError):
    pass


class TurnInProgressError(GameFlowError):
    def __init__(self, message: str = "Another request for this game is still being processed."):
        super().__init__(message)


class LobbyStartError(GameFlowError):
    pass


class PartialTurnError(MemoryTripError):
    """
    Raised by the turn resolver when the player's half of a SINGLE_PLAYER turn
    was applied but the AI's half failed. `session` is the committed
    post-player-item snapshot, `cause` the remote failure.
    """

    def __init__(self, session: Any, cause: RemoteServiceError):
        self.session = session
        self.cause = cause
        super().__init__(cause.message)
