import logging
from enum import Enum, auto

logger = logging.getLogger(__name__)


class SessionState(Enum):
    INITIALIZING = auto()  # Engine constructed, config not yet checked
    LOADING = auto()  # Fetching questions
    READY = auto()  # Questions loaded (or admission denied), not started
    IN_PROGRESS = auto()  # Question on screen, clock running
    PAUSED = auto()  # Clock frozen
    COMPLETED = auto()  # Terminal: results recorded
    ABANDONED = auto()  # Terminal: user left, nothing recorded
    ERROR = auto()  # Load failed, waiting for reload


class SessionAction(Enum):
    ADMIT = auto()
    DENY = auto()
    LOAD_SUCCESS = auto()
    LOAD_FAILED = auto()
    RELOAD = auto()
    START = auto()
    PAUSE = auto()
    RESUME = auto()
    FINISH = auto()
    ABANDON = auto()


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.ABANDONED})


class SessionStateMachine:
    """
    Pure FSM Logic.
    Only cares about state transitions, not questions, storage or UI.
    """

    def __init__(self, initial_state: SessionState = SessionState.INITIALIZING):
        self._state = initial_state

    @property
    def current_state(self) -> SessionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can(self, action: SessionAction) -> bool:
        return self._next_state(action) is not None

    def transition(self, action: SessionAction) -> bool:
        """Applies the action. Returns False (state unchanged) if not allowed."""
        previous = self._state
        target = self._next_state(action)

        if target is None:
            logger.warning(f"⛔ INVALID TRANSITION: {previous.name} + {action.name}")
            return False

        self._state = target
        logger.info(f"🔄 FSM: {previous.name} --[{action.name}]--> {target.name}")
        return True

    def _next_state(self, action: SessionAction) -> SessionState | None:
        """The Transition Table."""
        match (self._state, action):
            # INITIALIZING -> LOADING, or READY when the quota is exhausted
            # (a reload re-checks admission from LOADING)
            case (SessionState.INITIALIZING, SessionAction.ADMIT):
                return SessionState.LOADING
            case (SessionState.INITIALIZING | SessionState.LOADING, SessionAction.DENY):
                return SessionState.READY

            # LOADING -> READY or ERROR
            case (SessionState.LOADING, SessionAction.LOAD_SUCCESS):
                return SessionState.READY
            case (SessionState.INITIALIZING | SessionState.LOADING, SessionAction.LOAD_FAILED):
                return SessionState.ERROR

            # ERROR -> LOADING (explicit reload only)
            case (SessionState.ERROR, SessionAction.RELOAD):
                return SessionState.LOADING

            # READY -> IN_PROGRESS (first question shown)
            case (SessionState.READY, SessionAction.START):
                return SessionState.IN_PROGRESS

            # IN_PROGRESS <-> PAUSED
            case (SessionState.IN_PROGRESS, SessionAction.PAUSE):
                return SessionState.PAUSED
            case (SessionState.PAUSED, SessionAction.RESUME):
                return SessionState.IN_PROGRESS

            # Terminal transitions
            case (SessionState.IN_PROGRESS, SessionAction.FINISH):
                return SessionState.COMPLETED
            case (SessionState.IN_PROGRESS | SessionState.PAUSED, SessionAction.ABANDON):
                return SessionState.ABANDONED

            case _:
                return None
