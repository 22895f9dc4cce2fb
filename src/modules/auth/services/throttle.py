import math
import time
from dataclasses import dataclass, replace
from threading import Lock
from typing import Callable, Dict, Optional, Protocol, Union


@dataclass(frozen=True)
class ThrottleState:
    failed_attempts: int = 0
    last_failure_at: Optional[float] = None
    warned: bool = False
    block_notified: bool = False


@dataclass(frozen=True)
class Allowed:
    pass


@dataclass(frozen=True)
class Throttled:
    remaining_seconds: int


@dataclass(frozen=True)
class Blocked:
    pass


Decision = Union[Allowed, Throttled, Blocked]


class ThrottleStore(Protocol):
    def get(self, key: str) -> Optional[ThrottleState]: ...

    def put(self, key: str, state: ThrottleState) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryThrottleStore:
    """Almacén local al proceso, indexado por email en minúsculas."""

    def __init__(self):
        self._states: Dict[str, ThrottleState] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[ThrottleState]:
        with self._lock:
            return self._states.get(key)

    def put(self, key: str, state: ThrottleState) -> None:
        with self._lock:
            self._states[key] = state

    def delete(self, key: str) -> None:
        with self._lock:
            self._states.pop(key, None)


def _key(email: str) -> str:
    return (email or "").strip().lower()


class LoginThrottleGuard:
    """
    Contador local de fallos por email. Con `limit` fallos dentro de
    `cooldown_seconds` rechaza el intento sin llegar a autenticar; pasado el
    enfriamiento el contador vuelve a 0.
    """

    def __init__(self, store: ThrottleStore, limit: int = 5, cooldown_seconds: int = 60,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.limit = limit
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock

    def _state(self, email: str) -> ThrottleState:
        return self.store.get(_key(email)) or ThrottleState()

    def remaining_seconds(self, email: str) -> int:
        state = self._state(email)
        if state.failed_attempts < self.limit or state.last_failure_at is None:
            return 0
        elapsed = self.clock() - state.last_failure_at
        return max(0, math.ceil(self.cooldown_seconds - elapsed))

    def check(self, email: str, blocked: bool = False) -> Decision:
        state = self._state(email)

        if state.failed_attempts >= self.limit and state.last_failure_at is not None:
            remaining = self.remaining_seconds(email)
            if remaining > 0:
                return Throttled(remaining_seconds=remaining)
            self.store.put(_key(email), replace(state, failed_attempts=0))

        if blocked:
            return Blocked()
        return Allowed()

    def record_failure(self, email: str) -> int:
        state = self._state(email)
        state = replace(state, failed_attempts=state.failed_attempts + 1, last_failure_at=self.clock())
        self.store.put(_key(email), state)
        return state.failed_attempts

    def record_success(self, email: str) -> None:
        self.store.delete(_key(email))

    def mark_warned(self, email: str) -> None:
        self.store.put(_key(email), replace(self._state(email), warned=True))

    def was_warned(self, email: str) -> bool:
        return self._state(email).warned

    def mark_block_notified(self, email: str) -> None:
        self.store.put(_key(email), replace(self._state(email), block_notified=True))

    def was_block_notified(self, email: str) -> bool:
        return self._state(email).block_notified


class CooldownTracker:
    """Enfriamiento simple por clave (reenvío del correo de verificación)."""

    def __init__(self, cooldown_seconds: int = 60, clock: Callable[[], float] = time.time):
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self._last: Dict[str, float] = {}
        self._lock = Lock()

    def remaining_seconds(self, key: str) -> int:
        with self._lock:
            last = self._last.get(_key(key))
        if last is None:
            return 0
        return max(0, math.ceil(self.cooldown_seconds - (self.clock() - last)))

    def touch(self, key: str) -> None:
        with self._lock:
            self._last[_key(key)] = self.clock()
