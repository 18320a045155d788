'''
Process-wide failure bookkeeping, keyed by server identity.

Every executor that talks to the same (host, port, protocol) reads and
writes the same entries, so one caller discovering an outage makes every
other caller fail fast until the probation window passes.
'''
import threading
import time
from collections.abc import Callable

from holdfast.connection._models import (
    EOF_BACKOFF_BASE,
    RETRY_COUNT,
    RETRY_DELAY,
    FailureState,
)
from holdfast.http import ServerIdentity


Clock = Callable[[], float]


class FailureRegistry:
    '''
    Consecutive-failure state and EOF history per server identity.

    All mutations and the fail-fast decision run under one lock, so
    concurrent callers from any thread or event loop never lose an
    update to a counter.
    '''

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock: Clock = clock
        self._lock = threading.Lock()
        self._failures: dict[ServerIdentity, FailureState] = {}
        self._eofs: dict[ServerIdentity, list[float]] = {}

    def now(self) -> float:
        return self._clock()

    def record_failure(self, identity: ServerIdentity, message: str) -> FailureState:
        '''
        Count one more non-EOF failure for the server.

        Parameters
        ----------
        identity : ServerIdentity
        message : str
            The error message reported by the failed attempt.

        Returns
        -------
        FailureState
            A snapshot of the updated state.
        '''
        with self._lock:
            previous = self._failures.get(identity)
            state = FailureState(
                count=previous.count + 1 if previous else 1,
                last_error_time=self._clock(),
                last_error_message=message,
            )
            self._failures[identity] = state
            return FailureState(state.count, state.last_error_time, state.last_error_message)

    def record_eof(
        self,
        identity: ServerIdentity,
        base: float = EOF_BACKOFF_BASE,
    ) -> float:
        '''
        Remember a clean EOF and return how long to back off before the
        next attempt: 0.5s, 1s, 2s, 4s ... for the 1st, 2nd, 3rd, 4th
        EOF since the last success.
        '''
        with self._lock:
            history = self._eofs.setdefault(identity, [])
            history.insert(0, self._clock())
            return base * 2 ** len(history)

    def is_permanent_eof(
        self,
        identity: ServerIdentity,
        retry_delay: float = RETRY_DELAY,
    ) -> bool:
        '''
        True once EOFs have kept recurring, with no success in between,
        for longer than the probation window.
        '''
        with self._lock:
            history = self._eofs.get(identity)
            if not history:
                return False
            return self._clock() - retry_delay > history[-1]

    def should_fail_fast(
        self,
        identity: ServerIdentity,
        retry_count: int = RETRY_COUNT,
        retry_delay: float = RETRY_DELAY,
    ) -> bool:
        '''
        True while the server has reached `retry_count` consecutive
        failures and the latest one is younger than `retry_delay`.

        The threshold is inclusive: with the default of 3, the third
        failure in a row already makes the next call fail fast.
        '''
        with self._lock:
            state = self._failures.get(identity)
            if state is None:
                return False
            return (
                state.count >= retry_count
                and self._clock() < state.last_error_time + retry_delay
            )

    def clear(self, identity: ServerIdentity) -> None:
        with self._lock:
            self._failures.pop(identity, None)
            self._eofs.pop(identity, None)

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()
            self._eofs.clear()

    # diagnostic reads, no lock needed for log lines

    def failure_state(self, identity: ServerIdentity) -> FailureState | None:
        return self._failures.get(identity)

    def error_count(self, identity: ServerIdentity) -> int:
        state = self._failures.get(identity)
        return state.count if state else 0

    def error_message(self, identity: ServerIdentity) -> str:
        state = self._failures.get(identity)
        return state.last_error_message if state else ''

    def error_age(self, identity: ServerIdentity) -> float | None:
        state = self._failures.get(identity)
        if state is None:
            return None
        return self._clock() - state.last_error_time

    def eof_count(self, identity: ServerIdentity) -> int:
        return len(self._eofs.get(identity, ()))


_default_registry = FailureRegistry()


def get_failure_registry() -> FailureRegistry:
    '''
    The registry shared by every connection that is not handed one
    explicitly.
    '''
    return _default_registry
