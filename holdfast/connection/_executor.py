'''
retry, backoff and fail-fast orchestration for a single connection

Raises
------
ServerUnavailableError (or the configured exception)
    _raised while the server is failing fast, or when it keeps closing
    connections without answering for a whole probation window_
'''
import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable

import httpx

from holdfast.connection._manager import ConnectionManager, Logger
from holdfast.connection._models import (
    EOF_BACKOFF_BASE,
    RETRY_COUNT,
    RETRY_DELAY,
    RequestTarget,
    ServerUnavailableError,
)
from holdfast.connection._registry import FailureRegistry, get_failure_registry
from holdfast.http import ErrorKind, ServerIdentity, classify_error


Sleep = Callable[[float], Awaitable[None]]


class AttemptState(str, enum.Enum):
    CHECK_CIRCUIT = 'check_circuit'
    CONNECTING = 'connecting'
    SENDING = 'sending'
    SUCCESS = 'success'
    EOF_BACKOFF = 'eof_backoff'
    FAILED = 'failed'


class RequestExecutor:
    '''
    Drives one `ConnectionManager` until a request succeeds or the
    server is given up on.

    There is no attempt limit. Ordinary failures are retried at once
    and counted in the shared registry; once `retry_count` of them
    pile up inside `retry_delay`, every caller for that server fails
    fast until the window passes. Clean EOFs back off exponentially
    instead and are fatal only when they persist for a whole window.

    An executor drives one request at a time over the single
    connection it owns, so `state` always describes that request.
    Concurrent `execute` calls queue behind each other.
    '''

    def __init__(
        self,
        manager: ConnectionManager,
        *,
        registry: FailureRegistry | None = None,
        retry_count: int = RETRY_COUNT,
        retry_delay: float = RETRY_DELAY,
        eof_backoff_base: float = EOF_BACKOFF_BASE,
        exception: type[Exception] = ServerUnavailableError,
        logger: Logger | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.manager: ConnectionManager = manager
        self.registry: FailureRegistry = registry or get_failure_registry()
        self.retry_count: int = retry_count
        self.retry_delay: float = retry_delay
        self.eof_backoff_base: float = eof_backoff_base
        self.exception: type[Exception] = exception
        self._logger: Logger = logger or logging.getLogger(__name__)
        self._sleep: Sleep = sleep
        self.state: AttemptState = AttemptState.CHECK_CIRCUIT
        self._busy: asyncio.Lock = asyncio.Lock()

    def _unavailable_message(self, identity: ServerIdentity) -> str:
        return f'{identity} temporarily unavailable: ({self.registry.error_message(identity)})'

    def _fail(self, message: str) -> Exception:
        self.state = AttemptState.FAILED
        return self.exception(message)

    def _check_circuit(self, identity: ServerIdentity) -> None:
        self.state = AttemptState.CHECK_CIRCUIT
        if not self.registry.should_fail_fast(identity, self.retry_count, self.retry_delay):
            return

        message = self._unavailable_message(identity)
        age = self.registry.error_age(identity) or 0.0
        self._logger.warning(
            f're-raising same error: {message} '
            f'-- error count: {self.registry.error_count(identity)}, error age: {age:.2f}s'
        )
        raise self._fail(message)

    async def _handle_eof(self, identity: ServerIdentity) -> None:
        delay = self.registry.record_eof(identity, self.eof_backoff_base)
        if self.registry.is_permanent_eof(identity, self.retry_delay):
            message = (
                f'{identity} permanently closing connections: '
                f'{self.registry.eof_count(identity)} EOFs without a response '
                f'in over {self.retry_delay:g}s'
            )
            self._logger.warning(message)
            raise self._fail(message)

        self.state = AttemptState.EOF_BACKOFF
        self._logger.debug(
            f'server {identity} closed connection, retrying in {delay:g}s'
        )
        await self._sleep(delay)

    async def execute(self, target: RequestTarget) -> httpx.Response:
        '''
        Send the target's request, retrying until it succeeds or the
        server is given up on.

        Parameters
        ----------
        target : RequestTarget

        Returns
        -------
        httpx.Response

        Raises
        ------
        Exception
            The configured exception when failing fast or on a
            permanent EOF. Cancellation is re-raised untouched.
        '''
        async with self._busy:
            return await self._run(target)

    async def _run(self, target: RequestTarget) -> httpx.Response:
        identity = target.identity
        while True:
            self._check_circuit(identity)

            try:
                self.state = AttemptState.CONNECTING
                await self.manager.ensure_connection(target)
                target.rewind()
                self.state = AttemptState.SENDING
                response = await self.manager.send(target.request, target.data)
            except GeneratorExit:
                raise
            except httpx.StreamError:
                # the body cannot be replayed; not the server's fault
                await self.manager.discard()
                self.state = AttemptState.FAILED
                raise
            except BaseException as exc:
                kind = classify_error(exc)
                await self.manager.discard()

                if kind is ErrorKind.CANCELLED:
                    self.state = AttemptState.FAILED
                    self._logger.debug(f'request to server {identity} cancelled')
                    raise

                if kind is ErrorKind.EOF:
                    await self._handle_eof(identity)
                    continue

                failure = self.registry.record_failure(identity, str(exc))
                self._logger.warning(
                    f'request failure count: {failure.count}, exception: {exc!r}'
                )
                continue

            self.registry.clear(identity)
            self.state = AttemptState.SUCCESS
            return response
