import io
import logging
from collections.abc import AsyncIterator
from typing import IO, Self

import httpx

from holdfast.connection._models import RequestBody, RequestTarget
from holdfast.http import (
    ConnectionHandle,
    ErrorKind,
    HttpTransport,
    ServerIdentity,
    Timeouts,
    TlsConfig,
    TransportError,
)

Logger = logging.Logger | logging.LoggerAdapter

_BODY_CHUNK_SIZE = 65_536


def _has_body(request: httpx.Request) -> bool:
    if 'transfer-encoding' in request.headers:
        return True
    length = request.headers.get('content-length')
    return length is not None and length != '0'


def _remaining_length(source: IO[bytes]) -> int | None:
    seekable = getattr(source, 'seekable', None)
    if not (callable(seekable) and seekable()):
        return None
    position = source.tell()
    end = source.seek(0, io.SEEK_END)
    source.seek(position)
    return end - position


async def _iter_body(source: IO[bytes]) -> AsyncIterator[bytes]:
    while chunk := source.read(_BODY_CHUNK_SIZE):
        yield chunk


class ConnectionManager:
    '''
    Owns at most one live connection handle.

    The handle is opened on demand, replaced when the target server
    changes, and dropped by `discard` after any failure. Handles are
    never shared between managers.
    '''

    def __init__(
        self,
        transport: HttpTransport,
        *,
        timeouts: Timeouts | None = None,
        ca_file: str | None = None,
        tls_advisory: bool = False,
        user_agent: str = '',
        logger: Logger | None = None,
    ) -> None:
        self._transport: HttpTransport = transport
        self._timeouts: Timeouts = timeouts or Timeouts()
        self._ca_file: str | None = ca_file
        self._tls_advisory: bool = tls_advisory
        self._user_agent: str = user_agent
        self._logger: Logger = logger or logging.getLogger(__name__)
        self._handle: ConnectionHandle | None = None

    @property
    def connected(self) -> bool:
        return self._handle is not None and not self._handle.closed

    @property
    def identity(self) -> ServerIdentity | None:
        return self._handle.identity if self._handle else None

    def _tls_for(self, identity: ServerIdentity) -> TlsConfig | None:
        if not identity.is_secure:
            return None
        return TlsConfig(ca_file=self._ca_file, advisory=self._tls_advisory)

    async def _open(self, identity: ServerIdentity, tls: TlsConfig | None) -> ConnectionHandle:
        self._logger.info(f'Opening new HTTP connection to {identity}')
        self._handle = await self._transport.open(identity, self._timeouts, tls)
        return self._handle

    async def ensure_connection(self, target: RequestTarget) -> ConnectionHandle:
        '''
        Return the live handle for the target, opening one if there is
        none. A handle opened for a different server is closed and
        replaced.

        Parameters
        ----------
        target : RequestTarget

        Returns
        -------
        ConnectionHandle
        '''
        identity = target.identity
        if self._handle is not None:
            if self._handle.identity == identity and not self._handle.closed:
                return self._handle
            self._logger.info(
                f'Target changed from {self._handle.identity} to {identity}, reconnecting'
            )
            await self.discard()

        return await self._open(identity, self._tls_for(identity))

    def build_request(
        self,
        identity: ServerIdentity,
        request: httpx.Request,
        data: RequestBody | None = None,
    ) -> httpx.Request:
        '''
        The request actually put on the wire: the caller's method, path,
        headers and body, aimed at `identity`, carrying our User-Agent.
        `data` becomes the body only when the request has none.
        '''
        url = identity.rebase(request.url)
        headers = httpx.Headers(request.headers)
        headers.pop('host', None)
        headers['User-Agent'] = self._user_agent

        if data is not None and not _has_body(request):
            headers.pop('content-length', None)
            headers.pop('transfer-encoding', None)
            if isinstance(data, bytes):
                return httpx.Request(
                    request.method, url,
                    headers=headers,
                    content=data,
                    extensions=request.extensions,
                )

            length = _remaining_length(data)
            if length is not None:
                headers['Content-Length'] = str(length)
            return httpx.Request(
                request.method, url,
                headers=headers,
                content=_iter_body(data),
                extensions=request.extensions,
            )

        headers['Host'] = url.netloc.decode('ascii')
        return httpx.Request(
            request.method, url,
            headers=headers,
            stream=request.stream,
            extensions=request.extensions,
        )

    async def send(
        self,
        request: httpx.Request,
        data: RequestBody | None = None,
    ) -> httpx.Response:
        '''
        Send a request over the current handle.

        Raises
        ------
        RuntimeError
            If `ensure_connection` has not opened a handle.
        TransportError
            When the transport fails; the handle is left for the caller
            to discard.
        '''
        handle = self._handle
        if handle is None:
            raise RuntimeError('No open connection, call ensure_connection first')

        outbound = self.build_request(handle.identity, request, data)
        self._logger.debug(f'Sending request: {outbound.method} {outbound.url}')
        try:
            return await self._transport.send(handle, outbound)
        except TransportError as exc:
            if exc.kind is not ErrorKind.TLS_VERIFY:
                raise
            self._logger.warning(
                f'##### {handle.identity.host} certificate verify failed: {exc.message}'
            )
            if handle.tls is None or not handle.tls.advisory:
                raise

        # advisory mode: the failure is logged, carry on unverified
        await self.discard()
        handle = await self._open(handle.identity, handle.tls.unverified())
        return await self._transport.send(
            handle, self.build_request(handle.identity, request, data)
        )

    async def discard(self) -> None:
        '''
        Close and drop the current handle; a no-op without one.
        '''
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self._transport.close(handle)
        except Exception as exc:
            self._logger.debug(f'Error while closing connection to {handle.identity}: {exc!r}')

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args) -> None:
        await self.discard()
