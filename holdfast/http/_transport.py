import contextlib
import dataclasses as dc
import logging
import socket
import ssl

import httpx

from holdfast.http._errors import TransportError, error_kind_from_httpx
from holdfast.http._models import ServerIdentity, Timeouts, TlsConfig

logger = logging.getLogger(__name__)


def default_socket_options() -> list[tuple]:
    '''
    cross platform socket options for long lived TCP connections

    Returns
    -------
    list[SockOpt]
    '''
    opts = []

    if hasattr(socket, "TCP_NODELAY"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_NODELAY, 1))

    if hasattr(socket, "SO_KEEPALIVE"):
        opts.append((socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1))

    if hasattr(socket, "TCP_KEEPIDLE"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, 60))

    if hasattr(socket, "TCP_KEEPINTVL"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, 10))

    if hasattr(socket, "TCP_KEEPCNT"):
        opts.append((socket.IPPROTO_TCP, socket.TCP_KEEPCNT, 5))

    return opts


TLS_1_2_CIPHERS = [
    "ECDHE-ECDSA-AES128-GCM-SHA256",
    "ECDHE-RSA-AES128-GCM-SHA256",
    "ECDHE-ECDSA-CHACHA20-POLY1305",
    "ECDHE-RSA-CHACHA20-POLY1305",
    "ECDHE-ECDSA-AES256-GCM-SHA384",
    "ECDHE-RSA-AES256-GCM-SHA384",
]


def server_ssl_context(tls: TlsConfig) -> ssl.SSLContext:
    '''
    creates the SSL context for an https connection. TLS 1.2 is the
    floor, the CA file (if any) replaces the system trust store, and
    hostname verification is on unless advisory mode has already
    given up on verification for this server.

    Parameters
    ----------
    tls : TlsConfig

    Returns
    -------
    ssl.SSLContext
    '''
    ctx = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=tls.ca_file,
    )

    ctx.minimum_version = ssl.TLSVersion.TLSv1_2
    ctx.maximum_version = ssl.TLSVersion.MAXIMUM_SUPPORTED

    if tls.verify:
        ctx.check_hostname = True
        ctx.verify_mode = ssl.CERT_REQUIRED
    else:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE

    ctx.options |= ssl.OP_NO_COMPRESSION

    # tls 1.3 suites are left at their defaults
    with contextlib.suppress(ssl.SSLError):
        ctx.set_ciphers(":".join(TLS_1_2_CIPHERS))

    return ctx


class _BorrowedTransport(httpx.AsyncBaseTransport):
    '''
    Wraps a caller supplied transport so closing a handle does not
    close a transport other handles still use.
    '''
    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self._inner: httpx.AsyncBaseTransport = inner

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._inner.handle_async_request(request)

    async def aclose(self) -> None:
        return None


@dc.dataclass(slots=True)
class ConnectionHandle:
    '''
    One live connection to one server, owned by a single
    `ConnectionManager`.
    '''
    identity: ServerIdentity
    client: httpx.AsyncClient
    timeouts: Timeouts
    tls: TlsConfig | None = None

    @property
    def closed(self) -> bool:
        return self.client.is_closed


class HttpTransport:
    '''
    Opens, drives and closes single-connection httpx clients.

    Each handle is an `httpx.AsyncClient` whose pool holds exactly one
    keep-alive connection, so a handle behaves like one persistent
    socket to the server. httpx failures leave this class as
    `TransportError` tagged with an `ErrorKind`.
    '''

    def __init__(
        self,
        *,
        http2: bool = False,
        trust_env: bool = False,
        proxy: httpx.Proxy | str | None = None,
        keepalive_expiry: float = 15.0,
        inner: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http2: bool = http2
        self._trust_env: bool = trust_env
        self._proxy: httpx.Proxy | str | None = proxy
        self._keepalive_expiry: float = keepalive_expiry
        self._inner: httpx.AsyncBaseTransport | None = inner

    def _build_inner(
        self,
        identity: ServerIdentity,
        tls: TlsConfig | None,
    ) -> httpx.AsyncBaseTransport:
        if self._inner is not None:
            return _BorrowedTransport(self._inner)

        verify: ssl.SSLContext | bool = True
        if identity.is_secure:
            verify = server_ssl_context(tls or TlsConfig())

        return httpx.AsyncHTTPTransport(
            http2=self._http2,
            verify=verify,
            proxy=self._proxy,
            trust_env=self._trust_env,
            socket_options=default_socket_options(),
            limits=httpx.Limits(
                max_connections=1,
                max_keepalive_connections=1,
                keepalive_expiry=self._keepalive_expiry,
            ),
            retries=0,
        )

    async def open(
        self,
        identity: ServerIdentity,
        timeouts: Timeouts,
        tls: TlsConfig | None = None,
    ) -> ConnectionHandle:
        '''
        Create a handle for the server. The socket itself is connected
        lazily by the first `send`, so connect failures surface there.

        Parameters
        ----------
        identity : ServerIdentity
        timeouts : Timeouts
        tls : TlsConfig | None, optional
            Only used for https identities.

        Returns
        -------
        ConnectionHandle
        '''
        client = httpx.AsyncClient(
            base_url=str(identity),
            transport=self._build_inner(identity, tls),
            timeout=timeouts.as_httpx(),
            follow_redirects=False,
            trust_env=False,
        )
        return ConnectionHandle(
            identity=identity,
            client=client,
            timeouts=timeouts,
            tls=tls if identity.is_secure else None,
        )

    async def send(
        self,
        handle: ConnectionHandle,
        request: httpx.Request,
    ) -> httpx.Response:
        '''
        Send a request over the handle and read the whole response.

        Raises
        ------
        TransportError
            For every httpx transport failure, tagged with its kind.
        httpx.StreamError
            Passed through untouched: the request body could not be
            (re)sent, which says nothing about the server.
        '''
        request.extensions = {
            **request.extensions,
            'timeout': handle.timeouts.as_httpx().as_dict(),
        }
        try:
            return await handle.client.send(request)
        except httpx.TransportError as exc:
            kind = error_kind_from_httpx(exc)
            raise TransportError(kind, f'{type(exc).__name__}: {exc}') from exc

    async def close(self, handle: ConnectionHandle) -> None:
        if handle.closed:
            return
        logger.debug(f'Closing connection to {handle.identity}')
        await handle.client.aclose()
