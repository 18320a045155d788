'''
Error kinds produced by the transport layer.

Every failure that reaches the request executor is reduced to one
`ErrorKind` tag. The executor only ever branches on that tag.
'''
import asyncio
import enum
import socket
import ssl
from collections.abc import Iterator

import httpcore
import httpx


# message httpcore uses when the peer closes a keep-alive connection
# before any response bytes arrive
_SERVER_DISCONNECTED = 'server disconnected without sending a response'


class ErrorKind(str, enum.Enum):
    TIMEOUT = 'timeout'
    CONNECTION_RESET = 'connection_reset'
    DNS_FAILURE = 'dns_failure'
    TLS_ERROR = 'tls_error'
    TLS_VERIFY = 'tls_verify'
    EOF = 'eof'
    CANCELLED = 'cancelled'
    OTHER = 'other'


class TransportError(Exception):
    '''
    Raised by the transport when a request could not be completed.

    Parent: Exception
    '''

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind: ErrorKind = kind
        self.message: str = message

    def __repr__(self) -> str:
        return f'{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})'


def _iter_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def error_kind_from_httpx(exc: httpx.TransportError) -> ErrorKind:
    '''
    Tag an httpx transport exception by walking its cause chain.

    Parameters
    ----------
    exc : httpx.TransportError

    Returns
    -------
    ErrorKind
    '''
    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.TIMEOUT

    if isinstance(exc, httpx.RemoteProtocolError) and \
            _SERVER_DISCONNECTED in str(exc).lower():
        return ErrorKind.EOF

    chain = list(_iter_chain(exc))
    if any(isinstance(e, ssl.SSLCertVerificationError) for e in chain):
        return ErrorKind.TLS_VERIFY
    if any('CERTIFICATE_VERIFY_FAILED' in str(e) for e in chain):
        return ErrorKind.TLS_VERIFY
    if any(isinstance(e, ssl.SSLError) for e in chain):
        return ErrorKind.TLS_ERROR
    if any(isinstance(e, socket.gaierror) for e in chain):
        return ErrorKind.DNS_FAILURE
    if any(isinstance(e, (ConnectionResetError, BrokenPipeError)) for e in chain):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, (httpx.ReadError, httpx.WriteError)):
        return ErrorKind.CONNECTION_RESET

    return ErrorKind.OTHER


def classify_error(exc: BaseException) -> ErrorKind:
    '''
    Reduce anything raised during an attempt to an `ErrorKind`.

    Anything that is not an `Exception` (task cancellation, ctrl-c) is
    a cancellation. Timeouts are ordinary exceptions and never count
    as cancellations.

    Parameters
    ----------
    exc : BaseException

    Returns
    -------
    ErrorKind
    '''
    if isinstance(exc, TransportError):
        return exc.kind
    if isinstance(exc, asyncio.CancelledError) or not isinstance(exc, Exception):
        return ErrorKind.CANCELLED
    if isinstance(exc, httpx.TransportError):
        return error_kind_from_httpx(exc)
    if isinstance(exc, httpcore.TimeoutException):
        return ErrorKind.TIMEOUT
    if isinstance(exc, httpcore.RemoteProtocolError) and \
            _SERVER_DISCONNECTED in str(exc).lower():
        return ErrorKind.EOF
    if isinstance(exc, httpcore.ConnectError):
        return ErrorKind.OTHER if not exc.__cause__ else classify_error(exc.__cause__)
    if isinstance(exc, httpcore.NetworkError):
        return ErrorKind.CONNECTION_RESET
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(exc, EOFError):
        return ErrorKind.EOF
    if isinstance(exc, socket.gaierror):
        return ErrorKind.DNS_FAILURE
    if isinstance(exc, ssl.SSLCertVerificationError):
        return ErrorKind.TLS_VERIFY
    if isinstance(exc, ssl.SSLError):
        return ErrorKind.TLS_ERROR
    if isinstance(exc, OSError):
        return ErrorKind.CONNECTION_RESET
    return ErrorKind.OTHER
