'''
**holdfast.http**
---------

The transport layer under the connection manager: single-connection httpx
clients with TCP keep-alive socket options and a CA-file aware SSL context,
plus the closed set of `ErrorKind` tags every transport failure is reduced to.
'''
from holdfast.http._errors import (
    ErrorKind,
    TransportError,
    classify_error,
    error_kind_from_httpx,
)
from holdfast.http._models import (
    OPEN_TIMEOUT,
    READ_TIMEOUT,
    Protocol,
    ServerIdentity,
    Timeouts,
    TlsConfig,
    infer_protocol,
)
from holdfast.http._transport import (
    ConnectionHandle,
    HttpTransport,
    default_socket_options,
    server_ssl_context,
)

__all__ = [
    'ErrorKind',
    'TransportError',
    'classify_error',
    'error_kind_from_httpx',
    'OPEN_TIMEOUT',
    'READ_TIMEOUT',
    'Protocol',
    'ServerIdentity',
    'Timeouts',
    'TlsConfig',
    'infer_protocol',
    'ConnectionHandle',
    'HttpTransport',
    'default_socket_options',
    'server_ssl_context',
]
