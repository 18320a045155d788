'''
**holdfast**
-----------------

A resilient HTTP connection manager built on httpx. Each `HttpConnection`
keeps one persistent connection to a server and shares its failure state
with every other connection to the same (host, port, protocol): after a few
consecutive failures all of them fail fast for a while instead of each one
paying the full connect and read timeouts, and servers that keep closing
idle connections are retried with exponential backoff.
'''
from holdfast.connection import (
    ConnectionManager,
    ConnectionParams,
    FailureRegistry,
    FailureState,
    HttpConnection,
    RequestExecutor,
    RequestTarget,
    ServerUnavailableError,
    get_failure_registry,
)
from holdfast.http import (
    ErrorKind,
    HttpTransport,
    ServerIdentity,
    TransportError,
)

__all__ = [
    "ConnectionManager",
    "ConnectionParams",
    "FailureRegistry",
    "FailureState",
    "HttpConnection",
    "RequestExecutor",
    "RequestTarget",
    "ServerUnavailableError",
    "get_failure_registry",
    "ErrorKind",
    "HttpTransport",
    "ServerIdentity",
    "TransportError",
]
