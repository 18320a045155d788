'''
**holdfast.connection**
-------------

Persistent connections with coordinated retry, backoff and fail-fast
behaviour. See `holdfast.connection._executor` for the retry state machine
and `holdfast.connection._registry` for the failure state shared by every
connection to the same server.
'''
from holdfast.connection._core import HttpConnection
from holdfast.connection._executor import AttemptState, RequestExecutor
from holdfast.connection._manager import ConnectionManager
from holdfast.connection._models import (
    EOF_BACKOFF_BASE,
    RETRY_COUNT,
    RETRY_DELAY,
    ConnectionParams,
    FailureState,
    RequestTarget,
    ServerUnavailableError,
)
from holdfast.connection._registry import FailureRegistry, get_failure_registry

__all__ = [
    "HttpConnection",
    "AttemptState",
    "RequestExecutor",
    "ConnectionManager",
    "EOF_BACKOFF_BASE",
    "RETRY_COUNT",
    "RETRY_DELAY",
    "ConnectionParams",
    "FailureState",
    "RequestTarget",
    "ServerUnavailableError",
    "FailureRegistry",
    "get_failure_registry",
]
