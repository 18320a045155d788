import dataclasses as dc
import logging
from typing import IO, Any, Final

import httpx

from holdfast.http import (
    OPEN_TIMEOUT,
    READ_TIMEOUT,
    Protocol,
    ServerIdentity,
    infer_protocol,
)


RETRY_COUNT: Final[int] = 3
RETRY_DELAY: Final[float] = 15.0
EOF_BACKOFF_BASE: Final[float] = 0.25


class ServerUnavailableError(RuntimeError):
    '''
    Default error raised when a server is failing fast or keeps closing
    connections without answering.

    Parent: RuntimeError
    '''


RequestBody = bytes | IO[bytes]


def _is_seekable(data: Any) -> bool:
    seekable = getattr(data, 'seekable', None)
    return callable(seekable) and bool(seekable())


@dc.dataclass(slots=True)
class RequestTarget:
    '''
    Where to send a request and what to send.

    `data` is only used when `request` carries no body of its own. A
    readable file object is streamed rather than buffered; a seekable
    one is rewound before every attempt so retries resend all of it.
    '''
    server: str
    port: int
    request: httpx.Request
    protocol: Protocol | None = None
    data: RequestBody | None = None
    _body_offset: int | None = dc.field(default=None, init=False, repr=False)
    _given_protocol: Protocol | None = dc.field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._given_protocol = self.protocol
        self.protocol = infer_protocol(self.port, self.protocol)
        if not isinstance(self.data, bytes) and _is_seekable(self.data):
            self._body_offset = self.data.tell()  # type: ignore[union-attr]

    @property
    def identity(self) -> ServerIdentity:
        return ServerIdentity(
            host=self.server,
            port=self.port,
            protocol=self.protocol,  # type: ignore[arg-type]
        )

    def retarget(self, **changes: Any) -> 'RequestTarget':
        '''
        Copy of this target with `changes` applied. A protocol that was
        inferred rather than given is inferred again from the new port.
        '''
        changes.setdefault('protocol', self._given_protocol)
        return dc.replace(self, **changes)

    def rewind(self) -> None:
        if self._body_offset is not None:
            self.data.seek(self._body_offset)  # type: ignore[union-attr]


@dc.dataclass(slots=True)
class FailureState:
    '''
    Consecutive non-EOF failures for one server since its last success.
    '''
    count: int
    last_error_time: float
    last_error_message: str


@dc.dataclass(slots=True)
class ConnectionParams:
    '''
    Connection options. Every field left as `None` falls through to the
    global `HttpConnection.params`, and then to the built-in default.
    '''
    user_agent: str | None = None
    ca_file: str | None = None
    logger: logging.Logger | logging.LoggerAdapter | None = None
    exception: type[Exception] | None = None
    retry_count: int | None = None
    retry_delay: float | None = None
    open_timeout: float | None = None
    read_timeout: float | None = None
    eof_backoff_base: float | None = None
    tls_advisory: bool | None = None
    proxy: str | None = None
    proxy_auth: tuple[str, str] | None = None
    http2: bool | None = None
    trust_env: bool | None = None

    def merged(self, **overrides: Any) -> 'ConnectionParams':
        '''
        Copy of these params with the non-None overrides applied.

        Raises
        ------
        TypeError
            If an override does not name a parameter.
        '''
        known = {f.name for f in dc.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise TypeError(f'Unknown connection params: {", ".join(sorted(unknown))}')

        return dc.replace(self, **{
            name: value for name, value in overrides.items()
            if value is not None
        })


# `logger` has no static default; it is resolved lazily so nothing touches
# logging configuration until a connection actually needs a sink
PARAM_DEFAULTS: Final[dict[str, Any]] = {
    'user_agent': '',
    'ca_file': None,
    'logger': None,
    'exception': ServerUnavailableError,
    'retry_count': RETRY_COUNT,
    'retry_delay': RETRY_DELAY,
    'open_timeout': OPEN_TIMEOUT,
    'read_timeout': READ_TIMEOUT,
    'eof_backoff_base': EOF_BACKOFF_BASE,
    'tls_advisory': False,
    'proxy': None,
    'proxy_auth': None,
    'http2': False,
    'trust_env': False,
}
