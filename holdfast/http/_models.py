import dataclasses as dc
from typing import Literal, NamedTuple

import httpx


Protocol = Literal['http', 'https']

OPEN_TIMEOUT: float = 5.0
READ_TIMEOUT: float = 30.0


def infer_protocol(port: int, protocol: str | None = None) -> Protocol:
    '''
    Resolve the protocol for a port; port 443 implies https.

    Parameters
    ----------
    port : int
    protocol : str | None, optional
        An explicit protocol, which always wins.

    Returns
    -------
    Protocol

    Raises
    ------
    ValueError
        If an explicit protocol is neither http nor https.
    '''
    if protocol is None:
        return 'https' if port == 443 else 'http'

    normalized = protocol.lower()
    if normalized not in ('http', 'https'):
        raise ValueError(f'Unsupported protocol: {protocol}')
    return normalized  # type: ignore[return-value]


class ServerIdentity(NamedTuple):
    '''
    The (host, port, protocol) triple that scopes shared failure state.
    '''
    host: str
    port: int
    protocol: Protocol

    def __str__(self) -> str:
        return f'{self.protocol}://{self.host}:{self.port}'

    @property
    def is_secure(self) -> bool:
        return self.protocol == 'https'

    def rebase(self, url: httpx.URL | str) -> httpx.URL:
        '''
        Point a (possibly relative) URL at this server, keeping its
        path and query.
        '''
        url = httpx.URL(url)
        return url.copy_with(
            scheme=self.protocol,
            host=self.host,
            port=self.port,
        )


@dc.dataclass(slots=True, frozen=True)
class Timeouts:
    open: float = OPEN_TIMEOUT
    read: float = READ_TIMEOUT

    def as_httpx(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self.open,
            read=self.read,
            write=self.read,
            pool=self.open,
        )


@dc.dataclass(slots=True, frozen=True)
class TlsConfig:
    '''
    TLS options for https connections.

    `verify=False` is only ever produced by advisory mode after a
    verification failure has been logged.
    '''
    ca_file: str | None = None
    verify: bool = True
    advisory: bool = False

    def unverified(self) -> 'TlsConfig':
        return dc.replace(self, verify=False)
