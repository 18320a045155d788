import asyncio
from typing import Any, ClassVar, Self

import httpx

from holdfast._logging import default_logger
from holdfast.connection._executor import RequestExecutor, Sleep
from holdfast.connection._manager import ConnectionManager, Logger
from holdfast.connection._models import (
    PARAM_DEFAULTS,
    ConnectionParams,
    RequestTarget,
)
from holdfast.connection._registry import FailureRegistry
from holdfast.http import HttpTransport, Timeouts


class HttpConnection:
    '''
    A persistent connection to a remote server that retries, backs off
    and fails fast in step with every other connection to that server.

    Parameters are looked up on the instance first, then on the class
    wide `HttpConnection.default_params`, then fall back to the
    built-in defaults.

    Example
    -------
    >>> conn = HttpConnection(user_agent='inventory-sync/1.0')
    >>> response = await conn.request(
    ...     server='api.example.com',
    ...     port=443,
    ...     request=httpx.Request('GET', '/v1/items'),
    ... )
    '''
    default_params: ClassVar[ConnectionParams] = ConnectionParams()

    def __init__(
        self,
        params: ConnectionParams | None = None,
        *,
        registry: FailureRegistry | None = None,
        transport: HttpTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        **overrides: Any,
    ) -> None:
        self.params: ConnectionParams = (params or ConnectionParams()).merged(**overrides)
        self.logger: Logger = self.get_param('logger') or default_logger()

        self.manager = ConnectionManager(
            transport or self._build_transport(),
            timeouts=Timeouts(
                open=self.get_param('open_timeout'),
                read=self.get_param('read_timeout'),
            ),
            ca_file=self.get_param('ca_file'),
            tls_advisory=self.get_param('tls_advisory'),
            user_agent=self.get_param('user_agent'),
            logger=self.logger,
        )
        self.executor = RequestExecutor(
            self.manager,
            registry=registry,
            retry_count=self.get_param('retry_count'),
            retry_delay=self.get_param('retry_delay'),
            eof_backoff_base=self.get_param('eof_backoff_base'),
            exception=self.get_param('exception'),
            logger=self.logger,
            sleep=sleep,
        )

    @classmethod
    def configure(cls, **params: Any) -> None:
        '''
        Set class wide defaults for every connection, on top of the
        ones already set.
        '''
        cls.default_params = cls.default_params.merged(**params)

    def get_param(self, name: str) -> Any:
        value = getattr(self.params, name)
        if value is None:
            value = getattr(type(self).default_params, name)
        if value is None:
            value = PARAM_DEFAULTS[name]
        return value

    def _build_transport(self) -> HttpTransport:
        proxy: httpx.Proxy | str | None = self.get_param('proxy')
        auth = self.get_param('proxy_auth')
        if proxy and auth:
            proxy = httpx.Proxy(proxy, auth=auth)

        return HttpTransport(
            http2=self.get_param('http2'),
            trust_env=self.get_param('trust_env'),
            proxy=proxy,
        )

    @property
    def registry(self) -> FailureRegistry:
        return self.executor.registry

    async def request(
        self,
        target: RequestTarget | None = None,
        **target_fields: Any,
    ) -> httpx.Response:
        '''
        Send a request, either as a ready `RequestTarget` or as its
        fields (`server`, `port`, `request`, `protocol`, `data`).

        Returns
        -------
        httpx.Response

        Raises
        ------
        Exception
            The configured exception when the server is failing fast or
            keeps closing connections without answering.
        '''
        if target is None:
            target = RequestTarget(**target_fields)
        elif target_fields:
            target = target.retarget(**target_fields)
        return await self.executor.execute(target)

    async def aclose(self) -> None:
        await self.manager.discard()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
