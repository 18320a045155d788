"""Tests for the HttpConnection facade and its parameter layering."""

import logging

import httpx
import pytest

from holdfast import ConnectionParams, HttpConnection, RequestTarget, ServerUnavailableError
from holdfast._logging import LOGGER_NAME, default_logger
from holdfast.connection import RETRY_COUNT, RETRY_DELAY

from tests.conftest import ScriptedServer


class TestParams:

    def test_builtin_defaults(self):
        conn = HttpConnection(logger=logging.getLogger("holdfast.tests"))

        assert conn.get_param("user_agent") == ""
        assert conn.get_param("exception") is ServerUnavailableError
        assert conn.get_param("retry_count") == RETRY_COUNT
        assert conn.get_param("retry_delay") == RETRY_DELAY
        assert conn.get_param("open_timeout") == 5.0
        assert conn.get_param("read_timeout") == 30.0
        assert conn.get_param("ca_file") is None
        assert conn.executor.retry_count == 3
        assert conn.executor.exception is ServerUnavailableError

    def test_instance_beats_global(self):
        HttpConnection.configure(user_agent="global-agent", retry_count=7)
        conn = HttpConnection(ConnectionParams(user_agent="instance-agent"))

        assert conn.get_param("user_agent") == "instance-agent"
        assert conn.get_param("retry_count") == 7
        assert conn.executor.retry_count == 7

    def test_configure_accumulates(self):
        HttpConnection.configure(user_agent="agent/1")
        HttpConnection.configure(ca_file="/etc/ssl/ca.pem")

        assert HttpConnection.default_params.user_agent == "agent/1"
        assert HttpConnection.default_params.ca_file == "/etc/ssl/ca.pem"

    def test_keyword_overrides(self):
        conn = HttpConnection(ConnectionParams(user_agent="a"), user_agent="b", retry_delay=2.5)
        assert conn.params.user_agent == "b"
        assert conn.get_param("retry_delay") == 2.5

    def test_unknown_param_is_rejected(self):
        with pytest.raises(TypeError):
            HttpConnection(retries=4)

    def test_proxy_with_credentials(self):
        conn = HttpConnection(proxy="http://proxy.internal:3128", proxy_auth=("user", "secret"))
        transport = conn.manager._transport

        assert isinstance(transport._proxy, httpx.Proxy)
        assert transport._proxy.url == httpx.URL("http://proxy.internal:3128")
        assert transport._proxy.auth == ("user", "secret")

    def test_plain_proxy_url(self):
        conn = HttpConnection(proxy="http://proxy.internal:3128")
        assert conn.manager._transport._proxy == "http://proxy.internal:3128"


class TestRequest:

    @pytest.mark.asyncio
    async def test_request_from_fields(self, make_connection):
        server = ScriptedServer(httpx.Response(200, text="pong"))
        conn = make_connection(server, user_agent="inventory-sync/1.0")

        response = await conn.request(
            server="localhost",
            port=8080,
            request=httpx.Request("GET", "http://placeholder/ping"),
        )

        assert response.text == "pong"
        assert server.requests[0].url == httpx.URL("http://localhost:8080/ping")
        assert server.requests[0].headers["User-Agent"] == "inventory-sync/1.0"
        await conn.aclose()

    @pytest.mark.asyncio
    async def test_global_user_agent_is_used(self, make_connection, target):
        HttpConnection.configure(user_agent="fleet-agent/2.0")
        server = ScriptedServer()
        conn = make_connection(server)

        await conn.request(target())
        assert server.requests[0].headers["User-Agent"] == "fleet-agent/2.0"
        await conn.aclose()

    @pytest.mark.asyncio
    async def test_target_field_overrides(self, make_connection, target):
        server = ScriptedServer()
        conn = make_connection(server)

        await conn.request(target(), server="mirror.example.com")
        assert server.requests[0].url.host == "mirror.example.com"
        await conn.aclose()

    @pytest.mark.asyncio
    async def test_port_override_infers_protocol_again(self, make_connection, target):
        server = ScriptedServer()
        conn = make_connection(server)

        await conn.request(target(), port=80)

        assert server.requests[0].url == httpx.URL("http://api.example.com/v1/items")
        assert conn.manager.identity == ("api.example.com", 80, "http")
        await conn.aclose()

    @pytest.mark.asyncio
    async def test_port_override_keeps_given_protocol(self, make_connection, target):
        server = ScriptedServer()
        conn = make_connection(server)

        await conn.request(target(port=8443, protocol="https"), port=9443)

        assert server.requests[0].url == httpx.URL("https://api.example.com:9443/v1/items")
        await conn.aclose()

    @pytest.mark.asyncio
    async def test_connection_is_reused(self, make_connection, target):
        server = ScriptedServer()
        conn = make_connection(server)

        await conn.request(target())
        handle = await conn.manager.ensure_connection(target())
        await conn.request(target())

        assert await conn.manager.ensure_connection(target()) is handle
        await conn.aclose()
        assert handle.closed

    @pytest.mark.asyncio
    async def test_async_context_manager(self, make_connection, target):
        async with make_connection(ScriptedServer()) as conn:
            await conn.request(target())
            assert conn.manager.connected
        assert not conn.manager.connected


class TestRequestTarget:

    def test_protocol_inference(self):
        request = httpx.Request("GET", "http://placeholder/")
        assert RequestTarget("api.example.com", 443, request).protocol == "https"
        assert RequestTarget("api.example.com", 80, request).protocol == "http"
        assert RequestTarget("api.example.com", 8443, request, protocol="https").identity == (
            "api.example.com", 8443, "https",
        )

    def test_retarget(self):
        request = httpx.Request("GET", "http://placeholder/")
        inferred = RequestTarget("api.example.com", 443, request)
        given = RequestTarget("api.example.com", 443, request, protocol="https")

        assert inferred.retarget(port=80).protocol == "http"
        assert given.retarget(port=80).protocol == "https"
        assert inferred.retarget(port=80, protocol="https").protocol == "https"
        assert inferred.retarget(server="mirror.example.com").identity == (
            "mirror.example.com", 443, "https",
        )


def test_default_logger_writes_somewhere():
    logger = default_logger()
    assert logger.name == LOGGER_NAME
    assert logger.hasHandlers()
