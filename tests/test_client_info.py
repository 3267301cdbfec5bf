"""Tests for the client metadata lookup."""

from __future__ import annotations

import logging

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from media_chaos.client_info import fetch_client_info
from media_chaos.models import ClientInfo


async def _ipapi(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "ip": "203.0.113.7",
            "city": "Lisbon",
            "region": "Lisbon",
            "country_name": "Portugal",
            "org": "Example ISP",
        }
    )


async def _partial(request: web.Request) -> web.Response:
    return web.json_response({"ip": "203.0.113.8", "city": None})


async def _list_payload(request: web.Request) -> web.Response:
    return web.json_response(["not", "a", "dict"])


async def _error(request: web.Request) -> web.Response:
    return web.Response(status=429)


@pytest_asyncio.fixture
async def lookup_server():
    app = web.Application()
    app.router.add_get("/json/", _ipapi)
    app.router.add_get("/partial/", _partial)
    app.router.add_get("/list/", _list_payload)
    app.router.add_get("/error/", _error)
    async with TestServer(app) as server:
        yield server


class TestFetchClientInfo:
    @pytest.mark.asyncio
    async def test_maps_fields(self, lookup_server):
        info = await fetch_client_info(str(lookup_server.make_url("/json/")))
        assert info == ClientInfo(
            ip="203.0.113.7",
            city="Lisbon",
            region="Lisbon",
            country="Portugal",
            org="Example ISP",
        )

    @pytest.mark.asyncio
    async def test_missing_fields_default(self, lookup_server):
        info = await fetch_client_info(str(lookup_server.make_url("/partial/")))
        assert info.ip == "203.0.113.8"
        assert info.city == "Unknown"
        assert info.country == "Unknown"
        assert info.org == "Unknown ISP"

    @pytest.mark.asyncio
    async def test_http_error_returns_unknown(self, lookup_server, caplog):
        with caplog.at_level(logging.WARNING, logger="media-chaos"):
            info = await fetch_client_info(str(lookup_server.make_url("/error/")))
        assert info == ClientInfo.unknown()
        assert "HTTP 429" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_payload_returns_unknown(self, lookup_server):
        info = await fetch_client_info(str(lookup_server.make_url("/list/")))
        assert info == ClientInfo.unknown()

    @pytest.mark.asyncio
    async def test_unreachable_returns_unknown(self, unused_tcp_port):
        info = await fetch_client_info(
            f"http://127.0.0.1:{unused_tcp_port}/json/", timeout=1.0
        )
        assert info.ip == "Unknown"
        assert info.org == "Unknown ISP"
