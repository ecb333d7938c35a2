from __future__ import annotations

import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from core.errors import DeliveryError, UnauthorizedError, ValidationError
from transports.webhook import WebhookTransport, check_admin_key, parse_inbound

from conftest import SleepRecorder


class _FakeAssistant:
    def __init__(self, reply: str = "hello back") -> None:
        self.reply = reply
        self.handled: list[tuple[str, str]] = []
        self.premium: dict[str, bool] = {}

    async def handle(self, user_id: str, text: str) -> str:
        self.handled.append((user_id, text))
        return self.reply

    def set_premium_status(self, user_id: str, is_premium: bool) -> None:
        self.premium[user_id] = is_premium


def _run(transport: WebhookTransport, scenario):
    async def runner():
        async with TestClient(TestServer(transport.app)) as client:
            return await scenario(client)

    return asyncio.run(runner())


def test_parse_inbound_rejects_missing_fields() -> None:
    assert parse_inbound({"from": "123@c.us", "body": "hi"}) == ("123@c.us", "hi")
    for payload in ({"body": "hi"}, {"from": "x"}, {"from": " ", "body": "hi"}, ["x"]):
        with pytest.raises(ValidationError):
            parse_inbound(payload)


def test_check_admin_key() -> None:
    check_admin_key("secret", "secret")
    for presented, expected in (("wrong", "secret"), (None, "secret"), ("secret", None)):
        with pytest.raises(UnauthorizedError):
            check_admin_key(presented, expected)


def test_inbound_message_returns_reply_without_outbound_url() -> None:
    assistant = _FakeAssistant()
    transport = WebhookTransport(assistant)

    async def scenario(client):
        response = await client.post("/webhook", json={"from": "123@c.us", "body": "hi"})
        return response.status, await response.json()

    status, payload = _run(transport, scenario)

    assert status == 200
    assert payload == {"to": "123@c.us", "body": "hello back"}
    assert assistant.handled == [("123@c.us", "hi")]


def test_invalid_inbound_never_reaches_the_assistant() -> None:
    assistant = _FakeAssistant()
    transport = WebhookTransport(assistant)

    async def scenario(client):
        missing = await client.post("/webhook", json={"from": "123@c.us"})
        garbage = await client.post("/webhook", data="not json")
        return missing.status, garbage.status

    assert _run(transport, scenario) == (400, 400)
    assert assistant.handled == []


def test_group_and_broadcast_messages_are_skipped() -> None:
    assistant = _FakeAssistant()
    transport = WebhookTransport(assistant)

    async def scenario(client):
        for sender in ("123@g.us", "status@broadcast"):
            response = await client.post("/webhook", json={"from": sender, "body": "hi"})
            assert (await response.json()) == {"skipped": True}

    _run(transport, scenario)
    assert assistant.handled == []


def test_premium_route_requires_key_and_user_id() -> None:
    assistant = _FakeAssistant()
    transport = WebhookTransport(assistant, admin_api_key="secret")

    async def scenario(client):
        denied = await client.post(
            "/api/users/premium", json={"userId": "u1", "isPremium": True}, headers={"x-api-key": "nope"}
        )
        missing = await client.post(
            "/api/users/premium", json={"isPremium": True}, headers={"x-api-key": "secret"}
        )
        ok = await client.post(
            "/api/users/premium", json={"userId": "u1", "isPremium": True}, headers={"x-api-key": "secret"}
        )
        return denied.status, missing.status, ok.status, await ok.json()

    denied, missing, ok, body = _run(transport, scenario)

    assert (denied, missing, ok) == (401, 400, 200)
    assert body == {"success": True}
    assert assistant.premium == {"u1": True}


def test_premium_flag_must_be_literal_true() -> None:
    assistant = _FakeAssistant()
    transport = WebhookTransport(assistant, admin_api_key="secret")

    async def scenario(client):
        await client.post(
            "/api/users/premium", json={"userId": "u1", "isPremium": "yes"}, headers={"x-api-key": "secret"}
        )

    _run(transport, scenario)
    assert assistant.premium == {"u1": False}


def test_reply_is_posted_to_outbound_url_with_retry() -> None:
    received: list[dict] = []
    failures = {"left": 2}

    async def outbound(request: web.Request) -> web.Response:
        if failures["left"]:
            failures["left"] -= 1
            return web.Response(status=503, text="busy")
        received.append(await request.json())
        return web.json_response({"ok": True})

    async def runner():
        sink = web.Application()
        sink.router.add_post("/send", outbound)
        async with TestServer(sink) as sink_server:
            sleep = SleepRecorder()
            transport = WebhookTransport(
                _FakeAssistant(), outbound_url=str(sink_server.make_url("/send")), sleep=sleep
            )
            async with TestClient(TestServer(transport.app)) as client:
                response = await client.post("/webhook", json={"from": "555@c.us", "body": "hi"})
                return response.status, await response.json(), sleep.delays

    status, payload, delays = asyncio.run(runner())

    assert status == 200
    assert payload == {"delivered": True}
    assert received == [{"to": "555@c.us", "body": "hello back"}]
    assert len(delays) == 2


def test_exhausted_delivery_is_swallowed() -> None:
    async def outbound(request: web.Request) -> web.Response:
        return web.Response(status=500)

    async def runner():
        sink = web.Application()
        sink.router.add_post("/send", outbound)
        async with TestServer(sink) as sink_server:
            transport = WebhookTransport(
                _FakeAssistant(), outbound_url=str(sink_server.make_url("/send")), sleep=SleepRecorder()
            )
            with pytest.raises(DeliveryError):
                await transport.deliver("555@c.us", "hi")
            async with TestClient(TestServer(transport.app)) as client:
                response = await client.post("/webhook", json={"from": "555@c.us", "body": "hi"})
                return response.status, await response.json()

    assert asyncio.run(runner()) == (202, {"delivered": False})


def test_index_reports_health() -> None:
    transport = WebhookTransport(_FakeAssistant())

    async def scenario(client):
        response = await client.get("/")
        return response.status, await response.text()

    status, text = _run(transport, scenario)
    assert status == 200
    assert "running" in text
