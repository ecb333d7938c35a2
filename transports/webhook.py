import asyncio
import hmac
import logging
from typing import Optional

import aiohttp
from aiohttp import web

from core.errors import DeliveryError, UnauthorizedError, ValidationError
from core.retry import retry_async

log = logging.getLogger(__name__)

IGNORED_SENDERS = ("status@broadcast",)
GROUP_SUFFIX = "@g.us"


def parse_inbound(payload) -> tuple:
    if not isinstance(payload, dict):
        raise ValidationError("payload must be a JSON object")
    sender = payload.get("from")
    body = payload.get("body")
    if not isinstance(sender, str) or not sender.strip():
        raise ValidationError("missing sender")
    if not isinstance(body, str) or not body.strip():
        raise ValidationError("missing text")
    return sender.strip(), body


def check_admin_key(presented: Optional[str], expected: Optional[str]) -> None:
    if not expected or not presented or not hmac.compare_digest(presented.encode(), expected.encode()):
        raise UnauthorizedError("invalid admin key")


class WebhookTransport:
    """HTTP adapter: inbound webhook, outbound reply POST and the admin route."""

    def __init__(
        self,
        assistant,
        *,
        host: str = "localhost",
        port: int = 3000,
        admin_api_key: Optional[str] = None,
        outbound_url: Optional[str] = None,
        retry_attempts: int = 3,
        retry_base_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None,
        sleep=asyncio.sleep,
    ):
        self.assistant = assistant
        self.host = host
        self.port = port
        self.admin_api_key = admin_api_key
        self.outbound_url = outbound_url
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._stop_event = asyncio.Event()
        self.app = self.build_app()

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.index)
        app.router.add_post("/webhook", self.inbound)
        app.router.add_post("/api/users/premium", self.set_premium)
        app.on_cleanup.append(self._close_session)
        return app

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text="Mental Health Coach bot is running!")

    async def inbound(self, request: web.Request) -> web.Response:
        try:
            payload = await request.json()
        except ValueError:
            return web.json_response({"error": "Invalid JSON"}, status=400)
        try:
            sender, body = parse_inbound(payload)
        except ValidationError as exc:
            log.warning("rejected inbound payload: %s", exc)
            return web.json_response({"error": str(exc)}, status=400)
        if sender in IGNORED_SENDERS or sender.endswith(GROUP_SUFFIX):
            log.info("skipping message from %s", sender)
            return web.json_response({"skipped": True})
        log.info("new message from %s", sender)
        reply = await self.assistant.handle(sender, body)
        if not self.outbound_url:
            return web.json_response({"to": sender, "body": reply})
        if reply:
            try:
                await self.deliver(sender, reply)
            except DeliveryError as exc:
                log.error("giving up on reply to %s: %s", sender, exc)
                return web.json_response({"delivered": False}, status=202)
        return web.json_response({"delivered": bool(reply)})

    async def set_premium(self, request: web.Request) -> web.Response:
        try:
            check_admin_key(request.headers.get("x-api-key"), self.admin_api_key)
        except UnauthorizedError:
            log.warning("unauthorized premium update from %s", request.remote)
            return web.json_response({"error": "Unauthorized"}, status=401)
        try:
            payload = await request.json()
        except ValueError:
            payload = None
        user_id = payload.get("userId") if isinstance(payload, dict) else None
        if not isinstance(user_id, str) or not user_id.strip():
            return web.json_response({"error": "User ID is required"}, status=400)
        self.assistant.set_premium_status(user_id.strip(), payload.get("isPremium") is True)
        return web.json_response({"success": True})

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15))
            self._owns_session = True
        return self._session

    async def _close_session(self, app: web.Application) -> None:
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def _post_reply(self, recipient: str, text: str) -> None:
        session = await self._get_session()
        try:
            async with session.post(self.outbound_url, json={"to": recipient, "body": text}) as response:
                if response.status >= 400:
                    detail = await response.text()
                    raise DeliveryError(f"outbound send returned {response.status}: {detail[:200]}")
        except aiohttp.ClientError as exc:
            raise DeliveryError(f"outbound send failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise DeliveryError("outbound send timed out") from exc

    async def deliver(self, recipient: str, text: str) -> None:
        await retry_async(
            lambda: self._post_reply(recipient, text),
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            retry_on=(DeliveryError,),
            label=f"reply to {recipient}",
            sleep=self._sleep,
        )

    async def start(self):
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        log.info("webhook transport listening on %s:%s", self.host, self.port)
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await runner.cleanup()

    async def stop(self):
        self._stop_event.set()
