import asyncio
import logging
import signal

from core.assistant import Assistant
from core.config import load_settings
from transports.discord_bot import run_discord_bot
from transports.telegram_bot import TelegramTransport
from transports.webhook import WebhookTransport


async def main():
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s :: %(message)s",
    )
    settings.validate()

    assistant = Assistant.from_settings(settings)

    stoppable = []
    tasks = []
    if settings.webhook_enabled:
        webhook = WebhookTransport(
            assistant,
            host=settings.host,
            port=settings.port,
            admin_api_key=settings.admin_api_key,
            outbound_url=settings.outbound_webhook_url,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
        )
        stoppable.append(webhook)
        tasks.append(asyncio.create_task(webhook.start()))
    if settings.telegram_token:
        telegram_transport = TelegramTransport(
            assistant,
            settings.telegram_token,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
        )
        stoppable.append(telegram_transport)
        tasks.append(asyncio.create_task(telegram_transport.start()))
    discord_task = None
    if settings.discord_token:
        discord_task = asyncio.create_task(
            run_discord_bot(
                assistant,
                settings.discord_token,
                retry_attempts=settings.retry_attempts,
                retry_base_delay=settings.retry_base_delay,
            )
        )

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    await stop_event.wait()
    logging.getLogger(__name__).info("Shutting down...")

    for transport in stoppable:
        await transport.stop()

    if discord_task is not None:
        discord_task.cancel()
        try:
            await discord_task
        except asyncio.CancelledError:
            pass

    await asyncio.gather(*tasks)
    await assistant.close()


if __name__ == "__main__":
    asyncio.run(main())
