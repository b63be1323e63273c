import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv
from telegram import Update
from telegram.error import TelegramError

from .bot import build_application
from .config import Settings
from .errors import ConfigError
from .storage import FileStore, MaxAge
from .web import create_app, start_web_server

logger = logging.getLogger(__name__)


def make_store(settings: Settings) -> FileStore:
    retention = MaxAge(settings.retention_hours * 3600) if settings.retention_hours else None
    return FileStore(settings.download_dir, retention=retention)


def make_dispatcher(application, loop):
    """Return a callable that queues webhook payloads on ``application`` from any thread."""

    def dispatch(payload):
        try:
            update = Update.de_json(payload, application.bot)
        except (TypeError, KeyError, AttributeError) as e:
            raise ValueError(f"not a Telegram update: {e}") from e
        if update is None:
            raise ValueError("empty update")
        # web requests run on server threads; the queue belongs to the bot's loop
        asyncio.run_coroutine_threadsafe(application.update_queue.put(update), loop)

    return dispatch


async def serve(settings: Settings):
    store = make_store(settings)
    store.sweep()
    application = build_application(settings, store)
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    web_app = create_app(settings, store, make_dispatcher(application, loop))

    async with application:
        await application.start()
        server = start_web_server(web_app, "0.0.0.0", settings.port)
        logger.info("Server is running on port %d", settings.port)
        try:
            await application.bot.set_webhook(
                url=settings.webhook_url,
                secret_token=settings.webhook_secret,
                allowed_updates=Update.ALL_TYPES,
            )
            logger.info("Webhook is set")
        except TelegramError:
            logger.exception("Error setting webhook")
        await stop.wait()
        logger.info("Shutting down")
        await loop.run_in_executor(None, server.shutdown)
        await application.stop()


def main():
    load_dotenv()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.INFO,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Error: %s", e)
        sys.exit(1)
    logging.getLogger().setLevel(settings.log_level)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
