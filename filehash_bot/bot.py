import asyncio
import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import Application, ApplicationBuilder, CommandHandler, ContextTypes, MessageHandler, filters

from .config import Settings
from .downloader import IncomingMedia, download_media
from .errors import IngestError, StorageReadFailure, StorageWriteFailure
from .messages import (
    CHANNEL_FOOTER,
    WELCOME_TEXT,
    download_keyboard,
    download_link,
    file_caption,
    welcome_keyboard,
)
from .storage import FileStore, StoredFile, hash_file

logger = logging.getLogger(__name__)


# ---------- ingestion ----------
async def ingest_media(bot, media: IncomingMedia, store: FileStore, timeout: float = 60) -> StoredFile:
    """Download, hash and finalize one upload. Raises an IngestError subclass on failure."""
    temp_path, size = await download_media(bot, media, store, timeout)
    loop = asyncio.get_running_loop()
    try:
        file_hash = await loop.run_in_executor(None, hash_file, temp_path)
    except StorageReadFailure:
        store.discard(temp_path)
        raise
    logger.info("File hash: %s", file_hash)
    try:
        return await loop.run_in_executor(None, store.finalize, temp_path, file_hash, size)
    except OSError as e:
        store.discard(temp_path)
        raise StorageWriteFailure(str(e)) from e


async def post_to_channel(bot, settings: Settings, store: FileStore, file_hash: str,
                          file_name: str, file_size: int) -> bool:
    """Repost a stored file to the broadcast channel. Failures are logged, never raised."""
    if not store.exists(file_hash):
        logger.error("File not found for posting to channel: %s", file_hash)
        return False
    try:
        await bot.send_photo(
            chat_id=settings.channel_id,
            photo=settings.photo_url,
            caption=file_caption(file_name, file_size, CHANNEL_FOOTER),
            reply_markup=download_keyboard(download_link(settings.base_url, file_hash)),
        )
    except TelegramError:
        logger.exception("Error posting to channel")
        return False
    logger.info("File posted to channel successfully")
    return True


async def process_media(update: Update, context: ContextTypes.DEFAULT_TYPE, media: IncomingMedia):
    settings = context.bot_data["settings"]
    store = context.bot_data["store"]
    try:
        stored = await ingest_media(context.bot, media, store, settings.download_timeout)
    except IngestError as e:
        logger.error("Failed to ingest %s: %s", media.file_name, e)
        await update.message.reply_text(e.user_message)
        return

    link = download_link(settings.base_url, stored.file_hash)
    await update.message.reply_photo(
        photo=settings.photo_url,
        caption=file_caption(media.file_name, stored.size),
        reply_markup=download_keyboard(link),
    )
    context.application.create_task(
        post_to_channel(context.bot, settings, store, stored.file_hash, media.file_name, stored.size),
        update=update,
    )


# ---------- handlers ----------
async def start(update: Update, context: ContextTypes.DEFAULT_TYPE):
    settings = context.bot_data["settings"]
    await update.message.reply_photo(
        photo=settings.photo_url,
        caption=WELCOME_TEXT,
        reply_markup=welcome_keyboard(settings.join_channel_url),
    )


async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE):
    doc = update.message.document
    media = IncomingMedia(doc.file_id, doc.file_name or f"{doc.file_id}.file", "document")
    await process_media(update, context, media)


async def handle_video(update: Update, context: ContextTypes.DEFAULT_TYPE):
    video = update.message.video
    media = IncomingMedia(video.file_id, video.file_name or f"{video.file_id}.mp4", "video")
    await process_media(update, context, media)


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("Unhandled error while processing update %s", update, exc_info=context.error)


def build_application(settings: Settings, store: FileStore) -> Application:
    # updates arrive through the web server's /webhook route, not an Updater
    app = ApplicationBuilder().token(settings.bot_token).updater(None).build()
    app.bot_data["settings"] = settings
    app.bot_data["store"] = store
    app.add_handler(CommandHandler("start", start))
    app.add_handler(MessageHandler(filters.Document.ALL, handle_document))
    app.add_handler(MessageHandler(filters.VIDEO, handle_video))
    app.add_error_handler(on_error)
    return app
