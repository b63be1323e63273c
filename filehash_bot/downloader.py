import asyncio
import logging
from dataclasses import dataclass

import requests
from telegram.error import BadRequest, NetworkError, TelegramError

from .errors import OversizeMedia, RetrievalRejected, StorageWriteFailure, TransportFailure
from .storage import discard_file

logger = logging.getLogger(__name__)

MAX_MEDIA_BYTES = 2 * 1024 * 1024 * 1024  # 2 GiB
CHUNK_SIZE = 256 * 1024


@dataclass(frozen=True)
class IncomingMedia:
    file_id: str
    file_name: str
    kind: str  # "document" or "video"


async def resolve_file_url(bot, file_id: str) -> str:
    try:
        tg_file = await bot.get_file(file_id)
    except BadRequest as e:
        # must come before NetworkError, which it subclasses
        raise RetrievalRejected(e.message) from e
    except NetworkError as e:
        raise TransportFailure(str(e)) from e
    except TelegramError as e:
        raise RetrievalRejected(e.message) from e
    return tg_file.file_path


def stream_to_file(url: str, dest: str, max_bytes: int = MAX_MEDIA_BYTES,
                   timeout: float = 60, chunk_size: int = CHUNK_SIZE) -> int:
    """Stream ``url`` into ``dest`` chunk by chunk and return the byte count.

    ``dest`` is removed on any failure, so a partial file never outlives the call.
    """
    total = 0
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in r.iter_content(chunk_size=chunk_size):
                    if not chunk:
                        continue
                    total += len(chunk)
                    if total > max_bytes:
                        raise OversizeMedia(total, max_bytes)
                    f.write(chunk)
    except requests.RequestException as e:
        discard_file(dest)
        raise TransportFailure(str(e)) from e
    except OversizeMedia:
        discard_file(dest)
        raise
    except OSError as e:
        discard_file(dest)
        raise StorageWriteFailure(str(e)) from e
    return total


async def download_media(bot, media: IncomingMedia, store, timeout: float = 60, max_bytes=None):
    """Fetch ``media`` into a fresh temporary file of ``store``; returns ``(path, size)``."""
    logger.info("Downloading file: %s", media.file_name)
    url = await resolve_file_url(bot, media.file_id)
    temp_path = store.temp_path(media.file_name)
    if max_bytes is None:
        max_bytes = MAX_MEDIA_BYTES
    loop = asyncio.get_running_loop()
    size = await loop.run_in_executor(None, stream_to_file, url, temp_path, max_bytes, timeout)
    logger.info("Downloaded file size: %d bytes", size)
    return temp_path, size
