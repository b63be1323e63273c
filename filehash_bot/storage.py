"""Content-addressed file storage.

Uploads land in a single flat directory. While a download is in flight the
bytes live in a hidden ``.part`` file namespaced by a per-flow token; once
hashed, the file is renamed to ``{sha256}.mp4`` and never touched again.
"""
import hashlib
import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

from .errors import StorageReadFailure

logger = logging.getLogger(__name__)

MEDIA_EXTENSION = "mp4"
HASH_CHUNK_SIZE = 64 * 1024
HASH_PATTERN = re.compile(r"[0-9a-f]{64}")
MAX_NAME_BYTES = 100


def hash_stream(stream: BinaryIO, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    digest = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        digest.update(chunk)
    return digest.hexdigest()


def hash_file(path: str, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    try:
        with open(path, "rb") as f:
            return hash_stream(f, chunk_size)
    except OSError as e:
        raise StorageReadFailure(f"cannot read {path}: {e}") from e


def is_valid_hash(value: str) -> bool:
    return bool(HASH_PATTERN.fullmatch(value or ""))


def safe_name(name: str) -> str:
    name = os.path.basename(name.replace("\\", "/")).strip()
    name = re.sub(r"[^\w.\- ]", "_", name).lstrip(".")
    # keep the temp name well under the 255-byte filename limit
    name = name.encode("utf-8")[:MAX_NAME_BYTES].decode("utf-8", "ignore")
    return name or "file"


def discard_file(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("Could not remove temporary file %s", path, exc_info=True)


@dataclass(frozen=True)
class StoredFile:
    file_hash: str
    path: str
    size: int
    duplicate: bool = False


class RetentionPolicy:
    def is_expired(self, path: str, now: float) -> bool:
        raise NotImplementedError


class KeepForever(RetentionPolicy):
    def is_expired(self, path, now):
        return False


class MaxAge(RetentionPolicy):
    """Expire finalized files whose modification time is older than ``seconds``."""

    def __init__(self, seconds: float):
        self.seconds = seconds

    def is_expired(self, path, now):
        return now - os.path.getmtime(path) > self.seconds


class FileStore:
    def __init__(self, directory: str, extension: str = MEDIA_EXTENSION,
                 retention: Optional[RetentionPolicy] = None):
        # absolute so Flask's send_from_directory does not resolve it against the package
        self.directory = os.path.abspath(directory)
        self.extension = extension
        self.retention = retention or KeepForever()
        os.makedirs(self.directory, exist_ok=True)

    def temp_path(self, display_name: str) -> str:
        token = uuid.uuid4().hex
        return os.path.join(self.directory, f".{token}-{safe_name(display_name)}.part")

    def filename_for(self, file_hash: str) -> str:
        return f"{file_hash}.{self.extension}"

    def path_for(self, file_hash: str) -> str:
        return os.path.join(self.directory, self.filename_for(file_hash))

    def exists(self, file_hash: str) -> bool:
        return is_valid_hash(file_hash) and os.path.isfile(self.path_for(file_hash))

    def discard(self, path: str) -> None:
        discard_file(path)

    def finalize(self, temp_path: str, file_hash: str, size: int) -> StoredFile:
        """Move ``temp_path`` to its content-addressed name.

        Content already on disk under the same hash is left as is and the
        temporary copy is dropped.
        """
        if not is_valid_hash(file_hash):
            raise ValueError(f"not a sha256 hex digest: {file_hash!r}")
        target = self.path_for(file_hash)
        if os.path.exists(target):
            logger.info("File %s already stored, discarding duplicate upload", file_hash)
            self.discard(temp_path)
            return StoredFile(file_hash, target, size, duplicate=True)
        os.replace(temp_path, target)
        return StoredFile(file_hash, target, size)

    def sweep(self, now: Optional[float] = None) -> List[str]:
        """Delete finalized files the retention policy considers expired."""
        now = time.time() if now is None else now
        removed = []
        suffix = "." + self.extension
        for name in os.listdir(self.directory):
            if not name.endswith(suffix) or not is_valid_hash(name[: -len(suffix)]):
                continue
            path = os.path.join(self.directory, name)
            if self.retention.is_expired(path, now):
                self.discard(path)
                removed.append(name)
        if removed:
            logger.info("Retention sweep removed %d file(s)", len(removed))
        return removed
