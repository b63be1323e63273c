"""Failures of a single ingestion flow, each with the reply the user gets."""


class ConfigError(Exception):
    """Required configuration is missing or malformed."""


class IngestError(Exception):
    user_message = "Error downloading file!"


class TransportFailure(IngestError):
    """Network error while resolving or streaming the media."""


class StorageWriteFailure(IngestError):
    """Local disk refused the streamed bytes."""


class RetrievalRejected(IngestError):
    """Telegram refused to hand out the file (e.g. over its 20MB bot limit)."""

    user_message = "🥹 File size 20MB limit!"


class OversizeMedia(IngestError):
    user_message = "Error: File size exceeds 2GB limit!"

    def __init__(self, size, limit):
        super().__init__(f"{size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class StorageReadFailure(IngestError):
    """The fully written file could not be read back for hashing."""

    user_message = "Error generating hash!"
