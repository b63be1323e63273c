import os
import shutil
import tempfile
import unittest
from types import SimpleNamespace
from unittest import mock

import requests
from telegram.error import BadRequest, Forbidden, NetworkError, TimedOut

from filehash_bot.downloader import (
    MAX_MEDIA_BYTES,
    IncomingMedia,
    download_media,
    resolve_file_url,
    stream_to_file,
)
from filehash_bot.errors import OversizeMedia, RetrievalRejected, StorageWriteFailure, TransportFailure
from filehash_bot.storage import FileStore
from tests.fakes import FakeResponse

FILE_URL = "https://api.telegram.org/file/bot123:abc/documents/file_1.pdf"


class StreamToFileTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.dest = os.path.join(self.tmp, "part")

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def test_limit_is_two_gib(self):
        self.assertEqual(MAX_MEDIA_BYTES, 2147483648)

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_streams_body_to_disk(self, get):
        body = os.urandom(1000)
        get.return_value = FakeResponse(body, chunk=64)
        size = stream_to_file(FILE_URL, self.dest, timeout=5)
        self.assertEqual(size, 1000)
        with open(self.dest, "rb") as f:
            self.assertEqual(f.read(), body)
        get.assert_called_once_with(FILE_URL, stream=True, timeout=5)
        self.assertTrue(get.return_value.closed)

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_exactly_at_limit_succeeds(self, get):
        get.return_value = FakeResponse(b"x" * 10, chunk=3)
        self.assertEqual(stream_to_file(FILE_URL, self.dest, max_bytes=10), 10)

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_one_byte_over_limit_fails(self, get):
        get.return_value = FakeResponse(b"x" * 11, chunk=3)
        with self.assertRaises(OversizeMedia) as ctx:
            stream_to_file(FILE_URL, self.dest, max_bytes=10)
        self.assertEqual(ctx.exception.limit, 10)
        self.assertFalse(os.path.exists(self.dest))

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_http_error(self, get):
        get.return_value = FakeResponse(status=502)
        with self.assertRaises(TransportFailure):
            stream_to_file(FILE_URL, self.dest)
        self.assertFalse(os.path.exists(self.dest))

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_connection_drop_mid_stream_removes_partial_file(self, get):
        get.return_value = FakeResponse(b"abcdef", error=requests.exceptions.ChunkedEncodingError("reset"))
        with self.assertRaises(TransportFailure):
            stream_to_file(FILE_URL, self.dest)
        self.assertFalse(os.path.exists(self.dest))

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_connect_error(self, get):
        get.side_effect = requests.ConnectionError("refused")
        with self.assertRaises(TransportFailure):
            stream_to_file(FILE_URL, self.dest)

    @mock.patch("filehash_bot.downloader.requests.get")
    def test_unwritable_destination(self, get):
        get.return_value = FakeResponse(b"abc")
        with self.assertRaises(StorageWriteFailure):
            stream_to_file(FILE_URL, os.path.join(self.tmp, "no", "such", "dir"))


    @mock.patch("filehash_bot.downloader.requests.get")
    def test_overlong_destination_is_a_write_failure(self, get):
        get.return_value = FakeResponse(b"abc")
        with self.assertRaises(StorageWriteFailure):
            stream_to_file(FILE_URL, os.path.join(self.tmp, "я" * 200))


class ResolveTests(unittest.IsolatedAsyncioTestCase):
    async def test_returns_file_path(self):
        bot = mock.AsyncMock()
        bot.get_file.return_value = SimpleNamespace(file_path=FILE_URL)
        self.assertEqual(await resolve_file_url(bot, "file_1"), FILE_URL)
        bot.get_file.assert_awaited_once_with("file_1")

    async def test_platform_rejection(self):
        for error in (BadRequest("File is too big"), Forbidden("bot was blocked")):
            bot = mock.AsyncMock()
            bot.get_file.side_effect = error
            with self.assertRaises(RetrievalRejected):
                await resolve_file_url(bot, "file_1")

    async def test_network_problems(self):
        for error in (TimedOut(), NetworkError("connection reset")):
            bot = mock.AsyncMock()
            bot.get_file.side_effect = error
            with self.assertRaises(TransportFailure):
                await resolve_file_url(bot, "file_1")


class DownloadMediaTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.store = FileStore(self.tmp)

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    @mock.patch("filehash_bot.downloader.requests.get")
    async def test_writes_temp_file_named_after_upload(self, get):
        get.return_value = FakeResponse(b"hello")
        bot = mock.AsyncMock()
        bot.get_file.return_value = SimpleNamespace(file_path=FILE_URL)
        media = IncomingMedia("file_1", "report.pdf", "document")

        path, size = await download_media(bot, media, self.store, timeout=5)

        self.assertEqual(size, 5)
        self.assertEqual(os.path.dirname(path), self.store.directory)
        self.assertTrue(path.endswith("-report.pdf.part"))
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"hello")

    @mock.patch("filehash_bot.downloader.requests.get")
    async def test_long_cyrillic_name(self, get):
        get.return_value = FakeResponse(b"hello")
        bot = mock.AsyncMock()
        bot.get_file.return_value = SimpleNamespace(file_path=FILE_URL)
        name = "Отчёт_" * 20 + ".pdf"
        self.assertGreater(len(name.encode("utf-8")), 200)

        path, size = await download_media(bot, IncomingMedia("f1", name, "document"), self.store)

        self.assertEqual(size, 5)
        self.assertTrue(os.path.basename(path).endswith(".part"))

    @mock.patch("filehash_bot.downloader.requests.get")
    async def test_rejection_never_opens_a_stream(self, get):
        bot = mock.AsyncMock()
        bot.get_file.side_effect = BadRequest("File is too big")
        with self.assertRaises(RetrievalRejected):
            await download_media(bot, IncomingMedia("f", "big.mkv", "video"), self.store)
        get.assert_not_called()
        self.assertEqual(os.listdir(self.tmp), [])


if __name__ == "__main__":
    unittest.main()
