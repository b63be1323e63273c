import logging
import threading
from typing import Callable, Optional

from flask import Flask, Response, request, send_from_directory
from werkzeug.serving import BaseWSGIServer, make_server

from .config import Settings
from .storage import FileStore

logger = logging.getLogger(__name__)

ROOT_TEXT = "Bot is running. Send a document or video to generate file hash."
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def plain(text: str, status: int = 200) -> Response:
    return Response(text, status=status, mimetype="text/plain")


def create_app(settings: Settings, store: FileStore,
               dispatch: Optional[Callable[[dict], None]] = None) -> Flask:
    """Flask app serving stored files by hash.

    ``dispatch`` receives each decoded Telegram webhook payload and raises
    ValueError for one that is not a valid update; the ``/webhook`` route is
    only registered when it is given.
    """
    app = Flask(__name__)

    @app.get("/")
    def index():
        logger.info("Received a request on root path")
        return plain(ROOT_TEXT)

    @app.get("/download/<file_hash>")
    def download(file_hash):
        if not store.exists(file_hash):
            return plain("File not found", 404)
        filename = store.filename_for(file_hash)
        return send_from_directory(store.directory, filename, as_attachment=True, download_name=filename)

    if dispatch is not None:
        @app.post("/webhook")
        def webhook():
            if settings.webhook_secret and request.headers.get(SECRET_HEADER) != settings.webhook_secret:
                logger.warning("Rejected webhook call with a bad secret token")
                return plain("Unauthorized", 401)
            payload = request.get_json(silent=True)
            if not isinstance(payload, dict):
                return plain("Bad Request", 400)
            try:
                dispatch(payload)
            except ValueError:
                logger.warning("Rejected malformed webhook update", exc_info=True)
                return plain("Bad Request", 400)
            return plain("OK")

    return app


def start_web_server(app: Flask, host: str, port: int) -> BaseWSGIServer:
    """Serve ``app`` from a background thread, one worker thread per request."""
    server = make_server(host, port, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, name="web-server", daemon=True)
    thread.start()
    return server
