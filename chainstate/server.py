import os
import json
import logging
import threading
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Optional

from chainstate.blocks import BlockFetcher

logger = logging.getLogger(__name__)

API_PATH = "/api/chainstate"
HEALTHZ_PATH = "/healthz"


class ChainstateService:
    """Recent-block window of the configured node, ready to serialize."""

    def __init__(self, fetcher: BlockFetcher, endpoint: str, recent_blocks: int):
        self.fetcher = fetcher
        self.endpoint = endpoint
        self.recent_blocks = recent_blocks

    def current_state(self) -> Optional[list]:
        try:
            blocks = self.fetcher.fetch_recent_blocks(self.endpoint, self.recent_blocks)
        except Exception:
            logger.exception(f"Failed to build chainstate for {self.endpoint}")
            return None
        if blocks is None:
            return None
        return [block.to_dict() for block in blocks]


class ChainstateHandler(SimpleHTTPRequestHandler):
    service: ChainstateService

    def __init__(self, *args, service=None, **kwargs):
        self.service = service
        super().__init__(*args, **kwargs)

    def _send(self, status: int, content_type: str, body: bytes):
        self.send_response(status)
        self.send_header("Content-type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        if path == API_PATH:
            state: Any = self.service.current_state()
            self._send(200, "application/json", json.dumps(state).encode())
        elif path == HEALTHZ_PATH:
            self._send(200, "text/plain", b"ok")
        else:
            super().do_GET()

    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} {format % args}")


def make_server(service: ChainstateService, host: str, port: int, static_dir: str):
    if not os.path.isdir(static_dir):
        logger.warning(f"Static directory {static_dir} does not exist")
    handler = partial(ChainstateHandler, service=service, directory=static_dir)
    return ThreadingHTTPServer((host, port), handler)


def run_server(service: ChainstateService, host: str, port: int, static_dir: str):
    server = make_server(service, host, port, static_dir)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server
