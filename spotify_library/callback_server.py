"""Loopback receiver for the OAuth redirect.

The browser lands on ``REDIRECT_URI`` with ``?code=...&state=...``. We answer
with a 303 to the same URL minus those parameters, so the visible address
(and its history entry) never keeps a replayable authorization code; the
follow-up request then gets a small "you can close this tab" page.
"""

import logging
import time
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Dict, Optional, Tuple

from .auth import REDIRECT_URI, extract_code_from_redirect_url, strip_auth_params

logger = logging.getLogger(__name__)

_DONE_PAGE = (
    "<html><body><h2>Spotify authorization received.</h2>"
    "<p>You can close this tab and return to the terminal.</p></body></html>"
).encode("utf-8")


class _OAuthCallbackHandler(BaseHTTPRequestHandler):
    server_version = "LikedSongsPrunerCallback/1.0"

    def do_GET(self):  # noqa: N802
        params = extract_code_from_redirect_url(self.path)
        if params.get("code") or params.get("error"):
            self.server.oauth_params = params  # type: ignore[attr-defined]
            self.send_response(303)
            self.send_header("Location", strip_auth_params(self.path))
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(_DONE_PAGE)))
        self.end_headers()
        self.wfile.write(_DONE_PAGE)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        logger.debug("callback: " + format, *args)


def _loopback_address(redirect_uri: str) -> Tuple[str, int]:
    parsed = urllib.parse.urlparse(redirect_uri)
    host = parsed.hostname or ""
    if parsed.scheme != "http" or host not in ("127.0.0.1", "localhost"):
        raise ValueError(f"Redirect URI must be an http loopback address: {redirect_uri}")
    return host, parsed.port or 80


def wait_for_redirect(redirect_uri: str = REDIRECT_URI, *, timeout: float = 300.0) -> Dict[str, str]:
    """Serve the loopback redirect until it carries ``code`` or ``error``.

    Returns the parsed {code, state, error} dict, or {} on timeout. Raises
    OSError when the port cannot be bound.
    """

    host, port = _loopback_address(redirect_uri)
    server = HTTPServer((host, port), _OAuthCallbackHandler)
    server.oauth_params = None  # type: ignore[attr-defined]
    server.timeout = 1.0

    deadline = time.monotonic() + float(timeout)
    result: Optional[Dict[str, str]] = None
    try:
        while time.monotonic() < deadline:
            server.handle_request()
            result = server.oauth_params  # type: ignore[attr-defined]
            if result:
                # Serve the stripped follow-up request so the tab shows a page.
                server.timeout = 2.0
                server.handle_request()
                break
    finally:
        server.server_close()

    return result or {}
