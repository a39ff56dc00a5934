"""
Live reload for watch mode.

A proxy dev server sits in front of the WordPress site (--sync=<url>),
injects a small client into every HTML page and rewrites the site's origin
to its own. The client listens on a WebSocket channel (port + 1) for
"reload" and "css-reload" messages broadcast after each rebuild.
"""

from __future__ import annotations

import asyncio
import json
import threading
import urllib.error
import urllib.request
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve as ws_serve
from websockets.exceptions import ConnectionClosed

from themekit.build.config import BuildOptions
from themekit.core.utils import log


# =============================================================================
# Injected Client Script
# =============================================================================

# __THEMEKIT_WS_PORT__ is substituted per response by inject_script().
LIVE_RELOAD_SCRIPT = """
<script>
(function () {
  var port = __THEMEKIT_WS_PORT__;
  var backoff = 500;

  function bustStylesheets() {
    var stamp = String(Date.now());
    document.querySelectorAll('link[rel="stylesheet"][href]').forEach(function (link) {
      var url = new URL(link.href, location.href);
      url.searchParams.set('themekit', stamp);
      link.href = url.toString();
    });
  }

  function open() {
    var socket = new WebSocket('ws://' + location.hostname + ':' + port + '/ws');
    socket.addEventListener('open', function () {
      backoff = 500;
      console.info('[themekit] live reload ready');
    });
    socket.addEventListener('message', function (event) {
      var payload = {};
      try { payload = JSON.parse(event.data); } catch (err) { return; }
      if (payload.type === 'css-reload') bustStylesheets();
      if (payload.type === 'reload') location.reload();
    });
    socket.addEventListener('close', function () {
      window.setTimeout(open, backoff);
      backoff = Math.min(backoff * 2, 5000);
    });
  }

  window.addEventListener('load', open);
})();
</script>
"""

# Headers that describe a single connection, never forwarded
HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


def inject_script(html: str, ws_port: int) -> str:
    """Insert the live reload client before </body> (or </html>, or at the end)."""
    script = LIVE_RELOAD_SCRIPT.replace("__THEMEKIT_WS_PORT__", str(ws_port))
    lowered = html.lower()
    for tag in ("</body>", "</html>"):
        index = lowered.rfind(tag)
        if index != -1:
            return html[:index] + script + "\n" + html[index:]
    return html + script


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def rewrite_origin(text: str, target_origin: str, proxy_origin: str) -> str:
    """Replace absolute links to the proxied site with links to the proxy.

    Covers the JSON-escaped form WordPress prints into inline scripts.
    """
    escaped_target = target_origin.replace("/", "\\/")
    escaped_proxy = proxy_origin.replace("/", "\\/")
    return text.replace(target_origin, proxy_origin).replace(escaped_target, escaped_proxy)


# =============================================================================
# Proxy HTTP Handler
# =============================================================================


class _NoRedirect(urllib.request.HTTPRedirectHandler):
    """Hand redirects back to the browser instead of following them."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


_OPENER = urllib.request.build_opener(_NoRedirect)


class ProxyHandler(BaseHTTPRequestHandler):
    """Forwards requests to the proxied site, injecting the reload client."""

    target: str = "http://localhost/"
    ws_port: int = 3001
    quiet: bool = True
    timeout_seconds: float = 30.0

    def log_message(self, format, *args):
        """Suppress default HTTP logging unless verbose."""
        if not self.quiet:
            super().log_message(format, *args)

    def do_GET(self):
        self._proxy()

    def do_HEAD(self):
        self._proxy()

    def do_POST(self):
        self._proxy()

    def do_PUT(self):
        self._proxy()

    def do_PATCH(self):
        self._proxy()

    def do_DELETE(self):
        self._proxy()

    def do_OPTIONS(self):
        self._proxy()

    @property
    def proxy_origin(self) -> str:
        host = self.headers.get("Host") or f"localhost:{self.server.server_address[1]}"
        return f"http://{host}"

    def _upstream_request(self) -> urllib.request.Request:
        target_origin = origin_of(self.target)
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else None

        headers = {
            key: value
            for key, value in self.headers.items()
            if key.lower() not in HOP_BY_HOP | {"host", "accept-encoding", "content-length"}
        }
        headers["Host"] = urlsplit(self.target).netloc
        # Form posts and AJAX calls carry the proxy origin; the site expects its own
        for key in ("Origin", "Referer"):
            if key in headers:
                headers[key] = rewrite_origin(headers[key], self.proxy_origin, target_origin)

        return urllib.request.Request(
            target_origin + self.path,
            data=body,
            headers=headers,
            method=self.command,
        )

    def _proxy(self) -> None:
        request = self._upstream_request()
        try:
            response = _OPENER.open(request, timeout=self.timeout_seconds)
        except urllib.error.HTTPError as e:
            response = e  # 3xx/4xx/5xx still carry a body worth forwarding
        except urllib.error.URLError as e:
            self.send_error(HTTPStatus.BAD_GATEWAY, f"Proxy target unreachable: {e.reason}")
            return

        with response:
            status = response.code
            content = response.read()
            content_type = response.headers.get("Content-Type", "")
            target_origin = origin_of(self.target)

            if "text/html" in content_type:
                charset = response.headers.get_content_charset() or "utf-8"
                text = content.decode(charset, errors="replace")
                text = inject_script(rewrite_origin(text, target_origin, self.proxy_origin), self.ws_port)
                content = text.encode(charset, errors="replace")

            self.send_response(status)
            for key, value in response.headers.items():
                lowered = key.lower()
                if lowered in HOP_BY_HOP or lowered in ("content-length", "content-encoding"):
                    continue
                if lowered == "location":
                    value = rewrite_origin(value, target_origin, self.proxy_origin)
                self.send_header(key, value)
            if "text/html" in content_type:
                self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
            self.send_header("Content-Length", str(len(content)))
            self.end_headers()
            if self.command != "HEAD":
                self.wfile.write(content)


# =============================================================================
# WebSocket Broadcast
# =============================================================================


class ReloadBroadcaster:
    """Set of connected browsers; each rebuild fans a JSON message out to all of them."""

    def __init__(self):
        self._clients: set[ServerConnection] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def handler(self, websocket: ServerConnection) -> None:
        self._clients.add(websocket)
        log.info(f"Browser connected, {self.client_count} listening")
        try:
            await websocket.wait_closed()
        finally:
            self._clients.discard(websocket)

    async def broadcast(self, message: dict) -> int:
        """Send `message` to every client; returns how many were addressed."""
        targets = list(self._clients)
        if targets:
            payload = json.dumps(message)
            results = await asyncio.gather(
                *(client.send(payload) for client in targets),
                return_exceptions=True,
            )
            for client, result in zip(targets, results):
                if isinstance(result, ConnectionClosed):
                    self._clients.discard(client)
                elif isinstance(result, BaseException):
                    raise result
        return len(targets)


async def _ws_process_request(connection, request):
    # Anything but the reload channel gets a plain 404 before the handshake.
    if request.path == "/ws":
        return None
    return connection.respond(HTTPStatus.NOT_FOUND, "Not found\n")


# =============================================================================
# Reload Server
# =============================================================================


class ReloadServer:
    """Proxy dev server plus the WebSocket reload channel."""

    def __init__(self, options: BuildOptions):
        self.options = options
        self.broadcaster = ReloadBroadcaster()
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._ws: Optional[Server] = None

    async def start(self) -> None:
        handler = type(
            "ThemeProxyHandler",
            (ProxyHandler,),
            {
                "target": self.options.sync,
                "ws_port": self.options.ws_port,
                "quiet": self.options.verbosity < 2,
            },
        )
        self._httpd = ThreadingHTTPServer(("", self.options.port), handler)
        threading.Thread(target=self._httpd.serve_forever, daemon=True).start()

        self._ws = await ws_serve(
            self.broadcaster.handler,
            "",
            self.options.ws_port,
            process_request=_ws_process_request,
        )

        log.success(f"Proxy: http://localhost:{self.options.port} -> {self.options.sync}")
        log.success(f"Live reload: ws://localhost:{self.options.ws_port}/ws")

    async def reload(self, reload_type: str = "reload") -> int:
        count = await self.broadcaster.broadcast({"type": reload_type})
        if self.options.verbosity >= 2:
            log.info(f"Live reload finished ({reload_type}, {count} browser{'s' if count != 1 else ''})")
        return count

    async def stop(self) -> None:
        if self._httpd is not None:
            await asyncio.to_thread(self._httpd.shutdown)
            self._httpd.server_close()
            self._httpd = None
        if self._ws is not None:
            self._ws.close()
            await self._ws.wait_closed()
            self._ws = None
