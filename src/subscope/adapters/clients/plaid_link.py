"""Local browser harness for the external Plaid Link widget.

Serves a page that opens Plaid Link with a connection token and captures the
one-time ``public_token`` that Plaid hands back on success.
"""

from __future__ import annotations

from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
import json
import queue
import ssl
import threading
from typing import Any, cast
import urllib.parse
import webbrowser

from loguru import logger

from subscope.core.config import LinkServerConfig


class LinkFlowError(Exception):
    """Base error for the local bank-linking flow."""


class RedirectServerError(LinkFlowError):
    """Raised when the local link server cannot be started."""


class PublicTokenTimeoutError(LinkFlowError):
    """Raised when we time out waiting for a Plaid public_token."""


class BrowserOpenError(LinkFlowError):
    """Raised when the link page cannot be opened automatically."""


START_PATH = "/link-start"
COMPLETE_PATH = "/link-complete"


_PAGE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8" />
  <title>{title}</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 3rem; }}
    .panel {{ max-width: 34rem; padding: 1.5rem 2rem; border-radius: 8px; }}
    .info {{ background: #f4f7fe; border: 1px solid #d5def7; }}
    .ok {{ background: #f1faf5; border: 1px solid #bfe3cf; color: #14613b; }}
    .fail {{ background: #fdf3f3; border: 1px solid #efbcbc; color: #8c1d1d; }}
  </style>
</head>
<body>
  <div id="panel" class="panel {tone}">
    <h2>{heading}</h2>
    <p>{text}</p>
  </div>
{script}</body>
</html>
"""


def _page(title: str, heading: str, text: str, tone: str, script: str = "") -> str:
    return _PAGE.format(
        title=title, heading=heading, text=text, tone=tone, script=script
    )


LINKED_PAGE = _page(
    "Bank linked",
    "Bank linked",
    "Recurring charges are loading in your terminal. You can close this tab.",
    "ok",
)
LINK_FAILED_PAGE = _page(
    "Bank link failed",
    "Bank link failed",
    "Plaid Link did not finish. Go back to the terminal and try again.",
    "fail",
)

# Plaid's onSuccess hands over the public_token, which is posted back here.
_LINK_SCRIPT = """\
  <script src="https://cdn.plaid.com/link/v2/stable/link-initialize.js"></script>
  <script>
    function show(heading, text, tone) {{
      var panel = document.getElementById("panel");
      panel.className = "panel " + tone;
      panel.innerHTML = "<h2>" + heading + "</h2><p>" + text + "</p>";
    }}
    Plaid.create({{
      token: {link_token},{received_redirect}
      onSuccess: function(publicToken) {{
        show("Saving connection...", "", "info");
        fetch("{complete_path}", {{
          method: "POST",
          headers: {{ "Content-Type": "application/json" }},
          body: JSON.stringify({{ public_token: publicToken }})
        }}).then(function(resp) {{
          if (resp.ok) {{
            show("Bank linked", "You can close this tab.", "ok");
          }} else {{
            show("Bank link failed", "Try again from the terminal.", "fail");
          }}
        }}, function() {{
          show("Bank link failed", "Try again from the terminal.", "fail");
        }});
      }},
      onExit: function(err) {{
        if (err) {{
          show("Bank link failed", "Try again from the terminal.", "fail");
        }} else {{
          show("Cancelled", "Plaid Link was closed before finishing.", "info");
        }}
      }}
    }}).open();
  </script>
"""


def _js_string(value: str) -> str:
    # Angle brackets are escaped so the value cannot close the script element.
    return json.dumps(value).replace("<", "\\u003c").replace(">", "\\u003e")


def render_link_page(link_token: str, *, oauth_resume: bool = False) -> str:
    """Build the page that opens Plaid Link for ``link_token``.

    ``oauth_resume`` re-enters Link after a bank's OAuth redirect, which Plaid
    requires to be handed the page URL it came back to.
    """
    received_redirect = ""
    if oauth_resume:
        received_redirect = "\n      receivedRedirectUri: window.location.href,"
    script = _LINK_SCRIPT.format(
        link_token=_js_string(link_token),
        received_redirect=received_redirect,
        complete_path=COMPLETE_PATH,
    )
    if oauth_resume:
        heading = "Finishing connection..."
    else:
        heading = "Connecting to your bank..."
    return _page(
        "Connect a bank",
        heading,
        "Plaid Link gives read-only access to recent transactions so recurring "
        "charges can be found. Nothing is moved and no credentials are stored.",
        "info",
        script,
    )


def _create_ssl_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    except (OSError, ssl.SSLError) as e:
        raise RedirectServerError(
            f"Cannot load TLS certificate {cert_path!r} / key {key_path!r}: {e}"
        ) from e
    return context


def _build_link_handler(
    token_queue: queue.Queue[str],
    link_token: str,
) -> type[BaseHTTPRequestHandler]:
    class LinkHandler(BaseHTTPRequestHandler):
        def _send_html_response(self, body: str, status: HTTPStatus) -> None:
            body_bytes = body.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "text/html; charset=utf-8")
            self.send_header("Content-Length", str(len(body_bytes)))
            self.end_headers()
            self.wfile.write(body_bytes)

        def do_GET(self) -> None:  # noqa: N802
            parsed = urllib.parse.urlparse(self.path)

            if parsed.path == START_PATH:
                self._send_html_response(render_link_page(link_token), HTTPStatus.OK)
                return

            if parsed.path != COMPLETE_PATH:
                self.send_error(HTTPStatus.NOT_FOUND, "Not Found")
                return

            params = urllib.parse.parse_qs(parsed.query)
            public_token = params.get("public_token", [None])[0]

            # Some flows redirect here with the token in the query string.
            if public_token:
                logger.debug("Received public_token via redirect query")
                token_queue.put(public_token)
                self._send_html_response(LINKED_PAGE, HTTPStatus.OK)
                return

            # OAuth institutions land here mid-flow; reopen Link to finish.
            self._send_html_response(
                render_link_page(link_token, oauth_resume=True), HTTPStatus.OK
            )

        def do_POST(self) -> None:  # noqa: N802
            parsed = urllib.parse.urlparse(self.path)
            if parsed.path != COMPLETE_PATH:
                self.send_error(HTTPStatus.NOT_FOUND, "Not Found")
                return

            try:
                content_length = int(self.headers.get("Content-Length", "0"))
            except ValueError:
                content_length = 0

            raw_body = self.rfile.read(content_length).decode("utf-8")
            public_token: str | None = None
            if raw_body:
                try:
                    data = json.loads(raw_body)
                except json.JSONDecodeError:
                    public_token = raw_body.strip() or None
                else:
                    if isinstance(data, dict) and isinstance(
                        data.get("public_token"), str
                    ):
                        public_token = data["public_token"] or None

            if public_token:
                logger.debug("Received public_token via POST")
                token_queue.put(public_token)
                self._send_html_response(LINKED_PAGE, HTTPStatus.OK)
            else:
                self._send_html_response(LINK_FAILED_PAGE, HTTPStatus.BAD_REQUEST)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A003
            logger.debug("Link server: {}", format % args)

    return LinkHandler


def start_link_server(
    *,
    host: str,
    port: int,
    link_token: str,
    token_queue: queue.Queue[str],
    ssl_context: ssl.SSLContext | None = None,
) -> tuple[ThreadingHTTPServer, threading.Thread, str, int]:
    """Start the local link server in a daemon thread."""
    handler_cls = _build_link_handler(token_queue, link_token)
    try:
        server = ThreadingHTTPServer((host, port), handler_cls)
    except OSError as e:
        raise RedirectServerError(
            f"Failed to start link server on {host}:{port}: {e}"
        ) from e
    if ssl_context is not None:
        server.socket = ssl_context.wrap_socket(server.socket, server_side=True)

    thread = threading.Thread(
        target=server.serve_forever,
        name="PlaidLinkServer",
        daemon=True,
    )
    thread.start()

    server_address: tuple[str, int] = cast(tuple[str, int], server.server_address)
    actual_host, actual_port = server_address
    logger.debug("Link server listening on {}:{}", actual_host, actual_port)
    return server, thread, actual_host, actual_port


def shutdown_link_server(
    server: ThreadingHTTPServer,
    server_thread: threading.Thread,
) -> None:
    """Stop the local link server."""
    server.shutdown()
    server.server_close()
    server_thread.join(timeout=1)


def wait_for_public_token(
    token_queue: queue.Queue[str],
    *,
    timeout_seconds: float,
) -> str:
    """Block until a public_token is received or the timeout elapses."""
    try:
        return token_queue.get(timeout=timeout_seconds)
    except queue.Empty:
        raise PublicTokenTimeoutError(
            "Timed out waiting for Plaid Link to return a public_token."
        ) from None


def open_link_in_browser(link_url: str) -> None:
    """Open the link page in the user's browser.

    Raises:
        BrowserOpenError: If no browser could be launched.
    """
    opened = webbrowser.open(link_url, new=1)
    if not opened:
        raise BrowserOpenError(
            "Unable to open browser automatically. "
            f"Please open this URL manually: {link_url}"
        )


def build_link_url(*, host: str, port: int, use_tls: bool) -> str:
    # Plaid allowlists usually name localhost rather than the loopback address.
    if host in {"127.0.0.1", "0.0.0.0", "::", ""}:  # noqa: S104
        host = "localhost"
    scheme = "https" if use_tls else "http"
    return f"{scheme}://{host}:{port}{START_PATH}"


class BrowserPublicTokenSource:
    """Runs Plaid Link in the browser and returns the resulting public_token.

    Blocking; callers on an event loop should run it in a worker thread.
    """

    def __init__(self, config: LinkServerConfig) -> None:
        self._config = config

    def __call__(self, link_token: str) -> str:
        ssl_context = None
        if self._config.use_tls:
            ssl_context = _create_ssl_context(
                cast(str, self._config.ssl_cert_path),
                cast(str, self._config.ssl_key_path),
            )

        token_queue: queue.Queue[str] = queue.Queue()
        server, server_thread, actual_host, actual_port = start_link_server(
            host=self._config.host,
            port=self._config.port,
            link_token=link_token,
            token_queue=token_queue,
            ssl_context=ssl_context,
        )
        try:
            link_url = build_link_url(
                host=actual_host, port=actual_port, use_tls=self._config.use_tls
            )
            logger.info("Opening Plaid Link at {}", link_url)
            open_link_in_browser(link_url)
            return wait_for_public_token(
                token_queue, timeout_seconds=self._config.timeout_seconds
            )
        finally:
            shutdown_link_server(server, server_thread)
