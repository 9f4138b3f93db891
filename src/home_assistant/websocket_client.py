import json
import logging
import ssl
import threading
from urllib.parse import urlparse, urlunparse

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from home_assistant.dispatch_sink import DispatchResult, DispatchSink
from pipeline.fan_out import DispatchRequest
from utils.logger import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

WEBSOCKET_PATH = "/api/websocket"


class SessionError(Exception):
    """The WebSocket session could not be established."""


class AuthenticationError(SessionError):
    """Home Assistant rejected the access token."""


def websocket_url(url: str) -> str:
    """
    WebSocket API address for a Home Assistant URL.

    http(s)://host:8123 becomes ws(s)://host:8123/api/websocket;
    ws:// and wss:// URLs are returned unchanged.
    """
    parsed = urlparse(url)
    if parsed.scheme in ("ws", "wss"):
        return url

    scheme = {"http": "ws", "https": "wss"}.get(parsed.scheme)
    if scheme is None:
        raise ValueError(f"Unsupported Home Assistant URL: {url}")

    path = parsed.path.rstrip("/") + WEBSOCKET_PATH
    return urlunparse((scheme, parsed.netloc, path, "", "", ""))


class HomeAssistantWebSocket(DispatchSink):
    """
    Stateful dispatch over one authenticated WebSocket session.

    Every call_service message carries an id, starting at 1 and increasing by
    one per message for the life of the session. Id allocation and the socket
    write happen under one lock, so ids reach the wire in order no matter
    which light's thread produced them. Result messages are read on a
    background thread and logged.
    """

    def __init__(
        self,
        url: str,
        access_token: str,
        verify_ssl: bool = True,
        auth_timeout: float = 10.0,
        connect=ws_connect,
    ):
        """
        Args:
            url: Home Assistant base URL or WebSocket URL
            access_token: Long-lived access token for authentication
            verify_ssl: Verify the server certificate for wss URLs
            auth_timeout: Seconds to wait for each handshake message
            connect: Factory returning a websockets sync client connection
        """
        self.url = websocket_url(url)
        self.access_token = access_token
        self.verify_ssl = verify_ssl
        self.auth_timeout = auth_timeout
        self._connect = connect

        self._connection = None
        self._reader = None
        self._write_lock = threading.Lock()
        self._next_id = 1
        self._closing = False

    @property
    def next_id(self) -> int:
        return self._next_id

    def open(self):
        """
        Connect and authenticate. Blocks until auth_ok is received.

        Raises:
            AuthenticationError: If the token is rejected or the server closes
                the connection before confirming it
            SessionError: If the connection cannot be established
        """
        if self._connection is not None:
            return

        kwargs = {}
        if self.url.startswith("wss://") and not self.verify_ssl:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
            kwargs["ssl"] = context

        try:
            connection = self._connect(self.url, **kwargs)
        except (OSError, WebSocketException) as e:
            raise SessionError(f"Could not connect to {self.url}: {e}") from e

        try:
            self._authenticate(connection)
        except BaseException:
            connection.close()
            raise

        self._closing = False
        self._connection = connection
        self._reader = threading.Thread(
            target=self._read_results, name="WebSocketReader", daemon=True
        )
        self._reader.start()

    def _authenticate(self, connection):
        connection.send(json.dumps({"type": "auth", "access_token": self.access_token}))

        while True:
            try:
                message = json.loads(connection.recv(timeout=self.auth_timeout))
            except ConnectionClosed as e:
                raise AuthenticationError(f"Connection closed during authentication: {e}") from e
            except TimeoutError as e:
                raise AuthenticationError("Timed out waiting for auth_ok") from e
            except ValueError as e:
                raise AuthenticationError(f"Malformed handshake message: {e}") from e

            kind = message.get("type")
            if kind == "auth_ok":
                logger.info(
                    f"Successfully authenticated with Home Assistant "
                    f"{message.get('ha_version', '')}".rstrip()
                )
                return
            if kind == "auth_invalid":
                raise AuthenticationError(message.get("message", "Invalid access token"))
            # auth_required greeting
            logger.debug(f"Handshake message: {kind}")

    def send(self, request: DispatchRequest) -> DispatchResult:
        with self._write_lock:
            if self._connection is None:
                return DispatchResult.failed(request, "session is not open")

            message = {
                "id": self._next_id,
                "type": "call_service",
                "domain": "light",
                "service": "turn_on",
                "service_data": request.to_service_data(),
            }
            try:
                payload = json.dumps(message)
            except (TypeError, ValueError) as e:
                return DispatchResult.failed(request, f"encoding: {e}")

            self._next_id += 1
            try:
                self._connection.send(payload)
            except (OSError, WebSocketException) as e:
                return DispatchResult.failed(request, str(e))

        return DispatchResult.ok(request)

    def _read_results(self):
        connection = self._connection
        try:
            for raw in connection:
                self._handle_message(raw)
        except ConnectionClosed as e:
            if not self._closing:
                logger.warning(f"WebSocket session closed: {e}")

    def _handle_message(self, raw):
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed message: {raw!r}")
            return

        if message.get("type") != "result":
            logger.debug(f"Ignoring {message.get('type')} message")
            return

        if message.get("success"):
            logger.debug(f"Command {message.get('id')} succeeded")
        else:
            error = message.get("error") or {}
            logger.warning(
                f"Command {message.get('id')} failed: "
                f"{error.get('code', 'unknown')} {error.get('message', '')}".rstrip()
            )

    def close(self):
        """Send a close frame and release the socket."""
        with self._write_lock:
            connection, self._connection = self._connection, None
            self._closing = True

        if connection is None:
            return

        try:
            connection.close()
        except (OSError, WebSocketException) as e:
            logger.warning(f"Failed to close WebSocket connection: {e}")

        if self._reader is not None:
            self._reader.join(timeout=self.auth_timeout)
            self._reader = None
