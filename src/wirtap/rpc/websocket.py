"""WebSocket relay transport.

Talks to an inspector relay that forwards selector dictionaries as JSON text
frames. Plist framing and device pairing live on the relay side.
"""

import json
import logging
import threading

import websocket

from wirtap.errors import NotConnectedError
from wirtap.rpc.client import RpcClient

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 5


class WebSocketRpcClient(RpcClient):
    """RpcClient over a websocket-client WebSocketApp.

    The socket runs in a daemon thread; incoming frames are dispatched on it.

    Args:
        url: Relay WebSocket URL, e.g. "ws://localhost:27753".
        **kwargs: Passed to RpcClient.
    """

    def __init__(self, url: str, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.ws_app: websocket.WebSocketApp | None = None
        self.ws_thread: threading.Thread | None = None

    def connect(self) -> None:
        """Open the relay socket.

        Raises:
            RuntimeError: If already connected.
            TimeoutError: If the socket does not open within 5 seconds.
        """
        if self.ws_app:
            raise RuntimeError("Already connected")

        logger.debug(f"Connecting to inspector relay at {self.url}")
        self.ws_app = websocket.WebSocketApp(
            self.url,
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close,
        )

        self.ws_thread = threading.Thread(
            target=self.ws_app.run_forever,
            kwargs={
                "ping_interval": 30,
                "ping_timeout": 10,
                "skip_utf8_validation": True,
            },
        )
        self.ws_thread.daemon = True
        self.ws_thread.start()

        if not self._connected.wait(timeout=CONNECT_TIMEOUT):
            self.disconnect()
            raise TimeoutError(f"Failed to connect to inspector relay at {self.url}")

    def disconnect(self) -> None:
        """Close the relay socket. Safe to call when not connected."""
        super().disconnect()

        with self._lock:
            ws_app = self.ws_app
            self.ws_app = None

        if ws_app:
            logger.debug("Disconnecting from inspector relay")
            ws_app.close()

        if self.ws_thread and self.ws_thread.is_alive() and self.ws_thread is not threading.current_thread():
            self.ws_thread.join(timeout=2)
        self.ws_thread = None

        self._handle_transport_closed("disconnected")

    def _send_message(self, message: dict) -> None:
        ws_app = self.ws_app
        if not ws_app:
            raise NotConnectedError("The RPC client is not connected. Call connect() before sending")
        try:
            ws_app.send(json.dumps(message))
        except websocket.WebSocketException as e:
            raise NotConnectedError(f"Failed to send to inspector relay: {e}") from e

    def _on_open(self, ws):
        logger.info(f"Inspector relay connected: {self.url}")
        self._connected.set()

    def _on_message(self, ws, message):
        try:
            data = json.loads(message)
        except ValueError as e:
            logger.error(f"Invalid frame from inspector relay: {e}")
            return
        self.receive(data)

    def _on_error(self, ws, error):
        logger.error(f"Inspector relay error: {error}")

    def _on_close(self, ws, code, reason):
        logger.info(f"Inspector relay closed: code={code} reason={reason}")
        with self._lock:
            self.ws_app = None
        self._handle_transport_closed(reason)


__all__ = ["WebSocketRpcClient"]
