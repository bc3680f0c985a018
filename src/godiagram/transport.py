"""WebSocket transport between observers and the live pipeline.

Each connection gets a handler thread (inbound edits) and a writer thread
(outbound queue plus heartbeat pings).  A failure on one connection only
ever closes that connection.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

from websockets.exceptions import ConnectionClosed
from websockets.sync.server import ServerConnection, serve

from godiagram.errors import TransportError, WireError
from godiagram.hub import ObserverConnection
from godiagram.wire import dumps, error_message, loads

if TYPE_CHECKING:
    from godiagram.pipeline import SyncPipeline

logger = logging.getLogger(__name__)

MAX_MESSAGE_SIZE = 512 * 1024
WRITE_TIMEOUT = 10.0


def _peer(websocket: ServerConnection) -> str:
    try:
        host, port = websocket.remote_address[:2]
    except (TypeError, ValueError):
        return "unknown"
    return f"{host}:{port}"


class ObserverServer:
    """Serve the pipeline's observers over WebSocket on the configured address."""

    def __init__(self, pipeline: SyncPipeline) -> None:
        self.pipeline = pipeline
        self._server = None

    def bind(self) -> None:
        """Open the listening socket (port 0 picks a free port)."""
        config = self.pipeline.config
        self._server = serve(
            self._handle,
            config.host,
            config.port,
            max_size=MAX_MESSAGE_SIZE,
        )
        logger.info("Listening on ws://%s:%d", config.host, self.port)

    @property
    def port(self) -> int:
        return self._server.socket.getsockname()[1]

    def serve_forever(self) -> None:
        if self._server is None:
            self.bind()
        self._server.serve_forever()

    def shutdown(self) -> None:
        """Close every observer queue, then stop the server."""
        self.pipeline.hub.close_all()
        if self._server is not None:
            self._server.shutdown()
            self._server = None

    # -- per connection -----------------------------------------------------

    def _handle(self, websocket: ServerConnection) -> None:
        conn = ObserverConnection(self.pipeline.config.queue_size, label=_peer(websocket))
        writer = threading.Thread(
            target=self._write_loop,
            args=(websocket, conn),
            name=f"godiagram-writer-{conn.id}",
            daemon=True,
        )
        self.pipeline.connect(conn)
        writer.start()
        try:
            self._read_loop(websocket, conn)
        except TransportError as e:
            logger.warning("Connection %s failed: %s", conn.label, e)
        finally:
            self.pipeline.disconnect(conn)
            websocket.close()
            writer.join(timeout=WRITE_TIMEOUT)

    def _read_loop(self, websocket: ServerConnection, conn: ObserverConnection) -> None:
        while not conn.closed.is_set():
            try:
                message = websocket.recv()
            except ConnectionClosed:
                return
            try:
                model = loads(message)
            except WireError as e:
                logger.warning("Error unmarshaling JSON from client %s: %s", conn.label, e)
                self._reply(conn, error_message(str(e)))
                continue
            results = self.pipeline.submit_edited_model(model)
            self._reply(conn, {"results": [r.to_dict() for r in results]})
            errors = [r.error for r in results if r.error]
            if errors:
                self._reply(conn, error_message("; ".join(errors)))
            logger.info("Processed update from client %s", conn.label)

    def _reply(self, conn: ObserverConnection, message: dict) -> None:
        if not conn.offer(message):
            raise TransportError("outbound queue full or closed")

    def _write_loop(self, websocket: ServerConnection, conn: ObserverConnection) -> None:
        config = self.pipeline.config
        next_ping = time.monotonic() + config.ping_period
        pong: threading.Event | None = None
        pong_deadline = 0.0
        try:
            while not conn.closed.is_set():
                now = time.monotonic()
                if pong is not None:
                    if pong.is_set():
                        pong = None
                    elif now >= pong_deadline:
                        logger.info("Heartbeat timeout for %s", conn.label)
                        break
                if pong is None and now >= next_ping:
                    pong = websocket.ping()
                    pong_deadline = now + config.pong_wait
                    next_ping = now + config.ping_period
                # Pings go out on schedule however busy the queue is.
                if pong is None:
                    wake = next_ping
                elif next_ping > now:
                    wake = min(next_ping, pong_deadline)
                else:
                    wake = pong_deadline
                message = conn.next_message(timeout=max(0.0, wake - now))
                if conn.closed.is_set():
                    break
                if message is None:
                    continue
                websocket.send(dumps(message))
                logger.debug("Sent message to client %s", conn.label)
        except ConnectionClosed as e:
            logger.debug("Connection %s closed: %s", conn.label, e)
        finally:
            conn.close()
            websocket.close()
