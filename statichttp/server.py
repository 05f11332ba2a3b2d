"""Bounded-concurrency TCP connection dispatcher."""
from __future__ import annotations

import logging
import socket
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

ConnectionHandler = Callable[[socket.socket, str], None]


class ConnectionDispatcher:
    """Accepts connections and runs each on its own thread.

    A bounded semaphore holds ``max_concurrent`` slots. A slot is taken after
    ``accept()`` returns and before the handler thread starts, and given back
    when the handler finishes, so at most ``max_concurrent`` handlers are ever
    active. Connections waiting for a slot stay queued in the accept backlog.
    """

    def __init__(
        self,
        host: str,
        port: int,
        handler: ConnectionHandler,
        *,
        max_concurrent: int = 4,
        socket_timeout: Optional[float] = None,
        backlog: int = 128,
        poll_interval: float = 0.5,
    ) -> None:
        self.host = host
        self.port = port
        self.max_concurrent = max_concurrent
        self.socket_timeout = socket_timeout
        self.backlog = backlog
        self.poll_interval = poll_interval
        self._handler = handler
        self._slots = threading.BoundedSemaphore(max_concurrent)
        self._stopping = threading.Event()
        self._socket: Optional[socket.socket] = None

    @property
    def server_address(self) -> tuple[str, int]:
        if self._socket is None:
            raise RuntimeError("dispatcher is not bound")
        return self._socket.getsockname()[:2]

    def bind(self) -> None:
        """Create the listening socket; raises ``OSError`` if binding fails."""

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(self.backlog)
        except OSError:
            sock.close()
            raise
        sock.settimeout(self.poll_interval)
        self._socket = sock
        LOGGER.info("listening on %s:%s", *self.server_address)

    def run(self) -> None:
        """Bind and accept connections until :meth:`shutdown` is called."""

        self.bind()
        self.serve_forever()

    def serve_forever(self) -> None:
        if self._socket is None:
            raise RuntimeError("dispatcher is not bound")
        listener = self._socket
        while not self._stopping.is_set():
            try:
                conn, address = listener.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if self._stopping.is_set():
                    break
                LOGGER.warning("error accepting connection", extra={"detail": str(exc)})
                continue
            self._dispatch(conn, address)

    def shutdown(self) -> None:
        self._stopping.set()
        if self._socket is not None:
            self._socket.close()

    def _dispatch(self, conn: socket.socket, address: tuple) -> None:
        client_ip = str(address[0]) if address else "unknown"
        conn.settimeout(self.socket_timeout)
        self._slots.acquire()
        worker = threading.Thread(
            target=self._run_handler,
            args=(conn, client_ip),
            name=f"conn-{client_ip}",
            daemon=True,
        )
        try:
            worker.start()
        except RuntimeError:
            self._slots.release()
            conn.close()
            LOGGER.exception("could not start handler thread", extra={"client_ip": client_ip})

    def _run_handler(self, conn: socket.socket, client_ip: str) -> None:
        try:
            with conn:
                self._handler(conn, client_ip)
        except Exception:  # noqa: BLE001
            LOGGER.exception("error handling client", extra={"client_ip": client_ip})
        finally:
            self._slots.release()
