"""HTTP transport for hypibole.

Decodes ``?pin=<id>&op=get|set&level=high|low`` query strings into operation
requests, runs them through the executor and answers with a JSON object.
"""

from __future__ import annotations

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit
import json
import logging
import os
import socket
import threading

from .executor import BoardExecutor
from .operations import Failure, FailureKind, Operation, OperationRequest, Outcome

LOGGER = logging.getLogger(__name__)

PIN_PARAM = "pin"
OPERATION_PARAM = "op"
LEVEL_PARAM = "level"
BOARD_ERROR_PREFIX = "Failed to perform board operation: "

STATUS_BY_KIND = {
    FailureKind.VALIDATION: 400,
    FailureKind.RESOLUTION: 404,
    FailureKind.LIFECYCLE: 409,
    FailureKind.HARDWARE: 500,
}


class RequestError(ValueError):
    """Raised when a query string does not describe a board operation."""


def decode_request(query: str) -> OperationRequest:
    """Decode a URL query string into an OperationRequest."""
    if not query:
        raise RequestError("No arguments in URL.")

    pin: Optional[str] = None
    operation: Optional[str] = None
    level: Optional[str] = None
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == PIN_PARAM:
            pin = value
        elif key == OPERATION_PARAM:
            operation = value
        elif key == LEVEL_PARAM:
            level = value
        else:
            raise RequestError(f'Unrecognized query parameter: "{key}"')

    if pin is None or not pin.strip():
        raise RequestError("Did not get required pin argument.")
    if operation is None:
        raise RequestError("Did not get required operation argument.")
    try:
        op = Operation.parse(operation)
    except ValueError as exc:
        raise RequestError(str(exc)) from exc
    return OperationRequest(pin=pin, operation=op, level=level if op is Operation.SET else None)


def encode_outcome(outcome: Outcome) -> Dict[str, str]:
    """Encode an executor outcome as the JSON response object."""
    if isinstance(outcome, Failure):
        return {"error": f'{BOARD_ERROR_PREFIX}"{outcome.message}"'}
    return {
        "status": "success",
        "operation": outcome.operation.value,
        "pin": outcome.pin,
        "level": outcome.level.value,
    }


def respond_to_query(executor: BoardExecutor, query: str) -> Tuple[int, Dict[str, Any]]:
    """Return (HTTP status, JSON body) for one operation query."""
    try:
        request = decode_request(query)
    except RequestError as exc:
        return 400, {"error": str(exc)}
    outcome = executor.execute(request)
    if isinstance(outcome, Failure):
        return STATUS_BY_KIND.get(outcome.kind, 500), encode_outcome(outcome)
    return 200, encode_outcome(outcome)


class BoardRequestHandler(BaseHTTPRequestHandler):
    """One request per thread; every answer is a JSON object."""

    server: "_BoardHTTPServer"
    server_version = "hypibole"

    def do_GET(self) -> None:
        url = urlsplit(self.path)
        if url.path == "/health":
            self._respond(200, {"status": "ok", "pins": len(self.server.executor.registry)})
            return
        status, body = respond_to_query(self.server.executor, url.query)
        self._respond(status, body)

    def _respond(self, status: int, data: Dict[str, Any]) -> None:
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args: Any) -> None:
        LOGGER.debug("%s %s", self.address_string(), format % args)


class _BoardHTTPServer(ThreadingHTTPServer):
    def __init__(self, address: Tuple[str, int], executor: BoardExecutor, sock: Optional[socket.socket] = None) -> None:
        self.executor = executor
        if sock is None:
            super().__init__(address, BoardRequestHandler)
            return
        super().__init__(address, BoardRequestHandler, bind_and_activate=False)
        self.socket.close()
        self.socket = sock
        self.server_address = sock.getsockname()


class HttpServer:
    """Threaded HTTP front end for a BoardExecutor."""

    def __init__(self, executor: BoardExecutor, address: str = "0.0.0.0", port: int = 8080) -> None:
        self._executor = executor
        self._address = address
        self._port = port
        self._stop_event = threading.Event()
        self._server = self._create_server()

    @property
    def port(self) -> int:
        return int(self._server.server_address[1])

    def serve_forever(self) -> None:
        """Serve until stop() is called."""
        LOGGER.info("HTTP listening on %s:%s", self._server.server_address[0], self.port)
        try:
            if not self._stop_event.is_set():
                self._server.serve_forever()
        finally:
            self._server.server_close()

    def stop(self) -> None:
        """Stop accepting new requests (safe to call from a signal handler)."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        threading.Thread(target=self._server.shutdown, name="hypibole_http_stop", daemon=True).start()

    def _create_server(self) -> _BoardHTTPServer:
        sock = systemd_listen_socket()
        if sock is not None:
            LOGGER.info("Using systemd-activated socket")
            return _BoardHTTPServer((self._address, self._port), self._executor, sock)
        return _BoardHTTPServer((self._address, self._port), self._executor)


def systemd_listen_socket() -> Optional[socket.socket]:
    """Return a socket from systemd activation if present, else None."""
    listen_pid = os.environ.get("LISTEN_PID")
    listen_fds = int(os.environ.get("LISTEN_FDS", "0"))
    if not listen_pid or int(listen_pid) != os.getpid() or listen_fds < 1:
        return None
    return socket.socket(fileno=3)
