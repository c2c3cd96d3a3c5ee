"""
HTTP transport: FastAPI + uvicorn to receive, requests to send.

Each node serves ``POST /messages`` (one JSON message per request) and
``GET /health``. The server runs in a background thread on a socket bound up
front, so a worker on port 0 knows its ephemeral port before it advertises
it.
"""

import json
import logging
import socket
import threading
import time
from typing import Optional

import requests
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..exceptions import PeerUnavailable, ProtocolError
from ..schemas.messages import Endpoint, decode_message, encode_message
from .base import Transport

logger = logging.getLogger(__name__)

SERVER_START_TIMEOUT = 10.0


def send_message(peer: Endpoint, message: BaseModel, timeout: float = 10.0) -> None:
    """
    POST one message to a peer's /messages endpoint.

    Raises:
        PeerUnavailable: Connection failure, timeout or a 5xx response
        ProtocolError: The peer rejected the message (4xx)
    """
    url = f"{peer.url}/messages"
    try:
        response = requests.post(url, json=encode_message(message), timeout=timeout)
    except (requests.ConnectionError, requests.Timeout) as e:
        raise PeerUnavailable(peer, str(e)) from e

    if response.status_code >= 500:
        raise PeerUnavailable(peer, f"HTTP {response.status_code}")
    if response.status_code >= 400:
        raise ProtocolError(
            f"{peer} rejected {message.intent} (HTTP {response.status_code}): {response.text}"
        )


def create_app(transport: Transport, role: str) -> FastAPI:
    """Build the FastAPI app that feeds received messages to ``transport``."""
    app = FastAPI(title=f"distfactor {role}", docs_url=None, redoc_url=None)

    @app.post("/messages", status_code=202)
    async def receive_message(request: Request):
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Rejected message with invalid JSON: {e}")
            raise HTTPException(status_code=400, detail="Body is not valid JSON")

        try:
            message = decode_message(payload)
        except ProtocolError as e:
            logger.warning(str(e))
            raise HTTPException(status_code=400, detail=str(e))

        if message is None:
            logger.debug(f"Ignoring message with unknown intent {payload.get('intent')!r}")
            return JSONResponse(status_code=202, content={"status": "ignored"})

        transport.deliver(message)
        return {"status": "accepted", "intent": message.intent}

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "role": role, "endpoint": str(transport.endpoint)}

    return app


class HttpTransport(Transport):
    """
    Serve one node over HTTP.

    Args:
        bind_host: Address to bind
        port: Port to bind, 0 for an ephemeral port
        advertise_host: Host name peers use to call back
        role: Node role reported by /health
        timeout: Per-request timeout for outgoing messages
    """

    def __init__(self, bind_host: str, port: int, advertise_host: str,
                 role: str = "node", timeout: float = 10.0):
        super().__init__()
        self.bind_host = bind_host
        self.port = port
        self.advertise_host = advertise_host
        self.role = role
        self.timeout = timeout
        self.app = create_app(self, role)
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(host=self.advertise_host, port=self.port)

    def _open(self) -> None:
        # OSError here (port in use) is fatal for the node
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.bind_host, self.port))
        self.port = sock.getsockname()[1]
        self._socket = sock

        config = uvicorn.Config(self.app, log_level="warning", lifespan="off")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name=f"{self.role}-http",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + SERVER_START_TIMEOUT
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                raise OSError(f"HTTP server for {self.role} failed to start on port {self.port}")
            time.sleep(0.05)
        self.logger.info(f"{self.role} listening on {self.bind_host}:{self.port} as {self.endpoint}")

    def send(self, peer: Endpoint, message: BaseModel) -> None:
        send_message(peer, message, timeout=self.timeout)

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        if self._socket is not None:
            self._socket.close()
            self._socket = None
