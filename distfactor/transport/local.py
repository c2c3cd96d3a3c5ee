"""
In-process transport.

LocalNetwork connects any number of LocalTransports inside one interpreter.
Every delivered message is a decoded copy, exactly as it would arrive over
HTTP, so nodes never share message objects.
"""

import itertools
import logging
import threading
from typing import Dict, List, Tuple

from pydantic import BaseModel

from ..exceptions import PeerUnavailable
from ..schemas.messages import Endpoint, copy_message
from .base import Transport

logger = logging.getLogger(__name__)

EPHEMERAL_PORT_START = 49152


class LocalNetwork:
    """Registry of live local transports, keyed by endpoint."""

    def __init__(self, host: str = "local"):
        self.host = host
        self._transports: Dict[Endpoint, "LocalTransport"] = {}
        self._ports = itertools.count(EPHEMERAL_PORT_START)
        self._lock = threading.Lock()
        self.sent: List[Tuple[Endpoint, BaseModel]] = []

    def transport(self, port: int = 0) -> "LocalTransport":
        """Create a transport on ``port``; 0 picks the next free ephemeral port."""
        with self._lock:
            if port == 0:
                port = next(self._ports)
        return LocalTransport(self, Endpoint(host=self.host, port=port))

    def register(self, transport: "LocalTransport") -> None:
        with self._lock:
            if transport.endpoint in self._transports:
                raise OSError(f"Address already in use: {transport.endpoint}")
            self._transports[transport.endpoint] = transport

    def unregister(self, transport: "LocalTransport") -> None:
        with self._lock:
            if self._transports.get(transport.endpoint) is transport:
                del self._transports[transport.endpoint]

    def route(self, peer: Endpoint, message: BaseModel) -> None:
        with self._lock:
            target = self._transports.get(peer)
            self.sent.append((peer, message))
        if target is None:
            raise PeerUnavailable(peer, "nothing listening")
        target.deliver(copy_message(message))

    def sent_to(self, peer: Endpoint) -> List[BaseModel]:
        with self._lock:
            return [message for endpoint, message in self.sent if endpoint == peer]


class LocalTransport(Transport):
    def __init__(self, network: LocalNetwork, endpoint: Endpoint):
        super().__init__()
        self.network = network
        self._endpoint = endpoint
        self._open_flag = False

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def _open(self) -> None:
        self.network.register(self)
        self._open_flag = True

    def send(self, peer: Endpoint, message: BaseModel) -> None:
        self.network.route(peer, message)

    def stop(self) -> None:
        if self._open_flag:
            self._open_flag = False
            self.network.unregister(self)
