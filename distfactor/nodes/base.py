"""
Common plumbing for coordinator, dispatcher and worker nodes.

A node owns a transport and a stop event. Handlers compute what to send while
holding the node's lock and call send_all() after releasing it.
"""

import logging
import threading
from typing import Callable, Dict, Iterable, Optional, Tuple, Type

from pydantic import BaseModel

from ..config import NetworkSettings
from ..exceptions import PeerUnavailable, ProtocolError
from ..schemas.messages import Endpoint
from ..transport.base import Transport

Outgoing = Tuple[Endpoint, BaseModel]


class Node:
    """Base class: message routing, retrying sends and shutdown."""

    role = "node"

    def __init__(self, transport: Transport, network: Optional[NetworkSettings] = None):
        self.transport = transport
        self.network = network or NetworkSettings()
        self.stop_event = threading.Event()
        self.logger = logging.getLogger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        self._handlers: Dict[Type[BaseModel], Callable[[BaseModel], None]] = {}

    def on(self, message_type: Type[BaseModel], handler: Callable[[BaseModel], None]) -> None:
        self._handlers[message_type] = handler

    @property
    def endpoint(self) -> Endpoint:
        return self.transport.endpoint

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def start(self) -> None:
        self.transport.start(self.handle)

    def handle(self, message: BaseModel) -> None:
        handler = self._handlers.get(type(message))
        if handler is None:
            self.logger.debug(f"{self.role} ignores {message.intent} messages")
            return
        handler(message)

    def send(self, peer: Endpoint, message: BaseModel, retry: bool = True) -> bool:
        """
        Send with exponential backoff while the peer is unavailable.

        Retries stop once the node is stopped; a rejected message is never
        retried.

        Returns:
            True if the peer accepted the message
        """
        delay = self.network.retry_initial_delay
        attempt = 1
        while True:
            try:
                self.transport.send(peer, message)
                return True
            except ProtocolError as e:
                self.logger.error(f"{message.intent} to {peer} rejected: {e}")
                return False
            except PeerUnavailable as e:
                if not retry or self.stopped:
                    self.logger.warning(f"Giving up on {message.intent} to {peer}: {e}")
                    return False
                self.logger.warning(
                    f"{message.intent} to {peer} failed (attempt {attempt}): {e}. "
                    f"Retrying in {delay:.1f}s..."
                )
                if self.stop_event.wait(delay):
                    self.logger.info(f"Stopped while retrying {message.intent} to {peer}")
                    return False
                delay = min(delay * self.network.retry_backoff, self.network.retry_max_delay)
                attempt += 1

    def send_all(self, outbox: Iterable[Outgoing], retry: bool = True) -> None:
        for peer, message in outbox:
            self.send(peer, message, retry=retry)

    def stop(self) -> None:
        """Enter the terminal state and close the listening endpoint."""
        if self.stop_event.is_set():
            return
        self.stop_event.set()
        self.transport.stop()
        self.logger.info(f"{self.role} at {self.endpoint} stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until stopped. Returns False on timeout."""
        return self.stop_event.wait(timeout)
