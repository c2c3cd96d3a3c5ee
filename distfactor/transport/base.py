"""
Transport abstraction shared by every node.

A transport owns one listening endpoint. Each received message is handed to
the node's handler on its own thread, so a slow handler never blocks the
accept loop and a handler may send to (and wait on) other nodes.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

from pydantic import BaseModel

from ..schemas.messages import Endpoint

MessageHandler = Callable[[BaseModel], None]


class Transport(ABC):
    """Send messages to peers and deliver received ones to a handler."""

    def __init__(self):
        self._handler: Optional[MessageHandler] = None
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def endpoint(self) -> Endpoint:
        """The endpoint peers use to reach this transport. Valid after start()."""

    @abstractmethod
    def _open(self) -> None:
        """Begin accepting messages."""

    @abstractmethod
    def send(self, peer: Endpoint, message: BaseModel) -> None:
        """
        Send one message to a peer.

        Raises:
            PeerUnavailable: If the peer cannot be reached (retryable)
            ProtocolError: If the peer rejected the message
        """

    @abstractmethod
    def stop(self) -> None:
        """Stop accepting messages. Safe to call more than once."""

    def start(self, handler: MessageHandler) -> None:
        self._handler = handler
        self._open()

    def deliver(self, message: BaseModel) -> threading.Thread:
        """Run the handler for one received message on a fresh thread."""
        thread = threading.Thread(
            target=self._run_handler,
            args=(message,),
            name=f"{self.endpoint}-{getattr(message, 'intent', 'message')}",
            daemon=True,
        )
        thread.start()
        return thread

    def _run_handler(self, message: BaseModel) -> None:
        if self._handler is None:
            self.logger.warning(f"No handler installed, dropping {getattr(message, 'intent', message)}")
            return
        try:
            self._handler(message)
        except Exception:
            # The handling thread ends here; the node keeps serving
            self.logger.exception(f"Handler failed for {getattr(message, 'intent', message)} message")
