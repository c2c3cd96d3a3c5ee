"""Exception hierarchy shared by all tiers."""


class DistFactorError(Exception):
    """Base class for errors raised by distfactor."""


class TransportError(DistFactorError):
    """A message could not be moved between two peers."""


class PeerUnavailable(TransportError):
    """The peer could not be reached. Retryable."""

    def __init__(self, peer, reason: str = ""):
        self.peer = peer
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Peer {peer} unavailable{detail}")


class ProtocolError(TransportError):
    """The peer rejected the message as malformed. Not retryable."""
