from .base import MessageHandler, Transport
from .http import HttpTransport, create_app
from .local import LocalNetwork, LocalTransport

__all__ = [
    "MessageHandler",
    "Transport",
    "HttpTransport",
    "create_app",
    "LocalNetwork",
    "LocalTransport",
]
