"""Backend transports delivering requests to the RADIUS server."""

from .base import PacketCodec, Reply, Request, Transport, load_codec
from .socket_transport import SocketTransport

__all__ = ["PacketCodec", "Reply", "Request", "Transport", "load_codec", "SocketTransport"]
