"""
Socket transport.

Sends encoded requests over a connected UDP or TCP socket and waits for
the matching reply, retrying on timeout. Any connection issue that
makes the socket unusable is reported as fatal so the process exits and
the connection is re-initialised on the next start.
"""

import logging
import select
import socket
import threading
import time
from typing import Optional, Tuple

from ..core.exceptions import (
    CodecError,
    ConfigError,
    ExchangeInterrupted,
    FatalExchangeError,
    RecoverableExchangeError,
)
from .base import PacketCodec, Reply, Request, Transport


logger = logging.getLogger(__name__)

DEFAULT_PORT = 1812
MAX_PACKET_SIZE = 4096


def parse_server(text: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    Split ``host[:port]`` into host and port.

    IPv6 addresses with a port must be bracketed (``[::1]:1812``).
    """
    text = text.strip()
    port_text = ""

    if text.startswith("["):
        host, sep, rest = text[1:].partition("]")
        if not sep or (rest and not rest.startswith(":")):
            raise ConfigError(f"Invalid server address \"{text}\"")
        port_text = rest[1:]
    elif text.count(":") == 1:
        host, port_text = text.split(":")
    else:
        host = text

    if not host:
        raise ConfigError(f"Invalid server address \"{text}\"")

    if not port_text:
        return host, default_port

    if not port_text.isdigit() or not 0 < int(port_text) < 65536:
        raise ConfigError(f"Invalid port \"{port_text}\"")
    return host, int(port_text)


def open_socket(
    host: str,
    port: int,
    protocol: str = "udp",
    family: int = socket.AF_UNSPEC,
) -> socket.socket:
    """Resolve the server and return a socket connected to it."""
    socktype = socket.SOCK_STREAM if protocol == "tcp" else socket.SOCK_DGRAM

    try:
        candidates = socket.getaddrinfo(host, port, family, socktype)
    except socket.gaierror as e:
        raise ConfigError(f"Failed resolving {host}: {e}") from e

    last_error: Optional[OSError] = None
    for af, st, proto, _, address in candidates:
        sock = socket.socket(af, st, proto)
        try:
            sock.connect(address)
        except OSError as e:
            sock.close()
            last_error = e
            continue
        logger.debug(f"Connected {protocol} socket to {address}")
        return sock

    raise ConfigError(f"Failed connecting to server {host}:{port}: {last_error}")


class SocketTransport(Transport):
    """
    Request/reply exchange over a connected socket.

    Only one request is ever outstanding. Replies carrying another
    identifier (late answers to an earlier request) are discarded.
    """

    def __init__(
        self,
        sock: socket.socket,
        codec: PacketCodec,
        secret: str,
        stop: Optional[threading.Event] = None,
    ):
        self.sock = sock
        self.codec = codec
        self.secret = secret
        self.stop = stop or threading.Event()

    def exchange(self, request: Request, retries: int, timeout: float) -> Reply:
        try:
            data = self.codec.encode(request, self.secret)
        except CodecError as e:
            raise FatalExchangeError(f"Failed encoding request: {e}", e) from e

        logger.debug(f"Sending request id {request.id} code {request.code} ({len(data)} bytes)")

        for attempt in range(1, retries + 1):
            if self.stop.is_set():
                raise ExchangeInterrupted("Stop requested, abandoning request")

            try:
                self.sock.send(data)
            except OSError as e:
                raise FatalExchangeError(f"Failed sending: {e}", e) from e

            reply = self._wait_reply(request, timeout)
            if reply is not None:
                logger.debug(f"Received reply id {reply.id} code {reply.code} ({len(reply.values)} attributes)")
                return reply

            logger.debug(f"Response timeout.  Retrying {attempt}/{retries}...")

        raise RecoverableExchangeError("Server didn't respond")

    def _wait_reply(self, request: Request, timeout: float) -> Optional[Reply]:
        """Wait up to ``timeout`` seconds for the reply; None on timeout."""
        deadline = time.monotonic() + timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None

            try:
                readable, _, _ = select.select([self.sock], [], [], remaining)
            except (OSError, ValueError) as e:
                raise FatalExchangeError(f"Select failed: {e}", e) from e

            if not readable:
                return None

            try:
                data = self.sock.recv(MAX_PACKET_SIZE)
            except OSError as e:
                raise RecoverableExchangeError(f"Failed receiving reply: {e}", e) from e

            if not data:
                if self.sock.type == socket.SOCK_STREAM:
                    raise FatalExchangeError("Connection closed by server")
                continue

            try:
                reply = self.codec.decode(data, request, self.secret)
            except CodecError as e:
                raise RecoverableExchangeError(f"Failed decoding reply: {e}", e) from e

            if reply.id != request.id:
                logger.debug(f"Discarding reply id {reply.id}, waiting for {request.id}")
                continue

            return reply

    def close(self):
        self.sock.close()
