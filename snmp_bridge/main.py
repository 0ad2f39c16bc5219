"""
SNMP Bridge - Main Entry Point.

Runs as a net-snmp ``pass_persist`` script, relaying SNMP get, getnext
and set operations to a RADIUS server and returning its answers.

stdout belongs to net-snmp; all diagnostics go to stderr or a log file.
"""

import argparse
import logging
import logging.handlers
import signal
import socket
import sys
import threading
from pathlib import Path
from typing import List, Optional

from . import __version__
from .core.config import BridgeConfig, LoggingConfig, get_default_config_path, read_secret_file
from .core.dictionary import AttributeDictionary
from .core.exceptions import BridgeError, StopRequested
from .agent.pass_persist import BridgeSchema, PassPersistSession, SessionState
from .transport.base import load_codec, parse_packet_code
from .transport.socket_transport import SocketTransport, open_socket, parse_server


logger = logging.getLogger(__name__)

ADDRESS_FAMILIES = {
    "any": socket.AF_UNSPEC,
    "ipv4": socket.AF_INET,
    "ipv6": socket.AF_INET6,
}

STOP_SIGNALS = ("SIGINT", "SIGTERM", "SIGQUIT", "SIGPIPE")


def version_string() -> str:
    return f"snmp-bridge version {__version__}"


def setup_logging(config: LoggingConfig):
    """Configure the root logger; never logs to stdout."""
    if config.file_path and config.file_path != "stderr":
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            config.file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)

    level = logging.DEBUG if config.debug_level > 0 else config.level.upper()
    logging.basicConfig(
        level=level,
        format=config.format,
        handlers=[handler],
        force=True,
    )


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="snmp-bridge",
        description="net-snmp pass_persist bridge to a RADIUS server",
        usage="%(prog)s [options] server[:port] <command> [<secret>]",
    )

    parser.add_argument(
        "server",
        nargs="?",
        default=None,
        help="RADIUS server, host[:port]"
    )

    parser.add_argument(
        "request_type",
        nargs="?",
        default=None,
        help="One of auth, acct, status, coa, disconnect or auto, or a packet code"
    )

    parser.add_argument(
        "secret",
        nargs="?",
        default=None,
        help="Shared secret"
    )

    family = parser.add_mutually_exclusive_group()
    family.add_argument(
        "-4",
        dest="address_family",
        action="store_const",
        const="ipv4",
        help="Use IPv4 address of server"
    )
    family.add_argument(
        "-6",
        dest="address_family",
        action="store_const",
        const="ipv6",
        help="Use IPv6 address of server"
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (YAML)"
    )

    parser.add_argument(
        "-D", "--dictionary",
        default=None,
        help="Attribute dictionary file (default: the packaged dictionary)"
    )

    parser.add_argument(
        "-l", "--log-file",
        default=None,
        help="Log output to file, or 'stderr'"
    )

    parser.add_argument(
        "-P", "--protocol",
        choices=["udp", "tcp"],
        default=None,
        help="Use proto (tcp or udp) for transport"
    )

    parser.add_argument(
        "-r", "--retries",
        type=int,
        default=None,
        help="If timeout, retry sending the packet 'retries' times"
    )

    parser.add_argument(
        "-S", "--secret-file",
        default=None,
        help="Read secret from file, not command line"
    )

    parser.add_argument(
        "-t", "--timeout",
        type=float,
        default=None,
        help="Wait 'timeout' seconds before retrying (may be a floating point number)"
    )

    parser.add_argument(
        "--codec",
        default=None,
        help="Packet codec as package.module:ClassName"
    )

    parser.add_argument(
        "-x",
        dest="debug",
        action="count",
        default=0,
        help="Increase debug level"
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=version_string(),
        help="Show program version information"
    )

    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Generate a sample configuration file"
    )

    return parser.parse_args(argv)


def apply_overrides(config: BridgeConfig, args) -> BridgeConfig:
    """Apply command line overrides to a loaded configuration."""
    if args.server:
        config.backend.server = args.server
    if args.request_type:
        config.backend.request_type = args.request_type
    if args.secret:
        config.backend.secret = args.secret
    if args.secret_file:
        config.backend.secret_file = args.secret_file
    if args.codec:
        config.backend.codec = args.codec
    if args.address_family:
        config.transport.address_family = args.address_family
    if args.protocol:
        config.transport.protocol = args.protocol
    if args.retries is not None:
        config.transport.retries = args.retries
    if args.timeout is not None:
        config.transport.timeout_seconds = args.timeout
    if args.dictionary:
        config.dictionary.path = args.dictionary
    if args.log_file:
        config.logging.file_path = args.log_file
    if args.debug:
        config.logging.debug_level += args.debug
    return config


def install_signal_handlers(stop: threading.Event):
    """
    Termination signals set the stop flag and abandon whatever blocking
    call is in progress; blocking reads are otherwise retried after EINTR.
    """

    def signal_handler(signum, frame):
        stop.set()
        raise StopRequested(f"Received signal {signum}")

    for name in STOP_SIGNALS:
        sig = getattr(signal, name, None)
        if sig is not None:
            signal.signal(sig, signal_handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Generate sample config if requested
    if args.generate_config:
        config = BridgeConfig()
        config_path = Path(get_default_config_path())
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config.to_yaml(str(config_path))
        print(f"Generated sample configuration: {config_path}")
        return 0

    try:
        config_path = args.config or get_default_config_path()
        config = apply_overrides(BridgeConfig.from_yaml(config_path), args)
        setup_logging(config.logging)
        logger.debug(f"Loaded configuration from {config_path}")

        if config.backend.secret_file:
            config.backend.secret = read_secret_file(config.backend.secret_file)
        config.validate()

        code = parse_packet_code(config.backend.request_type)

        if config.dictionary.path:
            dictionary = AttributeDictionary.from_yaml(config.dictionary.path)
        else:
            dictionary = AttributeDictionary.default()
        schema = BridgeSchema.from_dictionary(dictionary, config.dictionary)

        codec = load_codec(config.backend.codec, dictionary)
        host, port = parse_server(config.backend.server)
        sock = open_socket(
            host,
            port,
            config.transport.protocol,
            ADDRESS_FAMILIES[config.transport.address_family],
        )
    except BridgeError as e:
        logger.error(str(e))
        return 1

    stop = threading.Event()
    state = SessionState(
        retries=config.transport.retries,
        timeout=config.transport.timeout_seconds,
        stop=stop,
    )
    transport = SocketTransport(sock, codec, config.backend.secret, stop)
    session = PassPersistSession(
        schema,
        transport,
        state,
        code,
        sys.stdin.buffer,
        sys.stdout.buffer,
        trace=config.logging.debug_level > 1,
    )

    logger.debug(f"{version_string()} - Serving {config.backend.server} ({config.transport.protocol})")
    install_signal_handlers(stop)
    try:
        return session.run()
    except StopRequested:
        logger.debug("Stop requested outside the read loop")
        return 0
    finally:
        transport.close()


def run():
    """Entry point for the application."""
    sys.exit(main())


if __name__ == "__main__":
    run()
