"""
net-snmp pass_persist session.

Reads commands from net-snmp one at a time, converts them to RADIUS
requests, and writes the converted replies back. Exactly one request
is outstanding at any time: the next command is not read until the
previous exchange, including all retries, has finished.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import BinaryIO, Optional, Tuple

from ..core.config import DictionaryConfig
from ..core.dictionary import AttributeDictionary
from ..core.exceptions import (
    DictionaryError,
    FatalExchangeError,
    FormatterError,
    LineTooLongError,
    OidParseError,
    RecoverableExchangeError,
    StopRequested,
    ValueParseError,
)
from ..core.kinds import render_value
from ..core.models import TreeNode, TypedValue, ValueSet
from ..transport.base import Reply, Request, Transport
from .oid_codec import format_parse_error, path_to_value_set, value_set_to_path
from .varbind_formatter import value_set_to_varbinds


logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 256
MAX_VALUE_LENGTH = 253  # RADIUS attribute length

RESPONSE_PONG = b"PONG"
RESPONSE_NONE = b"NONE"
RESPONSE_DONE = b"DONE"


class Command(IntEnum):
    """pass_persist commands; values are sent as the SNMP operation."""

    UNKNOWN = -1
    PING = 0
    GET = 1
    GETNEXT = 2
    SET = 3
    EXIT = 4


COMMANDS = {
    "PING": Command.PING,
    "get": Command.GET,
    "getnext": Command.GETNEXT,
    "set": Command.SET,
    "": Command.EXIT,
}


class _SessionEnd(Exception):
    """Input closed or stop requested."""


@dataclass
class BridgeSchema:
    """Dictionary attributes the session relies on."""

    snmp_root: TreeNode  # OID paths are evaluated from here
    oid_root: TreeNode  # First attribute included in returned OIDs
    operation: TreeNode
    type: TreeNode
    failure: TreeNode
    authenticator: TreeNode

    @classmethod
    def from_dictionary(
        cls,
        dictionary: AttributeDictionary,
        config: Optional[DictionaryConfig] = None,
    ) -> "BridgeSchema":
        """
        Resolve the required attributes.

        Raises:
            DictionaryError: If any of them is missing
        """
        config = config or DictionaryConfig()

        snmp_root = dictionary.require_oid(config.snmp_root_oid)
        oid_root = snmp_root.child(config.oid_root)
        if oid_root is None:
            raise DictionaryError(
                f"Incomplete dictionary: Missing definition for {config.snmp_root_oid}.{config.oid_root}"
            )

        return cls(
            snmp_root=snmp_root,
            oid_root=oid_root,
            operation=dictionary.require(config.operation_attribute),
            type=dictionary.require(config.type_attribute),
            failure=dictionary.require(config.failure_attribute),
            authenticator=dictionary.require(config.authenticator_attribute),
        )


@dataclass
class SessionState:
    """
    State carried across commands.

    The request identifier is a single byte advanced once per exchange,
    whatever its outcome, so identifiers are not reused while a reply
    to an earlier request might still arrive.
    """

    retries: int = 5
    timeout: float = 3.0
    next_request_id: int = 0
    stop: threading.Event = field(default_factory=threading.Event)

    def allocate_request_id(self) -> int:
        request_id = self.next_request_id
        self.next_request_id = (self.next_request_id + 1) & 0xFF
        return request_id


class PassPersistSession:
    """
    The pass_persist command loop.

    Recoverable failures are answered with ``NONE`` and the loop moves
    on to the next command. A fatal transport failure ends the loop with
    a failure status.
    """

    def __init__(
        self,
        schema: BridgeSchema,
        transport: Transport,
        state: SessionState,
        code: int,
        input_stream: BinaryIO,
        output_stream: BinaryIO,
        trace: bool = False,
    ):
        self.schema = schema
        self.transport = transport
        self.state = state
        self.code = code
        self.input = input_stream
        self.output = output_stream
        self.trace = trace

    def run(self) -> int:
        """
        Serve commands until a blank command line, end of input, or stop.

        Returns:
            Process exit status
        """
        logger.debug("Starting pass_persist read loop")
        try:
            while not self.state.stop.is_set():
                try:
                    line = self._next_line()
                except LineTooLongError as e:
                    logger.error(str(e))
                    self._respond(RESPONSE_NONE)
                    continue

                command = COMMANDS.get(line.strip(), Command.UNKNOWN)
                if command is Command.EXIT:
                    logger.debug("Empty command, exiting")
                    break

                self._handle(command, line)
        except _SessionEnd:
            logger.debug("Input closed or stop requested")
        except StopRequested as e:
            logger.debug(str(e))
        except FatalExchangeError as e:
            logger.error(str(e))
            return 1
        except OSError as e:
            logger.error(f"Failed talking to net-snmp: {e}")
            return 1
        finally:
            logger.debug("Read loop done")

        return 0

    def _handle(self, command: Command, line: str):
        if command is Command.PING:
            self._respond(RESPONSE_PONG)
            return

        if command is Command.UNKNOWN:
            logger.error(f"Unknown command \"{line}\"")
            self._respond(RESPONSE_NONE)
            return

        # Always consume the follow-up lines so the stream stays in step
        path, error = self._read_argument(MAX_LINE_LENGTH)
        value = None
        if command is Command.SET:
            value, value_error = self._read_argument(MAX_VALUE_LENGTH)
            error = error or value_error

        if error is not None:
            logger.error(str(error))
            self._respond(RESPONSE_NONE)
            return

        try:
            values, _ = path_to_value_set(path, self.schema.snmp_root, value)
        except OidParseError as e:
            text, marker = format_parse_error(path, e)
            logger.error("Failed evaluating OID:")
            logger.error(text)
            logger.error(marker)
            self._respond(RESPONSE_NONE)
            return

        logger.debug(f"{command.name.lower()} {value_set_to_path(values, self.schema.snmp_root)}")

        # Now add an attribute indicating what the SNMP operation was
        values.append(TypedValue(self.schema.operation, int(command)))

        # Add message authenticator or the request will be rejected
        values.append(TypedValue(self.schema.authenticator, b"\x00"))

        request = Request(id=self.state.allocate_request_id(), code=self.code, values=values)
        self._log_values(f"Sending request id {request.id}", request.values)

        try:
            reply = self.transport.exchange(request, self.state.retries, self.state.timeout)
        except RecoverableExchangeError as e:
            logger.error(str(e))
            self._respond(RESPONSE_NONE)
            return

        self._log_values(f"Received reply id {reply.id}", reply.values)

        if command is Command.SET:
            self._set_response(reply)
        else:
            self._get_response(reply)

    def _get_response(self, reply: Reply):
        """Write three lines (OID, type, value) per varbind, or NONE."""
        try:
            varbinds = value_set_to_varbinds(self.schema.oid_root, self.schema.type, reply.values)
        except FormatterError as e:
            logger.error(f"Failed converting pairs to varbind response: {e}")
            self._respond(RESPONSE_NONE)
            return

        if not varbinds:
            logger.debug("Empty response")
            self._respond(RESPONSE_NONE)
            return

        for varbind in varbinds:
            if self.trace:
                logger.debug(f"said: {varbind.path}")
                logger.debug(f"said: {varbind.type_tag}")
                logger.debug(f"said: {varbind.value!r}")
        self._write(b"".join(varbind.to_lines() for varbind in varbinds))
        logger.debug(f"Returned {len(varbinds)} varbind responses")

    def _set_response(self, reply: Reply):
        """Write DONE, or the failure attribute as described in snmpd.conf(5)."""
        failure = next((v for v in reply.values if v.node is self.schema.failure), None)
        if failure is None:
            self._respond(RESPONSE_DONE)
            return

        try:
            text = render_value(failure.node, failure.value)
        except (ValueParseError, TypeError, ValueError) as e:
            logger.error(f"Failed rendering \"{failure.node.name}\": {e}")
            self._respond(RESPONSE_NONE)
            return

        self._respond(text)

    def _read_argument(self, limit: int) -> Tuple[str, Optional[LineTooLongError]]:
        try:
            return self._next_line(limit), None
        except LineTooLongError as e:
            return "", e

    def _next_line(self, limit: int = MAX_LINE_LENGTH) -> str:
        """
        Read one line without its newline.

        Raises:
            _SessionEnd: On end of input or when a stop was requested
            LineTooLongError: If the line exceeds ``limit`` bytes; the
                rest of the line is discarded
        """
        if self.state.stop.is_set():
            raise _SessionEnd()

        data = self.input.readline(limit + 1)
        if not data:
            raise _SessionEnd()

        if len(data) > limit and not data.endswith(b"\n"):
            while data and not data.endswith(b"\n"):
                data = self.input.readline(limit)
            raise LineTooLongError(f"Input line longer than {limit} bytes")

        if data.endswith(b"\n"):
            data = data[:-1]

        line = data.decode("utf-8", "surrogateescape")
        if self.trace:
            logger.debug(f"read: {line}")
        return line

    def _respond(self, response: bytes):
        if self.trace:
            logger.debug(f"said: {response.decode('utf-8', 'replace')}")
        self._write(response + b"\n")

    def _write(self, data: bytes):
        self.output.write(data)
        self.output.flush()

    def _log_values(self, header: str, values: ValueSet):
        if not logger.isEnabledFor(logging.DEBUG):
            return
        logger.debug(header)
        for typed in values:
            logger.debug(f"\t{typed.node.name} = {typed.value!r}")
