"""Pytest configuration for SNMP bridge tests."""

import io
from typing import Callable, List, Union

import pytest

from snmp_bridge.agent.pass_persist import BridgeSchema, PassPersistSession, SessionState
from snmp_bridge.core.dictionary import AttributeDictionary
from snmp_bridge.core.exceptions import CodecError
from snmp_bridge.core.models import TypedValue
from snmp_bridge.transport.base import PacketCodec, Reply, Request, Transport


TEST_DICTIONARY = {
    "attributes": [
        {"name": "Message-Authenticator", "number": 80, "type": "octets"},
        {
            "name": "Extended-Attribute-1",
            "number": 241,
            "type": "tlv",
            "children": [{
                "name": "Extended-Vendor-Specific-1",
                "number": 26,
                "type": "tlv",
                "children": [{
                    "name": "FreeRADIUS",
                    "number": 11344,
                    "type": "tlv",
                    "children": [
                        {
                            "name": "Test-Iso",
                            "number": 1,
                            "type": "tlv",
                            "children": [
                                {
                                    "name": "Test-Scalars",
                                    "number": 2,
                                    "type": "tlv",
                                    "children": [
                                        {"name": "Test-Counter", "number": 3, "type": "integer"},
                                        {"name": "Test-Ident", "number": 4, "type": "string"},
                                        {
                                            "name": "Test-Reset",
                                            "number": 5,
                                            "type": "integer",
                                            "values": {"running": 4, "reset": 2},
                                        },
                                    ],
                                },
                                {
                                    "name": "Test-Table",
                                    "number": 5,
                                    "type": "tlv",
                                    "children": [
                                        {"name": "Test-Index", "number": 0, "type": "integer"},
                                        {
                                            "name": "Test-Entry",
                                            "number": 1,
                                            "type": "tlv",
                                            "children": [
                                                {"name": "Test-Name", "number": 2, "type": "string"},
                                                {"name": "Test-Address", "number": 3, "type": "ipaddr"},
                                            ],
                                        },
                                    ],
                                },
                                {
                                    "name": "Test-Broken-Table",
                                    "number": 6,
                                    "type": "tlv",
                                    "children": [
                                        {"name": "Test-Broken-Index", "number": 0, "type": "integer"},
                                        {"name": "Test-Broken-Column", "number": 2, "type": "integer"},
                                    ],
                                },
                            ],
                        },
                        {
                            "name": "FreeRADIUS-SNMP-Operation",
                            "number": 2,
                            "type": "integer",
                            "values": {"ping": 0, "get": 1, "getnext": 2, "set": 3},
                        },
                        {
                            "name": "FreeRADIUS-SNMP-Type",
                            "number": 3,
                            "type": "integer",
                            "values": {"integer": 2, "string": 4, "ipaddress": 64},
                        },
                        {
                            "name": "FreeRADIUS-SNMP-Failure",
                            "number": 4,
                            "type": "integer",
                            "values": {"not-writable": 1, "wrong-type": 2},
                        },
                    ],
                }],
            }],
        },
    ]
}


Responder = Union[Exception, Callable[[Request], List[TypedValue]]]


class FakeTransport(Transport):
    """Scripted transport: each exchange consumes the next responder."""

    def __init__(self, responders: List[Responder] = None):
        self.responders = list(responders or [])
        self.requests: List[Request] = []
        self.closed = False

    def exchange(self, request: Request, retries: int, timeout: float) -> Reply:
        self.requests.append(request)
        responder = self.responders.pop(0)
        if isinstance(responder, Exception):
            raise responder
        return Reply(id=request.id, code=2, values=responder(request))

    def close(self):
        self.closed = True


class ByteCodec(PacketCodec):
    """
    Minimal codec for socket tests.

    A packet is the request identifier byte followed by opaque payload;
    a payload of ``!`` fails to decode.
    """

    def encode(self, request: Request, secret: str) -> bytes:
        if request.code == 255:
            raise CodecError("unencodable")
        return bytes([request.id]) + b"request"

    def decode(self, data: bytes, request: Request, secret: str) -> Reply:
        if data[1:2] == b"!":
            raise CodecError("bad authenticator")
        return Reply(id=data[0], code=2, values=[])


@pytest.fixture
def dictionary() -> AttributeDictionary:
    return AttributeDictionary.from_dict(TEST_DICTIONARY)


@pytest.fixture
def schema(dictionary) -> BridgeSchema:
    return BridgeSchema.from_dictionary(dictionary)


@pytest.fixture
def snmp_root(schema):
    return schema.snmp_root


@pytest.fixture
def run_session(schema):
    """Run a session over the given input; returns (status, output, state)."""

    def _run(data: bytes, transport: Transport = None, state: SessionState = None):
        state = state or SessionState(retries=1, timeout=0.1)
        output = io.BytesIO()
        session = PassPersistSession(
            schema,
            transport or FakeTransport(),
            state,
            12,
            io.BytesIO(data),
            output,
            trace=True,
        )
        status = session.run()
        return status, output.getvalue(), state

    return _run
