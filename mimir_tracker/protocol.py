"""
mimir_tracker.protocol
----------------------
Binary codec for the tracker's UDP protocol. All integers are big-endian.

Request:
    version:u8 | nonce:u32 | command:u8 | identity:32
    register (0): port:u16 | priority:u8 | client_tag:u32 | address:16 | signature:64
    resolve  (1): no payload

Response:
    nonce:u32 | command:u8 (both echoed from the request)
    register (0): ttl:u64
    resolve  (1): count:u8, then count x
                  address:16 | signature:64 | port:u16 | priority:u8 | client_tag:u32 | ttl:u64

There is no error response. Anything the server cannot decode is dropped.
"""

from __future__ import annotations
import logging
import struct
from dataclasses import dataclass, field
from typing import Iterable, List, Union

from .constants import (
    CMD_REGISTER, CMD_RESOLVE, PROTOCOL_VERSION, RESPONSE_BUFFER_SIZE,
    REQUEST_HEADER_FORMAT, REGISTER_PAYLOAD_FORMAT, RESPONSE_HEADER_FORMAT,
    REGISTER_BODY_FORMAT, RESOLVE_COUNT_FORMAT, RESOLVE_RECORD_FORMAT,
)
from .storage.models import AddressRecord

log = logging.getLogger("Tracker.Protocol")

REQUEST_HEADER_LEN = struct.calcsize(REQUEST_HEADER_FORMAT)        # 38
REGISTER_PAYLOAD_LEN = struct.calcsize(REGISTER_PAYLOAD_FORMAT)    # 87
RESPONSE_HEADER_LEN = struct.calcsize(RESPONSE_HEADER_FORMAT)      # 5
REGISTER_BODY_LEN = struct.calcsize(REGISTER_BODY_FORMAT)          # 8
RESOLVE_COUNT_LEN = struct.calcsize(RESOLVE_COUNT_FORMAT)          # 1
RESOLVE_RECORD_LEN = struct.calcsize(RESOLVE_RECORD_FORMAT)        # 95


class ProtocolError(Exception):
    pass


class MalformedRequestError(ProtocolError):
    pass


class UnknownCommandError(ProtocolError):
    def __init__(self, header: "RequestHeader"):
        super().__init__(f"Unknown command {header.command}")
        self.header = header


@dataclass
class RequestHeader:
    version: int
    nonce: int
    command: int
    identity: bytes


@dataclass
class RegisterRequest:
    nonce: int
    identity: bytes
    port: int
    priority: int
    client_tag: int
    address: bytes
    signature: bytes
    version: int = PROTOCOL_VERSION
    command: int = CMD_REGISTER


@dataclass
class ResolveRequest:
    nonce: int
    identity: bytes
    version: int = PROTOCOL_VERSION
    command: int = CMD_RESOLVE


@dataclass
class RegisterResponse:
    nonce: int
    ttl: int
    command: int = CMD_REGISTER


@dataclass
class ResolveResponse:
    nonce: int
    records: List[AddressRecord] = field(default_factory=list)
    command: int = CMD_RESOLVE

    @property
    def count(self) -> int:
        return len(self.records)


Request = Union[RegisterRequest, ResolveRequest]
Response = Union[RegisterResponse, ResolveResponse]


def max_records(max_size: int = RESPONSE_BUFFER_SIZE) -> int:
    """Largest record count a resolve response can carry within max_size bytes."""
    room = max_size - RESPONSE_HEADER_LEN - RESOLVE_COUNT_LEN
    if room < 0:
        return 0
    # count is a single byte
    return min(room // RESOLVE_RECORD_LEN, 0xFF)


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------
def decode_header(data: bytes) -> RequestHeader:
    if len(data) < REQUEST_HEADER_LEN:
        raise MalformedRequestError(f"Request too short: {len(data)} bytes")
    version, nonce, command, identity = struct.unpack_from(REQUEST_HEADER_FORMAT, data, 0)
    return RequestHeader(version=version, nonce=nonce, command=command, identity=identity)


def decode_request(data: bytes) -> Request:
    """
    Decode one request datagram.

    Raises MalformedRequestError when the datagram ends before a field is
    complete and UnknownCommandError for a command other than register or
    resolve. Bytes past the end of a complete request are ignored.
    """
    header = decode_header(data)

    if header.command == CMD_REGISTER:
        if len(data) < REQUEST_HEADER_LEN + REGISTER_PAYLOAD_LEN:
            raise MalformedRequestError(
                f"Register request too short: {len(data)} bytes, "
                f"need {REQUEST_HEADER_LEN + REGISTER_PAYLOAD_LEN}"
            )
        port, priority, client_tag, address, signature = struct.unpack_from(
            REGISTER_PAYLOAD_FORMAT, data, REQUEST_HEADER_LEN
        )
        return RegisterRequest(
            nonce=header.nonce,
            identity=header.identity,
            port=port,
            priority=priority,
            client_tag=client_tag,
            address=address,
            signature=signature,
            version=header.version,
        )

    if header.command == CMD_RESOLVE:
        return ResolveRequest(nonce=header.nonce, identity=header.identity, version=header.version)

    raise UnknownCommandError(header)


def encode_register_response(nonce: int, ttl: int) -> bytes:
    return struct.pack(RESPONSE_HEADER_FORMAT, nonce, CMD_REGISTER) + struct.pack(REGISTER_BODY_FORMAT, ttl)


def encode_resolve_response(nonce: int, records: Iterable[AddressRecord],
                            max_size: int = RESPONSE_BUFFER_SIZE) -> bytes:
    """
    Encode a resolve response, keeping it within max_size bytes.

    Records beyond what fits are dropped so the count byte always matches
    the number of records actually written.
    """
    records = list(records)
    limit = max_records(max_size)
    if len(records) > limit:
        log.warning(f"[PROTO] resolve response truncated from {len(records)} to {limit} records")
        records = records[:limit]

    parts = [
        struct.pack(RESPONSE_HEADER_FORMAT, nonce, CMD_RESOLVE),
        struct.pack(RESOLVE_COUNT_FORMAT, len(records)),
    ]
    for rec in records:
        parts.append(struct.pack(
            RESOLVE_RECORD_FORMAT,
            rec.address,
            rec.signature,
            rec.port,
            rec.priority,
            rec.client_tag,
            rec.ttl,
        ))
    return b"".join(parts)


# ---------------------------------------------------------------------------
# Client side
# ---------------------------------------------------------------------------
def encode_register_request(nonce: int, identity: bytes, port: int, priority: int,
                            client_tag: int, address: bytes, signature: bytes,
                            version: int = PROTOCOL_VERSION) -> bytes:
    return struct.pack(REQUEST_HEADER_FORMAT, version, nonce, CMD_REGISTER, identity) + struct.pack(
        REGISTER_PAYLOAD_FORMAT, port, priority, client_tag, address, signature
    )


def encode_resolve_request(nonce: int, identity: bytes, version: int = PROTOCOL_VERSION) -> bytes:
    return struct.pack(REQUEST_HEADER_FORMAT, version, nonce, CMD_RESOLVE, identity)


def encode_request(request: Request) -> bytes:
    if isinstance(request, RegisterRequest):
        return encode_register_request(
            request.nonce, request.identity, request.port, request.priority,
            request.client_tag, request.address, request.signature, request.version,
        )
    return encode_resolve_request(request.nonce, request.identity, request.version)


def decode_response(data: bytes, identity: bytes = b"") -> Response:
    """
    Decode a response datagram. `identity` is stamped onto resolved records,
    since the wire format does not repeat it.
    """
    if len(data) < RESPONSE_HEADER_LEN:
        raise ProtocolError(f"Response too short: {len(data)} bytes")
    nonce, command = struct.unpack_from(RESPONSE_HEADER_FORMAT, data, 0)
    offset = RESPONSE_HEADER_LEN

    try:
        if command == CMD_REGISTER:
            (ttl,) = struct.unpack_from(REGISTER_BODY_FORMAT, data, offset)
            return RegisterResponse(nonce=nonce, ttl=ttl)

        if command == CMD_RESOLVE:
            (count,) = struct.unpack_from(RESOLVE_COUNT_FORMAT, data, offset)
            offset += RESOLVE_COUNT_LEN
            records = []
            for _ in range(count):
                address, signature, port, priority, client_tag, ttl = struct.unpack_from(
                    RESOLVE_RECORD_FORMAT, data, offset
                )
                offset += RESOLVE_RECORD_LEN
                records.append(AddressRecord(
                    identity=identity,
                    address=address,
                    signature=signature,
                    port=port,
                    priority=priority,
                    client_tag=client_tag,
                    ttl=ttl,
                ))
            return ResolveResponse(nonce=nonce, records=records)
    except struct.error as e:
        raise ProtocolError(f"Truncated response: {e}") from e

    raise ProtocolError(f"Unknown command {command} in response")
